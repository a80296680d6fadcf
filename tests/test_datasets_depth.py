import pytest

from orbslam_geometry.datasets_depth import (
    RGBDSequence,
    StereoSequence,
    load_euroc_stereo,
    load_kitti_stereo,
    load_tum_rgbd,
    validate_rgbd,
    validate_stereo,
)


def test_tum_rgbd_association(tmp_path):
    assoc = tmp_path / "assoc.txt"
    assoc.write_text(
        "1305031102.175304 rgb/a.png 1305031102.160407 depth/a.png\n"
        "\n"
        "1305031102.211214 rgb/b.png 1305031102.226738 depth/b.png\n"
    )
    seq = load_tum_rgbd(assoc)
    assert seq.rgb_filenames == ["rgb/a.png", "rgb/b.png"]
    assert seq.depth_filenames == ["depth/a.png", "depth/b.png"]
    assert seq.timestamps == pytest.approx([1305031102.175304, 1305031102.211214])
    assert len(seq) == 2
    assert list(seq)[1] == ("rgb/b.png", "depth/b.png", pytest.approx(1305031102.211214))


def test_tum_rgbd_missing_depth_column(tmp_path):
    assoc = tmp_path / "assoc.txt"
    assoc.write_text("5.0 rgb/x.png\n")
    seq = load_tum_rgbd(assoc)
    assert seq.rgb_filenames == ["rgb/x.png"]
    assert seq.depth_filenames == [""]


def test_euroc_stereo(tmp_path):
    times = tmp_path / "times.txt"
    times.write_text("1403636579763555584\n1403636579813555456\n")
    seq = load_euroc_stereo("cam0", "cam1", times)
    assert seq.left_filenames == [
        "cam0/1403636579763555584.png",
        "cam0/1403636579813555456.png",
    ]
    assert seq.right_filenames == [
        "cam1/1403636579763555584.png",
        "cam1/1403636579813555456.png",
    ]
    assert seq.timestamps[0] == pytest.approx(1403636579763555584 / 1e9)
    assert validate_stereo(seq) == 2


def test_kitti_stereo(tmp_path):
    (tmp_path / "times.txt").write_text("0.0\n0.1\n0.2\n")
    seq = load_kitti_stereo(tmp_path)
    assert len(seq) == 3
    assert seq.left_filenames[2] == f"{tmp_path}/image_0/000002.png"
    assert seq.right_filenames[0] == f"{tmp_path}/image_1/000000.png"
    assert seq.timestamps == pytest.approx([0.0, 0.1, 0.2])
    for left, right, _ in seq:
        assert left.replace("image_0", "image_1") == right


def test_kitti_stereo_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_kitti_stereo(tmp_path)


def test_validate_rgbd_ok():
    seq = RGBDSequence(["a.png"], ["d.png"], [1.0])
    assert validate_rgbd(seq) == 1


def test_validate_rgbd_empty():
    with pytest.raises(ValueError, match="No images found"):
        validate_rgbd(RGBDSequence())


def test_validate_rgbd_mismatch():
    seq = RGBDSequence(["a.png", "b.png"], ["d.png"], [1.0, 2.0])
    with pytest.raises(ValueError, match="rgb and depth"):
        validate_rgbd(seq)


def test_validate_stereo_empty():
    with pytest.raises(ValueError, match="No images in provided path"):
        validate_stereo(StereoSequence(["l.png"], [], [1.0]))


def test_validate_stereo_mismatch():
    seq = StereoSequence(["l1.png", "l2.png"], ["r1.png"], [1.0, 2.0])
    with pytest.raises(ValueError, match="left and right"):
        validate_stereo(seq)