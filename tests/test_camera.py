import pytest

from surfelmap.camera import Intrinsics, Resolution


@pytest.fixture(autouse=True)
def _fresh_singletons():
    Intrinsics.reset()
    Resolution.reset()
    yield
    Intrinsics.reset()
    Resolution.reset()


def test_intrinsics_values_kept():
    intr = Intrinsics.get_instance(528.0, 529.0, 320.0, 240.0)
    assert (intr.fx, intr.fy, intr.cx, intr.cy) == (528.0, 529.0, 320.0, 240.0)


def test_intrinsics_later_calls_return_first_instance():
    first = Intrinsics.get_instance(528.0, 528.0, 320.0, 240.0)
    second = Intrinsics.get_instance(100.0, 100.0, 1.0, 1.0)
    assert second is first
    assert second.fx == 528.0


def test_intrinsics_uninitialised_raises():
    with pytest.raises(ValueError):
        Intrinsics.get_instance()
    with pytest.raises(ValueError):
        Intrinsics.get_instance(500.0, 0.0, 1.0, 1.0)


def test_intrinsics_reset_allows_new_values():
    Intrinsics.get_instance(528.0, 528.0, 320.0, 240.0)
    Intrinsics.reset()
    intr = Intrinsics.get_instance(100.0, 200.0, 3.0, 4.0)
    assert intr.fy == 200.0


def test_resolution_aliases():
    res = Resolution.get_instance(640, 480)
    assert res.cols == 640
    assert res.rows == 480
    assert res.width == res.cols and res.height == res.rows


def test_resolution_num_pixels():
    res = Resolution.get_instance(640, 480)
    assert res.num_pixels == 307200


def test_resolution_singleton():
    first = Resolution.get_instance(640, 480)
    assert Resolution.get_instance(10, 10) is first


@pytest.mark.parametrize("width,height", [(0, 480), (640, 0), (-1, 5)])
def test_resolution_invalid_raises(width, height):
    with pytest.raises(ValueError):
        Resolution.get_instance(width, height)