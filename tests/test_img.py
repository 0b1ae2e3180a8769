import numpy as np
import pytest

from surfelmap.img import Img


def test_owned_image_is_zeroed():
    img = Img(4, 5, dtype=np.uint16)
    assert img.owned
    assert img.data.shape == (4, 5)
    assert int(img.data.sum()) == 0


def test_set_and_get_scalar():
    img = Img(3, 4, dtype=np.uint16)
    img[2, 1] = 77
    assert img.at(2, 1) == 77
    assert img.flat(2 * 4 + 1) == 77


def test_flat_matches_at_everywhere():
    img = Img(3, 4, dtype=np.int32, data=np.arange(12, dtype=np.int32))
    for row in range(3):
        for col in range(4):
            assert img.flat(row * 4 + col) == img.at(row, col)


def test_vector_elements_are_views():
    img = Img(2, 2, dtype=np.float32, element_shape=(4,))
    img.at(1, 0)[:] = [1.0, 2.0, 3.0, 4.0]
    assert list(img.data[1, 0]) == [1.0, 2.0, 3.0, 4.0]


def test_wrapped_buffer_shares_memory():
    buffer = np.zeros(6, dtype=np.uint8)
    img = Img(2, 3, dtype=np.uint8, data=buffer)
    assert not img.owned
    img[1, 2] = 9
    assert buffer[5] == 9


def test_wrong_buffer_size_raises():
    with pytest.raises(ValueError):
        Img(2, 3, data=np.zeros(5, dtype=np.uint8))


@pytest.mark.parametrize("row,col", [(-1, 0), (2, 0), (0, 3)])
def test_out_of_range_raises(row, col):
    img = Img(2, 3)
    with pytest.raises(IndexError):
        img.at(row, col)


def test_flat_out_of_range_raises():
    img = Img(2, 3)
    with pytest.raises(IndexError):
        img.flat(6)