import pytest
import torch

from speaker_embedding.extraction import transpose12


def test_swaps_time_and_feature_axes():
    x = torch.arange(1 * 6 * 4, dtype=torch.float32).reshape(1, 6, 4)

    y = transpose12(x)

    assert y.shape == (1, 4, 6)
    assert y.is_contiguous()
    for t in range(6):
        for f in range(4):
            assert y[0, f, t] == x[0, t, f]


def test_double_transpose_is_identity():
    x = torch.randn(1, 19, 7)

    torch.testing.assert_close(transpose12(transpose12(x)), x, rtol=0, atol=0)


def test_batch_axis_untouched():
    x = torch.randn(3, 5, 2)

    y = transpose12(x)

    assert y.shape == (3, 2, 5)
    torch.testing.assert_close(y[2], x[2].T)


def test_rejects_non_rank3():
    with pytest.raises(ValueError):
        transpose12(torch.zeros(4, 4))
