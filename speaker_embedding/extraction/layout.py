"""Tensor layout helpers for the model input."""

from __future__ import annotations

import torch


def transpose12(x: torch.Tensor) -> torch.Tensor:
    """Swap axes 1 and 2 of a rank-3 tensor: ``[B, T, F] -> [B, F, T]``.

    The batch axis is left alone and a contiguous copy is returned, so the
    result can be handed straight to an exported graph.
    """

    if x.dim() != 3:
        raise ValueError(f"transpose12 expects a rank-3 tensor, got shape {tuple(x.shape)}")
    return x.transpose(1, 2).contiguous()


__all__ = ["transpose12"]
