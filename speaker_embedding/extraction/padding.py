"""Frame-count alignment for the embedding model's subsampling stack."""

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np

logger = logging.getLogger(__name__)

FRAME_ALIGNMENT = 16


def padded_length(num_frames: int, multiple: int = FRAME_ALIGNMENT) -> int:
    """Smallest multiple of ``multiple`` that is >= ``num_frames``."""

    if multiple <= 0:
        raise ValueError(f"multiple must be > 0 (got {multiple})")
    remainder = num_frames % multiple
    if remainder == 0:
        return num_frames
    return num_frames + multiple - remainder


def pad_frames(frames: np.ndarray, multiple: int = FRAME_ALIGNMENT) -> Tuple[np.ndarray, int]:
    """Append zero frames so the frame count is a multiple of ``multiple``.

    Returns the (possibly new) matrix together with the original frame count,
    which is what the model must be told as the sequence length.
    """

    if frames.ndim != 2:
        raise ValueError(f"Expected a (num_frames, feat_dim) matrix, got shape {frames.shape}")
    num_frames, feat_dim = frames.shape
    target = padded_length(num_frames, multiple)
    if target == num_frames:
        return frames, num_frames

    padded = np.zeros((target, feat_dim), dtype=frames.dtype)
    padded[:num_frames] = frames
    logger.debug("Padded %d frames to %d", num_frames, target)
    return padded, num_frames


__all__ = ["FRAME_ALIGNMENT", "pad_frames", "padded_length"]
