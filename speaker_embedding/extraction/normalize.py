"""Feature normalization applied before the embedding model.

Statistics are computed from the frames handed to a single ``compute`` call
only; there is no running mean across calls.  Accumulation happens row by row
in float32 so results agree with the training-time preprocessing.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

import numpy as np

from .config import PER_FEATURE

logger = logging.getLogger(__name__)

STDDEV_EPSILON = np.float32(1e-8)

Normalizer = Callable[[np.ndarray], np.ndarray]


class UnsupportedNormalizationError(ValueError):
    """Raised when a model asks for a feature normalization we do not implement."""

    def __init__(self, normalize_type: str) -> None:
        super().__init__(f"Unsupported feature_normalize_type: {normalize_type!r}")
        self.normalize_type = normalize_type


def normalize_per_feature(frames: np.ndarray) -> np.ndarray:
    """Standardize each feature column to zero mean and unit variance in place.

    ``frames`` must be a C-contiguous ``(num_frames, feat_dim)`` float32 array.
    The variance is the biased (population) estimate taken around the already
    finalized mean, and the standard deviation is ``sqrt(max(var, 0) + 1e-8)``
    so constant columns collapse to zero instead of dividing by zero.
    """

    if frames.ndim != 2:
        raise ValueError(f"Expected a (num_frames, feat_dim) matrix, got shape {frames.shape}")
    if frames.dtype != np.float32:
        raise TypeError(f"Expected float32 features, got {frames.dtype}")
    num_frames, feat_dim = frames.shape
    if num_frames == 0:
        return frames

    mean = np.zeros(feat_dim, dtype=np.float32)
    for row in frames:
        mean += row
    mean /= np.float32(num_frames)

    variance = np.zeros(feat_dim, dtype=np.float32)
    for row in frames:
        diff = row - mean
        variance += diff * diff
    variance /= np.float32(num_frames)

    stddev = np.sqrt(np.maximum(variance, np.float32(0.0)) + STDDEV_EPSILON)

    frames -= mean
    frames /= stddev
    logger.debug("Per-feature normalized %d frames x %d features", num_frames, feat_dim)
    return frames


_NORMALIZERS: Dict[str, Normalizer] = {
    PER_FEATURE: normalize_per_feature,
}


def get_normalizer(normalize_type: str) -> Optional[Normalizer]:
    """Return the normalizer for ``normalize_type``; ``None`` when it is empty."""

    if not normalize_type:
        return None
    try:
        return _NORMALIZERS[normalize_type]
    except KeyError:
        logger.error("Unsupported feature_normalize_type: %s", normalize_type)
        raise UnsupportedNormalizationError(normalize_type) from None


__all__ = [
    "STDDEV_EPSILON",
    "UnsupportedNormalizationError",
    "get_normalizer",
    "normalize_per_feature",
]
