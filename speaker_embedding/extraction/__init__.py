"""Top-level exports for streaming speaker-embedding extraction."""

from .config import PER_FEATURE, FbankConfig, ModelMetadata
from .extractor import SpeakerEmbeddingExtractor
from .frontend import FbankComputer
from .layout import transpose12
from .model import EmbeddingModel, TorchEmbeddingModel
from .normalize import UnsupportedNormalizationError, get_normalizer, normalize_per_feature
from .padding import FRAME_ALIGNMENT, pad_frames, padded_length
from .stream import OnlineStream

__all__ = [
    "PER_FEATURE",
    "FbankConfig",
    "ModelMetadata",
    "SpeakerEmbeddingExtractor",
    "FbankComputer",
    "transpose12",
    "EmbeddingModel",
    "TorchEmbeddingModel",
    "UnsupportedNormalizationError",
    "get_normalizer",
    "normalize_per_feature",
    "FRAME_ALIGNMENT",
    "pad_frames",
    "padded_length",
    "OnlineStream",
]
