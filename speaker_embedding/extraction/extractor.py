"""Streaming speaker-embedding extraction.

The extractor holds nothing but the model (and its read-only metadata), so a
single instance can serve many streams.  Each ``compute`` call drains every
frame that is ready on the stream, normalizes that batch on its own, pads it
to the model's frame alignment and returns one embedding.
"""

from __future__ import annotations

import logging

import numpy as np
import torch

from .config import FbankConfig, ModelMetadata
from .frontend import FbankComputer
from .layout import transpose12
from .model import EmbeddingModel
from .normalize import get_normalizer
from .padding import FRAME_ALIGNMENT, pad_frames
from .stream import OnlineStream

logger = logging.getLogger(__name__)


class SpeakerEmbeddingExtractor:
    """Turn the frames buffered on an ``OnlineStream`` into a speaker embedding."""

    def __init__(self, model: EmbeddingModel) -> None:
        self.model = model

    @property
    def metadata(self) -> ModelMetadata:
        return self.model.metadata

    @property
    def dim(self) -> int:
        """Length of the embeddings this extractor produces."""

        return self.metadata.output_dim

    def create_stream(self) -> OnlineStream:
        """New stream whose front end matches the model's training features."""

        frontend = FbankComputer(FbankConfig.from_metadata(self.metadata))
        return OnlineStream(frontend)

    def is_ready(self, stream: OnlineStream) -> bool:
        return stream.num_processed_frames < stream.num_frames_ready

    def compute(self, stream: OnlineStream) -> np.ndarray:
        """Consume all ready frames of ``stream`` and return their embedding.

        Returns an empty array (and leaves the stream untouched) when no frame
        is ready.  Raises ``UnsupportedNormalizationError`` before consuming
        anything if the model asks for a normalization we cannot reproduce.
        """

        with stream.lock:
            num_frames = stream.num_frames_ready - stream.num_processed_frames
            if num_frames <= 0:
                logger.error("Please make sure is_ready(stream) returns True. num_frames: %d", num_frames)
                return np.zeros(0, dtype=np.float32)

            normalizer = get_normalizer(self.metadata.feature_normalize_type)

            features = stream.get_frames(stream.num_processed_frames, num_frames)
            stream.num_processed_frames += num_frames

        if features.size % num_frames != 0:
            raise RuntimeError(
                f"Frame buffer of {features.size} values is not divisible by {num_frames} frames"
            )
        feat_dim = features.size // num_frames
        frames = features.reshape(num_frames, feat_dim)

        if normalizer is not None:
            normalizer(frames)

        frames, num_frames = pad_frames(frames, FRAME_ALIGNMENT)

        x = torch.from_numpy(np.ascontiguousarray(frames)).unsqueeze(0)
        x = transpose12(x)
        x_lens = torch.tensor([num_frames], dtype=torch.int64)
        logger.debug("Model input %s, length %d", tuple(x.shape), num_frames)

        embedding = self.model.compute(x, x_lens)
        dim = int(embedding.shape[1])
        values = embedding.detach().cpu().reshape(-1)[:dim]
        return values.numpy().astype(np.float32, copy=True)

    def embed(self, samples: np.ndarray, sample_rate: int) -> np.ndarray:
        """Embedding of a complete utterance given as mono samples."""

        stream = self.create_stream()
        stream.accept_waveform(sample_rate, samples)
        stream.input_finished()
        if not self.is_ready(stream):
            raise ValueError(
                f"Audio too short for a single frame ({len(samples)} samples at {sample_rate} Hz)"
            )
        return self.compute(stream)


__all__ = ["SpeakerEmbeddingExtractor"]
