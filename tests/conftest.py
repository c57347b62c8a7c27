import sys
from pathlib import Path

import numpy as np
import pytest
import torch
import torch.nn as nn

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover - initialization guard
    sys.path.insert(0, str(ROOT))

from speaker_embedding.extraction import (  # noqa: E402
    ModelMetadata,
    OnlineStream,
    SpeakerEmbeddingExtractor,
    TorchEmbeddingModel,
)


class RecordingEmbedder(nn.Module):
    """Tiny NeMo-shaped model: returns ``(logits, embeddings)`` and keeps its inputs."""

    def __init__(self, feat_dim: int, output_dim: int) -> None:
        super().__init__()
        torch.manual_seed(0)
        self.proj = nn.Linear(feat_dim, output_dim, bias=False)
        self.calls = []

    def forward(self, features: torch.Tensor, lengths: torch.Tensor):
        self.calls.append((features.clone(), lengths.clone()))
        valid = features[:, :, : int(lengths[0])]
        pooled = valid.mean(dim=2)
        embeddings = self.proj(pooled)
        logits = torch.zeros(features.shape[0], 3)
        return logits, embeddings


@pytest.fixture
def metadata() -> ModelMetadata:
    return ModelMetadata(
        sample_rate=16_000,
        feat_dim=4,
        window_size_ms=25.0,
        window_stride_ms=10.0,
        window_type="hann",
        feature_normalize_type="per_feature",
        output_dim=8,
    )


@pytest.fixture
def embedder(metadata: ModelMetadata) -> RecordingEmbedder:
    return RecordingEmbedder(metadata.feat_dim, metadata.output_dim)


@pytest.fixture
def extractor(embedder: RecordingEmbedder, metadata: ModelMetadata) -> SpeakerEmbeddingExtractor:
    return SpeakerEmbeddingExtractor(TorchEmbeddingModel(embedder, metadata, device="cpu"))


@pytest.fixture
def pattern_frames() -> np.ndarray:
    """10 frames x 4 features with distinct per-column statistics."""

    rows = np.arange(10, dtype=np.float32)[:, None]
    cols = np.arange(1, 5, dtype=np.float32)[None, :]
    return (rows * cols + cols * 0.5 + np.sin(rows + cols)).astype(np.float32)


@pytest.fixture
def feature_stream(pattern_frames: np.ndarray) -> OnlineStream:
    stream = OnlineStream(feat_dim=pattern_frames.shape[1])
    stream.accept_features(pattern_frames)
    return stream
