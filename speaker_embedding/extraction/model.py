"""Embedding model interface and a torch-backed implementation."""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Union

import torch
import torch.nn as nn

from .config import ModelMetadata

logger = logging.getLogger(__name__)


class EmbeddingModel(Protocol):
    """What the extractor needs from a speaker-embedding network.

    ``compute`` receives features shaped ``[1, feat_dim, num_frames]``
    (float32) plus a ``[1]`` int64 tensor with the unpadded frame count, and
    returns a ``[1, output_dim]`` float tensor.
    """

    @property
    def metadata(self) -> ModelMetadata:
        ...

    def compute(self, features: torch.Tensor, lengths: torch.Tensor) -> torch.Tensor:
        ...


class TorchEmbeddingModel:
    """Run a ``torch.nn.Module`` (eager or TorchScript) as an embedding model.

    NeMo speaker models return ``(logits, embeddings)``; when the module
    returns a sequence, ``output_index`` selects the embedding output.
    """

    def __init__(
        self,
        module: nn.Module,
        metadata: ModelMetadata,
        *,
        device: Optional[Union[str, torch.device]] = None,
        output_index: int = 1,
    ) -> None:
        device = device or ("cuda" if torch.cuda.is_available() else "cpu")
        self.device = torch.device(device)
        self.module = module.to(self.device).eval()
        self._metadata = metadata
        self.output_index = output_index
        logger.info(
            "Loaded speaker embedding model on %s (feat_dim=%d, output_dim=%d, normalize=%r)",
            self.device,
            metadata.feat_dim,
            metadata.output_dim,
            metadata.feature_normalize_type,
        )

    @property
    def metadata(self) -> ModelMetadata:
        return self._metadata

    @torch.no_grad()
    def compute(self, features: torch.Tensor, lengths: torch.Tensor) -> torch.Tensor:
        outputs = self.module(features.to(self.device), lengths.to(self.device))
        if isinstance(outputs, (tuple, list)):
            outputs = outputs[self.output_index]
        if outputs.dim() != 2:
            raise RuntimeError(f"Expected a [batch, dim] embedding, got shape {tuple(outputs.shape)}")
        return outputs.detach().float().cpu()


__all__ = ["EmbeddingModel", "TorchEmbeddingModel"]
