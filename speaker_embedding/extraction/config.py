"""Configuration objects for speaker-embedding extraction.

``ModelMetadata`` describes the preprocessing a speaker-embedding model was
trained with.  It is loaded once alongside the model and never mutated, so a
single instance may be shared by every stream the model serves.
``FbankConfig`` holds the front-end knobs derived from that metadata.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, ClassVar, Mapping, Optional, Tuple, Union

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for older Python
    tomllib = None  # type: ignore

Pathish = Union[str, Path]

PER_FEATURE = "per_feature"


def _ensure_positive(name: str, value: float) -> None:
    if value <= 0:
        raise ValueError(f"{name} must be > 0 (got {value})")


def _ensure_non_negative(name: str, value: float) -> None:
    if value < 0.0:
        raise ValueError(f"{name} must be >= 0 (got {value})")


@dataclass(slots=True, frozen=True)
class ModelMetadata:
    """Read-only preprocessing description attached to an embedding model."""

    REQUIRED_KEYS: ClassVar[Tuple[str, ...]] = (
        "sample_rate",
        "output_dim",
        "feat_dim",
        "window_size_ms",
        "window_stride_ms",
    )

    sample_rate: int = 16_000
    feat_dim: int = 80
    window_size_ms: float = 25.0
    window_stride_ms: float = 10.0
    window_type: str = "hann"
    feature_normalize_type: str = PER_FEATURE
    output_dim: int = 192
    framework: str = ""
    language: str = ""
    url: str = ""
    comment: str = ""

    def __post_init__(self) -> None:
        _ensure_positive("sample_rate", self.sample_rate)
        _ensure_positive("feat_dim", self.feat_dim)
        _ensure_positive("window_size_ms", self.window_size_ms)
        _ensure_positive("window_stride_ms", self.window_stride_ms)
        _ensure_positive("output_dim", self.output_dim)
        if not self.window_type:
            raise ValueError("window_type must not be empty")

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ModelMetadata":
        """Build metadata from an exporter's key/value map.

        Exported models store every value as a string, so numeric fields are
        coerced here.  The normalization type is read from ``normalize_type``
        and falls back to ``feature_normalize_type``; an absent key means no
        normalization.
        """

        missing = [key for key in cls.REQUIRED_KEYS if key not in raw]
        if missing:
            raise KeyError(f"Model metadata missing required keys: {sorted(missing)}")

        normalize_type = raw.get("normalize_type", raw.get("feature_normalize_type", ""))
        return cls(
            sample_rate=int(raw["sample_rate"]),
            feat_dim=int(raw["feat_dim"]),
            window_size_ms=float(raw["window_size_ms"]),
            window_stride_ms=float(raw["window_stride_ms"]),
            window_type=str(raw.get("window_type", "hann")),
            feature_normalize_type=str(normalize_type or ""),
            output_dim=int(raw["output_dim"]),
            framework=str(raw.get("framework", "")),
            language=str(raw.get("language", "")),
            url=str(raw.get("url", "")),
            comment=str(raw.get("comment", "")),
        )

    @classmethod
    def from_toml(cls, path: Pathish) -> "ModelMetadata":
        """Load metadata from the ``[metadata]`` table of a TOML file."""

        if tomllib is None:
            raise RuntimeError("tomllib is unavailable; upgrade to Python 3.11+")
        with open(path, "rb") as handle:
            raw = tomllib.load(handle)
        return cls.from_dict(raw.get("metadata", raw))

    def to_dict(self) -> dict[str, Any]:
        return {field_info.name: getattr(self, field_info.name) for field_info in fields(self)}


@dataclass(slots=True)
class FbankConfig:
    """Log-mel front-end parameters (librosa-compatible filter bank).

    Frames are always snipped at the edges: only windows that fit entirely
    inside the received audio produce a frame.
    """

    sampling_rate: int = 16_000
    feature_dim: int = 80
    frame_shift_ms: float = 10.0
    frame_length_ms: float = 25.0
    window_type: str = "hann"
    low_freq: float = 0.0
    high_freq: Optional[float] = None
    dither: float = 0.0
    preemph_coeff: float = 0.97
    normalize_samples: bool = True
    remove_dc_offset: bool = False
    round_to_power_of_two: bool = True

    def __post_init__(self) -> None:
        _ensure_positive("sampling_rate", self.sampling_rate)
        _ensure_positive("feature_dim", self.feature_dim)
        _ensure_positive("frame_shift_ms", self.frame_shift_ms)
        _ensure_positive("frame_length_ms", self.frame_length_ms)
        _ensure_non_negative("low_freq", self.low_freq)
        _ensure_non_negative("dither", self.dither)
        if not (0.0 <= self.preemph_coeff <= 1.0):
            raise ValueError("preemph_coeff must be within [0, 1]")
        nyquist = self.sampling_rate / 2
        high_freq = self.mel_high_freq
        if not (self.low_freq < high_freq <= nyquist):
            raise ValueError(
                f"Mel range must satisfy low_freq < high_freq <= {nyquist} "
                f"(got {self.low_freq}, {high_freq})"
            )
        if self.window_shift > self.window_length:
            raise ValueError(
                f"frame_shift_ms ({self.frame_shift_ms}) exceeds frame_length_ms ({self.frame_length_ms})"
            )

    @property
    def window_length(self) -> int:
        return int(self.sampling_rate * 0.001 * self.frame_length_ms)

    @property
    def window_shift(self) -> int:
        return int(self.sampling_rate * 0.001 * self.frame_shift_ms)

    @property
    def mel_high_freq(self) -> float:
        nyquist = self.sampling_rate / 2
        if self.high_freq is None:
            return nyquist
        # Kaldi convention: non-positive values are offsets from Nyquist
        return self.high_freq if self.high_freq > 0 else nyquist + self.high_freq

    @property
    def padded_window_length(self) -> int:
        if not self.round_to_power_of_two:
            return self.window_length
        n = 1
        while n < self.window_length:
            n <<= 1
        return n

    @classmethod
    def from_metadata(cls, meta: ModelMetadata) -> "FbankConfig":
        """Front-end settings that reproduce the model's training features."""

        return cls(
            sampling_rate=meta.sample_rate,
            feature_dim=meta.feat_dim,
            frame_shift_ms=meta.window_stride_ms,
            frame_length_ms=meta.window_size_ms,
            window_type=meta.window_type,
            low_freq=0.0,
            normalize_samples=True,
            remove_dc_offset=False,
        )


__all__ = [
    "PER_FEATURE",
    "ModelMetadata",
    "FbankConfig",
]
