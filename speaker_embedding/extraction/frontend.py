"""Log-mel filter-bank front end producing frames for an ``OnlineStream``."""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

try:
    import librosa
except ImportError as exc:  # pragma: no cover - librosa required for mel filters
    raise RuntimeError("librosa is required for fbank feature extraction") from exc

from .config import FbankConfig

logger = logging.getLogger(__name__)

LOG_GUARD = 2.0 ** -24
INT16_SCALE = 32768.0

# name -> (scipy window, periodic); Kaldi's names use the symmetric N-1 form
_WINDOWS = {
    "hann": ("hann", True),
    "hanning": ("hann", False),
    "hamming": ("hamming", False),
    "rectangular": ("boxcar", True),
    "boxcar": ("boxcar", True),
    "blackman": ("blackman", False),
}


def make_window(window_type: str, length: int) -> np.ndarray:
    """Analysis window of ``length`` samples as float32."""

    name = window_type.lower()
    if name == "povey":
        # Kaldi's default: a symmetric Hann window raised to 0.85
        window = librosa.filters.get_window("hann", length, fftbins=False) ** 0.85
    elif name in _WINDOWS:
        scipy_name, periodic = _WINDOWS[name]
        window = librosa.filters.get_window(scipy_name, length, fftbins=periodic)
    else:
        raise ValueError(f"Unsupported window_type: {window_type!r}")
    return np.asarray(window, dtype=np.float32)


class FbankComputer:
    """Compute log-mel features frame by frame with snipped edges."""

    def __init__(self, cfg: FbankConfig, *, seed: Optional[int] = None) -> None:
        self.cfg = cfg
        self.window = make_window(cfg.window_type, cfg.window_length)
        self.n_fft = cfg.padded_window_length
        self.mel_basis = librosa.filters.mel(
            sr=cfg.sampling_rate,
            n_fft=self.n_fft,
            n_mels=cfg.feature_dim,
            fmin=cfg.low_freq,
            fmax=cfg.mel_high_freq,
            htk=False,
            norm="slaney",
            dtype=np.float32,
        )
        self._rng = np.random.default_rng(seed)
        logger.debug(
            "Fbank front end: sr=%d win=%d shift=%d n_fft=%d mels=%d window=%s",
            cfg.sampling_rate,
            cfg.window_length,
            cfg.window_shift,
            self.n_fft,
            cfg.feature_dim,
            cfg.window_type,
        )

    @property
    def feature_dim(self) -> int:
        return self.cfg.feature_dim

    @property
    def sample_rate(self) -> int:
        return self.cfg.sampling_rate

    @property
    def frame_length(self) -> int:
        return self.cfg.window_length

    @property
    def frame_shift(self) -> int:
        return self.cfg.window_shift

    def num_frames(self, num_samples: int) -> int:
        """Number of complete frames that fit in ``num_samples`` samples."""

        if num_samples < self.frame_length:
            return 0
        return 1 + (num_samples - self.frame_length) // self.frame_shift

    def compute(self, waveform: np.ndarray) -> np.ndarray:
        """Return a ``(num_frames, feature_dim)`` float32 matrix for ``waveform``."""

        samples = np.asarray(waveform, dtype=np.float32).reshape(-1)
        num_frames = self.num_frames(samples.shape[0])
        if num_frames == 0:
            return np.zeros((0, self.feature_dim), dtype=np.float32)

        if not self.cfg.normalize_samples:
            samples = samples * np.float32(INT16_SCALE)

        used = self.frame_length + (num_frames - 1) * self.frame_shift
        frames = librosa.util.frame(
            np.ascontiguousarray(samples[:used]),
            frame_length=self.frame_length,
            hop_length=self.frame_shift,
            axis=0,
        ).astype(np.float32, copy=True)

        if self.cfg.dither > 0.0:
            frames += self.cfg.dither * self._rng.standard_normal(frames.shape).astype(np.float32)
        if self.cfg.remove_dc_offset:
            frames -= frames.mean(axis=1, keepdims=True)
        coeff = np.float32(self.cfg.preemph_coeff)
        if coeff > 0.0:
            frames[:, 1:] -= coeff * frames[:, :-1]
            frames[:, 0] -= coeff * frames[:, 0]
        frames *= self.window

        spectrum = np.fft.rfft(frames, n=self.n_fft, axis=1)
        power = (spectrum.real ** 2 + spectrum.imag ** 2).astype(np.float32)
        mel = power @ self.mel_basis.T
        features = np.log(mel + np.float32(LOG_GUARD)).astype(np.float32)
        return np.ascontiguousarray(features)


__all__ = ["FbankComputer", "make_window", "LOG_GUARD"]
