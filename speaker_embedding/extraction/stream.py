"""Per-utterance frame buffer with a consumption cursor."""

from __future__ import annotations

import logging
import threading
from typing import List, Optional

import numpy as np

try:
    import librosa
except ImportError as exc:  # pragma: no cover - librosa required for resampling
    raise RuntimeError("librosa is required for waveform streaming") from exc

from .frontend import FbankComputer

logger = logging.getLogger(__name__)


class OnlineStream:
    """Accumulates feature frames for one utterance.

    Frames arrive either as raw audio through ``accept_waveform`` (requires a
    front end) or precomputed through ``accept_features``.  The stream tracks
    how many frames are ready and how many an extractor has already consumed;
    the consumed count only ever moves forward and never passes the ready
    count.  Frame indices are absolute over the stream's lifetime, but rows
    below the consumed count are released and can no longer be read.
    ``lock`` serialises producers and the extractor that drains the buffer.

    The input rate is fixed by the first ``accept_waveform`` call.  Audio at
    the front end's rate becomes frames immediately; audio at any other rate
    is held until ``input_finished`` and resampled in a single pass, so the
    result does not depend on how the caller chunked it.
    """

    def __init__(self, frontend: Optional[FbankComputer] = None, *, feat_dim: Optional[int] = None) -> None:
        if frontend is not None and feat_dim is not None and feat_dim != frontend.feature_dim:
            raise ValueError(f"feat_dim {feat_dim} disagrees with front end dim {frontend.feature_dim}")
        self.frontend = frontend
        self.lock = threading.Lock()
        self._feat_dim = frontend.feature_dim if frontend is not None else feat_dim
        self._frames = np.zeros((0, self._feat_dim or 0), dtype=np.float32)
        self._chunks: List[np.ndarray] = []
        self._offset = 0
        self._num_ready = 0
        self._pending = np.zeros(0, dtype=np.float32)
        self._input_rate: Optional[int] = None
        self._foreign: List[np.ndarray] = []
        self._num_processed = 0
        self._finished = False

    @property
    def feat_dim(self) -> Optional[int]:
        return self._feat_dim

    @property
    def num_frames_ready(self) -> int:
        return self._num_ready

    @property
    def num_buffered_frames(self) -> int:
        """Frames still held in memory (ready frames not yet released)."""

        return self._num_ready - self._offset

    @property
    def num_processed_frames(self) -> int:
        return self._num_processed

    @num_processed_frames.setter
    def num_processed_frames(self, value: int) -> None:
        if value < self._num_processed:
            raise ValueError(
                f"num_processed_frames cannot move backwards ({self._num_processed} -> {value})"
            )
        if value > self.num_frames_ready:
            raise ValueError(
                f"num_processed_frames ({value}) exceeds num_frames_ready ({self.num_frames_ready})"
            )
        self._num_processed = int(value)
        self._release_consumed()

    @property
    def is_finished(self) -> bool:
        return self._finished

    def accept_waveform(self, sample_rate: int, samples: np.ndarray) -> None:
        """Feed mono audio.

        At the front end's rate every complete frame becomes ready
        immediately.  At another rate frames appear on ``input_finished``.
        """

        if self.frontend is None:
            raise RuntimeError("This stream has no front end; use accept_features instead")
        with self.lock:
            if self._finished:
                raise RuntimeError("accept_waveform called after input_finished")
            if self._input_rate is None:
                self._input_rate = sample_rate
                if sample_rate != self.frontend.sample_rate:
                    logger.warning(
                        "Stream input at %d Hz will be resampled to %d Hz when input is finished",
                        sample_rate,
                        self.frontend.sample_rate,
                    )
            elif sample_rate != self._input_rate:
                raise ValueError(
                    f"Stream input rate is {self._input_rate} Hz; got a chunk at {sample_rate} Hz"
                )
            audio = np.asarray(samples, dtype=np.float32).reshape(-1)
            if sample_rate != self.frontend.sample_rate:
                self._foreign.append(audio)
                return
            self._feed(audio)

    def accept_features(self, frames: np.ndarray) -> None:
        """Append precomputed ``(n, feat_dim)`` frames to the buffer."""

        matrix = np.asarray(frames, dtype=np.float32)
        if matrix.ndim != 2:
            raise ValueError(f"Expected a (num_frames, feat_dim) matrix, got shape {matrix.shape}")
        with self.lock:
            if self._finished:
                raise RuntimeError("accept_features called after input_finished")
            if self._feat_dim is None:
                self._feat_dim = matrix.shape[1]
                self._frames = np.zeros((0, self._feat_dim), dtype=np.float32)
            elif matrix.shape[1] != self._feat_dim:
                raise ValueError(f"Expected frames of width {self._feat_dim}, got {matrix.shape[1]}")
            self._append(matrix)

    def input_finished(self) -> None:
        """Mark the end of the utterance; trailing partial frames are dropped."""

        with self.lock:
            if self._foreign:
                audio = np.concatenate(self._foreign)
                self._foreign = []
                resampled = librosa.resample(
                    audio, orig_sr=self._input_rate, target_sr=self.frontend.sample_rate
                ).astype(np.float32)
                self._feed(resampled)
            self._finished = True
            self._pending = np.zeros(0, dtype=np.float32)

    def get_frames(self, start: int, count: int) -> np.ndarray:
        """Return frames ``[start, start + count)`` as a flat float32 buffer."""

        if start < 0 or count < 0 or start + count > self.num_frames_ready:
            raise IndexError(
                f"Frame range [{start}, {start + count}) outside [0, {self.num_frames_ready})"
            )
        if start < self._offset:
            raise IndexError(f"Frames before {self._offset} were consumed and released")
        frames = self._consolidated()
        begin = start - self._offset
        return frames[begin:begin + count].reshape(-1).copy()

    def _feed(self, audio: np.ndarray) -> None:
        buffered = np.concatenate([self._pending, audio])
        num_new = self.frontend.num_frames(buffered.shape[0])
        if num_new == 0:
            self._pending = buffered
            return
        consumed = num_new * self.frontend.frame_shift
        used = self.frontend.frame_length + (num_new - 1) * self.frontend.frame_shift
        self._append(self.frontend.compute(buffered[:used]))
        self._pending = buffered[consumed:]

    def _append(self, frames: np.ndarray) -> None:
        if frames.shape[0] == 0:
            return
        self._chunks.append(frames)
        self._num_ready += frames.shape[0]
        logger.debug("Stream now holds %d frames (%d processed)", self._num_ready, self._num_processed)

    def _consolidated(self) -> np.ndarray:
        if self._chunks:
            self._frames = np.concatenate([self._frames, *self._chunks], axis=0)
            self._chunks = []
        return self._frames

    def _release_consumed(self) -> None:
        drop = self._num_processed - self._offset
        # release once at least half of what is held has been consumed
        if drop <= 0 or 2 * drop < self.num_buffered_frames:
            return
        frames = self._consolidated()
        self._frames = frames[drop:].copy()
        self._offset = self._num_processed


__all__ = ["OnlineStream"]
