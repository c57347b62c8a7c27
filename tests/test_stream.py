import librosa
import numpy as np
import pytest

from speaker_embedding.extraction import FbankComputer, FbankConfig, OnlineStream


@pytest.fixture
def frontend() -> FbankComputer:
    return FbankComputer(FbankConfig(sampling_rate=16_000, feature_dim=23))


def test_accept_features_tracks_ready_frames(feature_stream, pattern_frames):
    assert feature_stream.num_frames_ready == 10
    assert feature_stream.num_processed_frames == 0
    assert feature_stream.feat_dim == 4

    feature_stream.accept_features(pattern_frames[:3])

    assert feature_stream.num_frames_ready == 13


def test_feat_dim_inferred_from_first_batch():
    stream = OnlineStream()
    assert stream.feat_dim is None

    stream.accept_features(np.zeros((2, 6), dtype=np.float32))

    assert stream.feat_dim == 6
    with pytest.raises(ValueError):
        stream.accept_features(np.zeros((2, 5), dtype=np.float32))


def test_get_frames_returns_flat_copy(feature_stream, pattern_frames):
    flat = feature_stream.get_frames(2, 3)

    assert flat.shape == (12,)
    assert flat.dtype == np.float32
    np.testing.assert_array_equal(flat.reshape(3, 4), pattern_frames[2:5])

    flat[:] = 0.0
    np.testing.assert_array_equal(feature_stream.get_frames(2, 3).reshape(3, 4), pattern_frames[2:5])


@pytest.mark.parametrize(("start", "count"), [(-1, 2), (0, 11), (9, 2), (3, -1)])
def test_get_frames_out_of_range(feature_stream, start, count):
    with pytest.raises(IndexError):
        feature_stream.get_frames(start, count)


def test_cursor_only_moves_forward_within_ready(feature_stream):
    feature_stream.num_processed_frames = 4
    assert feature_stream.num_processed_frames == 4

    with pytest.raises(ValueError):
        feature_stream.num_processed_frames = 3
    with pytest.raises(ValueError):
        feature_stream.num_processed_frames = 11

    feature_stream.num_processed_frames = 10
    assert feature_stream.num_processed_frames == 10


def test_input_finished_rejects_more_input(frontend):
    stream = OnlineStream(frontend)
    stream.input_finished()

    assert stream.is_finished
    with pytest.raises(RuntimeError):
        stream.accept_waveform(16_000, np.zeros(800, dtype=np.float32))
    with pytest.raises(RuntimeError):
        stream.accept_features(np.zeros((1, 23), dtype=np.float32))


def test_waveform_requires_front_end():
    with pytest.raises(RuntimeError):
        OnlineStream(feat_dim=4).accept_waveform(16_000, np.zeros(800, dtype=np.float32))


def test_mismatched_feat_dim_rejected(frontend):
    with pytest.raises(ValueError):
        OnlineStream(frontend, feat_dim=40)


def test_chunked_waveform_matches_offline_features(frontend):
    samples = np.random.default_rng(7).uniform(-0.5, 0.5, 16_000).astype(np.float32)
    stream = OnlineStream(frontend)

    for start in range(0, samples.shape[0], 1_234):
        stream.accept_waveform(16_000, samples[start:start + 1_234])

    expected = frontend.compute(samples)
    assert stream.num_frames_ready == expected.shape[0] == frontend.num_frames(16_000)
    np.testing.assert_allclose(
        stream.get_frames(0, stream.num_frames_ready).reshape(-1, 23),
        expected,
        rtol=1e-5,
        atol=1e-5,
    )


def test_short_chunks_are_buffered(frontend):
    stream = OnlineStream(frontend)

    stream.accept_waveform(16_000, np.zeros(300, dtype=np.float32))
    assert stream.num_frames_ready == 0

    stream.accept_waveform(16_000, np.zeros(100, dtype=np.float32))
    assert stream.num_frames_ready == 1


def test_resamples_foreign_rate_on_input_finished(frontend):
    samples = np.random.default_rng(3).uniform(-0.5, 0.5, 8_000).astype(np.float32)
    stream = OnlineStream(frontend)

    stream.accept_waveform(8_000, samples)
    assert stream.num_frames_ready == 0

    stream.input_finished()

    resampled = librosa.resample(samples, orig_sr=8_000, target_sr=16_000)
    assert stream.num_frames_ready == frontend.num_frames(resampled.shape[0])


def test_chunked_foreign_rate_matches_single_call(frontend):
    samples = np.random.default_rng(21).uniform(-0.5, 0.5, 44_100).astype(np.float32)
    whole = OnlineStream(frontend)
    whole.accept_waveform(44_100, samples)
    whole.input_finished()

    chunked = OnlineStream(frontend)
    for start in range(0, samples.shape[0], 441):
        chunked.accept_waveform(44_100, samples[start:start + 441])
    chunked.input_finished()

    assert chunked.num_frames_ready == whole.num_frames_ready == 98
    np.testing.assert_array_equal(
        chunked.get_frames(0, chunked.num_frames_ready),
        whole.get_frames(0, whole.num_frames_ready),
    )


def test_input_rate_cannot_change(frontend):
    stream = OnlineStream(frontend)
    stream.accept_waveform(16_000, np.zeros(800, dtype=np.float32))

    with pytest.raises(ValueError):
        stream.accept_waveform(44_100, np.zeros(800, dtype=np.float32))


def test_many_small_appends_keep_absolute_indices():
    stream = OnlineStream(feat_dim=3)
    for i in range(500):
        stream.accept_features(np.full((1, 3), i, dtype=np.float32))

    assert stream.num_frames_ready == 500
    np.testing.assert_array_equal(stream.get_frames(497, 3).reshape(3, 3)[:, 0], [497, 498, 499])

    stream.num_processed_frames = 400
    stream.accept_features(np.full((2, 3), 500, dtype=np.float32))

    expected = list(range(400, 500)) + [500, 500]
    np.testing.assert_array_equal(stream.get_frames(400, 102).reshape(102, 3)[:, 0], expected)


def test_consumed_frames_are_released(feature_stream, pattern_frames):
    feature_stream.num_processed_frames = 10

    assert feature_stream.num_buffered_frames == 0
    with pytest.raises(IndexError):
        feature_stream.get_frames(0, 1)

    feature_stream.accept_features(pattern_frames[:2])
    np.testing.assert_array_equal(feature_stream.get_frames(10, 2).reshape(2, 4), pattern_frames[:2])


def test_small_advances_keep_frames_buffered(feature_stream, pattern_frames):
    feature_stream.num_processed_frames = 3

    assert feature_stream.num_buffered_frames == 10
    np.testing.assert_array_equal(feature_stream.get_frames(3, 7).reshape(7, 4), pattern_frames[3:])
