"""Tests for live (per-frame) pitch tracking."""

import numpy as np
import pytest

from sing2midi.analysis import (
    LiveDetector,
    LiveDetectorConfig,
    LiveDetectionLog,
    detect_live_pitch,
)
from sing2midi.analysis.live import (
    cumulative_mean_normalized_difference,
    difference_function,
    parabolic_interpolation,
)
from sing2midi.core import LiveDetection


def sine(freq, sr=44100, n=2048, amplitude=0.5):
    t = np.arange(n) / sr
    return amplitude * np.sin(2 * np.pi * freq * t)


class TestYinPrimitives:
    """Test the YIN building blocks."""

    def test_difference_function_zero_at_period(self):
        """d(tau) vanishes at the period of a periodic signal."""
        frame = sine(441.0, sr=44100, n=2000)  # exactly 100 samples per period
        diff = difference_function(frame, 1000)
        assert diff[0] == 0.0
        assert diff[100] == pytest.approx(0.0, abs=1e-6)
        assert diff[50] > 1.0

    def test_cmndf_starts_at_one(self):
        cmndf = cumulative_mean_normalized_difference(np.array([0.0, 2.0, 4.0, 0.5]))
        assert cmndf[0] == 1.0
        assert cmndf[1] == pytest.approx(1.0)
        assert cmndf[2] == pytest.approx(4.0 * 2 / 6.0)

    def test_cmndf_zero_running_sum(self):
        """A zero running sum normalizes to 1."""
        cmndf = cumulative_mean_normalized_difference(np.zeros(5))
        assert np.all(cmndf == 1.0)

    def test_parabolic_interpolation_finds_vertex(self):
        # y = (x - 10.3)^2 sampled around 10
        values = np.array([(x - 10.3) ** 2 for x in range(20)])
        assert parabolic_interpolation(values, 10) == pytest.approx(10.3)

    def test_parabolic_interpolation_at_edges(self):
        values = np.array([1.0, 0.5, 0.2])
        assert parabolic_interpolation(values, 0) == 0.0
        assert parabolic_interpolation(values, 2) == 2.0


class TestLiveDetector:
    """Test single-frame detection."""

    def test_detects_a4(self):
        """A 440 Hz sine at 44.1 kHz is detected within a few cents."""
        detection = LiveDetector().detect(sine(440.0), 44100, timestamp=1.25)
        assert detection is not None, "Should detect a clean sine"
        assert detection.frequency_hz == pytest.approx(440.0, rel=0.005)
        assert detection.timestamp_sec == 1.25
        assert 0.0 < detection.confidence <= 1.0

    @pytest.mark.parametrize("freq", [110.0, 220.0, 330.0, 523.25])
    def test_detects_vocal_range(self, freq):
        detection = LiveDetector().detect(sine(freq), 44100)
        assert detection is not None, f"Should detect {freq} Hz"
        assert detection.midi == pytest.approx(LiveDetection(freq, 0.0).midi, abs=0.1)

    def test_silence_returns_none(self):
        assert LiveDetector().detect(np.zeros(2048), 44100) is None

    def test_quiet_frame_returns_none(self):
        """Frames under the RMS gate are not analysed."""
        assert LiveDetector().detect(sine(440.0, amplitude=0.001), 44100) is None

    def test_noise_returns_none(self):
        rng = np.random.default_rng(0)
        assert LiveDetector().detect(rng.uniform(-0.5, 0.5, 2048), 44100) is None

    def test_out_of_range_returns_none(self):
        """Pitches outside fmin..fmax are rejected."""
        config = LiveDetectorConfig(fmin=500.0, fmax=1000.0)
        assert LiveDetector(config).detect(sine(220.0), 44100) is None

    def test_tiny_frame_returns_none(self):
        assert LiveDetector().detect(np.ones(4), 44100) is None

    def test_module_entry_point(self):
        detection = detect_live_pitch(sine(440.0), 44100, 0.5)
        assert detection is not None
        assert detection.timestamp_sec == 0.5


class TestTrack:
    """Test whole-buffer tracking."""

    def test_track_timestamps(self):
        sr = 22050
        audio = sine(220.0, sr=sr, n=sr)  # one second
        config = LiveDetectorConfig(frame_length=2048, hop_length=1024)
        detections = list(LiveDetector(config).track(audio, sr))

        assert len(detections) > 15, f"Expected most frames voiced, got {len(detections)}"
        times = [d.timestamp_sec for d in detections]
        assert times == sorted(times)
        assert times[0] == 0.0
        assert all(abs(d.midi - 57.0) < 0.2 for d in detections)

    def test_track_short_buffer(self):
        assert list(LiveDetector().track(np.zeros(100), 22050)) == []

    def test_track_skips_silence(self):
        sr = 22050
        audio = np.concatenate([np.zeros(sr // 2), sine(220.0, sr=sr, n=sr // 2)])
        detections = list(LiveDetector().track(audio, sr))
        assert detections, "Voiced half should produce detections"
        assert min(d.timestamp_sec for d in detections) > 0.3


class TestLiveDetectionLog:
    """Test the session accumulator."""

    def test_append_ignores_none(self):
        log = LiveDetectionLog()
        log.append(None)
        log.append(LiveDetection(440.0, 0.1))
        assert len(log) == 1

    def test_snapshot_is_immutable_copy(self):
        log = LiveDetectionLog([LiveDetection(440.0, 0.1)])
        snapshot = log.snapshot()
        log.append(LiveDetection(440.0, 0.2))
        assert isinstance(snapshot, tuple)
        assert len(snapshot) == 1
        assert len(log) == 2

    def test_extend_and_duration(self):
        log = LiveDetectionLog()
        log.extend([LiveDetection(440.0, 0.5), None, LiveDetection(440.0, 1.5)])
        assert len(log) == 2
        assert log.duration == pytest.approx(1.0)
        assert [d.timestamp_sec for d in log] == [0.5, 1.5]

    def test_clear(self):
        log = LiveDetectionLog([LiveDetection(440.0, 0.1)])
        log.clear()
        assert len(log) == 0
        assert log.duration == 0.0
