"""Tests for the FFT spectrum analyser and the sample window."""

import numpy as np
import pytest

from voicevault.infrastructure.audio.spectrum import RecentSamples, SpectrumAnalyzer

SAMPLE_RATE = 44_100
FFT_SIZE = 2048


def sine(frequency: float, frames: int = FFT_SIZE, amplitude: float = 1.0) -> np.ndarray:
    t = np.arange(frames) / SAMPLE_RATE
    return (amplitude * np.sin(2 * np.pi * frequency * t)).astype(np.float32)


@pytest.fixture
def analyzer() -> SpectrumAnalyzer:
    return SpectrumAnalyzer(bins=32, sample_rate=SAMPLE_RATE, fft_size=FFT_SIZE)


class TestSpectrumAnalyzer:
    def test_sine_peaks_in_its_band(self, analyzer: SpectrumAnalyzer) -> None:
        fft_bin = 93  # lands exactly on an FFT bin, about 2 kHz
        frame = analyzer.analyze(sine(fft_bin * SAMPLE_RATE / FFT_SIZE))

        expected = next(
            i
            for i, (start, stop) in enumerate(analyzer._band_slices)
            if start <= fft_bin < stop
        )
        assert int(np.argmax(frame)) == expected
        assert frame[expected] > 0.95

    def test_values_are_clamped(self, analyzer: SpectrumAnalyzer) -> None:
        loud = sine(440.0, amplitude=4.0)
        noise = np.random.default_rng(7).uniform(-1, 1, FFT_SIZE)

        for block in (loud, noise):
            frame = analyzer.analyze(block)
            assert len(frame) == 32
            assert all(0.0 <= v <= 1.0 for v in frame)

    def test_silence_and_empty_input(self, analyzer: SpectrumAnalyzer) -> None:
        assert analyzer.analyze(np.zeros(FFT_SIZE)) == [0.0] * 32
        assert analyzer.analyze(np.array([])) == analyzer.empty()

    def test_stereo_and_short_blocks(self, analyzer: SpectrumAnalyzer) -> None:
        mono = sine(1000.0, frames=512)
        stereo = np.stack([mono, mono], axis=1)

        assert analyzer.analyze(stereo) == pytest.approx(analyzer.analyze(mono))

    def test_bins_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            SpectrumAnalyzer(bins=0, sample_rate=SAMPLE_RATE)

    def test_low_sample_rate_caps_bands_at_nyquist(self) -> None:
        small = SpectrumAnalyzer(bins=16, sample_rate=8_000, fft_size=256)
        frame = small.analyze(sine(1000.0, frames=256))
        assert len(frame) == 16


class TestRecentSamples:
    def test_keeps_only_newest_frames(self) -> None:
        window = RecentSamples(size=4, channels=2)
        window.push(np.ones((3, 2), dtype=np.float32))
        window.push(np.full((3, 2), 2.0, dtype=np.float32))

        snapshot = window.snapshot()

        assert snapshot.shape == (4, 2)
        assert snapshot[:, 0].tolist() == [1.0, 2.0, 2.0, 2.0]

    def test_clear(self) -> None:
        window = RecentSamples(size=4, channels=1)
        window.push(np.ones((2, 1), dtype=np.float32))
        window.push(np.zeros((0, 1), dtype=np.float32))
        window.clear()
        assert window.snapshot().shape == (0, 1)
