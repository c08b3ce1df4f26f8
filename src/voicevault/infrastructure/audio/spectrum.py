"""FFT spectrum analysis shared by both audio backends."""

import threading

import numpy as np

MIN_FREQUENCY = 20.0
MAX_FREQUENCY = 20_000.0
# dB window mapped onto 0.0-1.0; anything quieter than FLOOR_DB shows as 0
FLOOR_DB = -80.0
CEILING_DB = 0.0


class SpectrumAnalyzer:
    """Turn a block of PCM samples into a fixed number of 0.0-1.0 magnitude bins.

    Hey future me - the bins are LOG-spaced between 20 Hz and 20 kHz (capped at
    Nyquist), because linear FFT bins would give the top half of the display to
    frequencies nobody hears in speech. Each band takes the peak magnitude of the
    FFT bins that fall inside it; empty bands (very low frequencies with a short
    window) borrow the nearest FFT bin so the display has no holes.
    """

    def __init__(self, bins: int, sample_rate: int, fft_size: int = 2048) -> None:
        if bins <= 0:
            raise ValueError("bins must be positive")
        self.bins = bins
        self.sample_rate = sample_rate
        self.fft_size = fft_size
        self._window = np.hanning(fft_size).astype(np.float32)
        # Normalise so a full-scale sine lands near 0 dB
        self._scale = 2.0 / float(np.sum(self._window))

        nyquist = sample_rate / 2.0
        top = min(MAX_FREQUENCY, nyquist)
        bottom = min(MIN_FREQUENCY, top / 2.0)
        edges = np.geomspace(bottom, top, bins + 1)
        freqs = np.fft.rfftfreq(fft_size, d=1.0 / sample_rate)
        self._band_slices: list[tuple[int, int]] = []
        for low, high in zip(edges[:-1], edges[1:], strict=True):
            start = int(np.searchsorted(freqs, low, side="left"))
            stop = int(np.searchsorted(freqs, high, side="right"))
            if stop <= start:
                start = min(start, len(freqs) - 1)
                stop = start + 1
            self._band_slices.append((start, stop))

    def empty(self) -> list[float]:
        """All-zero frame (silence, paused, nothing loaded)."""
        return [0.0] * self.bins

    def analyze(self, samples: np.ndarray) -> list[float]:
        """Compute one spectrum frame.

        Args:
            samples: PCM block, mono ``(n,)`` or interleaved ``(n, channels)``
                float samples in -1.0..1.0. Shorter blocks are zero-padded,
                longer blocks use their most recent ``fft_size`` samples.

        Returns:
            ``bins`` floats, each clamped to 0.0-1.0
        """
        data = np.asarray(samples, dtype=np.float32)
        if data.size == 0:
            return self.empty()
        if data.ndim > 1:
            data = data.mean(axis=1)
        if data.shape[0] >= self.fft_size:
            data = data[-self.fft_size :]
        else:
            data = np.pad(data, (self.fft_size - data.shape[0], 0))

        magnitudes = np.abs(np.fft.rfft(data * self._window)) * self._scale
        with np.errstate(divide="ignore"):
            decibels = 20.0 * np.log10(np.maximum(magnitudes, 1e-12))
        normalized = np.clip(
            (decibels - FLOOR_DB) / (CEILING_DB - FLOOR_DB), 0.0, 1.0
        )
        return [float(normalized[start:stop].max()) for start, stop in self._band_slices]


class RecentSamples:
    """Thread-safe window over the last ``size`` frames sent to the device.

    The audio callback pushes every block it outputs; the spectrum task reads a
    snapshot. Only the newest ``size`` frames are kept.
    """

    def __init__(self, size: int, channels: int) -> None:
        self.size = size
        self.channels = channels
        self._lock = threading.Lock()
        self._buffer = np.zeros((0, channels), dtype=np.float32)

    def push(self, block: np.ndarray) -> None:
        if block.size == 0:
            return
        with self._lock:
            self._buffer = np.concatenate([self._buffer, block])[-self.size :]

    def snapshot(self) -> np.ndarray:
        with self._lock:
            return self._buffer.copy()

    def clear(self) -> None:
        with self._lock:
            self._buffer = np.zeros((0, self.channels), dtype=np.float32)
