"""Native in-process backend: libsndfile decode straight into a PortAudio stream."""

import logging
import threading
from typing import Any

import numpy as np
import soundfile as sf

from voicevault.domain.entities import BackendKind
from voicevault.domain.exceptions import PlaybackError
from voicevault.domain.ports import EndCallback, IAudioBackend, PositionCallback
from voicevault.infrastructure.audio import device
from voicevault.infrastructure.audio.spectrum import RecentSamples, SpectrumAnalyzer

logger = logging.getLogger(__name__)


class NativeAudioBackend(IAudioBackend):
    """Decode with soundfile inside the sounddevice output callback.

    Yo, this backend does NOT push position. The engine polls ``position()`` once a
    second while playing and treats ``finished`` as the end-of-track signal. The
    output callback is the only place that advances the read cursor, so position
    is simply "frames handed to the device / sample rate".
    """

    kind = BackendKind.NATIVE
    pushes_position = False

    def __init__(self, spectrum_bins: int = 64, fft_size: int = 2048) -> None:
        self._spectrum_bins = spectrum_bins
        self._fft_size = fft_size
        self._lock = threading.Lock()
        self._file: sf.SoundFile | None = None
        self._stream: Any = None
        self._analyzer: SpectrumAnalyzer | None = None
        self._recent: RecentSamples | None = None
        self._volume = 1.0
        self._frames_played = 0
        self._finished = False
        self._path = ""

    def open(
        self,
        path: str,
        volume: float,
        on_position: PositionCallback | None = None,
        on_end: EndCallback | None = None,
    ) -> None:
        """Open the file and build (but don't start) the output stream."""
        sd = device.require_sounddevice(path, self.kind)
        self._path = path
        try:
            sound_file = sf.SoundFile(path)
        except (RuntimeError, OSError) as e:
            raise PlaybackError(path, [(self.kind, str(e))]) from e

        self._file = sound_file
        self._volume = volume
        self._frames_played = 0
        self._finished = False
        self._analyzer = SpectrumAnalyzer(
            self._spectrum_bins, sound_file.samplerate, self._fft_size
        )
        self._recent = RecentSamples(self._fft_size, sound_file.channels)

        try:
            self._stream = sd.OutputStream(
                samplerate=sound_file.samplerate,
                channels=sound_file.channels,
                dtype="float32",
                callback=self._callback,
            )
        except Exception as e:
            sound_file.close()
            self._file = None
            raise PlaybackError(path, [(self.kind, f"audio output error: {e}")]) from e

        logger.debug(
            "Native backend opened %s (%d Hz, %d ch)",
            path,
            sound_file.samplerate,
            sound_file.channels,
        )

    # Hey future me - this runs on the PortAudio thread. No logging, no allocation-heavy work,
    # never block. CallbackStop tells PortAudio we're done after this block.
    def _callback(self, outdata: np.ndarray, frames: int, _time: Any, _status: Any) -> None:
        with self._lock:
            sound_file = self._file
            if sound_file is None:
                outdata.fill(0)
                raise device.sd.CallbackStop
            block = sound_file.read(frames, dtype="float32", always_2d=True)
            read = block.shape[0]
            outdata[:read] = block * self._volume
            if read < frames:
                outdata[read:].fill(0)
            self._frames_played += read
            if self._recent is not None:
                self._recent.push(block)
            if read < frames:
                self._finished = True
                raise device.sd.CallbackStop

    def _require_stream(self) -> Any:
        if self._stream is None:
            raise PlaybackError(self._path, [(self.kind, "backend is not open")])
        return self._stream

    def play(self) -> None:
        """Start or resume output."""
        stream = self._require_stream()
        if stream.active:
            return
        # A stream that ended via CallbackStop must be stopped before it can restart
        if not stream.stopped:
            stream.stop()
        stream.start()

    def pause(self) -> None:
        """Stop the device; the read cursor stays where it is."""
        stream = self._require_stream()
        if stream.active:
            stream.stop()

    def seek(self, seconds: float) -> None:
        """Move the read cursor."""
        with self._lock:
            if self._file is None:
                return
            target = int(max(0.0, seconds) * self._file.samplerate)
            target = min(target, self._file.frames)
            self._file.seek(target)
            self._frames_played = target
            self._finished = False
            if self._recent is not None:
                self._recent.clear()

    def set_volume(self, volume: float) -> None:
        """Apply volume on the next callback."""
        self._volume = volume

    def position(self) -> float:
        """Seconds handed to the device so far."""
        with self._lock:
            if self._file is None:
                return 0.0
            return self._frames_played / float(self._file.samplerate)

    @property
    def duration(self) -> float | None:
        """Length from the file header."""
        if self._file is None:
            return None
        return self._file.frames / float(self._file.samplerate)

    @property
    def finished(self) -> bool:
        """True after the callback hit end of file."""
        return self._finished

    def spectrum(self) -> list[float]:
        """FFT of the most recent output block."""
        if self._analyzer is None or self._recent is None:
            return [0.0] * self._spectrum_bins
        return self._analyzer.analyze(self._recent.snapshot())

    def close(self) -> None:
        """Stop and close the stream, then the file."""
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.stop()
            finally:
                stream.close()
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None
        logger.debug("Native backend closed %s", self._path)
