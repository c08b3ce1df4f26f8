"""Fallback backend: ffmpeg decodes anything to float32 PCM, sounddevice plays it."""

import logging
import queue
import shutil
import subprocess
import tempfile
import threading
import time
from typing import Any

import numpy as np
from mutagen import File as MutagenFile
from mutagen import MutagenError

from voicevault.domain.entities import BackendKind
from voicevault.domain.exceptions import PlaybackError
from voicevault.domain.ports import EndCallback, IAudioBackend, PositionCallback
from voicevault.infrastructure.audio import device
from voicevault.infrastructure.audio.spectrum import RecentSamples, SpectrumAnalyzer

logger = logging.getLogger(__name__)

SAMPLE_RATE = 44_100
CHANNELS = 2
READ_FRAMES = 4096
# Position pushes are throttled to 4 per second
POSITION_PUSH_INTERVAL = 0.25
# How long open() waits for ffmpeg to produce audio (or give up) before trusting it
DECODE_START_TIMEOUT = 10.0


def make_ffmpeg_cmd(path: str, start_sec: float) -> list[str]:
    """ffmpeg invocation that writes interleaved float32 PCM to stdout."""
    return [
        "ffmpeg",
        "-hide_banner",
        "-loglevel",
        "error",
        "-ss",
        f"{max(0.0, start_sec):.3f}",
        "-i",
        path,
        "-vn",
        "-ac",
        str(CHANNELS),
        "-ar",
        str(SAMPLE_RATE),
        "-f",
        "f32le",
        "pipe:1",
    ]


def probe_duration(path: str) -> float | None:
    """Container duration via mutagen, None when unknown."""
    try:
        audio = MutagenFile(path)
    except (MutagenError, OSError):
        return None
    if audio is None or audio.info is None:
        return None
    length = getattr(audio.info, "length", None)
    return float(length) if length else None


class _Decoder(threading.Thread):
    """Reads ffmpeg stdout into a block queue; also reports position and end-of-stream.

    Hey future me - this thread is the fallback's "media element". It is the ONLY thread
    that calls on_position/on_end, so the engine sees them arrive from one foreign thread
    and bridges them into the loop with call_soon_threadsafe.
    """

    def __init__(self, backend: "FallbackAudioBackend", start_sec: float) -> None:
        super().__init__(daemon=True, name="voicevault-ffmpeg")
        self.backend = backend
        self.start_sec = start_sec
        self.stop_event = threading.Event()
        self.decode_done = threading.Event()
        # Set once the first block is queued or ffmpeg gave up
        self.ready = threading.Event()
        self.error: str | None = None
        self.proc: subprocess.Popen[bytes] | None = None

    def stop(self) -> None:
        self.stop_event.set()
        proc = self.proc
        if proc is not None and proc.poll() is None:
            proc.terminate()

    def run(self) -> None:
        backend = self.backend
        cmd = make_ffmpeg_cmd(backend.path, self.start_sec)
        with tempfile.TemporaryFile() as stderr:
            try:
                self.proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=stderr)
            except OSError as e:
                logger.error("Failed to start ffmpeg for %s: %s", backend.path, e)
                self.error = f"cannot start ffmpeg: {e}"
                self.decode_done.set()
                self.ready.set()
                backend.mark_finished()
                return

            decoded, returncode = self._pump(self.proc)
            if decoded == 0 and returncode != 0 and not self.stop_event.is_set():
                stderr.seek(0)
                lines = stderr.read().decode("utf-8", "replace").strip().splitlines()
                detail = lines[-1] if lines else "no output"
                self.error = f"ffmpeg exited with code {returncode}: {detail}"
                logger.warning("ffmpeg could not decode %s: %s", backend.path, detail)
                backend.mark_finished()
        self.ready.set()

        # Drain: keep reporting until the device played the tail, then signal the end
        last_push = 0.0
        while not self.stop_event.is_set() and not backend.finished:
            time.sleep(POSITION_PUSH_INTERVAL / 2)
            last_push = self._push_position(last_push)
        if not self.stop_event.is_set() and backend.on_end is not None:
            backend.on_end()

    def _pump(self, proc: "subprocess.Popen[bytes]") -> tuple[int, int]:
        """Move PCM from ffmpeg into the block queue; returns (bytes decoded, exit code)."""
        backend = self.backend
        stdout = proc.stdout
        read_bytes = READ_FRAMES * CHANNELS * 4
        decoded = 0
        last_push = 0.0
        try:
            while not self.stop_event.is_set():
                if stdout is None:
                    break
                data = stdout.read(read_bytes)
                if not data:
                    break
                # Drop a torn trailing sample if the pipe split one
                usable = len(data) - (len(data) % (CHANNELS * 4))
                block = np.frombuffer(data[:usable], dtype=np.float32).reshape(
                    (-1, CHANNELS)
                )
                while not self.stop_event.is_set():
                    try:
                        backend.blocks.put(block, timeout=POSITION_PUSH_INTERVAL)
                        break
                    except queue.Full:
                        last_push = self._push_position(last_push)
                decoded += usable
                self.ready.set()
                last_push = self._push_position(last_push)
        finally:
            self.decode_done.set()
            if proc.poll() is None:
                proc.terminate()
            returncode = proc.wait()
        return decoded, returncode

    def _push_position(self, last_push: float) -> float:
        now = time.monotonic()
        callback = self.backend.on_position
        if callback is None or now - last_push < POSITION_PUSH_INTERVAL:
            return last_push
        if not self.backend.playing:
            return last_push
        callback(self.backend.position())
        return now


class FallbackAudioBackend(IAudioBackend):
    """ffmpeg subprocess + sounddevice output with its own analyser.

    Used for containers libsndfile can't decode (m4a/aac/wma/...), and as the
    retry target whenever the native backend refuses a file.
    """

    kind = BackendKind.FALLBACK
    pushes_position = True

    def __init__(self, spectrum_bins: int = 100, fft_size: int = 2048) -> None:
        self._spectrum_bins = spectrum_bins
        self._analyzer = SpectrumAnalyzer(spectrum_bins, SAMPLE_RATE, fft_size)
        self._recent = RecentSamples(fft_size, CHANNELS)
        self._lock = threading.Lock()
        self.blocks: queue.Queue[np.ndarray] = queue.Queue(maxsize=32)
        self._pending = np.zeros((0, CHANNELS), dtype=np.float32)
        self._decoder: _Decoder | None = None
        self._stream: Any = None
        self._volume = 1.0
        self._offset_sec = 0.0
        self._frames_played = 0
        self._finished = False
        self._duration: float | None = None
        self.playing = False
        self.path = ""
        self.on_position: PositionCallback | None = None
        self.on_end: EndCallback | None = None

    def open(
        self,
        path: str,
        volume: float,
        on_position: PositionCallback | None = None,
        on_end: EndCallback | None = None,
    ) -> None:
        """Check tools, make sure ffmpeg can decode the file, build the output stream.

        Hey future me - ffmpeg happily starts on a corrupt file and only then exits non-zero
        with nothing on stdout. Without waiting for the first block here, that looks exactly
        like a track that ended instantly and the engine would auto-advance past it. The
        callbacks are attached only after the check so a failed open never fires on_end.
        """
        sd = device.require_sounddevice(path, self.kind)
        if shutil.which("ffmpeg") is None:
            raise PlaybackError(path, [(self.kind, "ffmpeg not found in PATH")])

        self.path = path
        self.on_position = None
        self.on_end = None
        self._volume = volume
        self._duration = probe_duration(path)

        decoder = self._start_decoder(0.0)
        if not decoder.ready.wait(DECODE_START_TIMEOUT):
            logger.warning(
                "ffmpeg produced no audio for %s within %.0fs, playing anyway",
                path,
                DECODE_START_TIMEOUT,
            )
        if decoder.error is not None:
            self._stop_decoder()
            raise PlaybackError(path, [(self.kind, decoder.error)])

        try:
            self._stream = sd.OutputStream(
                samplerate=SAMPLE_RATE,
                channels=CHANNELS,
                dtype="float32",
                callback=self._callback,
            )
        except Exception as e:
            self._stop_decoder()
            raise PlaybackError(path, [(self.kind, f"audio output error: {e}")]) from e

        self.on_position = on_position
        self.on_end = on_end
        logger.debug("Fallback backend opened %s", path)

    def _start_decoder(self, start_sec: float) -> _Decoder:
        with self._lock:
            self._offset_sec = start_sec
            self._frames_played = 0
            self._finished = False
            self._pending = np.zeros((0, CHANNELS), dtype=np.float32)
        self._recent.clear()
        self._decoder = _Decoder(self, start_sec)
        self._decoder.start()
        return self._decoder

    def _stop_decoder(self) -> None:
        decoder, self._decoder = self._decoder, None
        if decoder is None:
            return
        decoder.stop()
        # Unblock a put() waiting on a full queue, then drop what's left
        self._drain_blocks()
        decoder.join(timeout=5.0)
        self._drain_blocks()

    def _drain_blocks(self) -> None:
        while True:
            try:
                self.blocks.get_nowait()
            except queue.Empty:
                return

    # Runs on the PortAudio thread - keep it lean.
    def _callback(self, outdata: np.ndarray, frames: int, _time: Any, _status: Any) -> None:
        with self._lock:
            chunk = self._pending
            while chunk.shape[0] < frames:
                try:
                    chunk = np.concatenate([chunk, self.blocks.get_nowait()])
                except queue.Empty:
                    break
            out = chunk[:frames]
            self._pending = chunk[frames:]
            count = out.shape[0]
            outdata[:count] = out * self._volume
            if count < frames:
                outdata[count:].fill(0)
            self._frames_played += count
            decoder = self._decoder
            if (
                count < frames
                and decoder is not None
                and decoder.decode_done.is_set()
                and self.blocks.empty()
            ):
                self._finished = True
        self._recent.push(out)

    def mark_finished(self) -> None:
        with self._lock:
            self._finished = True

    def _require_stream(self) -> Any:
        if self._stream is None:
            raise PlaybackError(self.path, [(self.kind, "backend is not open")])
        return self._stream

    def play(self) -> None:
        """Start or resume the device."""
        stream = self._require_stream()
        if not stream.active:
            stream.start()
        self.playing = True

    def pause(self) -> None:
        """Stop the device; decoded blocks stay queued."""
        stream = self._require_stream()
        self.playing = False
        if stream.active:
            stream.stop()

    def seek(self, seconds: float) -> None:
        """Restart ffmpeg at the new offset (-ss)."""
        self._stop_decoder()
        self._start_decoder(max(0.0, seconds))

    def set_volume(self, volume: float) -> None:
        """Apply volume on the next callback."""
        self._volume = volume

    def position(self) -> float:
        """Seek offset plus what the device consumed since."""
        with self._lock:
            return self._offset_sec + self._frames_played / float(SAMPLE_RATE)

    @property
    def duration(self) -> float | None:
        """Container duration when mutagen knows it."""
        return self._duration

    @property
    def finished(self) -> bool:
        """True once decoding ended and the device drained every block."""
        return self._finished

    def spectrum(self) -> list[float]:
        """FFT of the samples most recently sent to the device."""
        return self._analyzer.analyze(self._recent.snapshot())

    def close(self) -> None:
        """Stop the device and ffmpeg, join the reader thread."""
        self.playing = False
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.stop()
            finally:
                stream.close()
        self._stop_decoder()
        self.on_position = None
        self.on_end = None
        logger.debug("Fallback backend closed %s", self.path)
