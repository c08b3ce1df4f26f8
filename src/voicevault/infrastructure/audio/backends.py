"""Backend factory wiring settings to concrete audio backends."""

from voicevault.config.settings import PlaybackSettings
from voicevault.domain.entities import BackendKind
from voicevault.domain.ports import IAudioBackend
from voicevault.infrastructure.audio.fallback_backend import FallbackAudioBackend
from voicevault.infrastructure.audio.native_backend import NativeAudioBackend


def create_backend(kind: BackendKind, settings: PlaybackSettings) -> IAudioBackend:
    """Build a fresh backend instance for one track."""
    if kind == BackendKind.NATIVE:
        return NativeAudioBackend(spectrum_bins=settings.native_spectrum_bins)
    return FallbackAudioBackend(spectrum_bins=settings.fallback_spectrum_bins)
