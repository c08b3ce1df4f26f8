"""Audio output device access (sounddevice / PortAudio)."""

import logging
from typing import Any

from voicevault.domain.exceptions import PlaybackError

logger = logging.getLogger(__name__)

# Hey future me - sounddevice needs the PortAudio shared library at IMPORT time. Headless
# boxes and CI runners often don't have it; the import then raises OSError, not ImportError.
# We keep going with sd=None so the catalog, the scanner and the API still work; opening a
# backend then fails with PlaybackError and the engine reports it like any decode failure.
try:
    import sounddevice as sd

    SOUNDDEVICE_AVAILABLE = True
    _sounddevice_import_error: BaseException | None = None
except (ImportError, OSError) as e:
    sd = None
    SOUNDDEVICE_AVAILABLE = False
    _sounddevice_import_error = e


def require_sounddevice(path: str, backend: Any) -> Any:
    """Return the sounddevice module or raise PlaybackError for ``path``."""
    if sd is None:
        raise PlaybackError(
            path, [(backend, f"sounddevice not available: {_sounddevice_import_error}")]
        )
    return sd
