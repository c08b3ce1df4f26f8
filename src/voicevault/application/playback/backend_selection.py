"""Deterministic capability table: which backend gets a file first."""

from collections.abc import Iterable
from pathlib import Path

from voicevault.domain.entities import BackendKind


# Hey future me - this is the ONE place that looks at extensions for playback. The engine
# calls it once per load; nothing else in the code may branch on ".m4a" and friends.
def resolve_backend_kind(
    path: str | Path, fallback_extensions: Iterable[str]
) -> BackendKind:
    """FALLBACK for allow-listed extensions, NATIVE for everything else."""
    suffix = Path(path).suffix.lower()
    normalized = {
        ext.lower() if ext.startswith(".") else f".{ext.lower()}"
        for ext in fallback_extensions
    }
    if suffix in normalized:
        return BackendKind.FALLBACK
    return BackendKind.NATIVE


def backend_attempt_order(
    path: str | Path, fallback_extensions: Iterable[str]
) -> list[BackendKind]:
    """Backends to try, in order. Native failures retry on fallback."""
    if resolve_backend_kind(path, fallback_extensions) == BackendKind.FALLBACK:
        return [BackendKind.FALLBACK]
    return [BackendKind.NATIVE, BackendKind.FALLBACK]
