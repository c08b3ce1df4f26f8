"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod
from collections.abc import Callable

from voicevault.domain.entities import BackendKind, WorkMetadata

PositionCallback = Callable[[float], None]
EndCallback = Callable[[], None]


# Hey future me, IMetadataLookup is the ONLY seam to the outside catalog. How the record is
# obtained (HTTP, scraping, a local JSON dump) is the adapter's business. Implementations
# must raise MetadataLookupError for every failure they can name - the batch loop counts on
# that to skip the item and keep going.
class IMetadataLookup(ABC):
    """Port for fetching a work's metadata record by external code."""

    @abstractmethod
    async def fetch(self, external_code: str) -> WorkMetadata:
        """Fetch the metadata record for one external code."""
        pass

    async def close(self) -> None:
        """Release network resources (default: nothing to release)."""
        return None


# Listen up, IAudioBackend methods are SYNCHRONOUS on purpose - real backends drive audio
# threads / device callbacks. The engine calls open() and close() through asyncio.to_thread
# so "close fully released the device" really means the thread has joined before the next
# open(). Callbacks (on_position/on_end) may fire from a foreign thread!
class IAudioBackend(ABC):
    """Port for one decode/output backend instance (one track at a time)."""

    kind: BackendKind
    # True when the backend calls on_position itself; False means the engine must poll.
    pushes_position: bool = False

    @abstractmethod
    def open(
        self,
        path: str,
        volume: float,
        on_position: PositionCallback | None = None,
        on_end: EndCallback | None = None,
    ) -> None:
        """Open the file and prepare output. Raises PlaybackError when it can't."""
        pass

    @abstractmethod
    def play(self) -> None:
        """Start or resume output."""
        pass

    @abstractmethod
    def pause(self) -> None:
        """Pause output, keeping the position."""
        pass

    @abstractmethod
    def seek(self, seconds: float) -> None:
        """Jump to an absolute position in seconds."""
        pass

    @abstractmethod
    def set_volume(self, volume: float) -> None:
        """Apply a normalized 0.0-1.0 volume."""
        pass

    @abstractmethod
    def position(self) -> float:
        """Current position in seconds."""
        pass

    @property
    @abstractmethod
    def duration(self) -> float | None:
        """Track length in seconds when known."""
        pass

    @property
    @abstractmethod
    def finished(self) -> bool:
        """True once the stream reached its natural end."""
        pass

    @abstractmethod
    def spectrum(self) -> list[float]:
        """Latest magnitude bins, each normalized to 0.0-1.0."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Stop output and release device, handles and threads. Blocks until done."""
        pass


__all__ = [
    "EndCallback",
    "IAudioBackend",
    "IMetadataLookup",
    "PositionCallback",
]
