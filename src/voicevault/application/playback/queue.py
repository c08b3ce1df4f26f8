"""Playback queue with shuffle/repeat policy."""

import logging
import random
from collections.abc import Sequence
from enum import Enum

from voicevault.domain.entities import RepeatMode, Track
from voicevault.domain.exceptions import ValidationException

logger = logging.getLogger(__name__)

# previous() restarts the current track instead of going back once this much has played
RESTART_THRESHOLD_SEC = 3.0


class QueueMove(str, Enum):
    """What a next()/previous() call decided."""

    REPLAY = "replay"  # repeat=one: same track from the start
    ADVANCE = "advance"  # moved to another index (sequential, shuffle or wrap)
    STOP = "stop"  # end of queue: index unchanged, playback halts
    RESTART = "restart"  # previous() past the threshold: same track, position 0
    BACK = "back"  # previous() moved to the prior index
    NONE = "none"  # nothing to do


class QueueManager:
    """Ordered tracks plus the current index and the next/previous policy.

    Hey future me - this class is PURE state + policy. It never touches the engine or
    the database; PlayerSession reads the returned QueueMove and drives the engine.
    The rng is injectable so shuffle is testable.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()
        self.tracks: list[Track] = []
        self.index: int | None = None
        self.shuffle = False
        self.repeat = RepeatMode.OFF

    @property
    def current(self) -> Track | None:
        """Track at the current index."""
        if self.index is None or not self.tracks:
            return None
        return self.tracks[self.index]

    def set_queue(self, tracks: Sequence[Track], start_index: int = 0) -> Track | None:
        """Replace the queue and point at ``start_index``."""
        self.tracks = list(tracks)
        if not self.tracks:
            self.index = None
            return None
        if not 0 <= start_index < len(self.tracks):
            raise ValidationException(f"Queue index {start_index} out of range")
        self.index = start_index
        return self.current

    def jump_to(self, index: int) -> Track:
        """Select an explicit queue position."""
        if not 0 <= index < len(self.tracks):
            raise ValidationException(f"Queue index {index} out of range")
        self.index = index
        return self.tracks[index]

    def clear(self) -> None:
        """Empty the queue."""
        self.tracks = []
        self.index = None

    def toggle_shuffle(self) -> bool:
        """Flip shuffle; returns the new value."""
        self.shuffle = not self.shuffle
        return self.shuffle

    def cycle_repeat(self) -> RepeatMode:
        """off -> all -> one -> off."""
        self.repeat = self.repeat.cycle()
        return self.repeat

    # Listen up, the order of checks IS the policy: repeat=one beats shuffle, shuffle beats
    # sequential, and only the sequential path can run off the end (wrap or stop).
    def next(self) -> QueueMove:
        """Advance according to repeat/shuffle."""
        if self.index is None or not self.tracks:
            return QueueMove.NONE

        if self.repeat == RepeatMode.ONE:
            return QueueMove.REPLAY

        if self.shuffle:
            if len(self.tracks) == 1:
                return QueueMove.NONE
            candidates = [i for i in range(len(self.tracks)) if i != self.index]
            self.index = self._rng.choice(candidates)
            return QueueMove.ADVANCE

        following = self.index + 1
        if following < len(self.tracks):
            self.index = following
            return QueueMove.ADVANCE
        if self.repeat == RepeatMode.ALL:
            self.index = 0
            return QueueMove.ADVANCE
        return QueueMove.STOP

    def previous(self, elapsed_sec: float) -> QueueMove:
        """Restart the track after 3 s of play, else step back if possible."""
        if self.index is None or not self.tracks:
            return QueueMove.NONE
        if elapsed_sec > RESTART_THRESHOLD_SEC:
            return QueueMove.RESTART
        if self.index > 0:
            self.index -= 1
            return QueueMove.BACK
        return QueueMove.NONE
