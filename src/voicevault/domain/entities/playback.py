"""Playback enums shared by the queue manager, the engine and the API."""

from enum import Enum


class BackendKind(str, Enum):
    """Decode-capability class a track is routed to."""

    NATIVE = "native"  # in-process decode + output
    FALLBACK = "fallback"  # external decoder + own analyser


class PlayerState(str, Enum):
    """Transport state machine.

    Idle -> Loading -> Playing <-> Paused; Playing/Paused -> Idle on stop or end;
    Loading -> Idle when every backend refused the file.
    """

    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"


class RepeatMode(str, Enum):
    """Queue repeat policy."""

    OFF = "off"
    ALL = "all"
    ONE = "one"

    def cycle(self) -> "RepeatMode":
        """Next mode in the off -> all -> one -> off cycle."""
        order = [RepeatMode.OFF, RepeatMode.ALL, RepeatMode.ONE]
        return order[(order.index(self) + 1) % len(order)]
