"""
Events delivered to the dispatcher from background sources.

Player status events come from the mpv control channel; the rest come from the
visualizer feed and resolver tasks. All of them are immutable.
"""

from typing import Any, NamedTuple, Optional


class PositionChanged(NamedTuple):
    position: float


class DurationChanged(NamedTuple):
    duration: float


class PauseChanged(NamedTuple):
    paused: bool


class VolumeChanged(NamedTuple):
    volume: float


class MuteChanged(NamedTuple):
    muted: bool


class EndOfTrack(NamedTuple):
    """The current file stopped playing by itself ("eof" or "error")."""

    reason: str


class PlayerLost(NamedTuple):
    """The control channel closed unexpectedly. Emitted at most once."""

    reason: str


class VisualizerFrame(NamedTuple):
    bars: tuple[int, ...]


class ResolutionCompleted(NamedTuple):
    """A background resolve finished.

    ``purpose`` says what to do with the result ("add" or "play"), ``context``
    carries what the dispatcher needs for it (e.g. the target playlist).
    Exactly one of ``resolution`` and ``error`` is set.
    """

    url: str
    purpose: str
    context: Any = None
    resolution: Optional[Any] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


StatusEvent = (
    PositionChanged
    | DurationChanged
    | PauseChanged
    | VolumeChanged
    | MuteChanged
    | EndOfTrack
    | PlayerLost
)
