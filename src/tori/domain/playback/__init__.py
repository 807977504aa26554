"""Playback domain - mpv integration, stream resolution and visualizer.

This domain handles:
- mpv JSON IPC framing and the PlayerSession command/status channel
- mpv process lifecycle
- Stream URL resolution through a resolver subprocess
- cava visualizer frames
"""

from .events import (
    DurationChanged,
    EndOfTrack,
    MuteChanged,
    PauseChanged,
    PlayerLost,
    PositionChanged,
    ResolutionCompleted,
    VisualizerFrame,
    VolumeChanged,
)
from .exceptions import (
    PlayerCommandRejectedError,
    PlayerError,
    PlayerLostError,
    PlayerUnresponsiveError,
    ResolutionFailedError,
    ResolverError,
    ResolverTimeoutError,
    ResolverUnavailableError,
)
from .player import PlayerSession, running_player
from .resolver import Resolution, ResolverClient
from .visualizer import VisualizerFeed, parse_frame

__all__ = [
    # Events
    "DurationChanged",
    "EndOfTrack",
    "MuteChanged",
    "PauseChanged",
    "PlayerLost",
    "PositionChanged",
    "ResolutionCompleted",
    "VisualizerFrame",
    "VolumeChanged",
    # Exceptions
    "PlayerCommandRejectedError",
    "PlayerError",
    "PlayerLostError",
    "PlayerUnresponsiveError",
    "ResolutionFailedError",
    "ResolverError",
    "ResolverTimeoutError",
    "ResolverUnavailableError",
    # Player
    "PlayerSession",
    "running_player",
    # Resolver / visualizer
    "Resolution",
    "ResolverClient",
    "VisualizerFeed",
    "parse_frame",
]
