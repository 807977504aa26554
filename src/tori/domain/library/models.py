"""
Music library domain models.

Contains data structures for songs, sort modes and queue references.
"""

import time
from enum import Enum
from typing import NamedTuple, Optional


class Song(NamedTuple):
    """Represents one playlist entry.

    Songs are immutable: a rename or a duration update replaces the Song
    wholesale, keeping its id. The id is assigned by the owning playlist and
    is stable within it.
    """

    title: str
    source: str  # Local path or remote URL
    duration: Optional[float] = None  # seconds, None until known
    id: Optional[int] = None
    added_at: float = 0.0

    @property
    def is_remote(self) -> bool:
        return is_remote_source(self.source)


class SortMode(Enum):
    """View order of a playlist's songs."""

    MANUAL = "Manual"
    TITLE = "Title"
    DURATION = "Duration"
    DATE_ADDED = "DateAdded"

    def next(self) -> "SortMode":
        modes = list(SortMode)
        return modes[(modes.index(self) + 1) % len(modes)]


class Direction(Enum):
    """Direction of an adjacent swap."""

    UP = -1
    DOWN = 1


class QueueEntry(NamedTuple):
    """Reference to a song in the library: source playlist name + song id."""

    playlist: str
    song_id: int


REMOTE_PREFIXES = ("http://", "https://", "ytdl://")


def is_remote_source(source: str) -> bool:
    """Check whether a song source is a URL rather than a local path."""
    return source.startswith(REMOTE_PREFIXES)


def new_song(title: str, source: str, duration: Optional[float] = None) -> Song:
    """Create a Song not yet owned by any playlist."""
    return Song(title=title, source=source, duration=duration, added_at=time.time())
