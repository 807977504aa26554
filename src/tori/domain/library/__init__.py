"""Library domain - playlists, the play queue and playlist files.

This domain handles:
- Song/Playlist/Queue data model
- Library mutations with queue cascade
- Extended M3U playlist storage
"""

from .exceptions import (
    DuplicateNameError,
    InvalidNameError,
    LibraryError,
    NotFoundError,
)
from .library import Library, Playlist, Queue, validate_playlist_name
from .m3u import PlaylistStore, parse_m3u, serialize_playlist
from .sources import collect_local_songs, is_valid_source
from .models import (
    Direction,
    QueueEntry,
    Song,
    SortMode,
    is_remote_source,
    new_song,
)

__all__ = [
    # Exceptions
    "DuplicateNameError",
    "InvalidNameError",
    "LibraryError",
    "NotFoundError",
    # Model
    "Direction",
    "Library",
    "Playlist",
    "Queue",
    "QueueEntry",
    "Song",
    "SortMode",
    "is_remote_source",
    "new_song",
    "validate_playlist_name",
    # Sources
    "collect_local_songs",
    "is_valid_source",
    # Storage
    "PlaylistStore",
    "parse_m3u",
    "serialize_playlist",
]
