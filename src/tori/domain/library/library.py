"""
In-memory playlist library and play queue.

All mutation goes through Library so the cross-structure invariants hold:
playlist names are unique, and the queue never references a song that is no
longer in its source playlist.
"""

import random
from typing import Callable, Iterable, Optional

from loguru import logger

from .exceptions import DuplicateNameError, InvalidNameError, NotFoundError
from .models import Direction, QueueEntry, Song, SortMode

INVALID_NAME_CHARS = ("/", "\\")


def validate_playlist_name(name: str) -> None:
    """Reject names that can't be used as a playlist (and file) name.

    Raises:
        InvalidNameError: If name is empty or contains a path separator
    """
    if not name or not name.strip():
        raise InvalidNameError("Playlist name can't be empty")
    for char in INVALID_NAME_CHARS:
        if char in name:
            raise InvalidNameError(f"Playlist name can't contain '{char}'")


def _sort_key(mode: SortMode) -> Optional[Callable[[Song], tuple]]:
    if mode is SortMode.TITLE:
        return lambda song: (song.title.casefold(), song.id)
    if mode is SortMode.DURATION:
        # Unknown durations sort last
        return lambda song: (song.duration is None, song.duration or 0.0, song.id)
    if mode is SortMode.DATE_ADDED:
        return lambda song: (song.added_at, song.id)
    return None


class Playlist:
    """Named, ordered sequence of songs with a view sort mode."""

    def __init__(
        self,
        name: str,
        songs: Iterable[Song] = (),
        sort_mode: SortMode = SortMode.MANUAL,
    ):
        self.name = name
        self.sort_mode = sort_mode
        self._songs: list[Song] = []
        self._next_id = 1
        for song in songs:
            self.append(song)

    def __repr__(self) -> str:
        return f"Playlist({self.name!r}, {len(self._songs)} songs, {self.sort_mode.value})"

    def __len__(self) -> int:
        return len(self._songs)

    @property
    def songs(self) -> tuple[Song, ...]:
        """Songs in their underlying (manual) order."""
        return tuple(self._songs)

    def append(self, song: Song) -> Song:
        """Append a song, assigning it the next id of this playlist."""
        stored = song._replace(id=self._next_id)
        self._next_id += 1
        self._songs.append(stored)
        return stored

    def index_of(self, song_id: int) -> int:
        for index, song in enumerate(self._songs):
            if song.id == song_id:
                return index
        raise NotFoundError(f"Song #{song_id} not found in '{self.name}'")

    def get(self, song_id: int) -> Song:
        return self._songs[self.index_of(song_id)]

    def remove(self, song_id: int) -> Song:
        return self._songs.pop(self.index_of(song_id))

    def replace(self, song: Song) -> Song:
        """Replace the song with the same id wholesale."""
        self._songs[self.index_of(song.id)] = song
        return song

    def swap_adjacent(self, song_id: int, direction: Direction) -> bool:
        """Swap a song with its neighbour in the underlying order.

        Returns:
            False (and changes nothing) when the song is already at the boundary
        """
        index = self.index_of(song_id)
        target = index + direction.value
        if target < 0 or target >= len(self._songs):
            return False
        self._songs[index], self._songs[target] = self._songs[target], self._songs[index]
        return True

    def view(self) -> list[Song]:
        """Songs in display order for the current sort mode."""
        key = _sort_key(self.sort_mode)
        if key is None:
            return list(self._songs)
        return sorted(self._songs, key=key)

    def apply_sort(self) -> None:
        """Persist the current view order and return to manual mode."""
        self._songs = self.view()
        self.sort_mode = SortMode.MANUAL


class Queue:
    """Linear play order, independent of playlist order.

    ``upcoming`` is the queue proper. ``current`` is the entry being played,
    already popped off ``upcoming``; ``history`` holds the entries played
    before it, most recent last.
    """

    def __init__(self, entries: Iterable[QueueEntry] = ()):
        self.history: list[QueueEntry] = []
        self.current: Optional[QueueEntry] = None
        self.upcoming: list[QueueEntry] = list(entries)

    def __len__(self) -> int:
        return len(self.upcoming)

    def __repr__(self) -> str:
        return f"Queue(current={self.current!r}, upcoming={self.upcoming!r})"

    @property
    def entries(self) -> tuple[QueueEntry, ...]:
        return tuple(self.upcoming)

    def append(self, entry: QueueEntry) -> None:
        self.upcoming.append(entry)

    def extend(self, entries: Iterable[QueueEntry]) -> None:
        self.upcoming.extend(entries)

    def swap_adjacent(self, index: int, direction: Direction) -> bool:
        """Swap an upcoming entry with its neighbour; False at the boundaries."""
        self._check_index(index)
        target = index + direction.value
        if target < 0 or target >= len(self.upcoming):
            return False
        self.upcoming[index], self.upcoming[target] = (
            self.upcoming[target],
            self.upcoming[index],
        )
        return True

    def remove(self, index: int) -> QueueEntry:
        self._check_index(index)
        return self.upcoming.pop(index)

    def shuffle(self, rng: Optional[random.Random] = None) -> None:
        """Uniformly permute the upcoming entries; the current entry stays put."""
        (rng or random).shuffle(self.upcoming)

    def play_now(self, entry: Optional[QueueEntry]) -> None:
        """Make ``entry`` current without touching the upcoming entries."""
        if self.current is not None:
            self.history.append(self.current)
        self.current = entry

    def advance(self) -> Optional[QueueEntry]:
        """Pop the next upcoming entry and make it current.

        Returns:
            The new current entry, or None when nothing is left to play
        """
        next_entry = self.upcoming.pop(0) if self.upcoming else None
        self.play_now(next_entry)
        return next_entry

    def retreat(self) -> Optional[QueueEntry]:
        """Step back to the previously played entry.

        The current entry goes back to the head of the upcoming entries.

        Returns:
            The new current entry, or None (nothing changed) without history
        """
        if not self.history:
            return None
        if self.current is not None:
            self.upcoming.insert(0, self.current)
        self.current = self.history.pop()
        return self.current

    def discard(self, predicate: Callable[[QueueEntry], bool]) -> int:
        """Drop every entry (history, current, upcoming) matching predicate.

        Returns:
            Number of entries dropped
        """
        dropped = 0
        kept_history = [e for e in self.history if not predicate(e)]
        dropped += len(self.history) - len(kept_history)
        kept_upcoming = [e for e in self.upcoming if not predicate(e)]
        dropped += len(self.upcoming) - len(kept_upcoming)
        self.history, self.upcoming = kept_history, kept_upcoming
        if self.current is not None and predicate(self.current):
            self.current = None
            dropped += 1
        return dropped

    def rename_playlist(self, old: str, new: str) -> None:
        def rename(entry: QueueEntry) -> QueueEntry:
            return entry._replace(playlist=new) if entry.playlist == old else entry

        self.history = [rename(e) for e in self.history]
        self.upcoming = [rename(e) for e in self.upcoming]
        if self.current is not None:
            self.current = rename(self.current)

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= len(self.upcoming):
            raise NotFoundError(f"No queue entry at position {index}")


class Library:
    """Owns the playlists (by unique name) and the single play queue."""

    def __init__(self, playlists: Iterable[Playlist] = ()):
        self._playlists: dict[str, Playlist] = {}
        self.queue = Queue()
        for playlist in playlists:
            if playlist.name in self._playlists:
                raise DuplicateNameError(playlist.name)
            self._playlists[playlist.name] = playlist

    def __contains__(self, name: str) -> bool:
        return name in self._playlists

    def playlist_names(self) -> list[str]:
        """Playlist names in display order."""
        return sorted(self._playlists, key=str.casefold)

    def playlist(self, name: str) -> Playlist:
        try:
            return self._playlists[name]
        except KeyError:
            raise NotFoundError(f"Playlist '{name}' not found") from None

    # ------------------------------------------------------------------
    # Playlists
    # ------------------------------------------------------------------

    def add_playlist(self, name: str) -> Playlist:
        validate_playlist_name(name)
        if name in self._playlists:
            raise DuplicateNameError(name)
        playlist = Playlist(name)
        self._playlists[name] = playlist
        logger.debug(f"Created playlist '{name}'")
        return playlist

    def rename_playlist(self, old: str, new: str) -> Playlist:
        playlist = self.playlist(old)
        validate_playlist_name(new)
        if new == old:
            return playlist
        if new in self._playlists:
            raise DuplicateNameError(new)
        del self._playlists[old]
        playlist.name = new
        self._playlists[new] = playlist
        self.queue.rename_playlist(old, new)
        logger.debug(f"Renamed playlist '{old}' -> '{new}'")
        return playlist

    def delete_playlist(self, name: str) -> Playlist:
        playlist = self._playlists.pop(name, None)
        if playlist is None:
            raise NotFoundError(f"Playlist '{name}' not found")
        dropped = self.queue.discard(lambda entry: entry.playlist == name)
        logger.debug(f"Deleted playlist '{name}' ({dropped} queue entries dropped)")
        return playlist

    # ------------------------------------------------------------------
    # Songs
    # ------------------------------------------------------------------

    def add_song(self, playlist_name: str, song: Song) -> Song:
        return self.playlist(playlist_name).append(song)

    def delete_song(self, playlist_name: str, song_id: int) -> Song:
        song = self.playlist(playlist_name).remove(song_id)
        self.queue.discard(lambda entry: entry == QueueEntry(playlist_name, song_id))
        return song

    def rename_song(self, playlist_name: str, song_id: int, title: str) -> Song:
        playlist = self.playlist(playlist_name)
        return playlist.replace(playlist.get(song_id)._replace(title=title))

    def set_song_duration(self, entry: QueueEntry, duration: float) -> Song:
        playlist = self.playlist(entry.playlist)
        return playlist.replace(playlist.get(entry.song_id)._replace(duration=duration))

    def get_song(self, entry: QueueEntry) -> Song:
        return self.playlist(entry.playlist).get(entry.song_id)

    def swap_adjacent(
        self, playlist_name: str, song_id: int, direction: Direction
    ) -> bool:
        return self.playlist(playlist_name).swap_adjacent(song_id, direction)

    # ------------------------------------------------------------------
    # Sorting
    # ------------------------------------------------------------------

    def view(self, playlist_name: str) -> list[Song]:
        return self.playlist(playlist_name).view()

    def set_sort_mode(self, playlist_name: str, mode: SortMode) -> None:
        self.playlist(playlist_name).sort_mode = mode

    def cycle_sort_mode(self, playlist_name: str) -> SortMode:
        playlist = self.playlist(playlist_name)
        playlist.sort_mode = playlist.sort_mode.next()
        return playlist.sort_mode

    def apply_sort(self, playlist_name: str) -> None:
        self.playlist(playlist_name).apply_sort()
