"""
Playlist storage as extended M3U files.

One ``<name>.m3u8`` file per playlist inside the playlists directory:

    #EXTM3U
    #EXTINF:213,Song title
    https://www.youtube.com/watch?v=...
"""

import math
import os
from pathlib import Path
from typing import Iterable, Optional

from loguru import logger

from .library import Library, Playlist
from .models import Song

PLAYLIST_EXTENSIONS = (".m3u8", ".m3u")
UNKNOWN_DURATION = -1


def parse_m3u(text: str) -> list[Song]:
    """Parse extended M3U content into songs (ids are not assigned here)."""
    songs = []
    title: Optional[str] = None
    duration: Optional[float] = None

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#EXTM3U"):
            continue

        if line.startswith("#EXTINF:"):
            length, _, title = line[len("#EXTINF:"):].partition(",")
            try:
                seconds = float(length)
            except ValueError:
                logger.warning(f"Bad #EXTINF duration {length!r}, treating as unknown")
                seconds = UNKNOWN_DURATION
            duration = seconds if math.isfinite(seconds) and seconds >= 0 else None
            continue

        if line.startswith("#"):
            # Other extension lines carry nothing we use
            continue

        songs.append(Song(title=title or _title_from_source(line), source=line, duration=duration))
        title, duration = None, None

    return songs


def serialize_playlist(songs: Iterable[Song]) -> str:
    lines = ["#EXTM3U"]
    for song in songs:
        if song.duration is None or not math.isfinite(song.duration):
            seconds = UNKNOWN_DURATION
        else:
            seconds = int(song.duration)
        lines.append(f"#EXTINF:{seconds},{song.title}")
        lines.append(song.source)
    return "\n".join(lines) + "\n"


def _title_from_source(source: str) -> str:
    # Last part of the path or URL, like a file name
    tail = source.rstrip("/").rsplit("/", 1)[-1]
    return Path(tail).stem or source


class PlaylistStore:
    """Loads and writes playlist files in one directory.

    Playlists are always written as ``<name>.m3u8``. A playlist read from a
    ``.m3u`` file is migrated on its first save, rename or delete so only one
    file per name is left behind.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        # Files skipped by the last load_library() because they couldn't be read
        self.unreadable: list[Path] = []

    def path_for(self, name: str) -> Path:
        return self.directory / f"{name}.m3u8"

    def existing_paths(self, name: str) -> list[Path]:
        """Files on disk for a playlist, the preferred (.m3u8) one first."""
        paths = (self.directory / f"{name}{ext}" for ext in PLAYLIST_EXTENSIONS)
        return [path for path in paths if path.is_file()]

    def load_library(self) -> Library:
        """Read every playlist file into a fresh Library.

        Unreadable files are logged, listed in ``unreadable`` and skipped.
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        self.unreadable = []
        playlists: dict[str, Playlist] = {}

        # .m3u8 before .m3u of the same name, since that's what save() writes
        files = sorted(
            self.directory.iterdir(),
            key=lambda p: (p.stem, p.suffix.lower() != ".m3u8", p.name),
        )
        for path in files:
            if path.suffix.lower() not in PLAYLIST_EXTENSIONS or not path.is_file():
                continue
            if path.stem in playlists:
                logger.warning(f"Skipping {path.name}: playlist '{path.stem}' already loaded")
                continue
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable playlist {path}: {e}")
                self.unreadable.append(path)
                continue
            songs = parse_m3u(text)
            playlists[path.stem] = Playlist(path.stem, songs)
            logger.debug(f"Loaded playlist '{path.stem}' ({len(songs)} songs)")

        logger.info(f"Loaded {len(playlists)} playlists from {self.directory}")
        return Library(playlists.values())

    def save(self, playlist: Playlist) -> Path:
        """Write a playlist in its underlying order (atomic replace)."""
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(playlist.name)
        tmp_path = path.with_suffix(".m3u8.tmp")
        tmp_path.write_text(serialize_playlist(playlist.songs), encoding="utf-8")
        os.replace(tmp_path, path)
        self._remove_legacy(playlist.name)
        return path

    def rename(self, old: str, new: str) -> None:
        paths = self.existing_paths(old)
        if not paths:
            return
        os.replace(paths[0], self.path_for(new))
        self._remove_legacy(old)

    def delete(self, name: str) -> None:
        for path in self.existing_paths(name):
            path.unlink(missing_ok=True)

    def _remove_legacy(self, name: str) -> None:
        for path in self.existing_paths(name):
            if path != self.path_for(name):
                logger.debug(f"Removing {path.name}, superseded by {self.path_for(name).name}")
                path.unlink(missing_ok=True)
