"""
Turning user input (a URL or a local path) into songs.
"""

import os
from pathlib import Path

from .models import Song, is_remote_source, new_song

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".svg"}


def is_valid_source(text: str) -> bool:
    """Check the text is either an existing local path or a remote URL."""
    return is_remote_source(text) or Path(text).expanduser().exists()


def collect_local_songs(path: str) -> list[Song]:
    """Songs for a local file, or for every file below a directory.

    Directories are walked recursively in sorted order without following
    symlinks; image files (cover art) are skipped.
    """
    root = Path(path).expanduser()
    if root.is_file():
        return [new_song(root.stem, str(root))]

    songs = []
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        dirnames.sort()
        for filename in sorted(filenames):
            file_path = Path(dirpath) / filename
            if file_path.suffix.lower() in IMAGE_EXTENSIONS:
                continue
            songs.append(new_song(file_path.stem, str(file_path)))
    return songs
