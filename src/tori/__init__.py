"""Tori - terminal music player driving mpv."""

__version__ = "0.3.0"
