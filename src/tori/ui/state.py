"""UI state management - immutable state updates."""

from dataclasses import dataclass, field, replace
from enum import Enum
from time import time
from typing import Any, Optional

from tori.domain.library.models import QueueEntry, Song, SortMode

# Seconds a toast stays on screen
TOAST_SECONDS = 4.0

PLAYLISTS_COLUMN = 0
SONGS_COLUMN = 1


class ModalKind(Enum):
    HELP = "help"
    PLAY_FROM_URL = "play-from-url"
    ADD_SONG = "add-song"
    ADD_PLAYLIST = "add-playlist"
    RENAME_PLAYLIST = "rename-playlist"
    RENAME_SONG = "rename-song"


@dataclass
class Selection:
    """Cursor across the two-pane layout (playlists | songs)."""

    column: int = PLAYLISTS_COLUMN
    playlist_row: int = 0
    song_row: int = 0


@dataclass
class NowPlaying:
    """What the player was last told to play.

    ``entry`` is None for URLs played straight from the play prompt.
    """

    title: str
    source: str
    entry: Optional[QueueEntry] = None


@dataclass
class PlaybackStatus:
    """Mirror of the player's status as last reported."""

    playing: Optional[NowPlaying] = None
    position: float = 0.0
    duration: Optional[float] = None
    paused: bool = False
    volume: int = 100
    muted: bool = False
    available: bool = True  # False after the player connection is lost


@dataclass
class Modal:
    kind: ModalKind
    text: str = ""
    target: Any = None  # what a prompt acts on, e.g. (playlist, song_id)

    @property
    def is_prompt(self) -> bool:
        return self.kind is not ModalKind.HELP


@dataclass
class Toast:
    text: str
    level: str = "info"  # info | error
    show_until: float = 0.0


@dataclass
class AppState:
    """Everything the renderer needs. Only the dispatcher replaces it."""

    selected_playlist: Optional[str] = None
    selection: Selection = field(default_factory=Selection)
    sort_mode: SortMode = SortMode.MANUAL
    playback: PlaybackStatus = field(default_factory=PlaybackStatus)
    visualizer_enabled: bool = False
    visualizer_frame: Optional[tuple[int, ...]] = None
    modal: Optional[Modal] = None
    # Songs pane filter text; None when no filter is being typed
    song_filter: Optional[str] = None
    toast: Optional[Toast] = None
    running: bool = True


def create_initial_state(volume: int = 100) -> AppState:
    return AppState(playback=PlaybackStatus(volume=volume))


# ----------------------------------------------------------------------
# Toasts
# ----------------------------------------------------------------------


def set_toast(
    state: AppState,
    text: str,
    level: str = "info",
    duration: float = TOAST_SECONDS,
    now: Optional[float] = None,
) -> AppState:
    """Show a transient message."""
    now = time() if now is None else now
    return replace(state, toast=Toast(text, level, now + duration))


def set_error(state: AppState, text: str) -> AppState:
    return set_toast(state, text, level="error")


def clear_toast(state: AppState) -> AppState:
    return replace(state, toast=None)


def should_show_toast(state: AppState, now: Optional[float] = None) -> bool:
    if state.toast is None:
        return False
    return (time() if now is None else now) < state.toast.show_until


# ----------------------------------------------------------------------
# Modals
# ----------------------------------------------------------------------


def open_modal(
    state: AppState, kind: ModalKind, text: str = "", target: Any = None
) -> AppState:
    return replace(state, modal=Modal(kind, text, target))


def close_modal(state: AppState) -> AppState:
    return replace(state, modal=None)


def append_modal_char(state: AppState, char: str) -> AppState:
    if state.modal is None or not state.modal.is_prompt:
        return state
    return replace(state, modal=replace(state.modal, text=state.modal.text + char))


def delete_modal_char(state: AppState) -> AppState:
    if state.modal is None or not state.modal.is_prompt:
        return state
    return replace(state, modal=replace(state.modal, text=state.modal.text[:-1]))


# ----------------------------------------------------------------------
# Selection
# ----------------------------------------------------------------------


def select(state: AppState, **changes: Any) -> AppState:
    """Replace selection fields, e.g. ``select(state, song_row=3)``."""
    return replace(state, selection=replace(state.selection, **changes))


def clamp_row(row: int, count: int) -> int:
    """Saturate a row index to ``[0, count - 1]`` (0 for an empty list)."""
    if count <= 0:
        return 0
    return max(0, min(row, count - 1))


def filter_songs(songs: list[Song], text: Optional[str]) -> list[Song]:
    """Songs whose title or source contains ``text``, ignoring case."""
    if not text:
        return songs
    needle = text.casefold()
    return [
        song
        for song in songs
        if needle in song.title.casefold() or needle in song.source.casefold()
    ]


def set_song_filter(state: AppState, text: Optional[str]) -> AppState:
    """Change the songs pane filter; the cursor goes back to the first match."""
    return select(replace(state, song_filter=text), song_row=0)


# ----------------------------------------------------------------------
# Playback mirror
# ----------------------------------------------------------------------


def update_playback(state: AppState, **changes: Any) -> AppState:
    return replace(state, playback=replace(state.playback, **changes))


def set_playing(state: AppState, now_playing: NowPlaying) -> AppState:
    return update_playback(state, playing=now_playing, position=0.0, duration=None)


def clear_playing(state: AppState) -> AppState:
    return update_playback(state, playing=None, position=0.0, duration=None)


def mark_player_lost(state: AppState) -> AppState:
    return update_playback(
        state, playing=None, position=0.0, duration=None, available=False
    )


# ----------------------------------------------------------------------
# Visualizer
# ----------------------------------------------------------------------


def set_visualizer_enabled(state: AppState, enabled: bool) -> AppState:
    return replace(state, visualizer_enabled=enabled, visualizer_frame=None)


def set_visualizer_frame(state: AppState, bars: tuple[int, ...]) -> AppState:
    if not state.visualizer_enabled:
        return state
    return replace(state, visualizer_frame=bars)
