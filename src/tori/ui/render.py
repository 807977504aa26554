"""Screen rendering functions for the blessed UI."""

import sys
from typing import Optional

from blessed import Terminal

from tori.domain.library import Library, QueueEntry, Song
from tori.ui.keymap import Action, KeyMap, format_chord
from tori.ui.state import (
    PLAYLISTS_COLUMN,
    SONGS_COLUMN,
    AppState,
    ModalKind,
    filter_songs,
    should_show_toast,
)

BAR_BLOCKS = " ▁▂▃▄▅▆▇█"

MODAL_TITLES = {
    ModalKind.PLAY_FROM_URL: "Play URL or path",
    ModalKind.ADD_SONG: "Add URL or path",
    ModalKind.ADD_PLAYLIST: "New playlist name",
    ModalKind.RENAME_PLAYLIST: "Rename playlist",
    ModalKind.RENAME_SONG: "Rename song",
}


def write_at(
    term: Terminal, x: int, y: int, content: str, *, clear: bool = True
) -> None:
    """Write content at position, clearing the rest of the line by default."""
    if clear:
        sys.stdout.write(term.move_xy(x, y) + term.clear_eol + content)
    else:
        sys.stdout.write(term.move_xy(x, y) + content)


def format_time(seconds: Optional[float]) -> str:
    if seconds is None or seconds < 0:
        return "--:--"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes:02d}:{secs:02d}"


def _fit(text: str, width: int) -> str:
    if width <= 0:
        return ""
    return text if len(text) <= width else text[: max(width - 1, 0)] + "…"


def _visible_window(selected: int, count: int, height: int) -> range:
    """Rows to draw so that the selected row stays on screen."""
    if count <= height:
        return range(count)
    start = min(max(selected - height // 2, 0), count - height)
    return range(start, start + height)


def render_playlists(term: Terminal, state: AppState, library: Library, width: int, height: int) -> None:
    names = library.playlist_names()
    focused = state.selection.column == PLAYLISTS_COLUMN
    write_at(term, 0, 0, term.bold("Playlists"), clear=False)

    for line, row in enumerate(_visible_window(state.selection.playlist_row, len(names), height - 1)):
        text = _fit(f" {names[row]}", width - 1)
        if row == state.selection.playlist_row:
            text = term.black_on_yellow(text) if focused else term.reverse(text)
        write_at(term, 0, line + 1, text, clear=False)


def render_songs(term: Terminal, state: AppState, library: Library, x: int, width: int, height: int) -> None:
    name = state.selected_playlist
    if name is None:
        title = "No playlists (press a to add one)"
    elif state.song_filter is not None:
        title = f"/{state.song_filter}"
    else:
        title = f"{name} [{state.sort_mode.value}]"
    write_at(term, x, 0, term.bold(_fit(title, width)), clear=False)
    if name is None:
        return

    songs: list[Song] = filter_songs(library.view(name), state.song_filter)
    focused = state.selection.column == SONGS_COLUMN
    playing = state.playback.playing
    for line, row in enumerate(_visible_window(state.selection.song_row, len(songs), height - 1)):
        song = songs[row]
        is_playing = playing is not None and playing.entry == QueueEntry(name, song.id)
        marker = "♪" if is_playing else " "
        duration = format_time(song.duration)
        text = _fit(f"{marker} {song.title}", width - len(duration) - 2)
        text = text.ljust(width - len(duration) - 1) + duration
        if row == state.selection.song_row:
            text = term.black_on_yellow(text) if focused else term.reverse(text)
        write_at(term, x, line + 1, text, clear=False)


def render_now_playing(term: Terminal, state: AppState, y: int) -> None:
    playback = state.playback
    if not playback.available:
        write_at(term, 0, y, term.red("Player unavailable"))
        return
    if playback.playing is None:
        write_at(term, 0, y, term.dim("Nothing playing"))
        return

    icon = "⏸" if playback.paused else "▶"
    volume = "muted" if playback.muted else f"vol {playback.volume}%"
    progress = f"{format_time(playback.position)} / {format_time(playback.duration)}"
    line = f"{icon} {playback.playing.title}  {progress}  {volume}"
    write_at(term, 0, y, _fit(line, term.width))


def render_visualizer(term: Terminal, state: AppState, y: int, height: int) -> None:
    bars = state.visualizer_frame
    if not bars:
        return
    top = max(max(bars), 1)
    levels = len(BAR_BLOCKS) - 1
    for line in range(height):
        # Each terminal row covers a slice of the bar height, top row first
        row_floor = (height - line - 1) / height
        chars = []
        for value in bars:
            fill = value / top - row_floor
            index = max(0, min(levels, int(fill * height * levels)))
            chars.append(BAR_BLOCKS[index])
        write_at(term, 0, y + line, term.cyan("".join(chars)))


def render_help(term: Terminal, keymap: KeyMap) -> None:
    rows = sorted(
        (action.value, ", ".join(format_chord(c) for c in keymap.chords_for(action)))
        for action in Action
        if action is not Action.NOP and keymap.chords_for(action)
    )
    width = min(term.width - 4, 60)
    x = max((term.width - width) // 2, 0)
    write_at(term, x, 1, term.bold_black_on_white(" Help (Esc to close) ".ljust(width)), clear=False)
    for line, (action, chords) in enumerate(rows[: term.height - 4]):
        write_at(term, x, line + 2, term.black_on_white(_fit(f" {action:<20}{chords}", width).ljust(width)), clear=False)


def render_prompt(term: Terminal, state: AppState) -> None:
    modal = state.modal
    width = min(term.width - 4, 70)
    x = max((term.width - width) // 2, 0)
    y = term.height // 2 - 1
    write_at(term, x, y, term.bold_black_on_white(f" {MODAL_TITLES[modal.kind]} ".ljust(width)), clear=False)
    text = modal.text[-(width - 3):]
    write_at(term, x, y + 1, term.black_on_white(f" {text}█".ljust(width)), clear=False)


def render(term: Terminal, state: AppState, library: Library, keymap: KeyMap) -> None:
    """Redraw the whole screen from the state."""
    sys.stdout.write(term.home + term.clear)

    visualizer_height = 4 if state.visualizer_enabled else 0
    footer_y = term.height - 2
    panes_height = footer_y - visualizer_height
    playlists_width = max(term.width // 4, 12)

    render_playlists(term, state, library, playlists_width, panes_height)
    render_songs(term, state, library, playlists_width + 1, term.width - playlists_width - 1, panes_height)
    if state.visualizer_enabled:
        render_visualizer(term, state, panes_height, visualizer_height)
    render_now_playing(term, state, footer_y)

    if should_show_toast(state):
        toast = state.toast
        color = term.red if toast.level == "error" else term.green
        write_at(term, 0, footer_y + 1, color(_fit(toast.text, term.width - 1)))

    if state.modal is not None:
        if state.modal.kind is ModalKind.HELP:
            render_help(term, keymap)
        else:
            render_prompt(term, state)

    sys.stdout.flush()
