"""
Central state machine.

Keys, player status events, visualizer frames and resolver completions all
arrive through one inbox and are handled one at a time by the thread that
owns the Dispatcher, so AppState and the Library have a single writer.
Background work (resolving URLs, notifications) runs on an executor and
reports back by posting an event to the same inbox.
"""

import queue
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, NamedTuple, Optional

from loguru import logger

from tori.core.config import PlayerConfig
from tori.domain.library import (
    Direction,
    Library,
    LibraryError,
    PlaylistStore,
    QueueEntry,
    Song,
    SortMode,
    collect_local_songs,
    is_remote_source,
    is_valid_source,
    new_song,
)
from tori.domain.playback.events import (
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
from tori.domain.playback.exceptions import (
    PlayerCommandRejectedError,
    PlayerLostError,
    PlayerUnresponsiveError,
    ResolverError,
)
from tori.domain.playback.player import PlayerSession
from tori.domain.playback.resolver import ResolverClient
from tori.domain.playback.visualizer import VisualizerFeed
from tori.integrations import (
    IntegrationError,
    copy_to_clipboard,
    notify_now_playing,
    open_in_browser,
)
from tori.ui.keymap import Action, KeyChord, KeyMap, Modifier
from tori.ui.state import (
    PLAYLISTS_COLUMN,
    SONGS_COLUMN,
    AppState,
    ModalKind,
    NowPlaying,
    append_modal_char,
    clamp_row,
    clear_playing,
    clear_toast,
    close_modal,
    create_initial_state,
    delete_modal_char,
    filter_songs,
    mark_player_lost,
    open_modal,
    select,
    set_error,
    set_playing,
    set_song_filter,
    set_toast,
    set_visualizer_enabled,
    set_visualizer_frame,
    update_playback,
)

# What a finished resolve is for
RESOLVE_FOR_ADD = "add"
RESOLVE_FOR_PLAY = "play"
RESOLVE_FOR_ENTRY = "play-entry"


class KeyPressed(NamedTuple):
    chord: KeyChord


def _chord_text(key_chord: KeyChord) -> Optional[str]:
    """Text a chord types into a prompt, None for non-text keys."""
    if key_chord.modifiers & {Modifier.CONTROL, Modifier.ALT}:
        return None
    if key_chord.key == "space":
        return " "
    if len(key_chord.key) == 1:
        return key_chord.key
    return None


class Dispatcher:
    """Owns AppState and the Library; everything else only posts to it."""

    def __init__(
        self,
        library: Library,
        keymap: KeyMap,
        player: Optional[PlayerSession] = None,
        resolver: Optional[ResolverClient] = None,
        store: Optional[PlaylistStore] = None,
        visualizer: Optional[VisualizerFeed] = None,
        player_config: Optional[PlayerConfig] = None,
        executor: Optional[Executor] = None,
        notifier: Callable[[str], None] = notify_now_playing,
    ):
        self.library = library
        self.keymap = keymap
        self.player = player
        self.resolver = resolver
        self.store = store
        self.visualizer = visualizer
        self.player_config = player_config or PlayerConfig()
        self.notifier = notifier
        self.inbox: queue.Queue = queue.Queue()
        self._executor = executor or ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="tori-worker"
        )
        self._futures: set[Future] = set()
        # Token of the queue entry shown as playing while its stream URL
        # resolves; mpv is still on the previous file until then
        self._pending_entry: Optional[object] = None

        self.state = create_initial_state(volume=self.player_config.volume)
        if player is None:
            self.state = update_playback(self.state, available=False)
        self._sync_selection()

        self._action_handlers: dict[Action, Callable[[], None]] = {
            Action.QUIT: self._quit,
            Action.NEXT_SONG: self._next_song,
            Action.PREV_SONG: self._prev_song,
            Action.SEEK_FORWARD: lambda: self._seek(self.player_config.seek_seconds),
            Action.SEEK_BACKWARD: lambda: self._seek(-self.player_config.seek_seconds),
            Action.TOGGLE_PAUSE: self._toggle_pause,
            Action.VOLUME_UP: lambda: self._change_volume(self.player_config.volume_step),
            Action.VOLUME_DOWN: lambda: self._change_volume(-self.player_config.volume_step),
            Action.MUTE: self._toggle_mute,
            Action.TOGGLE_VISUALIZER: self._toggle_visualizer,
            Action.NEXT_SORTING_MODE: self._cycle_sort_mode,
            Action.APPLY_SORT: self._apply_sort,
            Action.RENAME: self._rename,
            Action.DELETE: self._delete,
            Action.SWAP_SONG_UP: lambda: self._swap_song(Direction.UP),
            Action.SWAP_SONG_DOWN: lambda: self._swap_song(Direction.DOWN),
            Action.SHUFFLE: self._shuffle,
            Action.SELECT_LEFT: lambda: self._select_column(PLAYLISTS_COLUMN),
            Action.SELECT_RIGHT: lambda: self._select_column(SONGS_COLUMN),
            Action.SELECT_NEXT: lambda: self._move_row(1),
            Action.SELECT_PREV: lambda: self._move_row(-1),
            Action.GO_BOTTOM: self._go_bottom,
            Action.OPEN_SONG_FILTER: self._open_song_filter,
            Action.ADD: self._add,
            Action.QUEUE_SONG: self._queue_song,
            Action.QUEUE_SHOWN: self._queue_shown,
            Action.PLAY_FROM_MODAL: self._open_play_prompt,
            Action.PLAY_SELECTED: self._play_selected,
            Action.OPEN_HELP_MODAL: self._open_help,
            Action.COPY_URL: self._copy_url,
            Action.COPY_TITLE: self._copy_title,
            Action.OPEN_IN_BROWSER: self._open_in_browser,
            Action.NOP: lambda: None,
        }

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------

    def post(self, item: Any) -> None:
        """Queue a key, action or event; safe from any thread."""
        self.inbox.put(item)

    def process_pending(self, timeout: Optional[float] = None) -> int:
        """Handle queued items in arrival order.

        Waits up to ``timeout`` for the first item (forever if None), then
        drains whatever else is queued without waiting.

        Returns:
            Number of items handled
        """
        try:
            item = self.inbox.get(timeout=timeout)
        except queue.Empty:
            return 0

        handled = 0
        while True:
            self.handle(item)
            handled += 1
            try:
                item = self.inbox.get_nowait()
            except queue.Empty:
                return handled

    def handle(self, item: Any) -> AppState:
        """Fold one key, action or event into the state. Never raises."""
        try:
            if isinstance(item, KeyPressed):
                self.handle_key(item.chord)
            elif isinstance(item, Action):
                self.handle_action(item)
            else:
                self.handle_event(item)
        except (LibraryError, ResolverError, IntegrationError) as e:
            self._error(str(e))
        except Exception as e:
            logger.exception(f"Unexpected error while handling {item!r}")
            self._error(f"Unexpected error: {e}")
        return self.state

    def shutdown(self) -> None:
        """Cancel background work and stop the visualizer."""
        for future in list(self._futures):
            future.cancel()
        if self.resolver is not None:
            self.resolver.cancel_all()
        self._executor.shutdown(wait=False, cancel_futures=True)
        if self.visualizer is not None and self.visualizer.running:
            self.visualizer.stop()
        logger.info("Dispatcher shut down")

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def handle_key(self, key_chord: KeyChord) -> None:
        modal = self.state.modal
        if modal is None:
            if self.state.song_filter is not None and self._on_songs_pane():
                if self._edit_song_filter(key_chord):
                    return
            if key_chord == KeyChord("esc"):
                self.state = clear_toast(self.state)
                return
            self.handle_action(self.keymap.resolve(key_chord))
            return

        if modal.kind is ModalKind.HELP:
            # Everything but the close keys is swallowed
            if key_chord == KeyChord("esc") or (
                self.keymap.resolve(key_chord) is Action.OPEN_HELP_MODAL
            ):
                self.state = close_modal(self.state)
            return

        if key_chord == KeyChord("esc"):
            self.state = close_modal(self.state)
        elif key_chord == KeyChord("enter"):
            self._submit_prompt()
        elif key_chord == KeyChord("backspace"):
            self.state = delete_modal_char(self.state)
        else:
            text = _chord_text(key_chord)
            if text is not None:
                self.state = append_modal_char(self.state, text)

    def _edit_song_filter(self, key_chord: KeyChord) -> bool:
        """Apply a key to the songs filter; False for keys it doesn't take."""
        text = self.state.song_filter
        if key_chord == KeyChord("esc"):
            self.state = set_song_filter(self.state, None)
        elif key_chord == KeyChord("backspace"):
            # Deleting past the start closes the filter
            self.state = set_song_filter(self.state, text[:-1] if text else None)
        else:
            char = _chord_text(key_chord)
            if char is None:
                return False
            self.state = set_song_filter(self.state, text + char)
        return True

    def handle_action(self, action: Action) -> None:
        logger.debug(f"Action {action.value}")
        self._action_handlers[action]()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def handle_event(self, event: Any) -> None:
        if isinstance(event, PositionChanged):
            self.state = update_playback(self.state, position=event.position)
        elif isinstance(event, DurationChanged):
            self.state = update_playback(self.state, duration=event.duration)
            self._backfill_duration(event.duration)
        elif isinstance(event, PauseChanged):
            self.state = update_playback(self.state, paused=event.paused)
        elif isinstance(event, VolumeChanged):
            self.state = update_playback(self.state, volume=round(event.volume))
        elif isinstance(event, MuteChanged):
            self.state = update_playback(self.state, muted=event.muted)
        elif isinstance(event, EndOfTrack):
            self._on_end_of_track(event)
        elif isinstance(event, PlayerLost):
            self._on_player_lost(event.reason)
        elif isinstance(event, VisualizerFrame):
            self.state = set_visualizer_frame(self.state, event.bars)
        elif isinstance(event, ResolutionCompleted):
            self._on_resolution(event)
        else:
            logger.warning(f"Ignoring unknown event {event!r}")

    def _on_end_of_track(self, event: EndOfTrack) -> None:
        playing = self.state.playback.playing
        if playing is None:
            return
        if self._pending_entry is not None:
            # The file that ended is the one before the entry still resolving
            logger.debug(f"Ignoring end of track while {playing.title} resolves")
            return
        if event.reason == "error":
            self._error(f"Couldn't play \"{playing.title}\"")

        entry = self.library.queue.advance()
        if entry is None:
            logger.info("Queue finished")
            self.state = clear_playing(self.state)
            return

        self._play_entry(entry)
        if self.state.playback.playing is not None:
            self._run_in_background(self.notifier, self.state.playback.playing.title)

    def _on_player_lost(self, reason: str) -> None:
        if not self.state.playback.available:
            return
        logger.error(f"Playback disabled: {reason}")
        self.state = mark_player_lost(self.state)
        self._error("Lost connection to the player, playback disabled")

    def _backfill_duration(self, duration: float) -> None:
        playing = self.state.playback.playing
        if playing is None or playing.entry is None:
            return
        entry = playing.entry
        if entry.playlist not in self.library:
            return
        playlist = self.library.playlist(entry.playlist)
        if not any(song.id == entry.song_id for song in playlist.songs):
            return
        if self.library.get_song(entry).duration is None:
            self.library.set_song_duration(entry, duration)
            self._save(entry.playlist)

    def _on_resolution(self, event: ResolutionCompleted) -> None:
        if event.purpose == RESOLVE_FOR_ADD:
            if not event.ok:
                logger.warning(f"Add abandoned for {event.url}: {event.error}")
                self._error(f"Couldn't add {event.url}: {event.error}")
                return
            playlist_name = event.context
            if playlist_name not in self.library:
                self._error(f"Playlist '{playlist_name}' no longer exists")
                return
            resolution = event.resolution
            self.library.add_song(
                playlist_name,
                new_song(resolution.title, event.url, resolution.duration),
            )
            self._save(playlist_name)
            self._sync_selection()
            self._toast(f"\"{resolution.title}\" was added to {playlist_name}")

        elif event.purpose == RESOLVE_FOR_PLAY:
            if not event.ok:
                self._error(f"Couldn't play {event.url}: {event.error}")
                return
            resolution = event.resolution
            self.library.queue.play_now(None)
            self._load(resolution.stream_url, NowPlaying(resolution.title, event.url))

        elif event.purpose == RESOLVE_FOR_ENTRY:
            playing = self.state.playback.playing
            if playing is None or event.context is not self._pending_entry:
                # The user moved on while this was resolving
                return
            self._pending_entry = None
            if not event.ok:
                self.state = clear_playing(self.state)
                self._error(f"Couldn't play \"{playing.title}\": {event.error}")
                return
            self._load(event.resolution.stream_url, playing)

    # ------------------------------------------------------------------
    # Player commands
    # ------------------------------------------------------------------

    def _player_command(self, name: str, *args: Any) -> bool:
        """Call a PlayerSession method by name, retrying once on timeout/rejection.

        Returns:
            True if the player acknowledged the command
        """
        if not self._playback_available():
            return False

        for attempt in (1, 2):
            try:
                getattr(self.player, name)(*args)
                return True
            except (PlayerUnresponsiveError, PlayerCommandRejectedError) as e:
                if attempt == 1:
                    logger.warning(f"Player command '{name}' failed, retrying: {e}")
                    continue
                logger.warning(f"Player command '{name}' failed again: {e}")
                self._error(str(e))
            except PlayerLostError as e:
                self._on_player_lost(str(e))
                return False
        return False

    def _load(self, source: str, now_playing: NowPlaying) -> bool:
        self._pending_entry = None
        if self._player_command("load", source):
            self.state = set_playing(self.state, now_playing)
            return True
        self.state = clear_playing(self.state)
        return False

    def _play_entry(self, entry: QueueEntry) -> None:
        song = self.library.get_song(entry)
        now_playing = NowPlaying(song.title, song.source, entry)
        if song.is_remote and self.resolver is not None:
            # Stream URLs expire, so remote songs are resolved right before playing
            self.state = set_playing(self.state, now_playing)
            self._pending_entry = object()
            self._resolve_in_background(song.source, RESOLVE_FOR_ENTRY, self._pending_entry)
            return
        self._load(song.source, now_playing)

    def _playback_available(self) -> bool:
        if self.player is None or not self.state.playback.available:
            self._error("Player unavailable")
            return False
        return True

    def _next_song(self) -> None:
        if not self._playback_available():
            return
        entry = self.library.queue.advance()
        if entry is None:
            self.state = clear_playing(self.state)
            self._toast("Queue is empty")
            return
        self._play_entry(entry)

    def _prev_song(self) -> None:
        if not self._playback_available():
            return
        entry = self.library.queue.retreat()
        if entry is None:
            self._error("No previous song")
            return
        self._play_entry(entry)

    def _toggle_pause(self) -> None:
        if self.state.playback.playing is None:
            return
        self._player_command("toggle_pause")

    def _seek(self, seconds: float) -> None:
        if self.state.playback.playing is None:
            return
        self._player_command("seek", seconds, True)

    def _change_volume(self, delta: int) -> None:
        current = self.state.playback.volume
        target = max(0, min(100, current + delta))
        if target == current:
            return
        if self._player_command("set_volume", target):
            self.state = update_playback(self.state, volume=target)

    def _toggle_mute(self) -> None:
        muted = not self.state.playback.muted
        if self._player_command("mute", muted):
            self.state = update_playback(self.state, muted=muted)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _select_column(self, column: int) -> None:
        self.state = select(self.state, column=column)

    def _move_row(self, delta: int) -> None:
        selection = self.state.selection
        if selection.column == PLAYLISTS_COLUMN:
            names = self.library.playlist_names()
            row = clamp_row(selection.playlist_row + delta, len(names))
            if row != selection.playlist_row:
                self.state = select(self.state, playlist_row=row, song_row=0)
                self._sync_selection()
        else:
            row = clamp_row(selection.song_row + delta, len(self._shown_songs()))
            self.state = select(self.state, song_row=row)

    def _go_bottom(self) -> None:
        if self._on_songs_pane():
            self._move_row(len(self._shown_songs()))
        else:
            self._move_row(len(self.library.playlist_names()))

    def _open_song_filter(self) -> None:
        if self.state.selected_playlist is None:
            return
        self.state = set_song_filter(select(self.state, column=SONGS_COLUMN), "")

    def _sync_selection(self) -> None:
        """Clamp the cursor to the library and refresh the selected playlist."""
        names = self.library.playlist_names()
        if not names:
            self.state = replace(
                select(self.state, playlist_row=0, song_row=0),
                selected_playlist=None,
                sort_mode=SortMode.MANUAL,
                song_filter=None,
            )
            return

        playlist_row = clamp_row(self.state.selection.playlist_row, len(names))
        playlist = self.library.playlist(names[playlist_row])
        # A filter only applies to the playlist it was typed in
        song_filter = (
            self.state.song_filter
            if playlist.name == self.state.selected_playlist
            else None
        )
        shown = filter_songs(playlist.view(), song_filter)
        song_row = clamp_row(self.state.selection.song_row, len(shown))
        self.state = replace(
            select(self.state, playlist_row=playlist_row, song_row=song_row),
            selected_playlist=playlist.name,
            sort_mode=playlist.sort_mode,
            song_filter=song_filter,
        )

    def _select_playlist(self, name: str) -> None:
        row = self.library.playlist_names().index(name)
        self.state = select(self.state, playlist_row=row, song_row=0)
        self._sync_selection()

    def _shown_songs(self) -> list[Song]:
        if self.state.selected_playlist is None:
            return []
        return filter_songs(
            self.library.view(self.state.selected_playlist), self.state.song_filter
        )

    def _selected_song(self) -> Optional[Song]:
        songs = self._shown_songs()
        if not songs:
            return None
        return songs[clamp_row(self.state.selection.song_row, len(songs))]

    def _on_songs_pane(self) -> bool:
        return self.state.selection.column == SONGS_COLUMN

    # ------------------------------------------------------------------
    # Library actions
    # ------------------------------------------------------------------

    def _cycle_sort_mode(self) -> None:
        name = self.state.selected_playlist
        if name is None:
            return
        mode = self.library.cycle_sort_mode(name)
        self.state = replace(self.state, sort_mode=mode)
        self._toast(f"Sorting by {mode.value}")

    def _apply_sort(self) -> None:
        name = self.state.selected_playlist
        if name is None:
            return
        self.library.apply_sort(name)
        self._save(name)
        self.state = replace(self.state, sort_mode=SortMode.MANUAL)
        self._toast(f"Saved the order of {name}")

    def _rename(self) -> None:
        name = self.state.selected_playlist
        if name is None:
            return
        if not self._on_songs_pane():
            self.state = open_modal(self.state, ModalKind.RENAME_PLAYLIST, name, name)
            return
        song = self._selected_song()
        if song is not None:
            self.state = open_modal(
                self.state, ModalKind.RENAME_SONG, song.title, (name, song.id)
            )

    def _delete(self) -> None:
        name = self.state.selected_playlist
        if name is None:
            return
        if not self._on_songs_pane():
            self.library.delete_playlist(name)
            self._storage(lambda store: store.delete(name))
            self._sync_selection()
            self._toast(f"Deleted playlist {name}")
            return

        song = self._selected_song()
        if song is None:
            return
        self.library.delete_song(name, song.id)
        self._save(name)
        self._sync_selection()
        self._toast(f"Deleted \"{song.title}\"")

    def _swap_song(self, direction: Direction) -> None:
        name = self.state.selected_playlist
        song = self._selected_song()
        if name is None or song is None or not self._on_songs_pane():
            return
        if self.library.playlist(name).sort_mode is not SortMode.MANUAL:
            self._error("Songs can only be moved in Manual sorting")
            return
        if self.state.song_filter:
            self._error("Clear the filter to move songs")
            return
        if self.library.swap_adjacent(name, song.id, direction):
            self.state = select(
                self.state, song_row=self.state.selection.song_row + direction.value
            )
            self._save(name)

    def _shuffle(self) -> None:
        self.library.queue.shuffle()
        self._toast("Queue shuffled")

    def _add(self) -> None:
        if not self._on_songs_pane():
            self.state = open_modal(self.state, ModalKind.ADD_PLAYLIST)
            return
        name = self.state.selected_playlist
        if name is None:
            self._error("Create a playlist first")
            return
        self.state = open_modal(self.state, ModalKind.ADD_SONG, target=name)

    def _queue_song(self) -> None:
        song = self._selected_song()
        if song is None:
            return
        self.library.queue.append(QueueEntry(self.state.selected_playlist, song.id))
        self._toast(f"Queued \"{song.title}\"")
        self._start_if_idle()

    def _queue_shown(self) -> None:
        songs = self._shown_songs()
        if not songs:
            return
        name = self.state.selected_playlist
        self.library.queue.extend(QueueEntry(name, song.id) for song in songs)
        self._toast(f"Queued {len(songs)} songs from {name}")
        self._start_if_idle()

    def _start_if_idle(self) -> None:
        if self.state.playback.playing is None and self.state.playback.available:
            entry = self.library.queue.advance()
            if entry is not None:
                self._play_entry(entry)

    def _play_selected(self) -> None:
        if not self._on_songs_pane():
            self._select_column(SONGS_COLUMN)
            return
        song = self._selected_song()
        if song is None or not self._playback_available():
            return
        entry = QueueEntry(self.state.selected_playlist, song.id)
        self.library.queue.play_now(entry)
        self._play_entry(entry)

    def _open_play_prompt(self) -> None:
        self.state = open_modal(self.state, ModalKind.PLAY_FROM_URL)

    def _open_help(self) -> None:
        self.state = open_modal(self.state, ModalKind.HELP)

    def _quit(self) -> None:
        self.state = replace(self.state, running=False)

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------

    def _submit_prompt(self) -> None:
        modal = self.state.modal
        text = modal.text.strip()
        self.state = close_modal(self.state)

        if modal.kind is ModalKind.ADD_PLAYLIST:
            self.library.add_playlist(text)
            self._save(text)
            self._select_playlist(text)
            self._toast(f"Created playlist {text}")

        elif modal.kind is ModalKind.RENAME_PLAYLIST:
            old = modal.target
            self.library.rename_playlist(old, text)
            if text != old:
                self._storage(lambda store: store.rename(old, text))
                self._rename_playing_entry(old, text)
            self._select_playlist(text)

        elif modal.kind is ModalKind.RENAME_SONG:
            playlist_name, song_id = modal.target
            if not text:
                self._error("Song title can't be empty")
                return
            self.library.rename_song(playlist_name, song_id, text)
            self._save(playlist_name)

        elif modal.kind is ModalKind.ADD_SONG:
            self._add_source(modal.target, text)

        elif modal.kind is ModalKind.PLAY_FROM_URL:
            self._play_source(text)

    def _rename_playing_entry(self, old: str, new: str) -> None:
        playing = self.state.playback.playing
        if playing is None or playing.entry is None or playing.entry.playlist != old:
            return
        entry = playing.entry._replace(playlist=new)
        self.state = update_playback(self.state, playing=replace(playing, entry=entry))

    def _add_source(self, playlist_name: str, text: str) -> None:
        if not is_valid_source(text):
            self._error(f"Not a valid path or URL: {text}")
            return
        if is_remote_source(text):
            if self.resolver is None:
                self._error("No resolver configured")
                return
            self._toast(f"Resolving {text}...")
            self._resolve_in_background(text, RESOLVE_FOR_ADD, playlist_name)
            return

        songs = collect_local_songs(text)
        for song in songs:
            self.library.add_song(playlist_name, song)
        self._save(playlist_name)
        self._sync_selection()
        self._toast(f"Added {len(songs)} songs to {playlist_name}")

    def _play_source(self, text: str) -> None:
        if not is_valid_source(text):
            self._error(f"Not a valid path or URL: {text}")
            return
        if is_remote_source(text):
            if self.resolver is None:
                self._error("No resolver configured")
                return
            self._resolve_in_background(text, RESOLVE_FOR_PLAY)
            return
        self.library.queue.play_now(None)
        path = Path(text).expanduser()
        self._load(str(path), NowPlaying(path.stem, str(path)))

    # ------------------------------------------------------------------
    # Clipboard / browser
    # ------------------------------------------------------------------

    def _target_song_source(self) -> Optional[tuple[str, str]]:
        """(title, source) of the selected song, else of what's playing."""
        if self._on_songs_pane():
            song = self._selected_song()
            if song is not None:
                return song.title, song.source
        playing = self.state.playback.playing
        if playing is not None:
            return playing.title, playing.source
        return None

    def _copy_url(self) -> None:
        target = self._target_song_source()
        if target is not None:
            copy_to_clipboard(target[1])
            self._toast(f"Copied {target[1]} to the clipboard")

    def _copy_title(self) -> None:
        target = self._target_song_source()
        if target is not None:
            copy_to_clipboard(target[0])
            self._toast(f"Copied \"{target[0]}\" to the clipboard")

    def _open_in_browser(self) -> None:
        target = self._target_song_source()
        if target is not None:
            open_in_browser(target[1])

    # ------------------------------------------------------------------
    # Visualizer
    # ------------------------------------------------------------------

    def _toggle_visualizer(self) -> None:
        if self.visualizer is None:
            self._error("Visualizer unavailable")
            return
        if self.state.visualizer_enabled:
            self.visualizer.stop()
            self.state = set_visualizer_enabled(self.state, False)
            return
        try:
            self.visualizer.start()
        except OSError as e:
            self._error(f"Couldn't start the visualizer: {e}")
            return
        self.state = set_visualizer_enabled(self.state, True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_in_background(self, url: str, purpose: str, context: Any = None) -> None:
        def task() -> None:
            try:
                resolution = self.resolver.resolve(url)
            except ResolverError as e:
                self.post(ResolutionCompleted(url, purpose, context, error=e))
            except Exception as e:
                logger.exception(f"Resolver crashed on {url}")
                self.post(ResolutionCompleted(url, purpose, context, error=e))
            else:
                self.post(ResolutionCompleted(url, purpose, context, resolution=resolution))

        self._run_in_background(task)

    def _run_in_background(self, fn: Callable, *args: Any) -> None:
        future = self._executor.submit(fn, *args)
        self._futures.add(future)
        future.add_done_callback(self._futures.discard)

    def _storage(self, operation: Callable[[PlaylistStore], Any]) -> None:
        if self.store is None:
            return
        try:
            operation(self.store)
        except OSError as e:
            logger.warning(f"Playlist storage failed: {e}")
            self._error(f"Couldn't save playlists: {e}")

    def _save(self, playlist_name: str) -> None:
        self._storage(lambda store: store.save(self.library.playlist(playlist_name)))

    def _toast(self, text: str) -> None:
        self.state = set_toast(self.state, text)

    def _error(self, text: str) -> None:
        self.state = set_error(self.state, text)
