"""Tests for the dispatcher state machine, driven with synthetic input."""

from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from tori.core.config import PlayerConfig
from tori.domain.library import Library, PlaylistStore, QueueEntry, Song, SortMode
from tori.domain.playback.events import (
    DurationChanged,
    EndOfTrack,
    PauseChanged,
    PlayerLost,
    PositionChanged,
    VisualizerFrame,
    VolumeChanged,
)
from tori.domain.playback.exceptions import (
    PlayerCommandRejectedError,
    PlayerUnresponsiveError,
    ResolutionFailedError,
)
from tori.domain.playback.player import PlayerSession
from tori.domain.playback.resolver import Resolution, ResolverClient
from tori.domain.playback.visualizer import VisualizerFeed
from tori.integrations import IntegrationError
from tori.ui.dispatcher import Dispatcher, KeyPressed
from tori.ui.keymap import Action, KeyChord, Modifier, build_keymap
from tori.ui.state import PLAYLISTS_COLUMN, SONGS_COLUMN, ModalKind


@pytest.fixture
def player() -> Mock:
    return Mock(spec=PlayerSession)


@pytest.fixture
def resolver() -> Mock:
    return Mock(spec=ResolverClient)


@pytest.fixture
def make_dispatcher(library, player, resolver, inline_executor):
    def make(**overrides) -> Dispatcher:
        options = dict(
            player=player,
            resolver=resolver,
            executor=inline_executor,
            notifier=Mock(),
        )
        options.update(overrides)
        return Dispatcher(library, build_keymap(), **options)

    return make


@pytest.fixture
def dispatcher(make_dispatcher) -> Dispatcher:
    """Dispatcher with the songs pane of "Mix" (A, B, C) focused."""
    d = make_dispatcher()
    d.handle(Action.SELECT_NEXT)  # Chill -> Mix
    d.handle(Action.SELECT_RIGHT)
    return d


def press(dispatcher: Dispatcher, *chords: str) -> None:
    for key in chords:
        dispatcher.handle(KeyPressed(KeyChord(key)))


def type_text(dispatcher: Dispatcher, text: str) -> None:
    press(dispatcher, *("space" if char == " " else char for char in text))


def song_titles(library: Library, name: str) -> list[str]:
    return [song.title for song in library.playlist(name).songs]


class TestNavigation:
    """Tests for the two-pane cursor."""

    def test_initial_selection(self, make_dispatcher) -> None:
        d = make_dispatcher()
        assert d.state.selected_playlist == "Chill"
        assert d.state.selection.column == PLAYLISTS_COLUMN

    def test_saturating_rows(self, make_dispatcher) -> None:
        d = make_dispatcher()
        d.handle(Action.SELECT_PREV)
        assert d.state.selection.playlist_row == 0

        for _ in range(5):
            d.handle(Action.SELECT_NEXT)
        assert d.state.selected_playlist == "Mix"

        d.handle(Action.SELECT_RIGHT)
        for _ in range(5):
            d.handle(Action.SELECT_NEXT)
        assert d.state.selection.song_row == 2

    def test_saturating_columns(self, dispatcher: Dispatcher) -> None:
        dispatcher.handle(Action.SELECT_RIGHT)
        assert dispatcher.state.selection.column == SONGS_COLUMN
        dispatcher.handle(Action.SELECT_LEFT)
        dispatcher.handle(Action.SELECT_LEFT)
        assert dispatcher.state.selection.column == PLAYLISTS_COLUMN

    def test_keys_resolve_through_keymap(self, dispatcher: Dispatcher) -> None:
        press(dispatcher, "j", "j")
        assert dispatcher.state.selection.song_row == 2


class TestHelpModal:
    def test_swallows_everything_but_close(self, dispatcher: Dispatcher, library: Library) -> None:
        press(dispatcher, "?")
        assert dispatcher.state.modal.kind is ModalKind.HELP

        press(dispatcher, "q", "j")
        dispatcher.handle(KeyPressed(KeyChord("c", frozenset({Modifier.CONTROL}))))
        assert library.queue.entries == ()
        assert dispatcher.state.selection.song_row == 0
        assert dispatcher.state.running

        press(dispatcher, "esc")
        assert dispatcher.state.modal is None

    def test_help_key_closes(self, dispatcher: Dispatcher) -> None:
        press(dispatcher, "?", "?")
        assert dispatcher.state.modal is None


class TestPlayback:
    """Tests for player commands and the playback mirror."""

    def test_next_song_on_empty_queue_clears_playing(self, dispatcher: Dispatcher, player: Mock) -> None:
        """Nothing queued: playing is cleared and the player isn't touched."""
        dispatcher.handle(Action.PLAY_SELECTED)
        assert dispatcher.state.playback.playing is not None
        player.reset_mock()

        dispatcher.handle(Action.NEXT_SONG)

        assert dispatcher.state.playback.playing is None
        assert player.method_calls == []

    def test_end_of_track_loads_next(self, dispatcher: Dispatcher, player: Mock, library: Library) -> None:
        """[load(A), end-of-track, queue=[B, C]] loads B and leaves [C]."""
        dispatcher.handle(Action.QUEUE_SHOWN)
        player.load.assert_called_once_with("/music/a.mp3")
        assert library.queue.entries == (QueueEntry("Mix", 2), QueueEntry("Mix", 3))

        dispatcher.handle(EndOfTrack("eof"))

        player.load.assert_called_with("/music/b.mp3")
        assert dispatcher.state.playback.playing.title == "B"
        assert library.queue.entries == (QueueEntry("Mix", 3),)
        dispatcher.notifier.assert_called_once_with("B")

    def test_end_of_last_track_clears_playing(self, dispatcher: Dispatcher, player: Mock) -> None:
        dispatcher.handle(Action.QUEUE_SONG)
        dispatcher.handle(EndOfTrack("eof"))

        assert dispatcher.state.playback.playing is None
        assert player.load.call_count == 1

    def test_prev_song(self, dispatcher: Dispatcher, player: Mock) -> None:
        dispatcher.handle(Action.QUEUE_SHOWN)
        dispatcher.handle(Action.NEXT_SONG)
        dispatcher.handle(Action.PREV_SONG)

        player.load.assert_called_with("/music/a.mp3")
        assert dispatcher.state.playback.playing.title == "A"

    def test_prev_song_without_history(self, dispatcher: Dispatcher, player: Mock) -> None:
        dispatcher.handle(Action.PREV_SONG)
        assert dispatcher.state.toast.level == "error"
        player.load.assert_not_called()

    def test_volume_clamps_at_100(self, make_dispatcher, player: Mock) -> None:
        d = make_dispatcher(player_config=PlayerConfig(volume=95, volume_step=5))

        for _ in range(7):
            d.handle(Action.VOLUME_UP)

        assert d.state.playback.volume == 100
        player.set_volume.assert_called_once_with(100)

    def test_volume_down_clamps_at_0(self, make_dispatcher, player: Mock) -> None:
        d = make_dispatcher(player_config=PlayerConfig(volume=3, volume_step=5))
        d.handle(Action.VOLUME_DOWN)
        d.handle(Action.VOLUME_DOWN)

        assert d.state.playback.volume == 0
        player.set_volume.assert_called_once_with(0)

    def test_seek_uses_configured_step(self, dispatcher: Dispatcher, player: Mock) -> None:
        dispatcher.handle(Action.PLAY_SELECTED)
        dispatcher.handle(Action.SEEK_FORWARD)
        dispatcher.handle(Action.SEEK_BACKWARD)

        assert player.seek.call_args_list[0].args == (10.0, True)
        assert player.seek.call_args_list[1].args == (-10.0, True)

    def test_retry_once_then_succeed(self, dispatcher: Dispatcher, player: Mock) -> None:
        dispatcher.handle(Action.PLAY_SELECTED)
        player.toggle_pause.side_effect = [PlayerUnresponsiveError("cycle", 2.0), None]

        dispatcher.handle(Action.TOGGLE_PAUSE)

        assert player.toggle_pause.call_count == 2
        assert dispatcher.state.toast is None

    def test_retry_once_then_surface(self, dispatcher: Dispatcher, player: Mock) -> None:
        dispatcher.handle(Action.PLAY_SELECTED)
        player.toggle_pause.side_effect = PlayerCommandRejectedError("cycle", "error")

        dispatcher.handle(Action.TOGGLE_PAUSE)

        assert player.toggle_pause.call_count == 2
        assert dispatcher.state.toast.level == "error"

    def test_status_events_update_mirror(self, dispatcher: Dispatcher) -> None:
        for event in [PositionChanged(12.0), PauseChanged(True), VolumeChanged(42.4)]:
            dispatcher.post(event)
        assert dispatcher.process_pending(timeout=0) == 3

        playback = dispatcher.state.playback
        assert (playback.position, playback.paused, playback.volume) == (12.0, True, 42)

    def test_duration_backfilled(self, dispatcher: Dispatcher, library: Library) -> None:
        dispatcher.handle(Action.PLAY_SELECTED)
        dispatcher.handle(DurationChanged(180.0))

        assert library.get_song(QueueEntry("Mix", 1)).duration == 180.0
        assert dispatcher.state.playback.duration == 180.0

    def test_player_lost_disables_playback(self, dispatcher: Dispatcher, player: Mock) -> None:
        dispatcher.handle(Action.PLAY_SELECTED)
        player.reset_mock()

        dispatcher.handle(PlayerLost("socket closed"))
        dispatcher.handle(Action.VOLUME_UP)
        dispatcher.handle(Action.VOLUME_DOWN)

        assert dispatcher.state.playback.playing is None
        assert not dispatcher.state.playback.available
        assert dispatcher.state.running
        assert player.method_calls == []

    def test_queue_song_starts_when_idle(self, dispatcher: Dispatcher, player: Mock, library: Library) -> None:
        press(dispatcher, "j", "q")
        player.load.assert_called_once_with("/music/b.mp3")
        assert library.queue.current == QueueEntry("Mix", 2)

        press(dispatcher, "j", "q")
        assert player.load.call_count == 1
        assert library.queue.entries == (QueueEntry("Mix", 3),)

    def test_queue_untouched_after_player_lost(self, dispatcher: Dispatcher, player: Mock, library: Library) -> None:
        library.queue.extend([QueueEntry("Mix", 2), QueueEntry("Mix", 3)])
        dispatcher.handle(PlayerLost("socket closed"))

        dispatcher.handle(Action.NEXT_SONG)
        dispatcher.handle(Action.PREV_SONG)
        dispatcher.handle(Action.PLAY_SELECTED)

        assert library.queue.entries == (QueueEntry("Mix", 2), QueueEntry("Mix", 3))
        assert library.queue.current is None
        assert dispatcher.state.playback.playing is None
        player.load.assert_not_called()

    def test_duration_backfilled_after_playlist_rename(self, dispatcher: Dispatcher, library: Library) -> None:
        dispatcher.handle(Action.PLAY_SELECTED)
        dispatcher.handle(Action.SELECT_LEFT)
        press(dispatcher, "R")
        type_text(dispatcher, "tape")
        press(dispatcher, "enter")

        dispatcher.handle(DurationChanged(180.0))

        assert dispatcher.state.playback.playing.entry == QueueEntry("Mixtape", 1)
        assert library.get_song(QueueEntry("Mixtape", 1)).duration == 180.0

    def test_shuffle_keeps_current(self, dispatcher: Dispatcher, library: Library) -> None:
        dispatcher.handle(Action.QUEUE_SHOWN)
        dispatcher.handle(Action.SHUFFLE)

        assert library.queue.current == QueueEntry("Mix", 1)
        assert sorted(library.queue.entries) == [QueueEntry("Mix", 2), QueueEntry("Mix", 3)]


class TestAddSong:
    """Tests for adding songs through the prompt."""

    def test_url_resolved_then_added(self, dispatcher: Dispatcher, resolver: Mock, library: Library) -> None:
        resolver.resolve.return_value = Resolution("s://x", "Song A")

        press(dispatcher, "a")
        type_text(dispatcher, "https://example.com/a")
        press(dispatcher, "enter")
        dispatcher.process_pending(timeout=0)

        resolver.resolve.assert_called_once_with("https://example.com/a")
        songs = library.playlist("Mix").songs
        assert len(songs) == 4
        assert (songs[-1].title, songs[-1].source) == ("Song A", "https://example.com/a")
        assert dispatcher.state.toast.level == "info"

    def test_failed_resolution_adds_nothing(self, dispatcher: Dispatcher, resolver: Mock, library: Library) -> None:
        resolver.resolve.side_effect = ResolutionFailedError("Unsupported URL")

        press(dispatcher, "a")
        type_text(dispatcher, "https://example.com/a")
        press(dispatcher, "enter")
        dispatcher.process_pending(timeout=0)

        assert song_titles(library, "Mix") == ["A", "B", "C"]
        assert dispatcher.state.toast.level == "error"

    def test_local_directory(self, dispatcher: Dispatcher, library: Library, tmp_path: Path) -> None:
        (tmp_path / "x.mp3").write_bytes(b"")
        (tmp_path / "y.mp3").write_bytes(b"")

        press(dispatcher, "a")
        type_text(dispatcher, str(tmp_path))
        press(dispatcher, "enter")

        assert song_titles(library, "Mix") == ["A", "B", "C", "x", "y"]

    def test_invalid_input_rejected(self, dispatcher: Dispatcher, resolver: Mock, library: Library) -> None:
        press(dispatcher, "a")
        type_text(dispatcher, "no such thing")
        press(dispatcher, "enter")

        resolver.resolve.assert_not_called()
        assert song_titles(library, "Mix") == ["A", "B", "C"]
        assert dispatcher.state.toast.level == "error"

    def test_escape_cancels(self, dispatcher: Dispatcher) -> None:
        press(dispatcher, "a", "x", "esc")
        assert dispatcher.state.modal is None

    def test_play_from_url(self, dispatcher: Dispatcher, resolver: Mock, player: Mock) -> None:
        resolver.resolve.return_value = Resolution("s://stream", "Live")

        press(dispatcher, "p")
        type_text(dispatcher, "https://example.com/live")
        press(dispatcher, "enter")
        dispatcher.process_pending(timeout=0)

        player.load.assert_called_once_with("s://stream")
        assert dispatcher.state.playback.playing.title == "Live"


class TestLibraryActions:
    """Tests for playlist and song editing."""

    def test_add_playlist(self, dispatcher: Dispatcher, library: Library) -> None:
        dispatcher.handle(Action.SELECT_LEFT)
        press(dispatcher, "a")
        type_text(dispatcher, "Road Trip")
        press(dispatcher, "enter")

        assert "Road Trip" in library
        assert dispatcher.state.selected_playlist == "Road Trip"

    def test_rename_to_existing_name_is_a_toast(self, dispatcher: Dispatcher, library: Library) -> None:
        dispatcher.handle(Action.SELECT_LEFT)
        press(dispatcher, "R")
        for _ in "Mix":
            press(dispatcher, "backspace")
        type_text(dispatcher, "Chill")
        press(dispatcher, "enter")

        assert library.playlist_names() == ["Chill", "Mix"]
        assert song_titles(library, "Mix") == ["A", "B", "C"]
        assert dispatcher.state.toast.level == "error"

    def test_rename_song(self, dispatcher: Dispatcher, library: Library) -> None:
        press(dispatcher, "R", "backspace")
        type_text(dispatcher, "Z")
        press(dispatcher, "enter")

        assert song_titles(library, "Mix") == ["Z", "B", "C"]

    def test_delete_playlist_cascades_to_queue(self, dispatcher: Dispatcher, library: Library) -> None:
        library.queue.extend([QueueEntry("Chill", 1), QueueEntry("Mix", 1)])
        dispatcher.handle(Action.SELECT_LEFT)
        dispatcher.handle(Action.DELETE)

        assert library.playlist_names() == ["Chill"]
        assert library.queue.entries == (QueueEntry("Chill", 1),)
        assert dispatcher.state.selected_playlist == "Chill"

    def test_delete_song(self, dispatcher: Dispatcher, library: Library) -> None:
        library.queue.append(QueueEntry("Mix", 1))
        dispatcher.handle(Action.DELETE)

        assert song_titles(library, "Mix") == ["B", "C"]
        assert library.queue.entries == ()

    def test_swap_follows_selection(self, dispatcher: Dispatcher, library: Library) -> None:
        press(dispatcher, "J")
        assert song_titles(library, "Mix") == ["B", "A", "C"]
        assert dispatcher.state.selection.song_row == 1

    def test_swap_at_top_is_noop(self, dispatcher: Dispatcher, library: Library) -> None:
        press(dispatcher, "K")
        assert song_titles(library, "Mix") == ["A", "B", "C"]
        assert dispatcher.state.toast is None

    def test_swap_refused_in_sorted_view(self, dispatcher: Dispatcher, library: Library) -> None:
        press(dispatcher, "s")
        assert dispatcher.state.sort_mode is SortMode.TITLE

        press(dispatcher, "J")

        assert song_titles(library, "Mix") == ["A", "B", "C"]
        assert dispatcher.state.toast.level == "error"

    def test_autosave(self, make_dispatcher, library: Library, tmp_path: Path) -> None:
        d = make_dispatcher(store=PlaylistStore(tmp_path))
        press(d, "a")
        type_text(d, "New")
        press(d, "enter")

        assert (tmp_path / "New.m3u8").read_text() == "#EXTM3U\n"


class TestIntegrationsAndVisualizer:
    def test_copy_failure_is_a_toast(self, dispatcher: Dispatcher) -> None:
        with patch(
            "tori.ui.dispatcher.copy_to_clipboard",
            side_effect=IntegrationError("No clipboard tool found"),
        ):
            dispatcher.handle(Action.COPY_URL)

        assert dispatcher.state.toast.text == "No clipboard tool found"

    def test_copy_title(self, dispatcher: Dispatcher) -> None:
        with patch("tori.ui.dispatcher.copy_to_clipboard") as copy:
            press(dispatcher, "t")
        copy.assert_called_once_with("A")

    def test_visualizer_frames_only_while_enabled(self, make_dispatcher) -> None:
        visualizer = Mock(spec=VisualizerFeed)
        d = make_dispatcher(visualizer=visualizer)

        d.handle(VisualizerFrame((1, 2, 3)))
        assert d.state.visualizer_frame is None

        d.handle(Action.TOGGLE_VISUALIZER)
        d.handle(VisualizerFrame((1, 2, 3)))
        assert d.state.visualizer_frame == (1, 2, 3)
        visualizer.start.assert_called_once()

        d.handle(Action.TOGGLE_VISUALIZER)
        visualizer.stop.assert_called_once()
        assert d.state.visualizer_frame is None


class TestRemoteEntries:
    """Remote queue entries are resolved before mpv loads them."""

    @pytest.fixture
    def remote_setup(self, make_dispatcher, resolver, library, deferred_executor):
        library.add_song("Mix", Song("R", "https://example.com/r"))
        library.queue.extend([QueueEntry("Mix", 1), QueueEntry("Mix", 4), QueueEntry("Mix", 3)])
        resolver.resolve.return_value = Resolution("s://r", "R")
        return make_dispatcher(executor=deferred_executor)

    def test_end_of_previous_file_while_resolving_is_ignored(
        self, remote_setup: Dispatcher, player: Mock, library: Library, deferred_executor
    ) -> None:
        d = remote_setup
        d.handle(Action.NEXT_SONG)  # A
        d.handle(Action.NEXT_SONG)  # R resolves while mpv still plays A
        d.handle(EndOfTrack("eof"))

        deferred_executor.run_all()
        d.process_pending(timeout=0)

        assert [c.args[0] for c in player.load.call_args_list] == ["/music/a.mp3", "s://r"]
        assert d.state.playback.playing.title == "R"
        assert library.queue.entries == (QueueEntry("Mix", 3),)

    def test_resolution_dropped_after_moving_on(
        self, remote_setup: Dispatcher, player: Mock, deferred_executor
    ) -> None:
        d = remote_setup
        d.handle(Action.NEXT_SONG)
        d.handle(Action.NEXT_SONG)
        d.handle(Action.NEXT_SONG)  # C, before R resolved

        deferred_executor.run_all()
        d.process_pending(timeout=0)

        assert [c.args[0] for c in player.load.call_args_list] == ["/music/a.mp3", "/music/c.mp3"]
        assert d.state.playback.playing.title == "C"

    def test_end_of_track_after_load_advances(
        self, remote_setup: Dispatcher, player: Mock, deferred_executor
    ) -> None:
        d = remote_setup
        d.handle(Action.NEXT_SONG)
        d.handle(Action.NEXT_SONG)
        deferred_executor.run_all()
        d.process_pending(timeout=0)

        d.handle(EndOfTrack("eof"))

        player.load.assert_called_with("/music/c.mp3")


class TestSongFilter:
    """Tests for the incremental songs filter and jumping to the bottom."""

    def test_typed_text_narrows_shown_songs(self, dispatcher: Dispatcher, library: Library) -> None:
        press(dispatcher, "/", "b")
        assert dispatcher.state.song_filter == "b"

        dispatcher.handle(KeyPressed(KeyChord("enter", frozenset({Modifier.ALT}))))

        assert library.queue.current == QueueEntry("Mix", 2)
        assert library.queue.entries == ()

    def test_matches_source_ignoring_case(self, dispatcher: Dispatcher) -> None:
        press(dispatcher, "/")
        type_text(dispatcher, "C.MP3")
        with patch("tori.ui.dispatcher.copy_to_clipboard") as copy:
            press(dispatcher, "y")
        copy.assert_called_once_with("/music/c.mp3")

    def test_keys_go_to_the_filter(self, dispatcher: Dispatcher, library: Library) -> None:
        press(dispatcher, "/", "q", "j")
        assert dispatcher.state.song_filter == "qj"
        assert library.queue.entries == ()
        assert library.queue.current is None

    def test_backspace_and_escape(self, dispatcher: Dispatcher) -> None:
        press(dispatcher, "/", "x", "backspace")
        assert dispatcher.state.song_filter == ""
        press(dispatcher, "backspace")
        assert dispatcher.state.song_filter is None

        press(dispatcher, "/", "a", "esc")
        assert dispatcher.state.song_filter is None
        press(dispatcher, "j")
        assert dispatcher.state.selection.song_row == 1

    def test_cursor_resets_on_filter_change(self, dispatcher: Dispatcher) -> None:
        press(dispatcher, "j", "j", "/")
        assert dispatcher.state.selection.song_row == 0

    def test_cleared_when_playlist_changes(self, dispatcher: Dispatcher) -> None:
        press(dispatcher, "/", "a")
        dispatcher.handle(Action.SELECT_LEFT)
        dispatcher.handle(Action.SELECT_PREV)

        assert dispatcher.state.selected_playlist == "Chill"
        assert dispatcher.state.song_filter is None

    def test_swap_refused_while_filtering(self, dispatcher: Dispatcher, library: Library) -> None:
        press(dispatcher, "/", "a")
        dispatcher.handle(Action.SWAP_SONG_DOWN)

        assert song_titles(library, "Mix") == ["A", "B", "C"]
        assert dispatcher.state.toast.level == "error"

    def test_go_bottom(self, dispatcher: Dispatcher) -> None:
        press(dispatcher, "G")
        assert dispatcher.state.selection.song_row == 2

        dispatcher.handle(Action.SELECT_LEFT)
        dispatcher.handle(Action.SELECT_PREV)
        press(dispatcher, "G")
        assert dispatcher.state.selected_playlist == "Mix"
