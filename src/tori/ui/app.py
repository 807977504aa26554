"""Main event loop and entry point for the blessed UI."""

import threading
import time
from contextlib import ExitStack
from typing import Optional

from blessed import Terminal
from loguru import logger

from tori.core.config import Config
from tori.domain.library import PlaylistStore
from tori.domain.playback import (
    PlayerError,
    PlayerSession,
    ResolverClient,
    VisualizerFeed,
    running_player,
)

from .dispatcher import Dispatcher, KeyPressed
from .keymap import KeyMap, chord_from_keystroke
from .render import render
from .state import set_error

# Seconds between redraws when nothing happens (progress, toast expiry)
IDLE_REDRAW_INTERVAL = 0.5
INPUT_POLL_INTERVAL = 0.1


def read_keys(term: Terminal, dispatcher: Dispatcher, stop: threading.Event) -> None:
    """Input thread: turn keystrokes into KeyPressed items."""
    while not stop.is_set():
        key = term.inkey(timeout=INPUT_POLL_INTERVAL)
        if not key:
            continue
        key_chord = chord_from_keystroke(key)
        if key_chord is None:
            logger.debug(f"Unrecognized key {str(key)!r} ({key.name})")
            continue
        dispatcher.post(KeyPressed(key_chord))


def pump_status_events(player: PlayerSession, dispatcher: Dispatcher) -> None:
    """Player thread: forward status events until the channel closes."""
    for event in player.status_events():
        dispatcher.post(event)
    logger.debug("Player status stream ended")


def main_loop(term: Terminal, dispatcher: Dispatcher, keymap: KeyMap) -> None:
    render(term, dispatcher.state, dispatcher.library, keymap)
    last_render = time.monotonic()

    while dispatcher.state.running:
        handled = dispatcher.process_pending(timeout=INPUT_POLL_INTERVAL)
        now = time.monotonic()
        if handled or now - last_render >= IDLE_REDRAW_INTERVAL:
            render(term, dispatcher.state, dispatcher.library, keymap)
            last_render = now


def run_app(config: Config, keymap: KeyMap) -> None:
    """
    Run the interactive UI until the user quits.

    Args:
        config: Loaded configuration
        keymap: Keymap built (and validated) from the configuration
    """
    store = PlaylistStore(config.playlists_path)
    library = store.load_library()
    resolver = ResolverClient(
        config.resolver.command, config.resolver.timeout, config.resolver.cache_ttl
    )
    term = Terminal()

    with ExitStack() as stack:
        player: Optional[PlayerSession] = None
        startup_error = None
        if store.unreadable:
            names = ", ".join(path.name for path in store.unreadable)
            startup_error = f"Couldn't read playlists: {names}"
        try:
            player = stack.enter_context(running_player(config.player))
        except PlayerError as e:
            logger.error(f"Playback disabled: {e}")
            startup_error = f"Couldn't start mpv, playback disabled: {e}"

        dispatcher = Dispatcher(
            library,
            keymap,
            player=player,
            resolver=resolver,
            store=store if config.playlists.autosave else None,
            player_config=config.player,
        )
        dispatcher.visualizer = VisualizerFeed(config.visualizer, sink=dispatcher.post)
        if startup_error:
            dispatcher.state = set_error(dispatcher.state, startup_error)

        stop = threading.Event()
        with term.fullscreen(), term.cbreak(), term.hidden_cursor():
            threading.Thread(
                target=read_keys, args=(term, dispatcher, stop), name="input", daemon=True
            ).start()
            if player is not None:
                threading.Thread(
                    target=pump_status_events,
                    args=(player, dispatcher),
                    name="player-events",
                    daemon=True,
                ).start()

            try:
                main_loop(term, dispatcher, keymap)
            except KeyboardInterrupt:
                logger.info("Ctrl+C detected - shutting down")
            finally:
                stop.set()
                dispatcher.shutdown()

    logger.info("tori exited")
