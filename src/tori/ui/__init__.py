"""Terminal UI layer - keymap, app state, dispatcher and blessed runner."""

from .dispatcher import Dispatcher, KeyPressed
from .keymap import Action, KeyChord, KeyMap, Modifier, build_keymap, parse_chord
from .state import AppState, ModalKind, create_initial_state

__all__ = [
    "Action",
    "AppState",
    "Dispatcher",
    "KeyChord",
    "KeyMap",
    "KeyPressed",
    "ModalKind",
    "Modifier",
    "build_keymap",
    "create_initial_state",
    "parse_chord",
]
