"""
Key chords, actions and the keymap that binds them.

Chords are written as in the config file: optional modifier prefixes
``C-`` (Control), ``S-`` (Shift) and ``A-`` (Alt) followed by a key, e.g.
``"S-right"``, ``"A-enter"``, ``"C-d"``, ``"q"``. Uppercase letters are their
own keys (``"R"``), not Shift plus a letter.

Alt and Meta: terminals report both as an ESC prefix and blessed can't tell
them apart, so an ESC-prefixed key (and xterm's Alt/Meta modifier bits) always
maps to Alt here. Platforms where Option is composed into a character
(macOS without "Option as Meta") produce that character, not an Alt chord.
"""

import re
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, NamedTuple, Optional

from blessed.keyboard import Keystroke

from tori.core.config import ConfigError


class Action(Enum):
    """Semantic commands; values are the names used in the config file."""

    QUIT = "Quit"
    NEXT_SONG = "NextSong"
    PREV_SONG = "PrevSong"
    SEEK_FORWARD = "SeekForward"
    SEEK_BACKWARD = "SeekBackward"
    TOGGLE_PAUSE = "TogglePause"
    VOLUME_UP = "VolumeUp"
    VOLUME_DOWN = "VolumeDown"
    MUTE = "Mute"
    TOGGLE_VISUALIZER = "ToggleVisualizer"
    NEXT_SORTING_MODE = "NextSortingMode"
    APPLY_SORT = "ApplySort"
    RENAME = "Rename"
    DELETE = "Delete"
    SWAP_SONG_UP = "SwapSongUp"
    SWAP_SONG_DOWN = "SwapSongDown"
    SHUFFLE = "Shuffle"
    SELECT_LEFT = "SelectLeft"
    SELECT_RIGHT = "SelectRight"
    SELECT_NEXT = "SelectNext"
    SELECT_PREV = "SelectPrev"
    GO_BOTTOM = "GoBottom"
    OPEN_SONG_FILTER = "OpenSongFilter"
    ADD = "Add"
    QUEUE_SONG = "QueueSong"
    QUEUE_SHOWN = "QueueShown"
    PLAY_FROM_MODAL = "PlayFromModal"
    PLAY_SELECTED = "PlaySelected"
    OPEN_HELP_MODAL = "OpenHelpModal"
    COPY_URL = "CopyUrl"
    COPY_TITLE = "CopyTitle"
    OPEN_IN_BROWSER = "OpenInBrowser"
    NOP = "Nop"

    @classmethod
    def from_name(cls, name: str) -> "Action":
        """Look up an action by its config name.

        Raises:
            ConfigError: If no action has that name
        """
        try:
            return cls(name)
        except ValueError:
            raise ConfigError(f"Unknown action '{name}'") from None


class Modifier(Enum):
    SHIFT = "S"
    CONTROL = "C"
    ALT = "A"


class KeyChord(NamedTuple):
    """A base key plus a set of modifiers. Equality is exact on both."""

    key: str
    modifiers: frozenset = frozenset()

    def __str__(self) -> str:
        return format_chord(self)


NAMED_KEYS = {
    "enter",
    "esc",
    "space",
    "tab",
    "backspace",
    "delete",
    "up",
    "down",
    "left",
    "right",
    "home",
    "end",
    "pageup",
    "pagedown",
}

# Order modifiers are written in when formatting a chord
_MODIFIER_ORDER = (Modifier.CONTROL, Modifier.SHIFT, Modifier.ALT)


def chord(key: str, *modifiers: Modifier) -> KeyChord:
    return KeyChord(key, frozenset(modifiers))


def parse_chord(text: str) -> KeyChord:
    """Parse a chord string such as ``"S-right"`` or ``"C-d"``.

    Raises:
        ConfigError: If the string is not a valid chord
    """
    rest = text
    modifiers = set()
    prefixes = {modifier.value: modifier for modifier in Modifier}
    while len(rest) > 2 and rest[1] == "-" and rest[0] in prefixes:
        modifiers.add(prefixes[rest[0]])
        rest = rest[2:]

    if rest == " ":
        rest = "space"
    elif len(rest) > 1:
        rest = rest.lower()
        if rest not in NAMED_KEYS:
            raise ConfigError(f"Invalid key chord '{text}'")
    elif not rest or not rest.isprintable():
        raise ConfigError(f"Invalid key chord '{text}'")

    return KeyChord(rest, frozenset(modifiers))


def format_chord(key_chord: KeyChord) -> str:
    prefix = "".join(
        f"{modifier.value}-"
        for modifier in _MODIFIER_ORDER
        if modifier in key_chord.modifiers
    )
    return prefix + key_chord.key


DEFAULT_BINDINGS = {
    "C-c": Action.QUIT,
    "C-d": Action.QUIT,
    "h": Action.SELECT_LEFT,
    "j": Action.SELECT_NEXT,
    "k": Action.SELECT_PREV,
    "l": Action.SELECT_RIGHT,
    "left": Action.SELECT_LEFT,
    "down": Action.SELECT_NEXT,
    "up": Action.SELECT_PREV,
    "right": Action.SELECT_RIGHT,
    "G": Action.GO_BOTTOM,
    "/": Action.OPEN_SONG_FILTER,
    "enter": Action.PLAY_SELECTED,
    ">": Action.NEXT_SONG,
    "<": Action.PREV_SONG,
    "q": Action.QUEUE_SONG,
    "A-enter": Action.QUEUE_SHOWN,
    "S-right": Action.SEEK_FORWARD,
    "S-left": Action.SEEK_BACKWARD,
    "o": Action.OPEN_IN_BROWSER,
    "y": Action.COPY_URL,
    "t": Action.COPY_TITLE,
    " ": Action.TOGGLE_PAUSE,
    "A-up": Action.VOLUME_UP,
    "A-down": Action.VOLUME_DOWN,
    "m": Action.MUTE,
    "p": Action.PLAY_FROM_MODAL,
    "a": Action.ADD,
    "R": Action.RENAME,
    "X": Action.DELETE,
    "J": Action.SWAP_SONG_DOWN,
    "K": Action.SWAP_SONG_UP,
    ",": Action.SHUFFLE,
    "s": Action.NEXT_SORTING_MODE,
    "S": Action.APPLY_SORT,
    "v": Action.TOGGLE_VISUALIZER,
    "?": Action.OPEN_HELP_MODAL,
}


class KeyMap:
    """Immutable chord -> action mapping."""

    def __init__(self, bindings: Mapping[KeyChord, Action]):
        self._bindings = MappingProxyType(dict(bindings))

    def __len__(self) -> int:
        return len(self._bindings)

    def resolve(self, key_chord: KeyChord) -> Action:
        """Action bound to a chord, Action.NOP when nothing is bound."""
        return self._bindings.get(key_chord, Action.NOP)

    def lookup(self, key_chord: KeyChord) -> Optional[Action]:
        """Like resolve, but None when the chord has no entry at all.

        A chord unbound in the config has an entry: Action.NOP.
        """
        return self._bindings.get(key_chord)

    def bindings(self) -> Mapping[KeyChord, Action]:
        return self._bindings

    def chords_for(self, action: Action) -> list[KeyChord]:
        return [c for c, bound in self._bindings.items() if bound is action]


def build_keymap(overrides: Optional[Mapping[str, str]] = None) -> KeyMap:
    """Build the keymap from the defaults plus user overrides.

    Overrides apply in order, last write wins per chord. Binding a chord to
    ``Nop`` unbinds it; the chord keeps an explicit Nop entry so ``lookup``
    can tell an unbound chord from one that was never bound.

    Raises:
        ConfigError: Naming the offending entry, for an unknown action or an
            unparsable chord
    """
    bindings: dict[KeyChord, Action] = {
        parse_chord(text): action for text, action in DEFAULT_BINDINGS.items()
    }

    for text, name in (overrides or {}).items():
        try:
            key_chord = parse_chord(text)
            action = Action.from_name(name)
        except ConfigError as e:
            raise ConfigError(f"Invalid keybinding \"{text}\" = \"{name}\": {e}") from e
        bindings[key_chord] = action

    return KeyMap(bindings)


# ----------------------------------------------------------------------
# Terminal input
# ----------------------------------------------------------------------

_BLESSED_NAMES = {
    "KEY_ENTER": "enter",
    "KEY_ESCAPE": "esc",
    "KEY_TAB": "tab",
    "KEY_BACKSPACE": "backspace",
    "KEY_DELETE": "delete",
    "KEY_UP": "up",
    "KEY_DOWN": "down",
    "KEY_LEFT": "left",
    "KEY_RIGHT": "right",
    "KEY_HOME": "home",
    "KEY_END": "end",
    "KEY_PGUP": "pageup",
    "KEY_PGDOWN": "pagedown",
    "KEY_SPACE": "space",
}

# Legacy curses names for shifted keys
_SHIFTED_NAMES = {
    "KEY_SLEFT": "left",
    "KEY_SRIGHT": "right",
    "KEY_SUP": "up",
    "KEY_SDOWN": "down",
    "KEY_SHOME": "home",
    "KEY_SEND": "end",
    "KEY_SDC": "delete",
}

_NAME_MODIFIERS = {
    "SHIFT": Modifier.SHIFT,
    "CTRL": Modifier.CONTROL,
    "ALT": Modifier.ALT,
    "META": Modifier.ALT,
}

# xterm modified cursor keys: ESC [ 1 ; <1 + modifier bits> <A-D>
_XTERM_MODIFIED = re.compile(r"^\x1b\[1;(\d+)([ABCDHF])$")
_XTERM_KEYS = {
    "A": "up",
    "B": "down",
    "C": "right",
    "D": "left",
    "H": "home",
    "F": "end",
}


def _chord_from_char(char: str, modifiers: Iterable[Modifier] = ()) -> Optional[KeyChord]:
    modifiers = set(modifiers)
    if char in ("\r", "\n"):
        return KeyChord("enter", frozenset(modifiers))
    if char == "\t":
        return KeyChord("tab", frozenset(modifiers))
    if char in ("\x7f", "\x08"):
        return KeyChord("backspace", frozenset(modifiers))
    if char == "\x1b":
        return KeyChord("esc", frozenset(modifiers))
    if char == " ":
        return KeyChord("space", frozenset(modifiers))
    if ord(char) < 0x20:
        # Control characters: \x03 is C-c
        modifiers.add(Modifier.CONTROL)
        return KeyChord(chr(ord(char) + 0x60), frozenset(modifiers))
    if char.isprintable():
        return KeyChord(char, frozenset(modifiers))
    return None


def _chord_from_name(name: str) -> Optional[KeyChord]:
    if name in _SHIFTED_NAMES:
        return chord(_SHIFTED_NAMES[name], Modifier.SHIFT)
    if name in _BLESSED_NAMES:
        return KeyChord(_BLESSED_NAMES[name])

    # Newer blessed names such as KEY_SHIFT_LEFT, KEY_CTRL_C, KEY_ALT_ENTER
    tokens = name.split("_")[1:]
    modifiers = set()
    while len(tokens) > 1 and tokens[0] in _NAME_MODIFIERS:
        modifiers.add(_NAME_MODIFIERS[tokens.pop(0)])
    base_name = "KEY_" + "_".join(tokens)

    if base_name in _BLESSED_NAMES:
        return KeyChord(_BLESSED_NAMES[base_name], frozenset(modifiers))
    if len(tokens) == 1 and len(tokens[0]) == 1 and modifiers:
        key = tokens[0].lower()
        if Modifier.SHIFT in modifiers and key.isalpha():
            modifiers.discard(Modifier.SHIFT)
            key = key.upper()
        return KeyChord(key, frozenset(modifiers))
    return None


def chord_from_keystroke(key: Keystroke) -> Optional[KeyChord]:
    """Translate a blessed Keystroke into a chord, None if unrecognized."""
    name = getattr(key, "name", None)
    if name:
        from_name = _chord_from_name(name)
        if from_name is not None:
            return from_name

    text = str(key)
    if not text:
        return None

    match = _XTERM_MODIFIED.match(text)
    if match:
        bits = int(match.group(1)) - 1
        modifiers = set()
        if bits & 1:
            modifiers.add(Modifier.SHIFT)
        if bits & (2 | 8):  # Alt, Meta
            modifiers.add(Modifier.ALT)
        if bits & 4:
            modifiers.add(Modifier.CONTROL)
        return KeyChord(_XTERM_KEYS[match.group(2)], frozenset(modifiers))

    if len(text) == 2 and text[0] == "\x1b":
        return _chord_from_char(text[1], (Modifier.ALT,))
    if len(text) == 1:
        return _chord_from_char(text)
    return None
