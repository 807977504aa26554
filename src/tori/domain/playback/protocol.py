"""
mpv JSON IPC framing.

Each message is one JSON object per line. Commands carry a ``request_id`` that
mpv echoes in its reply; unsolicited messages carry an ``event`` key instead,
which is what tells them apart from replies.
"""

import json
from typing import Any, NamedTuple, Optional, Union

from .events import (
    DurationChanged,
    EndOfTrack,
    MuteChanged,
    PauseChanged,
    PositionChanged,
    VolumeChanged,
)

# Properties observed after the handshake: observe id -> property name
OBSERVED_PROPERTIES = {
    1: "time-pos",
    2: "pause",
    3: "volume",
    4: "mute",
    5: "duration",
}

# end-file reasons that mean the track finished on its own
END_OF_TRACK_REASONS = ("eof", "error")


class Reply(NamedTuple):
    """Reply to a command, matched to it by request id."""

    request_id: int
    error: str
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.error == "success"


def load_command(source: str) -> list:
    return ["loadfile", source, "replace"]


def pause_command(paused: bool) -> list:
    return ["set_property", "pause", paused]


def toggle_pause_command() -> list:
    return ["cycle", "pause"]


def seek_command(seconds: float, relative: bool = True) -> list:
    return ["seek", seconds, "relative" if relative else "absolute"]


def volume_command(volume: int) -> list:
    return ["set_property", "volume", volume]


def mute_command(muted: bool) -> list:
    return ["set_property", "mute", muted]


def get_property_command(name: str) -> list:
    return ["get_property", name]


def observe_property_command(observe_id: int, name: str) -> list:
    return ["observe_property", observe_id, name]


def quit_command() -> list:
    return ["quit"]


def encode_command(args: list, request_id: int) -> bytes:
    """Frame a command as one JSON line."""
    return (json.dumps({"command": args, "request_id": request_id}) + "\n").encode(
        "utf-8"
    )


def decode_line(line: Union[bytes, str]) -> Optional[Union[Reply, NamedTuple]]:
    """Decode one line from mpv.

    Returns:
        A Reply, a status event, or None for messages nobody cares about

    Raises:
        ValueError: If the line is not a JSON object
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.strip()
    if not line:
        return None

    message = json.loads(line)
    if not isinstance(message, dict):
        raise ValueError(f"Expected a JSON object, got {type(message).__name__}")

    if "event" in message:
        return _decode_event(message)

    if "request_id" in message and "error" in message:
        return Reply(
            request_id=message["request_id"],
            error=message["error"],
            data=message.get("data"),
        )

    return None


def _decode_event(message: dict) -> Optional[NamedTuple]:
    event = message["event"]

    if event == "end-file":
        reason = message.get("reason")
        if reason in END_OF_TRACK_REASONS:
            return EndOfTrack(reason)
        # "stop", "quit" and "redirect" come from our own commands
        return None

    if event != "property-change":
        return None

    data = message.get("data")
    if data is None:
        # Property unavailable, e.g. time-pos while idle
        return None

    name = message.get("name")
    if name == "time-pos":
        return PositionChanged(float(data))
    if name == "duration":
        return DurationChanged(float(data))
    if name == "pause":
        return PauseChanged(bool(data))
    if name == "volume":
        return VolumeChanged(float(data))
    if name == "mute":
        return MuteChanged(bool(data))
    return None
