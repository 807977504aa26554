"""Shared fixtures: a fake mpv peer, an inline executor and a small library."""

import json
import socket
import threading
from concurrent.futures import Executor, Future
from typing import Any, Optional

import pytest

from tori.domain.library import Library, Playlist, Song
from tori.domain.playback.player import PlayerSession


class FakeMpv:
    """Plays the mpv side of a JSON IPC socket.

    Every command is recorded. Commands answer "success" unless an error is
    queued for them in ``errors``; commands named in ``ignore`` never get a
    reply.
    """

    def __init__(self, sock: socket.socket):
        self.sock = sock
        self.commands: list[list] = []
        self.errors: dict[str, list[str]] = {}
        self.ignore: set[str] = set()
        self.properties: dict[str, Any] = {"idle-active": True}
        self.received = threading.Condition()
        self._thread = threading.Thread(target=self._serve, name="fake-mpv", daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        stream = self.sock.makefile("rb")
        try:
            for line in stream:
                message = json.loads(line)
                args = message["command"]
                with self.received:
                    self.commands.append(args)
                    self.received.notify_all()
                name = args[0]
                if name in self.ignore:
                    continue
                queued = self.errors.get(name)
                error = queued.pop(0) if queued else "success"
                data = self.properties.get(args[1]) if name == "get_property" else None
                self.send({"request_id": message["request_id"], "error": error, "data": data})
        except OSError:
            pass  # Socket torn down by the test
        finally:
            stream.close()

    def send(self, message: dict) -> None:
        self.sock.sendall((json.dumps(message) + "\n").encode("utf-8"))

    def emit(self, event: str, **fields: Any) -> None:
        self.send({"event": event, **fields})

    def command_names(self) -> list[str]:
        with self.received:
            return [args[0] for args in self.commands]

    def wait_for_commands(self, count: int, timeout: float = 2.0) -> bool:
        with self.received:
            return self.received.wait_for(lambda: len(self.commands) >= count, timeout)

    def close(self) -> None:
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Already closed
        self.sock.close()


class InlineExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn, /, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            result = fn(*args, **kwargs)
        except BaseException as e:
            future.set_exception(e)
        else:
            future.set_result(result)
        return future


class DeferredExecutor(Executor):
    """Holds submitted work until run_all() is called."""

    def __init__(self) -> None:
        self.pending: list = []

    def submit(self, fn, /, *args, **kwargs) -> Future:
        future: Future = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_all(self) -> None:
        pending, self.pending = self.pending, []
        for future, fn, args, kwargs in pending:
            try:
                future.set_result(fn(*args, **kwargs))
            except BaseException as e:
                future.set_exception(e)


@pytest.fixture
def mpv_pair():
    """A PlayerSession connected to a FakeMpv through a socketpair."""
    client, server = socket.socketpair()
    fake = FakeMpv(server)
    session = PlayerSession(client, command_timeout=0.5)
    yield session, fake
    session.close()
    fake.close()


@pytest.fixture
def inline_executor() -> InlineExecutor:
    return InlineExecutor()


@pytest.fixture
def deferred_executor() -> DeferredExecutor:
    return DeferredExecutor()


def make_song(title: str, source: Optional[str] = None, **fields: Any) -> Song:
    return Song(title=title, source=source or f"/music/{title.lower()}.mp3", **fields)


@pytest.fixture
def library() -> Library:
    """Two playlists: Mix (A, B, C) and Chill (D)."""
    return Library(
        [
            Playlist("Mix", [make_song("A"), make_song("B"), make_song("C")]),
            Playlist("Chill", [make_song("D")]),
        ]
    )
