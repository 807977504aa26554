"""
MPV player integration with JSON IPC for Tori.

One PlayerSession owns one persistent connection to the mpv IPC socket. A
reader thread splits incoming lines into command replies (handed to the
waiting caller by request id) and status events (queued for
``status_events()``), so commands and events share the channel full-duplex.
"""

import itertools
import os
import queue
import socket
import subprocess
import tempfile
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from loguru import logger

from tori.core.config import PlayerConfig

from .events import PlayerLost
from .exceptions import (
    PlayerCommandRejectedError,
    PlayerError,
    PlayerLostError,
    PlayerUnresponsiveError,
)
from .protocol import (
    OBSERVED_PROPERTIES,
    Reply,
    decode_line,
    encode_command,
    get_property_command,
    load_command,
    mute_command,
    observe_property_command,
    pause_command,
    quit_command,
    seek_command,
    toggle_pause_command,
    volume_command,
)

SOCKET_WAIT_TIMEOUT = 5.0

# Marks the end of the status event stream
_END_OF_STREAM = object()


class _PendingCommand:
    """A command waiting for its reply."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.reply: Optional[Reply] = None


class PlayerSession:
    """Command/status channel to a running mpv process."""

    def __init__(self, sock: socket.socket, command_timeout: float = 2.0):
        self.command_timeout = command_timeout
        self._sock = sock
        self._stream = sock.makefile("rb")
        self._request_ids = itertools.count(1)
        self._pending: dict[int, _PendingCommand] = {}
        self._pending_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._events: queue.Queue = queue.Queue()
        self._events_claimed = False
        self._closing = threading.Event()
        self._lost = threading.Event()
        self._reader = threading.Thread(
            target=self._read_loop, name="mpv-reader", daemon=True
        )
        self._reader.start()

    @classmethod
    def connect(cls, socket_path: str, command_timeout: float = 2.0) -> "PlayerSession":
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.connect(socket_path)
        except OSError as e:
            sock.close()
            raise PlayerLostError(f"Couldn't connect to {socket_path}: {e}") from e
        return cls(sock, command_timeout)

    @property
    def lost(self) -> bool:
        return self._lost.is_set()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def handshake(self) -> None:
        """Check the player answers, then subscribe to status properties."""
        self._request(get_property_command("idle-active"))
        for observe_id, name in OBSERVED_PROPERTIES.items():
            self._request(observe_property_command(observe_id, name))
        logger.info("mpv handshake complete")

    def load(self, source: str, start_paused: bool = False) -> None:
        self._request(pause_command(start_paused))
        self._request(load_command(source))

    def play(self) -> None:
        self._request(pause_command(False))

    def pause(self) -> None:
        self._request(pause_command(True))

    def toggle_pause(self) -> None:
        self._request(toggle_pause_command())

    def seek(self, seconds: float, relative: bool = True) -> None:
        self._request(seek_command(seconds, relative))

    def set_volume(self, volume: int) -> None:
        if not 0 <= volume <= 100:
            raise ValueError(f"Volume must be within 0-100, got {volume}")
        self._request(volume_command(volume))

    def mute(self, muted: bool) -> None:
        self._request(mute_command(muted))

    def get_property(self, name: str) -> Any:
        return self._request(get_property_command(name))

    def quit(self) -> None:
        """Ask mpv to exit. The channel closing afterwards is expected."""
        self._closing.set()
        try:
            self._request(quit_command())
        except PlayerError as e:
            # mpv may drop the connection before replying
            logger.debug(f"mpv quit not acknowledged: {e}")

    def close(self) -> None:
        """Close the channel without emitting PlayerLost."""
        self._closing.set()
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Already disconnected
        self._sock.close()
        if threading.current_thread() is not self._reader:
            self._reader.join(timeout=1.0)

    def _request(self, args: list, timeout: Optional[float] = None) -> Any:
        """Send a command and wait for its reply.

        Raises:
            PlayerLostError: If the channel is gone
            PlayerUnresponsiveError: If no reply arrives in time
            PlayerCommandRejectedError: If mpv answers with an error
        """
        name = str(args[0])
        timeout = self.command_timeout if timeout is None else timeout
        if self._lost.is_set():
            raise PlayerLostError(f"Can't send '{name}': player connection lost")

        request_id = next(self._request_ids)
        pending = _PendingCommand()
        with self._pending_lock:
            self._pending[request_id] = pending

        logger.debug(f"mpv <- #{request_id} {args}")
        try:
            with self._write_lock:
                self._sock.sendall(encode_command(args, request_id))
        except OSError as e:
            self._forget(request_id)
            raise PlayerLostError(f"Couldn't send '{name}': {e}") from e

        if not pending.done.wait(timeout):
            self._forget(request_id)
            raise PlayerUnresponsiveError(name, timeout)

        reply = pending.reply
        if reply is None:
            raise PlayerLostError(f"Player connection lost during '{name}'")
        if not reply.ok:
            raise PlayerCommandRejectedError(name, reply.error)
        return reply.data

    def _forget(self, request_id: int) -> None:
        with self._pending_lock:
            self._pending.pop(request_id, None)

    # ------------------------------------------------------------------
    # Status events
    # ------------------------------------------------------------------

    def status_events(self) -> Iterator:
        """Iterate status events as mpv pushes them.

        The stream ends after the channel closes; an unexpected close yields
        one PlayerLost first. It can be consumed only once.
        """
        if self._events_claimed:
            raise RuntimeError("Status events can only be consumed once")
        self._events_claimed = True
        return self._iter_events()

    def _iter_events(self) -> Iterator:
        while True:
            event = self._events.get()
            if event is _END_OF_STREAM:
                return
            yield event

    def _read_loop(self) -> None:
        reason = "player closed the control channel"
        try:
            for line in self._stream:
                try:
                    message = decode_line(line)
                except ValueError as e:
                    logger.warning(f"Ignoring malformed mpv message {line!r}: {e}")
                    continue

                if isinstance(message, Reply):
                    self._deliver(message)
                elif message is not None:
                    self._events.put(message)
        except (OSError, ValueError) as e:
            # ValueError: the stream was closed under us
            reason = str(e)
        finally:
            self._stream.close()
            self._channel_closed(reason)

    def _deliver(self, reply: Reply) -> None:
        with self._pending_lock:
            pending = self._pending.pop(reply.request_id, None)
        if pending is None:
            logger.debug(f"Dropping late mpv reply #{reply.request_id}")
            return
        pending.reply = reply
        pending.done.set()

    def _channel_closed(self, reason: str) -> None:
        self._lost.set()
        with self._pending_lock:
            pending, self._pending = list(self._pending.values()), {}
        for command in pending:
            command.done.set()

        if not self._closing.is_set():
            logger.error(f"Lost connection to mpv: {reason}")
            self._events.put(PlayerLost(reason))
        self._events.put(_END_OF_STREAM)


# ----------------------------------------------------------------------
# Process lifecycle
# ----------------------------------------------------------------------


def get_socket_path(config: PlayerConfig) -> str:
    if config.mpv_socket_path:
        return config.mpv_socket_path
    return str(Path(tempfile.gettempdir()) / f"tori-mpv-{os.getpid()}.sock")


def build_mpv_command(config: PlayerConfig, socket_path: str) -> list[str]:
    cmd = [
        config.mpv_path,
        "--idle=yes",
        "--no-video",
        "--no-terminal",
        f"--input-ipc-server={socket_path}",
        f"--volume={config.volume}",
        "--load-scripts=no",
    ]
    if config.mpv_ao:
        cmd.append(f"--ao={config.mpv_ao}")
    return cmd


def start_mpv(config: PlayerConfig) -> tuple[subprocess.Popen, str]:
    """Start MPV with JSON IPC and wait for its socket.

    Raises:
        PlayerError: If mpv can't be started or never creates its socket
    """
    socket_path = get_socket_path(config)
    logger.info(f"Starting MPV player with socket: {socket_path}")

    if os.path.exists(socket_path):
        logger.debug(f"Removing existing socket: {socket_path}")
        os.unlink(socket_path)

    try:
        process = subprocess.Popen(
            build_mpv_command(config, socket_path),
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            stdin=subprocess.DEVNULL,
        )
    except OSError as e:
        raise PlayerError(f"Failed to start mpv ({config.mpv_path}): {e}") from e

    start_time = time.monotonic()
    while not os.path.exists(socket_path):
        if process.poll() is not None:
            raise PlayerError(f"mpv exited with status {process.returncode}")
        if time.monotonic() - start_time > SOCKET_WAIT_TIMEOUT:
            process.kill()
            process.wait()
            raise PlayerError(
                f"mpv socket creation timeout after {SOCKET_WAIT_TIMEOUT}s"
            )
        time.sleep(0.1)

    return process, socket_path


def stop_mpv(process: subprocess.Popen, socket_path: str, grace: float = 2.0) -> None:
    """Wait for mpv to exit, kill it after the grace period, remove the socket."""
    try:
        process.wait(timeout=grace)
    except subprocess.TimeoutExpired:
        logger.warning(f"mpv still running after {grace}s, killing it")
        process.kill()
        process.wait()

    if os.path.exists(socket_path):
        try:
            os.unlink(socket_path)
        except OSError as e:
            logger.debug(f"Couldn't remove mpv socket {socket_path}: {e}")


@contextmanager
def running_player(config: PlayerConfig) -> Iterator[PlayerSession]:
    """Spawn mpv, connect and handshake; always stop it on exit.

    Raises:
        PlayerError: If mpv can't be started or doesn't complete the handshake
    """
    process, socket_path = start_mpv(config)
    session = None
    try:
        session = PlayerSession.connect(socket_path, config.command_timeout)
        session.handshake()
        yield session
    finally:
        if session is not None:
            session.quit()
            session.close()
        else:
            process.terminate()
        stop_mpv(process, socket_path, config.shutdown_grace)
        logger.info("MPV player stopped")
