"""Stream URL resolution for remote songs using yt-dlp.

Each resolve runs the resolver command as a short-lived subprocess with the URL
as its last argument and reads one JSON record from its stdout. Stream URLs
expire, so results are cached for a short time only.
"""

import json
import subprocess
import threading
from time import time
from typing import NamedTuple, Optional

from loguru import logger

from tori.domain.library.models import is_remote_source

from .exceptions import (
    ResolutionFailedError,
    ResolverTimeoutError,
    ResolverUnavailableError,
)


class Resolution(NamedTuple):
    stream_url: str
    title: str
    duration: Optional[float] = None


def parse_resolver_output(output: str) -> Resolution:
    """Parse the first non-empty stdout line of the resolver.

    Accepts ``stream_url`` or yt-dlp's ``url`` for the stream.

    Raises:
        ResolutionFailedError: If the output isn't a usable JSON record
    """
    line = next((line for line in output.splitlines() if line.strip()), "")
    if not line:
        raise ResolutionFailedError("Resolver printed nothing")

    try:
        record = json.loads(line)
    except json.JSONDecodeError as e:
        raise ResolutionFailedError(f"Resolver printed malformed JSON: {e}") from e
    if not isinstance(record, dict):
        raise ResolutionFailedError("Resolver output is not a JSON object")

    stream_url = record.get("stream_url") or record.get("url")
    if not stream_url:
        raise ResolutionFailedError("Resolver output has no stream URL")

    duration = record.get("duration")
    return Resolution(
        stream_url=stream_url,
        title=record.get("title") or stream_url,
        duration=float(duration) if isinstance(duration, (int, float)) else None,
    )


class ResolverClient:
    """Runs the resolver subprocess; safe to call from several threads."""

    def __init__(self, command: list[str], timeout: float = 30.0, cache_ttl: float = 600.0):
        self.command = list(command)
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        # source_url -> (resolution, expires_at)
        self._cache: dict[str, tuple[Resolution, float]] = {}
        self._lock = threading.Lock()
        self._active: set[subprocess.Popen] = set()

    def resolve(self, url: str) -> Resolution:
        """Resolve a remote URL to a playable stream URL and title.

        Raises:
            ResolutionFailedError: Malformed URL, resolver error or bad output
            ResolverUnavailableError: The resolver command doesn't exist
            ResolverTimeoutError: The resolver took longer than the timeout
        """
        if not is_remote_source(url):
            raise ResolutionFailedError(f"Not a remote URL: {url}")

        cached = self._cached(url)
        if cached is not None:
            logger.debug(f"Stream URL cache hit for {url}")
            return cached

        output = self._run(url)
        resolution = parse_resolver_output(output)
        with self._lock:
            self._cache[url] = (resolution, time() + self.cache_ttl)
        logger.debug(f"Resolved stream URL for {url}")
        return resolution

    def cancel_all(self) -> None:
        """Kill every resolver process still running."""
        with self._lock:
            active = list(self._active)
        for process in active:
            if process.poll() is None:
                logger.debug(f"Killing resolver process {process.pid}")
                process.kill()

    def _cached(self, url: str) -> Optional[Resolution]:
        with self._lock:
            entry = self._cache.get(url)
            if entry is None:
                return None
            resolution, expires_at = entry
            if time() >= expires_at:
                del self._cache[url]
                return None
            return resolution

    def _run(self, url: str) -> str:
        # mpv-style "ytdl://" prefixes mean "hand this to yt-dlp"
        cmd = [*self.command, url.removeprefix("ytdl://")]
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except FileNotFoundError as e:
            raise ResolverUnavailableError(f"Resolver not found: {self.command[0]}") from e
        except OSError as e:
            raise ResolverUnavailableError(f"Couldn't start resolver: {e}") from e

        with self._lock:
            self._active.add(process)
        try:
            stdout, stderr = process.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            process.kill()
            process.communicate()
            raise ResolverTimeoutError(
                f"Resolver timed out after {self.timeout:g}s for {url}"
            ) from e
        finally:
            with self._lock:
                self._active.discard(process)

        if process.returncode != 0:
            message = (stderr or "").strip().splitlines()
            detail = message[-1] if message else f"exit status {process.returncode}"
            logger.warning(f"Resolver failed for {url}: {detail}")
            raise ResolutionFailedError(detail)

        return stdout
