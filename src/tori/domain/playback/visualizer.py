"""
Audio visualizer feed backed by cava.

cava runs with a generated config that makes it print raw ASCII frames, one
per line: ``3;0;7;...;`` with one value per bar. Each complete frame is passed
to a sink callback as a VisualizerFrame.
"""

import os
import subprocess
import tempfile
import threading
from typing import Callable, Optional

from loguru import logger

from tori.core.config import VisualizerConfig

from .events import VisualizerFrame

CAVA_CONFIG_TEMPLATE = """
[general]
bars = {bars}
framerate = {framerate}

[output]
method = raw
raw_target = /dev/stdout
data_format = ascii
ascii_max_range = {max_height}
bar_delimiter = 59
frame_delimiter = 10
"""


def parse_frame(line: str, bars: int) -> Optional[VisualizerFrame]:
    """Parse one cava output line; None unless it has exactly ``bars`` values."""
    values = [value for value in line.strip().split(";") if value]
    if len(values) != bars:
        return None
    try:
        return VisualizerFrame(tuple(int(value) for value in values))
    except ValueError:
        return None


class VisualizerFeed:
    """Owns one cava process while the visualizer is enabled."""

    def __init__(
        self,
        config: VisualizerConfig,
        sink: Callable[[VisualizerFrame], None],
    ):
        self.config = config
        self.sink = sink
        self._process: Optional[subprocess.Popen] = None
        self._config_path: Optional[str] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def start(self) -> None:
        """Spawn cava and start forwarding frames.

        Raises:
            OSError: If cava can't be started
        """
        if self.running:
            return

        fd, self._config_path = tempfile.mkstemp(prefix="tori-cava-", suffix=".conf")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(
                CAVA_CONFIG_TEMPLATE.format(
                    bars=self.config.bars,
                    framerate=self.config.framerate,
                    max_height=self.config.max_height,
                )
            )

        try:
            self._process = subprocess.Popen(
                [self.config.command, "-p", self._config_path],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
            )
        except OSError:
            self._remove_config()
            raise

        self._thread = threading.Thread(
            target=self._read_frames,
            args=(self._process,),
            name="visualizer-reader",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Visualizer started ({self.config.command}, {self.config.bars} bars)")

    def stop(self, grace: float = 1.0) -> None:
        """Terminate cava (kill after ``grace`` seconds) and clean up."""
        process, self._process = self._process, None
        if process is not None:
            process.terminate()
            try:
                process.wait(timeout=grace)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()
            logger.info("Visualizer stopped")
        if self._thread is not None:
            self._thread.join(timeout=grace)
            self._thread = None
        self._remove_config()

    def _read_frames(self, process: subprocess.Popen) -> None:
        for line in process.stdout:
            frame = parse_frame(line, self.config.bars)
            if frame is not None:
                self.sink(frame)
        process.stdout.close()

    def _remove_config(self) -> None:
        if self._config_path and os.path.exists(self._config_path):
            os.unlink(self._config_path)
        self._config_path = None
