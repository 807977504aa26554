"""
Configuration management for Tori
"""

import os
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


class ConfigError(Exception):
    """Raised when the configuration cannot be used (fatal at startup)."""

    pass


def _default_resolver_command() -> list[str]:
    # Run the yt-dlp installed alongside tori, so no separate binary is needed
    return [
        sys.executable,
        "-m",
        "yt_dlp",
        "--dump-json",
        "--no-playlist",
        "--no-warnings",
        "--format",
        "bestaudio/best",
    ]


def _default_playlists_dir() -> str:
    return str(Path.home() / "Music" / "tori")


@dataclass
class PlayerConfig:
    """Configuration for the mpv player process."""

    mpv_path: str = "mpv"
    mpv_socket_path: Optional[str] = None
    mpv_ao: Optional[str] = None  # mpv --ao value, e.g. "pulse" or "alsa"
    volume: int = 100
    volume_step: int = 5
    seek_seconds: float = 10.0
    command_timeout: float = 2.0  # seconds to wait for a command acknowledgment
    shutdown_grace: float = 2.0  # seconds between graceful quit and kill


@dataclass
class ResolverConfig:
    """Configuration for stream URL resolution."""

    command: list[str] = field(default_factory=_default_resolver_command)
    timeout: float = 30.0
    cache_ttl: float = 600.0  # stream URLs typically expire after ~15 min


@dataclass
class VisualizerConfig:
    """Configuration for the cava visualizer feed."""

    command: str = "cava"
    bars: int = 32
    framerate: int = 30
    max_height: int = 8


@dataclass
class PlaylistConfig:
    """Configuration for playlist storage."""

    directory: str = field(default_factory=_default_playlists_dir)
    autosave: bool = True


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = None  # default: ~/.local/share/tori/tori.log


@dataclass
class Config:
    """Main configuration object."""

    player: PlayerConfig = field(default_factory=PlayerConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    visualizer: VisualizerConfig = field(default_factory=VisualizerConfig)
    playlists: PlaylistConfig = field(default_factory=PlaylistConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    # Raw chord -> action name overrides; validated when the keymap is built
    keybindings: dict[str, str] = field(default_factory=dict)

    @property
    def playlists_path(self) -> Path:
        return Path(self.playlists.directory).expanduser()


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "tori"
    return Path.home() / ".config" / "tori"


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the current working directory first, then
    falls back to XDG_CONFIG_HOME/tori (or ~/.config/tori).
    """
    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config
    return get_config_dir() / "config.toml"


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "tori"
    return Path.home() / ".local" / "share" / "tori"


def create_default_config() -> str:
    """Create a default configuration TOML content."""
    return """
# Tori Configuration

[player]
# mpv executable
mpv_path = "mpv"

# Path for the mpv IPC socket (auto-generated if not specified)
# mpv_socket_path = "/tmp/tori-mpv.sock"

# mpv audio output driver (mpv default if not specified)
# mpv_ao = "pulse"

# Initial volume (0-100)
volume = 100

# Volume change per VolumeUp/VolumeDown
volume_step = 5

# Seconds skipped by SeekForward/SeekBackward
seek_seconds = 10.0

# Seconds to wait for mpv to acknowledge a command
command_timeout = 2.0

# Seconds to wait for mpv to exit before killing it
shutdown_grace = 2.0

[resolver]
# Command used to resolve URLs; the URL is appended as the last argument.
# It must print a JSON record with "url" (or "stream_url") and "title".
# command = ["yt-dlp", "--dump-json", "--no-playlist"]

# Seconds before a resolution is abandoned
timeout = 30.0

# Seconds a resolved stream URL is reused
cache_ttl = 600.0

[visualizer]
command = "cava"
bars = 32
framerate = 30
max_height = 8

[playlists]
# Directory holding one .m3u8 file per playlist
directory = "~/Music/tori"

# Write playlist files after every change
autosave = true

[logging]
# Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
level = "INFO"

# Custom log file path (default: ~/.local/share/tori/tori.log)
# log_file = "/path/to/tori.log"

[keybindings]
# Override or add key bindings. Map a chord to an action name, or to "Nop"
# to remove a built-in binding. Modifiers: C- (Control), S- (Shift), A- (Alt).
# "C-d" = "Quit"
# "S-right" = "SeekForward"
# "v" = "Nop"
""".strip()


def _section(toml_data: dict, name: str) -> dict:
    data = toml_data.get(name, {})
    if not isinstance(data, dict):
        raise ConfigError(f"[{name}] must be a table, got {type(data).__name__}")
    return data


def parse_config(toml_data: dict) -> Config:
    """Build a Config from parsed TOML data, falling back to defaults per key.

    Raises:
        ConfigError: If a section has the wrong shape or a value is invalid
    """
    config = Config()

    player_data = _section(toml_data, "player")
    config.player = PlayerConfig(
        mpv_path=player_data.get("mpv_path", config.player.mpv_path),
        mpv_socket_path=player_data.get("mpv_socket_path"),
        mpv_ao=player_data.get("mpv_ao"),
        volume=max(0, min(100, int(player_data.get("volume", config.player.volume)))),
        volume_step=int(player_data.get("volume_step", config.player.volume_step)),
        seek_seconds=float(
            player_data.get("seek_seconds", config.player.seek_seconds)
        ),
        command_timeout=float(
            player_data.get("command_timeout", config.player.command_timeout)
        ),
        shutdown_grace=float(
            player_data.get("shutdown_grace", config.player.shutdown_grace)
        ),
    )

    resolver_data = _section(toml_data, "resolver")
    command = resolver_data.get("command", config.resolver.command)
    if isinstance(command, str):
        command = command.split()
    if not command:
        raise ConfigError("[resolver] command must not be empty")
    config.resolver = ResolverConfig(
        command=list(command),
        timeout=float(resolver_data.get("timeout", config.resolver.timeout)),
        cache_ttl=float(resolver_data.get("cache_ttl", config.resolver.cache_ttl)),
    )

    visualizer_data = _section(toml_data, "visualizer")
    config.visualizer = VisualizerConfig(
        command=visualizer_data.get("command", config.visualizer.command),
        bars=int(visualizer_data.get("bars", config.visualizer.bars)),
        framerate=int(visualizer_data.get("framerate", config.visualizer.framerate)),
        max_height=int(
            visualizer_data.get("max_height", config.visualizer.max_height)
        ),
    )

    playlists_data = _section(toml_data, "playlists")
    config.playlists = PlaylistConfig(
        directory=str(
            Path(
                playlists_data.get("directory", config.playlists.directory)
            ).expanduser()
        ),
        autosave=bool(playlists_data.get("autosave", config.playlists.autosave)),
    )

    logging_data = _section(toml_data, "logging")
    log_file = logging_data.get("log_file")
    if log_file:
        log_file = str(Path(log_file).expanduser())
    config.logging = LoggingConfig(
        level=str(logging_data.get("level", config.logging.level)).upper(),
        log_file=log_file,
    )
    if config.logging.level not in VALID_LOG_LEVELS:
        raise ConfigError(f"Invalid log level: {config.logging.level}")

    keybindings = _section(toml_data, "keybindings")
    for chord, action in keybindings.items():
        if not isinstance(action, str):
            raise ConfigError(
                f"Keybinding '{chord}' must map to an action name, got {action!r}"
            )
    config.keybindings = dict(keybindings)

    return config


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file or create default.

    Environment variables override TOML values:
    - TORI_PLAYLISTS_DIR
    - TORI_LOG_LEVEL

    Raises:
        ConfigError: If the file cannot be parsed or holds invalid values
    """
    # Load .env file from config directory if it exists
    from dotenv import load_dotenv

    env_path = get_config_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    config_path = config_path or get_config_path()

    if not config_path.exists():
        # Create config directory and default file
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_default_config())
        config = Config()
    else:
        try:
            with open(config_path, "rb") as f:
                toml_data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Couldn't parse {config_path}: {e}") from e

        try:
            config = parse_config(toml_data)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value in {config_path}: {e}") from e

    playlists_dir = os.environ.get("TORI_PLAYLISTS_DIR")
    if playlists_dir:
        config.playlists.directory = str(Path(playlists_dir).expanduser())

    log_level = os.environ.get("TORI_LOG_LEVEL")
    if log_level:
        config.logging.level = log_level.upper()
        if config.logging.level not in VALID_LOG_LEVELS:
            raise ConfigError(f"Invalid TORI_LOG_LEVEL: {log_level}")

    return config


def ensure_directories(config: Config) -> None:
    """Ensure all necessary directories exist."""
    get_data_dir().mkdir(parents=True, exist_ok=True)
    config.playlists_path.mkdir(parents=True, exist_ok=True)
