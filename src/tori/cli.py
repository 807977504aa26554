"""
Tori CLI - entry point.

Loads the configuration, sets up logging and hands over to the blessed UI.
"""

import argparse
import sys
from pathlib import Path
from typing import Optional

from loguru import logger
from rich.console import Console

from tori import __version__
from tori.core.config import VALID_LOG_LEVELS, ConfigError, ensure_directories, load_config
from tori.core.output import setup_loguru

console = Console(stderr=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tori",
        description="Tori - a terminal music player driving mpv",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config.toml (default: ./config.toml or ~/.config/tori/config.toml)",
    )
    parser.add_argument(
        "--playlists-dir",
        type=Path,
        help="Directory holding the .m3u8 playlists",
    )
    parser.add_argument(
        "--log-level",
        choices=sorted(VALID_LOG_LEVELS),
        type=str.upper,
        help="Minimum level written to the log file",
    )
    parser.add_argument("--version", action="version", version=f"tori {__version__}")
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point for the tori command."""
    args = build_parser().parse_args(argv)

    # Imported here so --help/--version don't pay for the UI stack
    from tori.ui.app import run_app
    from tori.ui.keymap import build_keymap

    try:
        config = load_config(args.config)
        if args.playlists_dir:
            config.playlists.directory = str(args.playlists_dir.expanduser())
        if args.log_level:
            config.logging.level = args.log_level
        keymap = build_keymap(config.keybindings)
    except ConfigError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        sys.exit(2)

    log_file = Path(config.logging.log_file) if config.logging.log_file else None
    setup_loguru(log_file, config.logging.level)
    ensure_directories(config)
    logger.info(f"tori {__version__} starting (playlists: {config.playlists_path})")

    run_app(config, keymap)


if __name__ == "__main__":
    main()
