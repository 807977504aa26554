"""Desktop integration helpers: clipboard, browser and notifications."""

import shutil
import subprocess
import webbrowser
from typing import Literal, Optional

from loguru import logger

# Clipboard commands tried in order; each reads the text from stdin
CLIPBOARD_COMMANDS = (
    ["wl-copy"],
    ["xclip", "-selection", "clipboard"],
    ["xsel", "--clipboard", "--input"],
    ["pbcopy"],
)


class IntegrationError(Exception):
    """Raised when a desktop integration is missing or fails."""

    pass


def _clipboard_command() -> Optional[list[str]]:
    for cmd in CLIPBOARD_COMMANDS:
        if shutil.which(cmd[0]):
            return cmd
    return None


def copy_to_clipboard(text: str) -> None:
    """
    Copy text to the system clipboard.

    Raises:
        IntegrationError: If no clipboard tool is installed or it fails
    """
    cmd = _clipboard_command()
    if cmd is None:
        raise IntegrationError("No clipboard tool found (wl-copy, xclip, xsel, pbcopy)")

    try:
        subprocess.run(cmd, input=text, text=True, check=True, timeout=2.0, capture_output=True)
    except (subprocess.SubprocessError, OSError) as e:
        raise IntegrationError(f"Couldn't copy to clipboard: {e}") from e
    logger.debug(f"Copied to clipboard with {cmd[0]}")


def open_in_browser(url: str) -> None:
    """
    Open a URL in the default browser.

    Raises:
        IntegrationError: If no browser could be opened
    """
    if not webbrowser.open(url):
        raise IntegrationError(f"Couldn't open {url} in a browser")


def notify(
    title: str, message: str, urgency: Literal["low", "normal", "critical"] = "low"
) -> None:
    """
    Show a desktop notification using notify-send.

    Note:
        Silently skips notification if notify-send is not available.
    """
    if not shutil.which("notify-send"):
        return

    try:
        subprocess.run(
            ["notify-send", "--urgency", urgency, "--app-name", "tori", title, message],
            check=False,
            timeout=2.0,
            capture_output=True,
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.debug(f"notify-send failed: {e}")


def notify_now_playing(title: str) -> None:
    notify("Now playing", title)
