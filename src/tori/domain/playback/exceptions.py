"""Playback-specific exceptions for error handling."""


class PlayerError(Exception):
    """Base exception for player operations."""

    pass


class PlayerUnresponsiveError(PlayerError):
    """Raised when the player does not acknowledge a command in time."""

    def __init__(self, command: str, timeout: float):
        self.command = command
        self.timeout = timeout
        super().__init__(f"Player did not answer '{command}' within {timeout:g}s")


class PlayerCommandRejectedError(PlayerError):
    """Raised when the player replies to a command with an error."""

    def __init__(self, command: str, reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"Player rejected '{command}': {reason}")


class PlayerLostError(PlayerError):
    """Raised when the control channel to the player is gone."""

    pass


class ResolverError(Exception):
    """Base exception for stream resolution."""

    pass


class ResolutionFailedError(ResolverError):
    """Raised when the resolver reports an error or prints something unusable."""

    pass


class ResolverUnavailableError(ResolverError):
    """Raised when the resolver command can't be started."""

    pass


class ResolverTimeoutError(ResolverError):
    """Raised when the resolver does not finish in time."""

    pass
