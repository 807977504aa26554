"""Library-specific exceptions for error handling."""


class LibraryError(Exception):
    """Base exception for playlist and queue operations."""

    pass


class DuplicateNameError(LibraryError):
    """Raised when a playlist name is already taken."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Playlist '{name}' already exists")


class NotFoundError(LibraryError):
    """Raised when a playlist or song does not exist."""

    pass


class InvalidNameError(LibraryError):
    """Raised when a playlist name is empty or contains a path separator."""

    pass
