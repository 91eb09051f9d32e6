from __future__ import annotations


class ConfessBotError(Exception):
    pass


class ConfigError(ConfessBotError, RuntimeError):
    pass


class ValidationError(ConfessBotError, ValueError):
    def __init__(self, message: str, *, length: int, min_length: int, max_length: int):
        super().__init__(message)
        self.length = length
        self.min_length = min_length
        self.max_length = max_length

    @property
    def too_short(self) -> bool:
        return self.length < self.min_length


class PublishError(ConfessBotError):
    """A channel post could not be delivered (missing channel, perms, HTTP error)."""
