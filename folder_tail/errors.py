from __future__ import annotations


class TailError(Exception):
    pass


class ConfigError(TailError):
    """Raised for configuration that must be fixed before the engine starts."""


class PatternError(ConfigError):
    def __init__(self, pattern: str, kind: str, reason: str):
        self.pattern = pattern
        self.kind = kind
        self.reason = reason
        super().__init__(f"invalid {kind} pattern {pattern!r}: {reason}")
