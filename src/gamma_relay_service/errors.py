from __future__ import annotations


class RelayError(Exception):
    """Base class for errors raised by gamma-relay-service."""


class ConfigError(RelayError):
    """Required configuration is missing or invalid. Fatal at startup."""


class PersistenceError(RelayError):
    """History file could not be written (raised only in strict save mode)."""


class NotifierError(RelayError):
    """A webhook delivery failed."""


class AnalyzerError(RelayError):
    """The analysis request failed or returned an unusable response."""


class RunInProgressError(RelayError):
    """Another report or analysis run holds the run lock."""
