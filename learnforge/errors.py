"""
Exceptions raised by the enforcement core.

Expected user-facing outcomes (missing steps, weak proof, someone else's
mission) are returned as result objects, not raised. These cover the
remaining cases.
"""


class EnforcementError(Exception):
    """Base class for learnforge errors."""


class ConfigError(EnforcementError):
    """A configuration value could not be parsed."""


class InvalidMissionError(EnforcementError):
    """A remediation mission token could not be decoded."""

    def __init__(self, token: str):
        super().__init__(f"Invalid remediation mission id: {token!r}")
        self.token = token


class SkipNotAllowedError(EnforcementError):
    """record_skip was called with a decision that did not allow the skip."""
