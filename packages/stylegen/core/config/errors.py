"""Configuration errors."""

from __future__ import annotations


class ConfigError(ValueError):
    """Malformed or missing input configuration.

    Attributes:
        field: Offending configuration field, when known.
        hint: Remediation hint for display.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        if field:
            self.hint = f'Check the "{field}" field in your configuration file'
        else:
            self.hint = "Verify your JSON configuration files are valid"
        super().__init__(message)
