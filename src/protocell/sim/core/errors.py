from __future__ import annotations


class ConfigurationError(ValueError):
    """Raised before a run starts when a configuration value cannot produce a valid simulation."""

    def __init__(self, field_name: str, message: str) -> None:
        super().__init__(f"{field_name}: {message}")
        self.field_name = field_name
