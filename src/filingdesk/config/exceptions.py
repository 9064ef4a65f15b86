"""Exceptions raised while loading or validating configuration."""


class ConfigError(Exception):
    """Raised when configuration data cannot be read, merged, or validated."""
