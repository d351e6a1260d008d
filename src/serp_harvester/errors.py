"""Custom exceptions for the harvester domain."""


class HarvesterError(Exception):
    """Base exception for this project."""


class ConfigError(HarvesterError):
    """Raised when runtime configuration is invalid."""


class InputError(HarvesterError):
    """Raised when no usable queries can be loaded."""


class OutputError(HarvesterError):
    """Raised when the output file cannot be initialized."""
