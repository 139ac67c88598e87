"""
DIVSTAB Exceptions
==================

Custom exception classes for the DIVSTAB divide stability toolkit.
"""


class DivStabError(Exception):
    """Base exception for DIVSTAB errors."""

    pass


class ConfigurationError(DivStabError):
    """Exception raised for invalid or incomplete run parameters."""

    pass


class DEMError(DivStabError):
    """Exception raised for DEM-related errors."""

    pass


class FlowDirectionError(DivStabError):
    """Exception raised for malformed flow direction fields."""

    pass


class NetworkError(DivStabError):
    """Exception raised for stream network derivation errors."""

    pass


class ExportError(DivStabError):
    """Exception raised when results cannot be written."""

    pass
