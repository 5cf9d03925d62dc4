"""
Exception types for npoverlay.
"""


class NpOverlayError(Exception):
    """Base class for all npoverlay errors."""


class ConfigurationError(NpOverlayError):
    """Configuration is missing, invalid, or has no usable credential."""


class UpstreamError(NpOverlayError):
    """The media server could not be reached or reported a failure."""


class ClientPollError(NpOverlayError):
    """A poll of the relay's now-playing endpoint failed."""


class ThemeLoadError(NpOverlayError):
    """A theme stylesheet could not be loaded by the overlay surface."""
