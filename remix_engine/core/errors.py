"""
Error taxonomy for the remix engine.
All errors are recoverable at the call boundary; nothing here is fatal to the process.
"""


class RemixError(Exception):
    """Base class for every error raised by the remix engine."""


class DecodeError(RemixError):
    """Input blob is empty, corrupt, or in a container no decoder handles."""


class InvalidRange(RemixError):
    """Trim bounds violate the buffer duration."""


class InvalidParameter(RemixError):
    """Effect, track or mix parameter outside its allowed domain."""


class UnsupportedEffect(RemixError):
    """Unknown effect kind or voice filter type."""


class EmptyMix(RemixError):
    """Mix requested with no tracks."""


class InvalidFormat(RemixError):
    """Sample rate or channel count is not usable (<= 0)."""


class DeviceError(RemixError):
    """Capture device unavailable, permission denied, or failed mid-capture."""


class InvalidTransition(RemixError):
    """Remix session asked to move between states that are not connected."""
