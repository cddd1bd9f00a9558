"""
Error taxonomy for the tidescope engine.

Device errors are absorbed at the AudioAnalysisPipeline boundary and never
reach the render loop. Only configuration errors surface to the caller.
"""


class TidescopeError(Exception):
    """Base class for all tidescope errors."""


class PermissionDenied(TidescopeError):
    """Capture device access was refused."""


class DeviceSetupFailure(TidescopeError):
    """The audio subsystem or an audio source could not be initialized."""


class ValidationError(TidescopeError, ValueError):
    """A configuration value is outside its allowed range."""


class ResourceDisposalError(TidescopeError):
    """A device or buffer was disposed after it had already been released."""
