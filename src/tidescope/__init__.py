"""Real-time audio-reactive 3D particle field."""

from tidescope.config import VisualizerConfig
from tidescope.errors import (
    DeviceSetupFailure,
    PermissionDenied,
    ResourceDisposalError,
    TidescopeError,
    ValidationError,
)
from tidescope.pipeline import AudioAnalysisPipeline
from tidescope.render.loop import RenderLoop

__version__ = "0.1.0"
__all__ = [
    "VisualizerConfig",
    "AudioAnalysisPipeline",
    "RenderLoop",
    "TidescopeError",
    "PermissionDenied",
    "DeviceSetupFailure",
    "ValidationError",
    "ResourceDisposalError",
]
