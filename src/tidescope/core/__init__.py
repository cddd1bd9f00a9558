"""Core analysis and geometry modules."""

from tidescope.core.analyzer import FrequencyBands, SpectrumAnalyser, reduce_bands
from tidescope.core.field import ParticleField
from tidescope.core.graph import ConnectionGraph, build_connections
from tidescope.core.interaction import CameraState, InteractionController
from tidescope.core.shapes import current_shape

__all__ = [
    "FrequencyBands",
    "SpectrumAnalyser",
    "reduce_bands",
    "ParticleField",
    "ConnectionGraph",
    "build_connections",
    "CameraState",
    "InteractionController",
    "current_shape",
]
