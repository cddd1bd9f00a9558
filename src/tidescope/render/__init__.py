"""Frame scheduling, draw target and render loop."""

from tidescope.render.canvas import DrawCall, PygameCanvas
from tidescope.render.loop import RenderLoop, Telemetry
from tidescope.render.scheduler import FrameScheduler, ManualScheduler, PygameScheduler

__all__ = [
    "DrawCall",
    "PygameCanvas",
    "RenderLoop",
    "Telemetry",
    "FrameScheduler",
    "ManualScheduler",
    "PygameScheduler",
]
