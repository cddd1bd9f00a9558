"""Camera and rotation state driven by pointer and wheel input."""

from dataclasses import dataclass

DEFAULT_DISTANCE = 50.0
DISTANCE_RANGE = (10.0, 100.0)
DRAG_GAIN = 0.01
SCROLL_GAIN = 0.1
AUTO_YAW_STEP = 0.005  # radians per frame


@dataclass
class CameraState:
    """Camera distance along the view axis plus field rotation offsets."""

    distance: float = DEFAULT_DISTANCE
    yaw: float = 0.0    # rotation about y
    pitch: float = 0.0  # rotation about x
    dragging: bool = False


class InteractionController:
    """
    Translates drag and scroll events into CameraState changes.

    Pointer coordinates are in screen pixels; only deltas matter.
    """

    def __init__(self, camera: CameraState | None = None):
        self.camera = camera or CameraState()
        self._last_x = 0.0
        self._last_y = 0.0

    def on_drag_start(self, x: float, y: float):
        self.camera.dragging = True
        self._last_x = x
        self._last_y = y

    def on_drag_move(self, x: float, y: float):
        if self.camera.dragging:
            self.camera.yaw += (x - self._last_x) * DRAG_GAIN
            self.camera.pitch += (y - self._last_y) * DRAG_GAIN
        self._last_x = x
        self._last_y = y

    def on_drag_end(self):
        self.camera.dragging = False

    def on_scroll(self, delta_y: float):
        """Zoom; positive deltas move the camera away."""
        low, high = DISTANCE_RANGE
        distance = self.camera.distance + delta_y * SCROLL_GAIN
        self.camera.distance = max(low, min(high, distance))

    def advance(self):
        """Per-frame auto-rotation, suppressed while the user drags."""
        if not self.camera.dragging:
            self.camera.yaw += AUTO_YAW_STEP

    def reset(self):
        self.camera.yaw = 0.0
        self.camera.pitch = 0.0
        self.camera.distance = DEFAULT_DISTANCE
