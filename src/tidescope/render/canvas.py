"""
pygame draw target.

Projects the particle field through a perspective camera and draws points
and connection lines onto a pygame surface, either a window or an
off-screen surface for headless runs.
"""

import logging
import math
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pygame
from PIL import Image

from tidescope.core.interaction import CameraState
from tidescope.errors import ResourceDisposalError

logger = logging.getLogger(__name__)

FIELD_OF_VIEW = 75.0  # vertical, degrees
NEAR_PLANE = 0.1
POINT_OPACITY = 0.8
LINE_OPACITY = 0.3


@dataclass
class DrawCall:
    """Everything the draw target needs for one frame."""

    points: np.ndarray          # (N, 3)
    colors: np.ndarray          # (N, 3) in [0, 1]
    point_size: float
    camera: CameraState
    segments: np.ndarray | None = None        # (2M, 3)
    segment_colors: np.ndarray | None = None  # (2M, 3)


def rotation_matrix(pitch: float, yaw: float) -> np.ndarray:
    """Rotation about x by ``pitch`` composed with rotation about y by ``yaw``."""
    cx, sx = math.cos(pitch), math.sin(pitch)
    cy, sy = math.cos(yaw), math.sin(yaw)
    rx = np.array([[1, 0, 0], [0, cx, -sx], [0, sx, cx]], dtype=np.float64)
    ry = np.array([[cy, 0, sy], [0, 1, 0], [-sy, 0, cy]], dtype=np.float64)
    return rx @ ry


def project(
    points: np.ndarray,
    camera: CameraState,
    width: int,
    height: int,
    fov: float = FIELD_OF_VIEW,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Perspective-project world points to screen pixels.

    The field is rotated by the camera's pitch/yaw; the camera sits at
    (0, 0, distance) looking down -z.

    Args:
        points: (N, 3) world positions.
        camera: Camera distance and rotation.
        width: Surface width in pixels.
        height: Surface height in pixels.
        fov: Vertical field of view in degrees.

    Returns:
        Tuple of (screen (N, 2), depth (N,), visible (N,) bool).
    """
    rotated = np.asarray(points, dtype=np.float64) @ rotation_matrix(camera.pitch, camera.yaw).T
    depth = camera.distance - rotated[:, 2]
    visible = depth > NEAR_PLANE
    safe_depth = np.where(visible, depth, NEAR_PLANE)

    focal = 1.0 / math.tan(math.radians(fov) / 2.0)
    aspect = width / height
    ndc_x = (focal / aspect) * rotated[:, 0] / safe_depth
    ndc_y = focal * rotated[:, 1] / safe_depth

    screen = np.empty((len(rotated), 2), dtype=np.float64)
    screen[:, 0] = (ndc_x + 1.0) * width / 2.0
    screen[:, 1] = (1.0 - ndc_y) * height / 2.0
    return screen, depth, visible


class PygameCanvas:
    """
    Draw target sized to the viewport.

    Resizing only changes the surface and projection; particle buffers and
    shape state live elsewhere and are untouched.
    """

    def __init__(
        self,
        width: int,
        height: int,
        windowed: bool = False,
        background: tuple[int, int, int] = (5, 12, 20),
    ):
        """
        Initialize the canvas.

        Args:
            width: Surface width in pixels.
            height: Surface height in pixels.
            windowed: Open a resizable display window instead of an
                off-screen surface.
            background: Clear color.
        """
        self.windowed = windowed
        self.background = background
        self.disposed = False
        self.surface: pygame.Surface | None = None
        self.frames_drawn = 0
        self.resize(width, height)

    def resize(self, width: int, height: int):
        self.width = max(1, int(width))
        self.height = max(1, int(height))
        if self.windowed:
            self.surface = pygame.display.set_mode((self.width, self.height), pygame.RESIZABLE)
        else:
            self.surface = pygame.Surface((self.width, self.height))
        self._overlay = pygame.Surface((self.width, self.height), pygame.SRCALPHA)

    def _draw_lines(self, call: DrawCall):
        segments = call.segments
        if segments is None or len(segments) == 0:
            return
        screen, _, visible = project(segments, call.camera, self.width, self.height)
        colors = np.clip(call.segment_colors * 255.0, 0, 255).astype(np.uint8)
        alpha = int(255 * LINE_OPACITY)
        for k in range(0, len(screen) - 1, 2):
            if not (visible[k] and visible[k + 1]):
                continue
            r, g, b = colors[k]
            start = (int(screen[k, 0]), int(screen[k, 1]))
            end = (int(screen[k + 1, 0]), int(screen[k + 1, 1]))
            pygame.draw.line(self._overlay, (int(r), int(g), int(b), alpha), start, end)

    def _draw_points(self, call: DrawCall):
        screen, depth, visible = project(call.points, call.camera, self.width, self.height)
        # Size attenuation: diameter = size * (height / 2) / depth
        radii = call.point_size * (self.height / 2.0) / np.maximum(depth, NEAR_PLANE) / 2.0
        colors = np.clip(call.colors * 255.0, 0, 255).astype(np.uint8)
        alpha = int(255 * POINT_OPACITY)

        # Far to near so closer particles overlap farther ones
        for k in np.argsort(-depth):
            if not visible[k]:
                continue
            r, g, b = colors[k]
            pygame.draw.circle(
                self._overlay,
                (int(r), int(g), int(b), alpha),
                (int(screen[k, 0]), int(screen[k, 1])),
                max(1, int(radii[k])),
            )

    def draw(self, call: DrawCall):
        """Clear and draw one frame, then present it if windowed."""
        if self.disposed:
            raise ResourceDisposalError("Canvas has been disposed")

        self.surface.fill(self.background)
        self._overlay.fill((0, 0, 0, 0))
        self._draw_lines(call)
        self._draw_points(call)
        self.surface.blit(self._overlay, (0, 0))

        if self.windowed:
            pygame.display.flip()
        self.frames_drawn += 1

    def to_array(self) -> np.ndarray:
        """Current surface as an (H, W, 3) uint8 array."""
        # pygame uses (width, height) but numpy expects (height, width)
        arr = pygame.surfarray.array3d(self.surface)
        return np.transpose(arr, (1, 0, 2))

    def snapshot(self, path: str | Path) -> Path:
        """Save the current surface as an image file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.fromarray(self.to_array()).save(path)
        logger.info("Saved snapshot to %s", path)
        return path

    def dispose(self):
        """
        Release the surface (and the window, if any).

        Raises:
            ResourceDisposalError: If the canvas was already disposed.
        """
        if self.disposed:
            raise ResourceDisposalError("Canvas already disposed")
        self.disposed = True
        self.surface = None
        self._overlay = None
        if self.windowed:
            pygame.display.quit()
