"""
Procedural particle field.

Owns the flat position/color buffers (length 3N each) and rewrites them in
place every frame from the active shape, the band levels and the clock.
Everything that depends only on N is computed in ``allocate``; a frame
update writes through ufunc ``out=`` arguments into those arrays and never
allocates per-particle storage.
"""

import math

import numpy as np

from tidescope.config import DENSITY_RANGE, WAVEFORM
from tidescope.core.analyzer import FrequencyBands
from tidescope.core.colorgrade import (
    hue_ramps,
    index_hues,
    ramps_to_rgb,
    shimmer_lightness,
)
from tidescope.core.shapes import AMBIENT, CYLINDER, SHAPES, SPHERE
from tidescope.errors import ResourceDisposalError, ValidationError

CRYSTAL_LAYERS = 10
CYLINDER_RINGS = 50
WAVEFORM_HEIGHT_GAIN = 0.1


class ParticleField:
    """
    Position and color buffers for N particles.

    ``positions`` and ``colors`` are flat float32 arrays of length 3N laid
    out as x0, y0, z0, x1, ... They are only replaced by ``allocate``;
    ``update`` writes through the (N, 3) views.
    """

    def __init__(self, bounds: tuple[int, int] = DENSITY_RANGE):
        self.bounds = bounds
        self.count = 0
        self.shape: str | None = None
        self.positions: np.ndarray | None = None
        self.colors: np.ndarray | None = None
        self._pos3 = None
        self._col3 = None
        self.revision = 0

    @property
    def allocated(self) -> bool:
        return self.positions is not None

    def allocate(self, count: int, shape: str | None = None):
        """
        Create zeroed buffers for ``count`` particles.

        Args:
            count: Particle count N.
            shape: Shape the buffers are created for.

        Raises:
            ValidationError: If ``count`` is not a positive int within bounds.
        """
        low, high = self.bounds
        if isinstance(count, bool) or not isinstance(count, (int, np.integer)):
            raise ValidationError(f"Particle count must be an int, got {count!r}")
        if count <= 0 or not (low <= count <= high):
            raise ValidationError(f"Particle count must be in [{low}, {high}], got {count}")

        count = int(count)
        self.count = count
        self.shape = shape
        self.positions = np.zeros(count * 3, dtype=np.float32)
        self.colors = np.zeros(count * 3, dtype=np.float32)
        self._pos3 = self.positions.reshape(count, 3)
        self._col3 = self.colors.reshape(count, 3)

        index = np.arange(count, dtype=np.float64)
        self._fraction = index / count
        self._ramps = hue_ramps(index_hues(self._fraction))

        # Ambient phases
        self._phase_orbit = index * 0.1
        self._phase_bob = index * 0.05

        # Static layouts are float32 like the buffers
        # Sphere: unit directions, scaled by the bass radius each frame
        phi = np.arccos(-1.0 + 2.0 * self._fraction)
        theta = math.sqrt(count * math.pi) * phi
        self._sphere_unit = np.column_stack(
            (np.cos(theta) * np.sin(phi), np.cos(phi), np.sin(theta) * np.sin(phi))
        ).astype(np.float32)

        # Cylinder: unit ring, scaled by the mid radius each frame
        angle = 2.0 * math.pi * self._fraction
        self._cylinder_x = np.cos(angle).astype(np.float32)
        self._cylinder_z = np.sin(angle).astype(np.float32)
        ring_height = (np.mod(index, CYLINDER_RINGS) / CYLINDER_RINGS) * 30.0 - 15.0
        self._cylinder_y = ring_height.astype(np.float32)

        # Crystal: fully static layout
        layer = np.floor(index / (count / CRYSTAL_LAYERS))
        angle_step = (layer + 4.0) * 0.8
        angle = np.mod(index, angle_step) * (2.0 * math.pi / angle_step)
        lower = layer < 5
        radius = np.where(lower, (5.0 - layer) * 3.0, (layer - 4.0) * 2.0)
        self._crystal_x = (np.cos(angle) * radius).astype(np.float32)
        self._crystal_z = (np.sin(angle) * radius).astype(np.float32)
        height = np.where(lower, layer * 2.0 - 10.0, (10.0 - layer) * 2.0 - 10.0)
        self._crystal_y = height.astype(np.float32)

        # Frame scratch
        self._a = np.empty(count, dtype=np.float64)
        self._b = np.empty(count, dtype=np.float64)
        self._c = np.empty(count, dtype=np.float64)
        self._wave_len = 0
        self._wave_index = np.zeros(count, dtype=np.intp)
        self._wave_bytes = np.empty(count, dtype=np.uint8)
        self._offset = np.empty(count, dtype=np.float32)
        self._previous = np.empty_like(self.positions)
        self._moved = np.empty(count * 3, dtype=bool)
        self.revision += 1

    def ensure(self, count: int, shape: str) -> bool:
        """
        Reallocate if the density or active shape changed.

        Returns:
            True if new buffers were created.
        """
        if self.allocated and count == self.count and shape == self.shape:
            return False
        self.allocate(count, shape)
        return True

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    def _place_ambient(self, t: float):
        radius, angle, scratch = self._a, self._b, self._c

        np.add(self._phase_orbit, t, out=radius)
        np.sin(radius, out=radius)
        radius *= 5.0
        radius += 20.0

        np.add(self._phase_orbit, 0.5 * t, out=angle)

        np.cos(angle, out=scratch)
        scratch *= radius
        self._pos3[:, 0] = scratch

        np.sin(angle, out=scratch)
        scratch *= radius
        self._pos3[:, 2] = scratch

        np.add(self._phase_bob, t, out=scratch)
        np.sin(scratch, out=scratch)
        scratch *= 10.0
        self._pos3[:, 1] = scratch

    def _place_sphere(self, bass: float):
        np.multiply(self._sphere_unit, 15.0 + bass * 10.0, out=self._pos3)

    def _waveform_offset(self, sample: np.ndarray) -> np.ndarray:
        """Height offsets from a byte waveform, written into scratch."""
        sample = np.asarray(sample, dtype=np.uint8)
        if len(sample) != self._wave_len:
            self._wave_len = len(sample)
            self._wave_index = np.floor(self._fraction * len(sample)).astype(np.intp)
        np.take(sample, self._wave_index, out=self._wave_bytes, mode="clip")
        np.subtract(self._wave_bytes, np.float32(128.0), out=self._offset)
        self._offset *= np.float32(WAVEFORM_HEIGHT_GAIN)
        return self._offset

    def _place_ring(self, x_unit, z_unit, height, radius: float, offset=None):
        np.multiply(x_unit, radius, out=self._pos3[:, 0])
        np.multiply(z_unit, radius, out=self._pos3[:, 2])
        if offset is None:
            self._pos3[:, 1] = height
        else:
            np.add(height, offset, out=self._pos3[:, 1])

    def update(
        self,
        shape: str,
        bands: FrequencyBands,
        elapsed: float,
        mode: str,
        color_intensity: float,
        sample: np.ndarray | None = None,
    ) -> bool:
        """
        Rewrite positions and colors in place for this frame.

        Args:
            shape: Active shape (one of SHAPES).
            bands: Band levels for this frame.
            elapsed: Seconds since the loop started.
            mode: Visualization mode; waveform mode offsets ring heights.
            color_intensity: Configured color intensity (10-100).
            sample: Byte waveform used for height offsets in waveform mode.

        Returns:
            True if any particle position changed.
        """
        if not self.allocated:
            raise ResourceDisposalError("Particle buffers have been released")
        if shape not in SHAPES:
            raise ValueError(f"Unknown shape {shape!r}")

        np.copyto(self._previous, self.positions)

        if shape == AMBIENT:
            self._place_ambient(elapsed)
        elif shape == SPHERE:
            self._place_sphere(bands.bass)
        else:
            if shape == CYLINDER:
                ring = (self._cylinder_x, self._cylinder_z, self._cylinder_y, 12.0 + bands.mid * 8.0)
            else:
                ring = (self._crystal_x, self._crystal_z, self._crystal_y, 1.0)
            offset = None
            if mode == WAVEFORM and sample is not None and len(sample) > 0:
                offset = self._waveform_offset(sample)
            self._place_ring(*ring, offset=offset)

        lightness = shimmer_lightness(color_intensity, bands.total) / 100.0
        ramps_to_rgb(self._ramps, 1.0, lightness, out=self._col3)

        np.not_equal(self._previous, self.positions, out=self._moved)
        changed = bool(self._moved.any())
        if changed:
            self.revision += 1
        return changed

    @property
    def points(self) -> np.ndarray:
        """(N, 3) view of the positions."""
        return self._pos3

    @property
    def point_colors(self) -> np.ndarray:
        """(N, 3) view of the colors."""
        return self._col3

    def release(self):
        """
        Drop the buffers.

        Raises:
            ResourceDisposalError: If the buffers were already released.
        """
        if not self.allocated:
            raise ResourceDisposalError("Particle buffers already released")
        self.positions = None
        self.colors = None
        self._pos3 = None
        self._col3 = None
        self._previous = None
        self._moved = None
