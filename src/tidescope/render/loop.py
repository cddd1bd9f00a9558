"""
Frame orchestration.

One tick: FPS accounting, audio pull and band reduction, shape selection,
particle update, optional connection graph, camera advance, draw
submission and scheduling of the next tick.
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from tidescope.config import NO_SOURCE, SAMPLE_CLIP, VisualizerConfig
from tidescope.core.analyzer import FrequencyBands, reduce_bands
from tidescope.core.field import ParticleField
from tidescope.core.graph import ConnectionGraph, build_connections, empty_graph
from tidescope.core.interaction import InteractionController
from tidescope.core.shapes import AMBIENT, current_shape
from tidescope.errors import ResourceDisposalError
from tidescope.pipeline import AcquisitionRequest, AudioAnalysisPipeline
from tidescope.render.canvas import DrawCall, PygameCanvas
from tidescope.render.scheduler import FrameScheduler, ManualScheduler

logger = logging.getLogger(__name__)


class FpsCounter:
    """Frames per second over rolling one-second windows."""

    def __init__(self, initial: int = 60, window_ms: float = 1000.0):
        self.fps = initial
        self.window_ms = window_ms
        self.frame_count = 0
        self.last_time = 0.0

    def reset(self, now_ms: float):
        self.frame_count = 0
        self.last_time = now_ms

    def tick(self, now_ms: float) -> int:
        self.frame_count += 1
        elapsed = now_ms - self.last_time
        if elapsed >= self.window_ms:
            self.fps = round(self.frame_count * 1000.0 / elapsed)
            self.reset(now_ms)
        return self.fps


@dataclass
class Telemetry:
    """Read-only numbers for the UI layer."""

    fps: int
    particle_count: int
    band_levels: dict[str, int] = field(default_factory=dict)
    shape: str = AMBIENT


class RenderLoop:
    """
    Cancellable per-frame driver for the particle field.

    All frame state (buffers, camera, counters) is touched only from the
    scheduler's callback, so nothing here needs a lock. Configuration
    changes are validated on submission and swapped in at the start of the
    next frame.
    """

    def __init__(
        self,
        config: VisualizerConfig | None = None,
        pipeline: AudioAnalysisPipeline | None = None,
        scheduler: FrameScheduler | None = None,
        canvas: PygameCanvas | None = None,
        controller: InteractionController | None = None,
    ):
        self.config = config or VisualizerConfig()
        self.pipeline = pipeline or AudioAnalysisPipeline(
            sample_clip=self.config.sample_clip,
            monitor_clip=self.config.monitor_clip,
        )
        self.scheduler = scheduler or ManualScheduler(fps=self.config.fps)
        self.canvas = canvas
        self.controller = controller or InteractionController()

        self.field = ParticleField()
        self.graph: ConnectionGraph = empty_graph()
        self.fps = FpsCounter()
        self.bands = FrequencyBands()
        self.shape = AMBIENT
        self.frame_index = 0
        self.last_draw: DrawCall | None = None
        self.last_sample: np.ndarray | None = None
        self.acquisition: AcquisitionRequest | None = None

        self._pending_config: VisualizerConfig | None = None
        self._graph_revision = -1
        self._handle: int | None = None
        self._start_ms = 0.0
        self._running = False
        self._in_frame = False
        self._teardown_requested = False
        self._torn_down = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    def start(self):
        """Begin scheduling frames and acquire the configured source."""
        if self._torn_down:
            raise ResourceDisposalError("Render loop has been torn down")
        if self._running:
            return

        self._start_ms = self.scheduler.now()
        self.fps.reset(self._start_ms)
        if self.config.source_selection != NO_SOURCE:
            self.acquisition = self.pipeline.request(self.config.source_selection)

        self._running = True
        self._handle = self.scheduler.request_frame(self._tick)
        logger.info(
            "Render loop started: %d particles, %s mode",
            self.config.density,
            self.config.visualization_mode,
        )

    def stop(self):
        """Cancel the scheduled frame; no further frame will run."""
        self._running = False
        self.scheduler.cancel_frame(self._handle)
        self._handle = None

    def teardown(self):
        """
        Stop the loop and release audio, canvas and buffers. Idempotent.

        Called from inside a frame, the release waits until that frame has
        finished.
        """
        if self._torn_down:
            return
        self.stop()
        if self._in_frame:
            self._teardown_requested = True
            return
        self._release()

    def _release(self):
        self._torn_down = True
        self._teardown_requested = False
        self.pipeline.teardown()
        if self.canvas is not None:
            try:
                self.canvas.dispose()
            except ResourceDisposalError:
                logger.debug("Canvas already disposed")
        try:
            self.field.release()
        except ResourceDisposalError:
            logger.debug("Particle buffers already released")
        self.graph = empty_graph()
        self.last_draw = None
        logger.info("Render loop torn down after %d frames", self.frame_index)

    # ------------------------------------------------------------------
    # Configuration surface
    # ------------------------------------------------------------------

    def update_config(self, **changes) -> VisualizerConfig:
        """
        Queue a configuration change for the next frame.

        Raises:
            ValidationError: If the resulting config is invalid; nothing is
                queued in that case.
        """
        base = self.requested_config
        new_config = base.with_changes(**changes)
        self._pending_config = new_config
        return new_config

    @property
    def requested_config(self) -> VisualizerConfig:
        """The config the next frame will run with."""
        return self._pending_config or self.config

    def _apply_pending_config(self):
        new_config, self._pending_config = self._pending_config, None
        if new_config is None:
            return
        old_config, self.config = self.config, new_config

        if new_config.sample_clip != old_config.sample_clip:
            self.pipeline.sample_clip = new_config.sample_clip
        self.pipeline.monitor_clip = new_config.monitor_clip

        source_changed = new_config.source_selection != old_config.source_selection
        clip_changed = (
            new_config.source_selection == SAMPLE_CLIP
            and new_config.sample_clip != old_config.sample_clip
        )
        if source_changed or clip_changed:
            self.acquisition = self.pipeline.request(new_config.source_selection)

    def resize(self, width: int, height: int):
        """Resize the draw target; particle buffers and shape are kept."""
        if self.canvas is not None and not self.canvas.disposed:
            self.canvas.resize(width, height)

    @property
    def telemetry(self) -> Telemetry:
        return Telemetry(
            fps=self.fps.fps,
            particle_count=self.field.count,
            band_levels=self.bands.as_percentages(),
            shape=self.shape,
        )

    # ------------------------------------------------------------------
    # Frame
    # ------------------------------------------------------------------

    def _tick(self, now_ms: float):
        self._handle = None
        if not self._running:
            return

        self._in_frame = True
        try:
            self.render_frame(now_ms)
        except Exception:
            logger.exception("Frame %d failed; continuing", self.frame_index)
        finally:
            self._in_frame = False

        if self._teardown_requested:
            self._release()
            return
        if self._running:
            self._handle = self.scheduler.request_frame(self._tick)

    def render_frame(self, now_ms: float) -> DrawCall:
        """Run one frame's pipeline and submit the draw."""
        self._apply_pending_config()
        cfg = self.config
        mode = cfg.visualization_mode

        # 1. Timing
        self.fps.tick(now_ms)
        elapsed = (now_ms - self._start_ms) / 1000.0

        # 2. Audio for the active mode
        sample = self.pipeline.sample(mode)
        self.bands = reduce_bands(sample)
        self.last_sample = sample

        # 3. Shape
        self.shape = current_shape(mode, self.bands.total)

        # 4. Particles
        self.field.ensure(cfg.density, self.shape)
        self.field.update(
            self.shape,
            self.bands,
            elapsed,
            mode,
            cfg.color_intensity,
            sample,
        )

        # 5. Connections
        if cfg.connections_enabled:
            if self.field.revision != self._graph_revision:
                self.graph = build_connections(self.field.positions)
                self._graph_revision = self.field.revision
        elif len(self.graph):
            self.graph = empty_graph()
            self._graph_revision = -1

        # 6. Camera
        self.controller.advance()

        # 7. Draw
        call = DrawCall(
            points=self.field.points,
            colors=self.field.point_colors,
            point_size=cfg.particle_size,
            camera=self.controller.camera,
        )
        if cfg.connections_enabled and len(self.graph):
            call.segments = self.graph.segments(self.field.points)
            call.segment_colors = self.graph.segment_colors()
        if self.canvas is not None:
            self.canvas.draw(call)

        self.last_draw = call
        self.frame_index += 1
        return call
