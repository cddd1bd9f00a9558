"""Tests for the render loop."""

import numpy as np
import pytest

from tidescope.config import NO_SOURCE, SPECTRUM, SYNTHETIC_TONE, WAVEFORM, VisualizerConfig
from tidescope.core.interaction import InteractionController
from tidescope.core.analyzer import reduce_bands
from tidescope.core.shapes import AMBIENT, CRYSTAL, SPHERE
from tidescope.errors import DeviceSetupFailure, ResourceDisposalError, ValidationError
from tidescope.pipeline import AudioAnalysisPipeline
from tidescope.render.canvas import PygameCanvas
from tidescope.render.loop import FpsCounter, RenderLoop
from tidescope.render.scheduler import ManualScheduler


def _loop(**config_kwargs) -> tuple[RenderLoop, ManualScheduler]:
    config = VisualizerConfig(**config_kwargs)
    scheduler = ManualScheduler(fps=config.fps)
    return RenderLoop(config, scheduler=scheduler), scheduler


class TestFpsCounter:
    def test_counts_per_window(self):
        counter = FpsCounter()
        counter.reset(0.0)
        for k in range(1, 46):
            counter.tick(k * 25.0)  # 40 fps

        assert counter.fps == 40

    def test_initial_value_until_window_closes(self):
        counter = FpsCounter(initial=60)
        counter.reset(0.0)
        counter.tick(10.0)

        assert counter.fps == 60


class TestRenderLoop:
    """Tests for per-frame orchestration."""

    def test_runs_frames(self):
        loop, scheduler = _loop()
        loop.start()
        ran = scheduler.run(10)

        assert ran == 10
        assert loop.frame_index == 10
        assert loop.last_draw.points.shape == (800, 3)
        assert loop.shape == AMBIENT  # no source, silence
        assert scheduler.pending == 1

    def test_fps_telemetry(self):
        loop, scheduler = _loop(fps=30)
        loop.start()
        scheduler.run(100)
        telemetry = loop.telemetry

        assert telemetry.fps == 30
        assert telemetry.particle_count == 800
        assert telemetry.band_levels == {"bass": 0, "mid": 0, "treble": 0, "total": 0}
        assert telemetry.shape == AMBIENT

    def test_camera_auto_rotates(self):
        loop, scheduler = _loop()
        loop.start()
        scheduler.run(10)

        assert loop.controller.camera.yaw == pytest.approx(0.05)

    def test_connections_drawn(self):
        class LoudPipeline(AudioAnalysisPipeline):
            def sample(self, mode):
                return np.full(128, 255, dtype=np.uint8)

        scheduler = ManualScheduler()
        loop = RenderLoop(pipeline=LoudPipeline(), scheduler=scheduler)
        loop.start()
        scheduler.run(2)
        call = loop.last_draw

        assert loop.shape == SPHERE
        assert call.segments is not None
        assert len(call.segments) == 2 * len(loop.graph)
        assert len(call.segment_colors) == len(call.segments)

    def test_connections_disabled(self):
        loop, scheduler = _loop(connections_enabled=False)
        loop.start()
        scheduler.run(2)

        assert loop.last_draw.segments is None
        assert len(loop.graph) == 0

    def test_toggle_connections_off(self):
        loop, scheduler = _loop()
        loop.start()
        scheduler.run(2)
        loop.update_config(connections_enabled=False)
        scheduler.step()

        assert len(loop.graph) == 0
        assert loop.last_draw.segments is None

    def test_density_change_reallocates(self):
        loop, scheduler = _loop()
        loop.start()
        scheduler.step()
        loop.update_config(density=300)

        assert loop.field.count == 800  # not before the next frame
        scheduler.step()
        assert loop.field.count == 300
        assert len(loop.field.positions) == 900

    def test_invalid_update_leaves_state(self):
        loop, scheduler = _loop()
        loop.start()
        scheduler.step()

        with pytest.raises(ValidationError):
            loop.update_config(density=10_000)
        scheduler.step()

        assert loop.config.density == 800
        assert loop.field.count == 800

    def test_updates_stack_until_next_frame(self):
        loop, scheduler = _loop()
        loop.update_config(density=400)
        loop.update_config(visualization_mode=WAVEFORM)
        loop.start()
        scheduler.step()

        assert loop.config.density == 400
        assert loop.config.visualization_mode == WAVEFORM

    def test_waveform_mode_runs(self):
        loop, scheduler = _loop(visualization_mode=WAVEFORM)
        loop.start()
        scheduler.run(5)

        assert np.all(np.isfinite(loop.field.positions))

    def test_resize_keeps_buffers(self):
        canvas = PygameCanvas(160, 120)
        config = VisualizerConfig(density=200)
        scheduler = ManualScheduler()
        loop = RenderLoop(config, scheduler=scheduler, canvas=canvas)
        loop.start()
        scheduler.run(2)
        buffers = loop.field.positions

        loop.resize(320, 240)
        scheduler.step()

        assert canvas.width == 320
        assert canvas.to_array().shape == (240, 320, 3)
        assert loop.field.positions is buffers
        loop.teardown()

    def test_source_selected_at_runtime(self):
        loop, scheduler = _loop()
        loop.start()
        loop.update_config(source_selection=SYNTHETIC_TONE)
        scheduler.step()

        assert loop.acquisition is not None
        assert loop.acquisition.wait(timeout=5.0)
        scheduler.run(5)

        assert loop.pipeline.source_kind == SYNTHETIC_TONE
        assert loop.bands.total > 0.0
        loop.teardown()

    def test_frame_error_is_contained(self):
        class FlakyPipeline(AudioAnalysisPipeline):
            calls = 0

            def sample(self, mode):
                self.calls += 1
                if self.calls == 1:
                    raise DeviceSetupFailure("device vanished")
                return super().sample(mode)

        scheduler = ManualScheduler()
        loop = RenderLoop(pipeline=FlakyPipeline(), scheduler=scheduler)
        loop.start()
        scheduler.run(3)

        assert loop.frame_index == 2
        assert loop.running

    def test_unexpected_frame_error_keeps_loop_scheduled(self):
        class BrokenPipeline(AudioAnalysisPipeline):
            calls = 0

            def sample(self, mode):
                self.calls += 1
                if self.calls == 1:
                    raise RuntimeError("analyser state corrupted")
                return super().sample(mode)

        scheduler = ManualScheduler()
        loop = RenderLoop(pipeline=BrokenPipeline(), scheduler=scheduler)
        loop.start()
        scheduler.run(3)

        assert loop.frame_index == 2
        assert loop.running
        assert scheduler.pending == 1


class TestModes:
    """Tests for mode-dependent audio reads."""

    def test_waveform_bands_come_from_waveform(self):
        class WavePipeline(AudioAnalysisPipeline):
            modes = []

            def sample(self, mode):
                self.modes.append(mode)
                if mode == WAVEFORM:
                    return np.full(128, 192, dtype=np.uint8)
                return np.zeros(128, dtype=np.uint8)

        pipeline = WavePipeline()
        scheduler = ManualScheduler()
        loop = RenderLoop(VisualizerConfig(visualization_mode=WAVEFORM), pipeline=pipeline, scheduler=scheduler)
        loop.start()
        scheduler.run(2)

        assert loop.bands == reduce_bands(loop.last_sample)
        assert loop.bands.total == pytest.approx(192 / 255)
        assert loop.shape == CRYSTAL
        assert set(pipeline.modes) == {WAVEFORM}

    def test_spectrum_reads_once_per_frame(self):
        class CountingPipeline(AudioAnalysisPipeline):
            modes = []

            def sample(self, mode):
                self.modes.append(mode)
                return super().sample(mode)

        pipeline = CountingPipeline()
        scheduler = ManualScheduler()
        loop = RenderLoop(pipeline=pipeline, scheduler=scheduler)
        loop.start()
        scheduler.run(4)

        assert pipeline.modes == [SPECTRUM] * 4


class TestTeardown:
    def test_teardown_twice(self):
        loop, scheduler = _loop()
        loop.start()
        scheduler.run(3)

        loop.teardown()
        loop.teardown()

        assert loop.torn_down
        assert scheduler.pending == 0
        assert scheduler.run(5) == 0
        assert loop.frame_index == 3

    def test_teardown_releases_resources(self):
        canvas = PygameCanvas(160, 120)
        scheduler = ManualScheduler()
        loop = RenderLoop(VisualizerConfig(source_selection=SYNTHETIC_TONE), scheduler=scheduler, canvas=canvas)
        loop.start()
        loop.acquisition.wait(timeout=5.0)
        scheduler.step()

        loop.teardown()

        assert canvas.disposed
        assert not loop.field.allocated
        assert not loop.pipeline.active
        assert loop.pipeline.source_kind == NO_SOURCE

    def test_teardown_inside_frame_is_deferred(self):
        """Teardown from a frame callback finishes that frame first."""
        scheduler = ManualScheduler()
        holder = {}

        class ClosingController(InteractionController):
            def advance(self):
                super().advance()
                holder["loop"].teardown()
                holder["allocated"] = holder["loop"].field.allocated

        loop = RenderLoop(scheduler=scheduler, controller=ClosingController())
        holder["loop"] = loop
        loop.start()
        scheduler.step()

        assert holder["allocated"]
        assert loop.frame_index == 1
        assert loop.torn_down
        assert scheduler.pending == 0

    def test_start_after_teardown(self):
        loop, _ = _loop()
        loop.teardown()

        with pytest.raises(ResourceDisposalError):
            loop.start()

    def test_teardown_before_start(self):
        loop, scheduler = _loop()
        loop.teardown()

        assert loop.torn_down
        assert scheduler.pending == 0

    def test_stop_halts_frames(self):
        loop, scheduler = _loop()
        loop.start()
        scheduler.run(2)
        loop.stop()

        assert scheduler.run(5) == 0
        assert loop.frame_index == 2
        loop.teardown()
