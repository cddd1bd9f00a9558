"""
CLI entry point for the tidescope particle visualizer.

Usage:
    tidescope [options]
    python -m tidescope [options]

Interactive keys:
    drag      orbit the field          wheel   zoom
    r         reset camera             m       spectrum / waveform
    c         toggle connections       up/down density +/- 50
    1/2/3/0   microphone / clip / tone / no source
    s         save snapshot            esc, q  quit
"""

import argparse
import logging
import os
import sys
import time
from pathlib import Path

from tidescope.config import (
    MICROPHONE,
    NO_SOURCE,
    PROFILES,
    SAMPLE_CLIP,
    SOURCE_KINDS,
    SPECTRUM,
    SYNTHETIC_TONE,
    VISUALIZATION_MODES,
    WAVEFORM,
    VisualizerConfig,
)
from tidescope.errors import ValidationError

logger = logging.getLogger(__name__)

SCROLL_NOTCH = 100.0  # wheel delta per notch, in browser-style pixels
DENSITY_STEP = 50
SOURCE_KEYS = {
    "1": MICROPHONE,
    "2": SAMPLE_CLIP,
    "3": SYNTHETIC_TONE,
    "0": NO_SOURCE,
}


def _progress_bar(current: int, total: int, width: int = 35):
    """Print a progress bar to stdout."""
    pct = current / max(total, 1) * 100
    filled = int(width * current / max(total, 1))
    bar = "#" * filled + "-" * (width - filled)
    if sys.stdout.isatty():
        sys.stdout.write(f"\r[{bar}] {pct:5.1f}%  frame {current}/{total}")
        sys.stdout.flush()
        if current >= total:
            sys.stdout.write("\n")
    else:
        if current % max(1, total // 20) == 0 or current >= total:
            print(f"{pct:5.1f}%  frame {current}/{total}", flush=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tidescope",
        description="Real-time audio-reactive 3D particle field",
    )

    # Audio
    parser.add_argument(
        "--source", type=str, default=MICROPHONE, choices=SOURCE_KINDS,
        help="Audio source (default: microphone, falling back to the tone)",
    )
    parser.add_argument("--clip", type=Path, default=None, help="Audio file for the sample_clip source")
    parser.add_argument("--no-monitor", action="store_true", help="Analyse the clip without playing it")
    parser.add_argument(
        "--mode", type=str, default=SPECTRUM, choices=VISUALIZATION_MODES,
        help="Visualization mode (default: spectrum)",
    )

    # Particles
    parser.add_argument("-d", "--density", type=int, default=800, help="Particle count (50-2000)")
    parser.add_argument("--size", type=float, default=2.0, help="Particle size (0.5-5)")
    parser.add_argument("--color-intensity", type=int, default=70, help="Color intensity (10-100)")
    parser.add_argument("--no-connections", action="store_true", help="Disable connection lines")

    # Resolution & Profile
    parser.add_argument(
        "-p", "--profile", type=str, default="low",
        choices=sorted(PROFILES),
        help="Window profile (low: 720p 30fps, medium: 1080p 60fps, high: 1440p 60fps)",
    )
    parser.add_argument("--width", type=int, default=None, help="Window width (overrides profile)")
    parser.add_argument("--height", type=int, default=None, help="Window height (overrides profile)")
    parser.add_argument("-f", "--fps", type=int, default=None, help="Frames per second (overrides profile)")

    # Headless
    parser.add_argument("--headless", action="store_true", help="Render off-screen without a window")
    parser.add_argument("--frames", type=int, default=120, help="Frames to render in headless mode")
    parser.add_argument("--snapshot", type=Path, default=None, help="Save the final frame as an image")

    parser.add_argument(
        "--log-level", type=str, default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


def config_from_args(args: argparse.Namespace) -> VisualizerConfig:
    """Resolve profile defaults and overrides into a validated config."""
    p_cfg = PROFILES[args.profile]
    return VisualizerConfig(
        density=args.density,
        particle_size=args.size,
        color_intensity=args.color_intensity,
        connections_enabled=not args.no_connections,
        visualization_mode=args.mode,
        source_selection=args.source,
        sample_clip=args.clip,
        monitor_clip=not args.no_monitor,
        width=args.width or p_cfg["width"],
        height=args.height or p_cfg["height"],
        fps=args.fps or p_cfg["fps"],
    )


class InteractiveSession:
    """
    Window-side glue: maps pygame events onto the loop and its controller.

    This is the UI layer's job, so it also owns the fallback policy when
    the chosen audio source cannot be opened.
    """

    def __init__(self, loop, snapshot_path: Path | None = None):
        self.loop = loop
        self.snapshot_path = snapshot_path or Path("tidescope_snapshot.png")
        self._fallback_done = False
        self._last_caption = 0.0

    def _fallback(self):
        token = self.loop.acquisition
        if self._fallback_done or token is None or not token.done or token.error is None:
            return
        if token.cancelled or token.kind == SYNTHETIC_TONE:
            return
        self._fallback_done = True
        print(f"Audio source '{token.kind}' unavailable ({token.error}); using the synthetic tone")
        self.loop.update_config(source_selection=SYNTHETIC_TONE)

    def _update_caption(self, pygame):
        now = time.monotonic()
        if now - self._last_caption < 0.5:
            return
        self._last_caption = now
        t = self.loop.telemetry
        bands = t.band_levels
        pygame.display.set_caption(
            f"tidescope  {t.fps} fps  {t.particle_count} particles  {t.shape}  "
            f"bass {bands.get('bass', 0)}%  mid {bands.get('mid', 0)}%  "
            f"treble {bands.get('treble', 0)}%"
        )

    def _on_key(self, pygame, event):
        loop = self.loop
        cfg = loop.requested_config
        key = event.key
        try:
            if key in (pygame.K_ESCAPE, pygame.K_q):
                loop.teardown()
            elif key == pygame.K_r:
                loop.controller.reset()
            elif key == pygame.K_m:
                loop.update_config(
                    visualization_mode=WAVEFORM if cfg.visualization_mode == SPECTRUM else SPECTRUM
                )
            elif key == pygame.K_c:
                loop.update_config(connections_enabled=not cfg.connections_enabled)
            elif key == pygame.K_UP:
                loop.update_config(density=cfg.density + DENSITY_STEP)
            elif key == pygame.K_DOWN:
                loop.update_config(density=cfg.density - DENSITY_STEP)
            elif key == pygame.K_s and loop.canvas is not None:
                loop.canvas.snapshot(self.snapshot_path)
            elif event.unicode in SOURCE_KEYS:
                self._fallback_done = False
                loop.update_config(source_selection=SOURCE_KEYS[event.unicode])
        except ValidationError as e:
            logger.warning("Rejected change: %s", e)

    def handle_events(self, events):
        import pygame

        controller = self.loop.controller
        for event in events:
            if event.type == pygame.QUIT:
                self.loop.teardown()
                return
            if event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
                controller.on_drag_start(*event.pos)
            elif event.type == pygame.MOUSEMOTION:
                controller.on_drag_move(*event.pos)
            elif event.type == pygame.MOUSEBUTTONUP and event.button == 1:
                controller.on_drag_end()
            elif event.type == pygame.WINDOWLEAVE:
                controller.on_drag_end()
            elif event.type == pygame.MOUSEWHEEL:
                # pygame reports +y for wheel-up; browsers report negative deltaY
                controller.on_scroll(-event.y * SCROLL_NOTCH)
            elif event.type == pygame.VIDEORESIZE:
                self.loop.resize(event.w, event.h)
            elif event.type == pygame.KEYDOWN:
                self._on_key(pygame, event)
            if self.loop.torn_down:
                return

        if not self.loop.torn_down:
            self._fallback()
            self._update_caption(pygame)


def run_headless(config: VisualizerConfig, frames: int, snapshot: Path | None):
    """Render ``frames`` frames off-screen and report telemetry."""
    os.environ.setdefault("SDL_VIDEODRIVER", "dummy")

    from tidescope.render.canvas import PygameCanvas
    from tidescope.render.loop import RenderLoop
    from tidescope.render.scheduler import ManualScheduler

    scheduler = ManualScheduler(fps=config.fps)
    canvas = PygameCanvas(config.width, config.height)
    loop = RenderLoop(config, scheduler=scheduler, canvas=canvas)

    loop.start()
    if loop.acquisition is not None:
        loop.acquisition.wait(timeout=5.0)
        if loop.acquisition.error is not None and loop.acquisition.kind != SYNTHETIC_TONE:
            print(f"  Audio source unavailable ({loop.acquisition.error}); using the synthetic tone")
            loop.update_config(source_selection=SYNTHETIC_TONE)

    print(f"Rendering {frames} frames at {config.width}x{config.height} @ {config.fps}fps")
    t0 = time.time()
    for i in range(frames):
        scheduler.step()
        _progress_bar(i + 1, frames)
    elapsed = time.time() - t0

    telemetry = loop.telemetry
    if snapshot is not None:
        canvas.snapshot(snapshot)
        print(f"  Snapshot: {snapshot}")

    print(f"  Shape: {telemetry.shape}, particles: {telemetry.particle_count}")
    print(f"  Bands: {telemetry.band_levels}")
    print(f"  Render took {elapsed:.1f}s ({frames / max(elapsed, 0.01):.1f} fps)")

    loop.teardown()
    return telemetry


def run_interactive(config: VisualizerConfig, snapshot: Path | None):
    """Open a window and run until it is closed."""
    import pygame

    from tidescope.render.canvas import PygameCanvas
    from tidescope.render.loop import RenderLoop
    from tidescope.render.scheduler import PygameScheduler

    pygame.init()
    try:
        canvas = PygameCanvas(config.width, config.height, windowed=True)
        scheduler = PygameScheduler(fps=config.fps)
        loop = RenderLoop(config, scheduler=scheduler, canvas=canvas)
        session = InteractiveSession(loop, snapshot_path=snapshot)
        scheduler.on_events = session.handle_events

        loop.start()
        scheduler.run()
        loop.teardown()
    finally:
        pygame.quit()


def main(argv: list[str] | None = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.clip is not None and not args.clip.exists():
        print(f"Error: Audio file not found: {args.clip}", file=sys.stderr)
        sys.exit(1)

    try:
        config = config_from_args(args)
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    if args.headless:
        run_headless(config, args.frames, args.snapshot)
    else:
        run_interactive(config, args.snapshot)


if __name__ == "__main__":
    main()
