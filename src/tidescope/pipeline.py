"""
Main audio analysis pipeline.

Owns the single active audio source and turns its latest snapshot into
byte spectra, waveforms and band levels for the render loop.
"""

import logging
import threading
from pathlib import Path

import numpy as np

from tidescope.config import (
    MICROPHONE,
    NO_SOURCE,
    SAMPLE_CLIP,
    SOURCE_KINDS,
    SYNTHETIC_TONE,
    WAVEFORM,
)
from tidescope.core.analyzer import (
    FrequencyBands,
    SpectrumAnalyser,
    reduce_bands,
    silence,
)
from tidescope.core.sources import (
    AudioSource,
    ClipSource,
    MicrophoneSource,
    ToneSource,
)
from tidescope.errors import (
    DeviceSetupFailure,
    ResourceDisposalError,
    TidescopeError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class AcquisitionRequest:
    """
    Token for one asynchronous source acquisition.

    A request that is cancelled before its device opens will close the
    device instead of installing it.
    """

    def __init__(self, kind: str):
        self.kind = kind
        self.error: TidescopeError | None = None
        self._cancelled = threading.Event()
        self._done = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def succeeded(self) -> bool:
        return self.done and self.error is None and not self.cancelled

    def cancel(self):
        self._cancelled.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the request resolves. Not for use on the render path."""
        return self._done.wait(timeout)

    def _finish(self, error: TidescopeError | None = None):
        self.error = error
        self._done.set()


class AudioAnalysisPipeline:
    """
    Single-source audio acquisition and per-frame analysis.

    Device errors stop here: ``configure`` reports them to its caller,
    ``request`` records them on the token, and the render path only ever
    sees a neutral silence sample.
    """

    def __init__(
        self,
        sample_clip: str | Path | None = None,
        monitor_clip: bool = True,
        microphone_device: int | str | None = None,
        analyser: SpectrumAnalyser | None = None,
    ):
        """
        Initialize the pipeline with no active source.

        Args:
            sample_clip: Audio file used for the sample_clip source.
            monitor_clip: Play the clip through the default output device.
            microphone_device: sounddevice input device (None = default).
            analyser: Spectrum analyser (defaults to the 256-point one).
        """
        self.sample_clip = Path(sample_clip) if sample_clip is not None else None
        self.monitor_clip = monitor_clip
        self.microphone_device = microphone_device
        self.analyser = analyser or SpectrumAnalyser()

        self._source: AudioSource | None = None
        self._pending: AcquisitionRequest | None = None
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        source = self._source
        return source is not None and not source.closed

    @property
    def source_kind(self) -> str:
        source = self._source
        return source.kind if source is not None else NO_SOURCE

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    def _open_source(self, kind: str) -> AudioSource | None:
        """Open a source for ``kind`` (None for the no-source selection)."""
        if kind == MICROPHONE:
            return MicrophoneSource(device=self.microphone_device)
        if kind == SYNTHETIC_TONE:
            return ToneSource()
        if kind == SAMPLE_CLIP:
            if self.sample_clip is None:
                raise DeviceSetupFailure("No sample clip configured")
            return ClipSource(self.sample_clip, monitor=self.monitor_clip)
        return None

    def _install(
        self,
        source: AudioSource | None,
        token: AcquisitionRequest | None = None,
    ) -> bool:
        """
        Make ``source`` the active source and release the previous one.

        With a ``token``, the swap only happens while that request is still
        the pending, uncancelled one; otherwise ``source`` is released and
        the active source is left alone.

        Returns:
            True if ``source`` was installed.
        """
        with self._lock:
            stale = token is not None and (token.cancelled or self._pending is not token)
            if not stale:
                previous, self._source = self._source, source
        if stale:
            logger.info("Acquisition of %s superseded; releasing it", token.kind)
            self._dispose(source)
            return False

        self.analyser.reset()
        self._dispose(previous)
        if source is not None:
            logger.info("Audio source active: %s", source.kind)
        return True

    def _dispose(self, source: AudioSource | None):
        if source is None:
            return
        try:
            source.close()
        except ResourceDisposalError:
            logger.debug("Source %s already released", source.kind)

    def _check_kind(self, kind: str):
        if kind not in SOURCE_KINDS:
            raise ValidationError(f"Unknown source kind {kind!r}; expected one of {SOURCE_KINDS}")

    def configure(self, kind: str):
        """
        Synchronously switch to the source ``kind``.

        The previous source is released first. On failure the pipeline is
        left inactive and the error is raised to the caller, who may pick a
        fallback source.

        Raises:
            PermissionDenied: Capture access was refused.
            DeviceSetupFailure: The audio subsystem could not initialize.
            ValidationError: ``kind`` is not a known source.
        """
        self._check_kind(kind)
        self.cancel_pending()
        self._install(None)

        try:
            source = self._open_source(kind)
        except TidescopeError as e:
            logger.warning("Could not open %s source: %s", kind, e)
            raise

        self._install(source)

    def request(self, kind: str) -> AcquisitionRequest:
        """
        Asynchronously switch to the source ``kind``.

        Any pending request is cancelled. The returned token resolves once
        the device has opened (or failed); errors are stored on it.
        """
        self._check_kind(kind)
        token = AcquisitionRequest(kind)
        with self._lock:
            previous, self._pending = self._pending, token
        if previous is not None:
            previous.cancel()

        worker = threading.Thread(
            target=self._acquire,
            args=(token,),
            name=f"tidescope-acquire-{kind}",
            daemon=True,
        )
        worker.start()
        return token

    def _acquire(self, token: AcquisitionRequest):
        try:
            source = self._open_source(token.kind)
        except TidescopeError as e:
            logger.warning("Acquisition of %s failed: %s", token.kind, e)
            self._install(None, token)
            token._finish(e)
            return

        self._install(source, token)
        token._finish()

    def cancel_pending(self):
        """Abandon the in-flight acquisition, if any."""
        with self._lock:
            pending, self._pending = self._pending, None
        if pending is not None and not pending.done:
            pending.cancel()

    # ------------------------------------------------------------------
    # Per-frame analysis
    # ------------------------------------------------------------------

    def sample(self, mode: str) -> np.ndarray:
        """
        Latest byte sample for ``mode`` or neutral silence when inactive.

        Spectrum reads advance the analyser's smoothing, so call this once
        per frame per mode.
        """
        source = self._source
        if source is None or source.closed:
            return silence()

        if mode == WAVEFORM:
            return self.analyser.waveform_bytes(source.read(self.analyser.n_bins))
        return self.analyser.frequency_bytes(source.read(self.analyser.fft_size))

    @staticmethod
    def reduce_bands(sample: np.ndarray) -> FrequencyBands:
        """Band levels of a byte sample in either mode."""
        return reduce_bands(sample)

    def teardown(self):
        """Release the active source and abandon pending requests. Idempotent."""
        self.cancel_pending()
        self._install(None)
