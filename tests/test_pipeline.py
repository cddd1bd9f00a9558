"""Tests for the audio analysis pipeline."""

import threading

import numpy as np
import pytest

from tidescope.config import MICROPHONE, NO_SOURCE, SAMPLE_CLIP, SPECTRUM, SYNTHETIC_TONE, WAVEFORM
from tidescope.core.sources import ToneSource
from tidescope.errors import DeviceSetupFailure, PermissionDenied, ValidationError
from tidescope.pipeline import AcquisitionRequest, AudioAnalysisPipeline


class TestConfigure:
    """Tests for synchronous source switching."""

    def test_starts_inactive(self):
        pipeline = AudioAnalysisPipeline()

        assert not pipeline.active
        assert pipeline.source_kind == NO_SOURCE

    def test_inactive_sample_is_zero_in_both_modes(self):
        pipeline = AudioAnalysisPipeline()

        assert np.all(pipeline.sample(SPECTRUM) == 0)
        assert np.all(pipeline.sample(WAVEFORM) == 0)

    def test_denied_microphone_then_tone(self, denied_sd):
        """A refused microphone leaves the pipeline usable for a fallback."""
        pipeline = AudioAnalysisPipeline()

        with pytest.raises(PermissionDenied):
            pipeline.configure(MICROPHONE)
        assert not pipeline.active

        pipeline.configure(SYNTHETIC_TONE)
        spectrum = pipeline.sample(SPECTRUM)

        assert pipeline.active
        assert pipeline.source_kind == SYNTHETIC_TONE
        assert spectrum.max() > 0
        pipeline.teardown()

    def test_microphone(self, fake_sd):
        pipeline = AudioAnalysisPipeline()
        pipeline.configure(MICROPHONE)
        fake_sd.streams[0].push(np.full(512, 0.5))

        wave = pipeline.sample(WAVEFORM)

        assert pipeline.source_kind == MICROPHONE
        assert np.all(wave == 192)

    def test_switch_releases_previous(self):
        pipeline = AudioAnalysisPipeline()
        pipeline.configure(SYNTHETIC_TONE)
        previous = pipeline._source

        pipeline.configure(NO_SOURCE)

        assert previous.closed
        assert not pipeline.active

    def test_clip_without_path(self):
        pipeline = AudioAnalysisPipeline()

        with pytest.raises(DeviceSetupFailure):
            pipeline.configure(SAMPLE_CLIP)

    def test_clip(self, temp_audio_file, fake_sd):
        pipeline = AudioAnalysisPipeline(sample_clip=temp_audio_file)
        pipeline.configure(SAMPLE_CLIP)

        assert pipeline.source_kind == SAMPLE_CLIP
        pipeline.teardown()
        assert fake_sd.stop_calls == 1

    def test_unknown_kind(self):
        pipeline = AudioAnalysisPipeline()

        with pytest.raises(ValidationError):
            pipeline.configure("theremin")

    def test_reduce_bands(self):
        bands = AudioAnalysisPipeline.reduce_bands(np.full(128, 255, dtype=np.uint8))

        assert bands.total == pytest.approx(1.0)

    def test_teardown_twice(self):
        pipeline = AudioAnalysisPipeline()
        pipeline.configure(SYNTHETIC_TONE)
        source = pipeline._source

        pipeline.teardown()
        pipeline.teardown()

        assert source.closed
        assert not pipeline.active


class TestRequest:
    """Tests for asynchronous acquisition tokens."""

    def test_request_resolves(self):
        pipeline = AudioAnalysisPipeline()
        token = pipeline.request(SYNTHETIC_TONE)

        assert isinstance(token, AcquisitionRequest)
        assert token.wait(timeout=5.0)
        assert token.succeeded
        assert pipeline.source_kind == SYNTHETIC_TONE
        pipeline.teardown()

    def test_failure_recorded_on_token(self, denied_sd):
        pipeline = AudioAnalysisPipeline()
        token = pipeline.request(MICROPHONE)

        assert token.wait(timeout=5.0)
        assert isinstance(token.error, PermissionDenied)
        assert not token.succeeded
        assert not pipeline.active

    def test_unknown_kind_raises_immediately(self):
        pipeline = AudioAnalysisPipeline()

        with pytest.raises(ValidationError):
            pipeline.request("theremin")

    def test_superseded_request_releases_its_device(self):
        """A device that opens after its request was cancelled is closed."""
        pipeline = AudioAnalysisPipeline()
        gate = threading.Event()
        opened = []
        original = pipeline._open_source

        def slow_open(kind):
            if kind == SYNTHETIC_TONE:
                gate.wait(timeout=5.0)
                source = ToneSource()
                opened.append(source)
                return source
            return original(kind)

        pipeline._open_source = slow_open

        first = pipeline.request(SYNTHETIC_TONE)
        second = pipeline.request(NO_SOURCE)
        assert second.wait(timeout=5.0)
        assert first.cancelled

        gate.set()
        assert first.wait(timeout=5.0)

        assert not first.succeeded
        assert opened[0].closed
        assert not pipeline.active

    def test_cancel_pending(self):
        pipeline = AudioAnalysisPipeline()
        gate = threading.Event()

        def slow_open(kind):
            gate.wait(timeout=5.0)
            return ToneSource()

        pipeline._open_source = slow_open
        token = pipeline.request(SYNTHETIC_TONE)
        pipeline.cancel_pending()
        gate.set()

        assert token.wait(timeout=5.0)
        assert token.cancelled
        assert not pipeline.active

    def test_install_rejects_stale_token(self):
        """A token that is no longer pending cannot replace the active source."""
        pipeline = AudioAnalysisPipeline()
        pipeline.configure(SYNTHETIC_TONE)
        active = pipeline._source

        stale = AcquisitionRequest(SYNTHETIC_TONE)
        pipeline._pending = AcquisitionRequest(MICROPHONE)
        late = ToneSource()

        assert not pipeline._install(late, stale)
        assert late.closed
        assert pipeline._source is active
        assert not active.closed
        pipeline.teardown()

    def test_configure_wins_over_inflight_request(self):
        """A synchronous switch keeps its source when a slower request lands."""
        pipeline = AudioAnalysisPipeline()
        gate = threading.Event()
        opened = []
        original = pipeline._open_source

        def open_source(kind):
            if threading.current_thread().name.startswith("tidescope-acquire"):
                gate.wait(timeout=5.0)
                source = original(kind)
                opened.append(source)
                return source
            return original(kind)

        pipeline._open_source = open_source

        token = pipeline.request(SYNTHETIC_TONE)
        pipeline.configure(SYNTHETIC_TONE)
        configured = pipeline._source

        gate.set()
        assert token.wait(timeout=5.0)

        assert token.cancelled
        assert not token.succeeded
        assert opened[0].closed
        assert pipeline._source is configured
        assert pipeline.active
        pipeline.teardown()
