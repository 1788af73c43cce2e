"""End-to-end tests for the per-tick frame pipeline."""

import dataclasses

import numpy as np
import pytest

from chromafield.color.presets import get_palette_preset
from chromafield.core.ripples import OverflowPolicy
from chromafield.pipeline import FramePipeline, FrameState

FPS = 30
DT = 1.0 / FPS


def pulse_frames(raw_frame, seconds, start=0.0, period=0.5, bass=0.9, treble=0.1):
    """Bass hits every *period* seconds for *seconds*."""
    frames = []
    for i in range(int(seconds * FPS)):
        t = start + i / FPS
        hit = (t - start) % period < 0.1
        frames.append(raw_frame(t, bass=bass if hit else 0.0, treble=treble if hit else 0.0))
    return frames


class TestFramePipeline:
    def test_bass_hit(self, raw_frame, palette_config):
        """A bass hit produces an onset, a centered ripple and a warm hue shift."""
        pipeline = FramePipeline(palette_config)
        pipeline.process(raw_frame(0.0))
        state = pipeline.process(raw_frame(DT, bass=0.9, mid=0.1, treble=0.1))

        assert state.features.bass_beat.onset
        assert state.features.bass_beat.intensity == pytest.approx(0.9, abs=0.05)
        bass_ripples = [e for e in state.ripples.events if e.center[1] < 0]
        assert len(bass_ripples) == 1
        assert bass_ripples[0].center[0] == pytest.approx(0.0)
        assert state.hue_shift < 0.0

    def test_silence_drains(self, raw_frame, palette_config):
        """After loud input, silence returns time debt to zero and empties the pool."""
        pipeline = FramePipeline(palette_config)
        loud = pulse_frames(raw_frame, 4.0, bass=1.0, treble=1.0)
        for frame in loud:
            state = pipeline.process(frame)
        assert state.time_offset > 0.0

        start = loud[-1].time + DT
        states = [pipeline.process(raw_frame(start + i * DT)) for i in range(20 * FPS)]

        quiet = [s for s in states if s.features.smoothed_volume < 0.12]
        assert quiet
        offsets = [s.time_offset for s in quiet]
        peak = offsets.index(max(offsets))
        assert all(b <= a for a, b in zip(offsets[peak:], offsets[peak + 1:]))
        assert offsets[-1] == pytest.approx(0.0, abs=1e-6)
        assert pipeline.time_debt.offset == 0.0
        assert states[-1].ripples.active_count == 0
        assert pipeline.ripples.active_count == 0

    def test_time_offset_is_smoothed(self, raw_frame, palette_config):
        """The frame carries the glided offset, which trails a rising debt."""
        pipeline = FramePipeline(palette_config)
        lagging = []
        for frame in pulse_frames(raw_frame, 2.0, bass=1.0, treble=1.0):
            state = pipeline.process(frame)
            assert state.time_offset == pipeline.time_debt.smoothed
            lagging.append(0.0 < state.time_offset < pipeline.time_debt.offset)
        assert any(lagging)

    def test_regular_hits_estimate_bpm(self, raw_frame, palette_config):
        pipeline = FramePipeline(palette_config)
        for frame in pulse_frames(raw_frame, 6.0):
            state = pipeline.process(frame)
        assert state.features.bpm == pytest.approx(120.0, rel=0.05)

    def test_ripples_never_exceed_capacity(self, raw_frame, palette_config):
        pipeline = FramePipeline(palette_config, ripple_capacity=3)
        for frame in pulse_frames(raw_frame, 4.0, period=0.2):
            state = pipeline.process(frame)
            assert state.ripples.active_count <= 3

    def test_drop_newest_policy(self, raw_frame, palette_config):
        pipeline = FramePipeline(
            palette_config, ripple_capacity=1, ripple_overflow=OverflowPolicy.DROP_NEWEST
        )
        pipeline.process(raw_frame(0.0))
        first = pipeline.process(raw_frame(DT, bass=0.9))
        spawn_time = first.ripples.events[0].spawn_time
        for frame in pulse_frames(raw_frame, 1.0, start=0.5):
            state = pipeline.process(frame)
        assert state.ripples.events[0].spawn_time == spawn_time

    def test_state_is_frozen(self, raw_frame, palette_config):
        state = FramePipeline(palette_config).process(raw_frame(0.0, bass=0.5))
        assert isinstance(state, FrameState)
        with pytest.raises(dataclasses.FrozenInstanceError):
            state.time_offset = 1.0

    def test_snapshot_survives_later_ticks(self, raw_frame, palette_config):
        pipeline = FramePipeline(palette_config)
        pipeline.process(raw_frame(0.0))
        hit = pipeline.process(raw_frame(DT, bass=0.9))
        count = hit.ripples.active_count
        for i in range(2, 400):
            pipeline.process(raw_frame(i * DT))
        assert hit.ripples.active_count == count

    def test_render(self, raw_frame, palette_config):
        pipeline = FramePipeline(palette_config)
        state = pipeline.process(raw_frame(0.0, bass=0.6, mid=0.4, treble=0.2))
        image = state.render(16, 9)
        assert image.shape == (9, 16, 3)
        assert image.dtype == np.uint8
        r, g, b = state.compose((0.0, 0.0))
        assert 0.0 <= r <= 1.0 and 0.0 <= g <= 1.0 and 0.0 <= b <= 1.0

    def test_modulation_disabled(self, raw_frame, palette_config):
        pipeline = FramePipeline(palette_config, modulate_colors=False)
        for frame in pulse_frames(raw_frame, 2.0):
            state = pipeline.process(frame)
        assert state.hue_shift == 0.0
        assert pipeline.modulator.config is palette_config

    def test_set_palette(self, raw_frame):
        pipeline = FramePipeline()
        red = get_palette_preset("red")
        pipeline.set_palette(red)
        state = pipeline.process(raw_frame(0.0))
        assert pipeline.modulator.base_config is red
        assert len(state.palette) == 10

    def test_metadata_bpm(self, raw_frame, palette_config):
        pipeline = FramePipeline(palette_config)
        pipeline.set_metadata_bpm(140.0)
        assert pipeline.process(raw_frame(0.0)).features.bpm == 140.0

    def test_reset(self, raw_frame, palette_config):
        pipeline = FramePipeline(palette_config)
        for frame in pulse_frames(raw_frame, 2.0):
            pipeline.process(frame)
        pipeline.reset()
        assert pipeline.last_state is None
        assert pipeline.ripples.active_count == 0
        assert pipeline.time_debt.offset == 0.0
        assert pipeline.modulator.hue_shift == 0.0
