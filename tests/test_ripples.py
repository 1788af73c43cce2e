"""Tests for the ripple event pool."""

import numpy as np
import pytest

from chromafield.core.ripples import (
    BAND_RIPPLE_PARAMS,
    DEFAULT_RIPPLE_PARAMS,
    OverflowPolicy,
    RippleEventPool,
    RippleField,
    RippleParams,
    band_center_y,
)

SIMPLE = RippleParams(speed=1.0, width=0.1, min_radius=0.0, max_radius=1.0, intensity_multiplier=1.0)


def make_pool(**kwargs):
    kwargs.setdefault("rate_limit_count", None)
    return RippleEventPool(**kwargs)


class TestRippleParams:
    def test_merged_fills_defaults(self):
        merged = RippleParams(width=0.2).merged(DEFAULT_RIPPLE_PARAMS)
        assert merged.width == 0.2
        assert merged.speed == DEFAULT_RIPPLE_PARAMS.speed
        assert merged.max_radius == DEFAULT_RIPPLE_PARAMS.max_radius

    def test_band_presets(self):
        assert set(BAND_RIPPLE_PARAMS) == {"bass", "mid", "treble"}
        assert BAND_RIPPLE_PARAMS["bass"].width > BAND_RIPPLE_PARAMS["treble"].width

    def test_band_center_y(self):
        assert band_center_y("treble") > band_center_y("mid") > band_center_y("bass")
        assert band_center_y("bass", 1.0) < band_center_y("bass", 0.0)


class TestRippleEventPool:
    def test_capacity_validation(self):
        with pytest.raises(ValueError):
            RippleEventPool(capacity=0)
        with pytest.raises(ValueError):
            RippleEventPool(capacity=17)

    def test_spawn_and_event_fields(self):
        pool = make_pool()
        slot = pool.spawn((0.2, -0.1), 0.5, now=1.0, params=SIMPLE)
        assert slot == 0
        (event,) = pool.events
        assert event.center == (0.2, -0.1)
        assert event.target_radius == pytest.approx(0.5)
        assert event.movement_duration == pytest.approx(0.5)
        assert event.active

    @pytest.mark.parametrize("intensity", [0.0, -0.5, float("nan")])
    def test_ignores_non_positive_intensity(self, intensity):
        pool = make_pool()
        assert pool.spawn((0, 0), intensity, now=0.0) is None
        assert pool.active_count == 0

    def test_tick_retires_finished_events(self):
        pool = make_pool()
        pool.spawn((0, 0), 0.5, now=0.0, params=SIMPLE)
        pool.tick(0.49)
        assert pool.active_count == 1
        retired = pool.tick(0.5)
        assert retired == 1
        assert pool.active_count == 0

    def test_contribution_zero_once_done(self):
        pool = make_pool()
        pool.spawn((0, 0), 0.5, now=0.0, params=SIMPLE)
        # Not ticked yet, still active: render must already be 0 at age >= duration
        assert pool.render(0.5, 0.0, time=0.5) == 0.0
        assert pool.render(0.5, 0.0, time=10.0) == 0.0

    def test_contribution_positive_near_ring_before_done(self):
        pool = make_pool()
        pool.spawn((0, 0), 0.8, now=0.0, params=SIMPLE)
        duration = pool.events[0].movement_duration
        for age in np.linspace(0.0, duration * 0.99, 7):
            radius = pool.events[0].current_radius(age)
            for offset in (-0.09, 0.0, 0.09):
                r = max(radius + offset, 0.0)
                assert pool.render(r, 0.0, time=age) > 0.0

    def test_ring_formula(self):
        pool = make_pool()
        pool.spawn((0, 0), 1.0, now=0.0, params=SIMPLE)
        age = 0.25
        radius = 0.25
        fade = (1 - age / 1.0) ** 3
        expected = np.exp(-abs(0.4 - radius) / 0.1) * fade
        assert pool.render(0.4, 0.0, time=age) == pytest.approx(expected)

    def test_rings_are_additive(self):
        a = make_pool()
        a.spawn((0, 0), 0.6, now=0.0, params=SIMPLE)
        b = make_pool()
        b.spawn((0.3, 0.1), 0.9, now=0.1, params=SIMPLE)
        both = make_pool()
        both.spawn((0.3, 0.1), 0.9, now=0.1, params=SIMPLE)
        both.spawn((0, 0), 0.6, now=0.0, params=SIMPLE)
        x, y = np.meshgrid(np.linspace(-1, 1, 9), np.linspace(-1, 1, 9))
        np.testing.assert_allclose(
            both.render(x, y, 0.3), a.render(x, y, 0.3) + b.render(x, y, 0.3)
        )

    def test_never_exceeds_capacity(self):
        pool = make_pool(capacity=4)
        for i in range(20):
            pool.spawn((0, 0), 1.0, now=i * 0.01)
            assert pool.active_count <= 4
        assert pool.active_count == 4

    def test_recycle_oldest(self):
        pool = make_pool(capacity=3, overflow=OverflowPolicy.RECYCLE_OLDEST)
        for i in range(3):
            pool.spawn((0, 0), 1.0, now=float(i))
        slot = pool.spawn((0.5, 0.5), 1.0, now=3.0)
        assert slot == 0
        spawn_times = sorted(e.spawn_time for e in pool.events)
        assert spawn_times == [1.0, 2.0, 3.0]

    def test_drop_newest(self):
        pool = make_pool(capacity=3, overflow=OverflowPolicy.DROP_NEWEST)
        for i in range(3):
            pool.spawn((0, 0), 1.0, now=float(i) * 0.1)
        assert pool.spawn((0.5, 0.5), 1.0, now=0.3) is None
        spawn_times = sorted(e.spawn_time for e in pool.events)
        assert spawn_times == pytest.approx([0.0, 0.1, 0.2])

    def test_freed_slot_is_reused(self):
        pool = make_pool(capacity=2, overflow=OverflowPolicy.DROP_NEWEST)
        pool.spawn((0, 0), 0.1, now=0.0, params=SIMPLE)
        pool.spawn((0, 0), 1.0, now=0.0, params=SIMPLE)
        pool.tick(0.2)
        assert pool.active_count == 1
        assert pool.spawn((0, 0), 1.0, now=0.2) == 0

    def test_rate_limit(self):
        pool = RippleEventPool(capacity=16, rate_limit_count=3, rate_limit_window=0.5, cooldown=0.3)
        slots = [pool.spawn((0, 0), 1.0, now=0.01 * i) for i in range(5)]
        assert slots[:3] == [0, 1, 2]
        assert slots[3:] == [None, None]
        # Still cooling down
        assert pool.spawn((0, 0), 1.0, now=0.2) is None
        # Cooldown over
        assert pool.spawn((0, 0), 1.0, now=0.4) is not None

    def test_reset(self):
        pool = make_pool()
        pool.spawn((0, 0), 1.0, now=0.0)
        pool.reset()
        assert pool.active_count == 0


class TestRippleField:
    def test_snapshot_is_independent(self):
        pool = make_pool()
        pool.spawn((0, 0), 1.0, now=0.0, params=SIMPLE)
        pool.tick(0.1)
        snap = pool.snapshot()
        before = snap.render(0.1, 0.0)

        pool.reset()
        assert snap.active_count == 1
        assert snap.render(0.1, 0.0) == before
        assert snap.time == 0.1

    def test_snapshot_arrays_read_only(self):
        pool = make_pool()
        pool.spawn((0, 0), 1.0, now=0.0)
        snap = pool.snapshot()
        with pytest.raises(ValueError):
            snap._arrays.intensity[0] = 0.0

    def test_empty_field(self):
        field = RippleField.empty()
        assert field.active_count == 0
        assert field.render(0.0, 0.0) == 0.0
        assert field.render(np.zeros((2, 3)), np.zeros((2, 3))).shape == (2, 3)
