"""Tests for the volume-driven time offset."""

import pytest

from chromafield.core.timedebt import TimeDebt, TimeDebtConfig


class TestTimeDebtConfig:
    def test_rejects_negative_max(self):
        with pytest.raises(ValueError):
            TimeDebtConfig(max_offset=-1.0)

    def test_rejects_inverted_thresholds(self):
        with pytest.raises(ValueError):
            TimeDebtConfig(accumulate_threshold=0.1, decay_threshold=0.2)


class TestTimeDebt:
    def test_loud_accumulates(self):
        debt = TimeDebt()
        debt.update(0.8, 1.0)
        assert debt.offset == pytest.approx(0.5)

    def test_dead_zone_holds(self):
        debt = TimeDebt()
        debt.update(0.8, 1.0)
        debt.update(0.1, 1.0)
        assert debt.offset == pytest.approx(0.5)

    def test_quiet_decays_monotonically_to_zero(self):
        debt = TimeDebt()
        for _ in range(4):
            debt.update(1.0, 1.0)
        offsets = [debt.update(0.0, 1.0 / 30.0) for _ in range(300)]
        assert all(b <= a for a, b in zip(offsets, offsets[1:]))
        assert offsets[-1] == 0.0

    def test_clamped_to_max(self):
        debt = TimeDebt(TimeDebtConfig(max_offset=1.0))
        for _ in range(10):
            debt.update(1.0, 1.0)
        assert debt.offset == 1.0

    def test_never_negative(self):
        debt = TimeDebt()
        debt.update(0.0, 5.0)
        assert debt.offset == 0.0

    def test_easing_curve_scales_rate(self):
        linear = TimeDebt()
        eased = TimeDebt(TimeDebtConfig(easing_curve=(0.9, 0.0, 1.0, 0.1)))
        linear.update(0.5, 1.0)
        eased.update(0.5, 1.0)
        assert 0.0 < eased.offset < linear.offset

    @pytest.mark.parametrize("delta_time", [0.0, -1.0, float("nan")])
    def test_bad_delta_is_ignored(self, delta_time):
        debt = TimeDebt()
        debt.update(1.0, 1.0)
        assert debt.update(1.0, delta_time) == pytest.approx(0.5)

    def test_smoothed_lags_offset(self):
        debt = TimeDebt()
        debt.update(1.0, 1.0 / 60.0, bpm=120.0)
        assert 0.0 < debt.smoothed < debt.offset

    def test_reset(self):
        debt = TimeDebt()
        debt.update(1.0, 1.0)
        debt.reset()
        assert debt.offset == 0.0
        assert debt.smoothed == 0.0
