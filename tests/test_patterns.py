"""Tests for the setup detectors and per-instrument analysis."""

from __future__ import annotations

import pandas as pd
import pytest

from fnoscanner.config.settings import ScanConfig
from fnoscanner.data.market_data import candles_to_frame
from fnoscanner.models.instrument import Instrument, Quote
from fnoscanner.models.scan_result import DerivedSeries
from fnoscanner.scanner.analysis import analyze, rank
from fnoscanner.scanner.patterns import (
    check_breakout,
    check_ema_proximity,
    detect_20day_breakout,
    detect_52week_breakout,
    detect_confluence_pullback,
    detect_volume_spike,
    ema_proximities,
)

INFY = Instrument(instrument_token=408065, tradingsymbol="INFY", name="INFY", exchange="NSE")


@pytest.fixture
def spike_frame(make_candles) -> pd.DataFrame:
    """300 flat bars at 150 with one 200 high inside the 60-bar lookback."""
    closes = [150.0] * 300
    highs = [150.0] * 300
    highs[280] = 200.0
    return candles_to_frame(make_candles(closes, highs))


class TestVolumeSpike:
    def test_multiplier_and_flag(self, scan_config: ScanConfig) -> None:
        result = detect_volume_spike(300_000, 100_000.0, scan_config)
        assert result.multiplier == pytest.approx(3.0)
        assert result.is_spike is True

    def test_threshold_is_inclusive(self, scan_config: ScanConfig) -> None:
        result = detect_volume_spike(200_000, 100_000.0, scan_config)
        assert result.multiplier == pytest.approx(2.0)
        assert result.is_spike is True

    def test_below_threshold(self, scan_config: ScanConfig) -> None:
        result = detect_volume_spike(150_000, 100_000.0, scan_config)
        assert result.is_spike is False

    def test_undefined_average(self, scan_config: ScanConfig) -> None:
        result = detect_volume_spike(500_000, None, scan_config)
        assert result.multiplier == 0.0
        assert result.is_spike is False

    def test_custom_multiplier(self) -> None:
        config = ScanConfig(volume_multiplier=4.0)
        assert detect_volume_spike(300_000, 100_000.0, config).is_spike is False


class TestEMAProximity:
    def test_sign_above(self, scan_config: ScanConfig) -> None:
        reading = check_ema_proximity(101.0, 100.0, 20, scan_config)
        assert reading.distance_percent == pytest.approx(1.0)
        assert reading.is_near is True

    def test_sign_below(self, scan_config: ScanConfig) -> None:
        reading = check_ema_proximity(99.0, 100.0, 50, scan_config)
        assert reading.distance_percent == pytest.approx(-1.0)
        assert reading.is_near is True

    def test_boundary_inclusive(self) -> None:
        config = ScanConfig(ema_proximity_percent=2.0)
        assert check_ema_proximity(102.0, 100.0, 20, config).is_near is True
        assert check_ema_proximity(98.0, 100.0, 20, config).is_near is True
        assert check_ema_proximity(102.01, 100.0, 20, config).is_near is False

    def test_only_defined_emas_reported(self, scan_config: ScanConfig) -> None:
        series = DerivedSeries(ema20=100.0, ema50=None, ema100=90.0, ema200=None)
        readings = ema_proximities(100.5, series, scan_config)
        assert [r.period for r in readings] == [20, 100]
        assert [r.is_near for r in readings] == [True, False]


class TestBreakouts:
    def test_near_but_below(self) -> None:
        check = check_breakout(97.0, 100.0, 5.0)
        assert check.distance_percent == pytest.approx(3.0)
        assert check.is_near is True
        assert check.is_above is False
        assert check.flagged is True

    def test_above_sets_both_flags(self) -> None:
        check = check_breakout(105.0, 100.0, 5.0)
        assert check.is_above is True
        assert check.flagged is True
        assert check.distance_percent <= 0

    def test_at_level_is_near_not_above(self) -> None:
        check = check_breakout(100.0, 100.0, 5.0)
        assert check.is_near is True
        assert check.is_above is False
        assert check.distance_percent == 0.0

    def test_too_far_below(self) -> None:
        check = check_breakout(90.0, 100.0, 5.0)
        assert check.flagged is False

    def test_undefined_level(self) -> None:
        check = check_breakout(90.0, None, 5.0)
        assert check.flagged is False
        assert check.level is None

    def test_52week_uses_configured_band(self) -> None:
        assert detect_52week_breakout(92.0, 100.0, ScanConfig()).is_near is False
        assert detect_52week_breakout(92.0, 100.0, ScanConfig(breakout_52week_percent=10.0)).is_near

    def test_20day_fixed_band(self) -> None:
        assert detect_20day_breakout(98.0, 100.0).is_near is True
        assert detect_20day_breakout(97.0, 100.0).is_near is False
        assert detect_20day_breakout(100.5, 100.0).is_above is True


class TestConfluencePullback:
    def test_requires_a_year_of_history(self, make_candles, scan_config: ScanConfig) -> None:
        df = candles_to_frame(make_candles([150.0] * 251))
        result = detect_confluence_pullback(df, 150.0, 150.0, 150.0, scan_config)
        assert result.detected is False

    def test_no_breakout_no_detection(self, make_candles, scan_config: ScanConfig) -> None:
        df = candles_to_frame(make_candles([150.0] * 300))
        result = detect_confluence_pullback(df, 147.0, 147.0, None, scan_config)
        assert result.detected is False

    def test_breakout_must_clear_confirmation_margin(
        self, make_candles, scan_config: ScanConfig
    ) -> None:
        closes = [150.0] * 300
        highs = [150.0] * 300
        highs[280] = 150.5  # only 0.33% above the prior high
        df = candles_to_frame(make_candles(closes, highs))
        result = detect_confluence_pullback(df, 147.0, 147.0, None, scan_config)
        assert result.detected is False

    def test_detects_pullback_onto_ema20(
        self, spike_frame: pd.DataFrame, scan_config: ScanConfig
    ) -> None:
        result = detect_confluence_pullback(spike_frame, 180.0, 180.0, 170.0, scan_config)
        assert result.detected is True
        assert result.breakout_level == pytest.approx(150.0)
        assert result.recent_high == pytest.approx(200.0)
        assert result.pullback_percent == pytest.approx(10.0)
        assert result.pullback_to_ema == 20
        assert result.days_since_breakout == 19
        assert result.breakout_level_type == "52W High"
        assert result.breakout_level_distance == pytest.approx(20.0)

    def test_ema20_wins_when_both_qualify(
        self, spike_frame: pd.DataFrame, scan_config: ScanConfig
    ) -> None:
        result = detect_confluence_pullback(spike_frame, 180.0, 181.0, 179.0, scan_config)
        assert result.pullback_to_ema == 20

    def test_falls_back_to_ema50(
        self, spike_frame: pd.DataFrame, scan_config: ScanConfig
    ) -> None:
        result = detect_confluence_pullback(spike_frame, 180.0, 190.0, 179.0, scan_config)
        assert result.pullback_to_ema == 50

    def test_not_resting_on_ema(
        self, spike_frame: pd.DataFrame, scan_config: ScanConfig
    ) -> None:
        result = detect_confluence_pullback(spike_frame, 180.0, 190.0, 170.0, scan_config)
        assert result.detected is False

    @pytest.mark.parametrize(
        ("price", "expected"),
        [
            (196.0, True),     # exactly min (2%)
            (196.02, False),   # min - 0.01
            (160.0, True),     # exactly max (20%)
            (159.98, False),   # max + 0.01
        ],
    )
    def test_pullback_band_boundaries(
        self, spike_frame: pd.DataFrame, scan_config: ScanConfig, price: float, expected: bool
    ) -> None:
        result = detect_confluence_pullback(spike_frame, price, price, None, scan_config)
        assert result.detected is expected

    def test_double_support_and_strength(
        self, make_candles, scan_config: ScanConfig
    ) -> None:
        closes = [150.0] * 300
        highs = [150.0] * 300
        highs[280] = 160.0
        df = candles_to_frame(make_candles(closes, highs))
        # 152 is 5% off the 160 high and 1.33% above the old 150 resistance
        result = detect_confluence_pullback(df, 152.0, 152.0, None, scan_config)
        assert result.detected is True
        assert result.double_support is True
        assert result.ema_rising is False  # flat closes
        assert result.confluence_count == 3
        assert result.summary == "Broke 52W High → EMA20 + Support"

    def test_idempotent(self, breakout_candles, scan_config: ScanConfig) -> None:
        df = candles_to_frame(breakout_candles)
        first = detect_confluence_pullback(df, 245.9, 244.75, 237.25, scan_config)
        second = detect_confluence_pullback(df, 245.9, 244.75, 237.25, scan_config)
        assert first == second


class TestAnalyze:
    def test_breakout_then_pullback_scenario(self, breakout_candles, scan_config: ScanConfig) -> None:
        quote = Quote(last_price=245.9, volume=100_000, previous_close=247.0)
        result = analyze(INFY, breakout_candles, quote, scan_config)

        assert result.series.ema20 == pytest.approx(244.75)
        assert result.confluence.detected is True
        assert result.confluence.pullback_to_ema == 20
        assert result.confluence.pullback_percent == pytest.approx(8.006, abs=0.01)
        assert result.confluence.ema_rising is True
        assert result.confluence.breakout_level_type == "52W High"
        assert result.confluence.days_since_breakout == 14
        # +3 confluence, +1 near EMA-20; nothing else fires
        assert result.near_ema_count == 1
        assert result.volume.is_spike is False
        assert result.breakout_52week.flagged is False
        assert result.breakout_20day.flagged is False
        assert result.score == 4

    def test_short_history_yields_neutral_result(self, make_candles, scan_config: ScanConfig) -> None:
        quote = Quote(last_price=10.0, volume=1_000)
        result = analyze(INFY, make_candles([10.0] * 5), quote, scan_config)
        assert result.series.ema20 is None
        assert result.series.avg_volume20 is None
        assert result.ema_proximities == ()
        assert result.volume.multiplier == 0.0
        assert result.confluence.detected is False

    def test_rank_is_stable(self, make_candles, scan_config: ScanConfig) -> None:
        flat = make_candles([100.0] * 30)
        quiet = Quote(last_price=50.0, volume=0)  # far below everything
        names = ["AAA", "BBB", "CCC"]
        results = [
            analyze(
                Instrument(instrument_token=i, tradingsymbol=n, name=n, exchange="NSE"),
                flat,
                quiet,
                scan_config,
            )
            for i, n in enumerate(names)
        ]
        hot = analyze(
            Instrument(instrument_token=9, tradingsymbol="HOT", name="HOT", exchange="NSE"),
            flat,
            Quote(last_price=100.0, volume=500_000),
            scan_config,
        )
        ranked = rank(results + [hot])
        assert ranked[0].symbol == "HOT"
        assert [r.symbol for r in ranked[1:]] == names
