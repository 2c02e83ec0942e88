"""Tests for the analyzer registry and the price-structure analyzers (SMC, market profile)."""

import numpy as np
import pytest

from signal_core.analyzers import (
    Analyzer,
    MarketProfileAnalyzer,
    MarketProfileFindings,
    SMCAnalyzer,
    SMCFindings,
    create_all_analyzers,
    create_analyzer,
    get_analyzer_class,
    list_analyzers,
    register_analyzer,
)
from signal_core.analyzers.market_profile import build_profile, price_position, profile_shape, value_area
from signal_core.analyzers.smc import (
    MarketStructure,
    analyze_structure,
    detect_fvgs,
    detect_liquidity,
    detect_order_blocks,
    ote_zone,
    premium_discount,
)
from signal_core.indicators import SwingPoint, SwingPoints
from signal_core.models.analysis import Bias, Domain
from signal_core.models.candle import Candle
from tests.builders import make_data, oscillating_candles, trending_candles, ts


def bar(i: int, o: float, h: float, l: float, c: float, volume: float = 1000) -> Candle:
    return Candle(timestamp=ts(i), open=o, high=h, low=l, close=c, volume=volume)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class TestRegistry:
    def test_all_ten_registered(self):
        assert list_analyzers() == sorted(d.value for d in Domain)

    def test_create_all_in_domain_order(self):
        analyzers = create_all_analyzers()
        assert [a.domain for a in analyzers] == list(Domain)
        assert all(isinstance(a, Analyzer) for a in analyzers)

    def test_overrides_reach_constructor(self):
        analyzers = create_all_analyzers({"smc": {"swing_lookback": 3}})
        smc = next(a for a in analyzers if a.domain == Domain.SMC)
        assert smc.swing_lookback == 3

    def test_create_by_string(self):
        analyzer = create_analyzer("market_profile", lookback=30)
        assert isinstance(analyzer, MarketProfileAnalyzer)
        assert analyzer.lookback == 30

    def test_unknown_domain(self):
        with pytest.raises(KeyError, match="Unknown analyzer"):
            get_analyzer_class("astrology")

    def test_duplicate_registration_rejected(self):
        with pytest.raises(ValueError, match="already registered"):
            @register_analyzer(Domain.SMC)
            class Duplicate:
                pass


class TestInsufficientHistory:
    @pytest.mark.parametrize("analyzer", create_all_analyzers(), ids=lambda a: a.domain.value)
    def test_ten_bars_is_empty(self, analyzer):
        result = analyzer.analyze(make_data(trending_candles(10)))
        assert result.domain == analyzer.domain
        assert result.score == 0
        assert result.bias == Bias.NEUTRAL
        assert result.findings is None

    @pytest.mark.parametrize("analyzer", create_all_analyzers(), ids=lambda a: a.domain.value)
    def test_full_history_scores_in_range(self, analyzer):
        result = analyzer.analyze(make_data(oscillating_candles(250)))
        assert 0 <= result.score <= 100
        assert isinstance(result.bias, Bias)
        assert result.findings is not None


# ---------------------------------------------------------------------------
# Smart Money Concepts
# ---------------------------------------------------------------------------

class TestFairValueGaps:
    def test_bullish_gap(self):
        candles = [
            bar(0, 100, 101, 99, 100.5),
            bar(1, 101, 103, 100.5, 102.5),
            bar(2, 103, 105, 102, 104),
        ]
        fvgs = detect_fvgs(candles)
        assert len(fvgs) == 1
        assert fvgs[0].bias == Bias.BULLISH
        assert (fvgs[0].low, fvgs[0].high) == (101, 102)
        assert fvgs[0].midpoint == pytest.approx(101.5)

    def test_bearish_gap(self):
        candles = [
            bar(0, 104, 105, 103, 103.5),
            bar(1, 103, 103.5, 100, 100.5),
            bar(2, 100, 101, 99, 99.5),
        ]
        fvgs = detect_fvgs(candles)
        assert len(fvgs) == 1
        assert fvgs[0].bias == Bias.BEARISH
        assert (fvgs[0].low, fvgs[0].high) == (101, 103)

    def test_overlapping_bars_have_no_gap(self):
        candles = [
            bar(0, 100, 102, 99, 101),
            bar(1, 101, 103, 100, 102),
            bar(2, 102, 104, 101, 103),
        ]
        assert detect_fvgs(candles) == []

    def test_filled_gap_is_dropped(self):
        candles = [
            bar(0, 100, 101, 99, 100.5),
            bar(1, 101, 103, 100.5, 102.5),
            bar(2, 103, 105, 102, 104),
            bar(3, 104, 105, 100, 101),
        ]
        assert detect_fvgs(candles) == []


class TestPremiumDiscount:
    @pytest.mark.parametrize(
        "close,zone",
        [(108, "premium"), (102, "discount"), (105, "equilibrium"), (106, "slight_premium"), (104, "slight_discount")],
    )
    def test_zones(self, close, zone):
        candles = [bar(i, 100 + (i % 10), 110, 100, close) for i in range(50)]
        pd = premium_discount(candles)
        assert pd.zone == zone
        assert pd.equilibrium == 105
        assert pd.position == round((close - 100) / 10 * 100)

    def test_zero_range(self):
        assert premium_discount([bar(i, 100, 100, 100, 100) for i in range(5)]) is None


class TestOrderBlocks:
    @staticmethod
    def _base():
        return [bar(i, 100, 101, 99, 100) for i in range(10)]

    def test_bullish_block(self):
        candles = self._base() + [
            bar(10, 102, 103, 99, 100),
            bar(11, 100, 106, 99, 105),
            bar(12, 105, 110, 104, 109),
        ]
        blocks = detect_order_blocks(candles)
        assert any(ob.bias == Bias.BULLISH and ob.index == 10 for ob in blocks)

    def test_bearish_block(self):
        candles = self._base() + [
            bar(10, 98, 103, 97, 102),
            bar(11, 102, 103, 96, 97),
            bar(12, 97, 98, 92, 93),
        ]
        blocks = detect_order_blocks(candles)
        assert any(ob.bias == Bias.BEARISH for ob in blocks)

    def test_mitigated_block_dropped(self):
        candles = self._base() + [
            bar(10, 102, 103, 99, 100),
            bar(11, 100, 106, 99, 105),
            bar(12, 105, 110, 104, 109),
            bar(13, 109, 110, 98, 98),
        ]
        assert not any(ob.bias == Bias.BULLISH for ob in detect_order_blocks(candles))


class TestStructure:
    def test_swings_on_oscillation(self):
        candles = []
        for i in range(30):
            price = 100 + np.sin(i * 0.5) * 10
            candles.append(bar(i, price, price + 2, price - 2, price + 1))
        structure = analyze_structure(candles)
        assert len(structure.swings.highs) > 0
        assert len(structure.swings.lows) > 0

    def test_equal_highs_and_lows(self):
        highs = [bar(i, 100, 110 if i % 10 == 0 else 105, 99, 101) for i in range(50)]
        assert detect_liquidity(highs).equal_highs
        lows = [bar(i, 100, 105, 95 if i % 10 == 0 else 98, 101) for i in range(50)]
        assert detect_liquidity(lows).equal_lows

    def test_ote_zone_after_drop(self):
        structure = MarketStructure(
            swings=SwingPoints(highs=[SwingPoint(120, 10)], lows=[SwingPoint(100, 20)])
        )
        candles = [bar(i, 113, 114, 112, 113) for i in range(25)]
        ote = ote_zone(candles, structure)
        assert ote.bias == Bias.BEARISH
        assert ote.low == pytest.approx(112.36)
        assert ote.high == pytest.approx(115.72)
        assert ote.in_zone

    def test_no_swings_no_ote(self):
        assert ote_zone([bar(0, 1, 1, 1, 1)], MarketStructure()) is None


class TestSMCAnalyzer:
    def test_findings(self):
        result = SMCAnalyzer().analyze(make_data(oscillating_candles(120)))
        assert result.domain == Domain.SMC
        assert isinstance(result.findings, SMCFindings)
        assert result.bias == result.findings.structure.trend
        assert 50 <= result.score <= 100


# ---------------------------------------------------------------------------
# Market Profile
# ---------------------------------------------------------------------------

class TestValueArea:
    def test_seventy_percent_of_volume(self):
        rng = np.random.default_rng(7)
        candles = []
        for i in range(30):
            shift = np.sin(i * 0.3) * 5
            candles.append(bar(i, 100 + shift, 105 + shift, 95 + shift, 102 + shift, 1000 + rng.uniform(0, 500)))
        profile = build_profile(candles, tick_size=0.5)
        area = value_area(profile)
        share = area.volume_in_area / profile.total_volume
        assert 0.70 <= share < 0.80

    def test_uniform_bars(self):
        candles = [bar(i, 100, 110, 90, 105) for i in range(30)]
        profile = build_profile(candles, tick_size=1.0)
        area = value_area(profile)
        assert area.vah > area.val
        assert area.val <= area.poc <= area.vah
        assert area.width == pytest.approx(area.vah - area.val)
        assert area.volume_in_area / profile.total_volume == pytest.approx(0.70)

    def test_poc_follows_volume(self):
        candles = [
            bar(i, 100, 102, 98, 101, 2000) if i < 20 else bar(i, 105, 107, 103, 106, 500)
            for i in range(30)
        ]
        profile = build_profile(candles, tick_size=1.0)
        area = value_area(profile)
        assert 98 <= area.poc <= 102
        assert all(area.poc_volume >= level.volume for level in profile.levels)

    def test_dominant_level_still_spans_a_neighbour(self):
        candles = [bar(i, 95 + i, 96 + i, 95 + i, 96 + i, 1) for i in range(19)]
        candles.append(bar(19, 102, 102, 102, 102, 1000))
        profile = build_profile(candles, tick_size=1.0)
        area = value_area(profile)
        assert area.poc == 102
        assert area.vah > area.val
        assert area.val <= area.poc <= area.vah
        assert area.width == pytest.approx(1.0)

    def test_flat_bar_occupies_one_level(self):
        profile = build_profile([bar(0, 1, 1, 1, 1)], tick_size=1.0)
        assert len(profile.levels) == 1
        assert value_area(profile).vah == value_area(profile).val


class TestProfilePosition:
    @staticmethod
    def _area(last: Candle):
        candles = [bar(i, 100, 105, 95, 100) for i in range(29)] + [last]
        return value_area(build_profile(candles, tick_size=1.0))

    def test_above_value_area(self):
        area = self._area(bar(29, 110, 115, 108, 112))
        position = price_position(112, area)
        assert position.position == "above_value_area"
        assert position.signal == "bullish"

    def test_below_value_area(self):
        area = self._area(bar(29, 90, 92, 85, 88))
        position = price_position(88, area)
        assert position.position == "below_value_area"
        assert position.signal == "bearish"

    def test_b_shape(self):
        candles = [
            bar(i, 92, 94, 90, 93, 2000) if i < 20 else bar(i, 105, 107, 103, 106, 500)
            for i in range(30)
        ]
        profile = build_profile(candles, tick_size=1.0)
        assert profile_shape(profile, value_area(profile)) == "b_shape"


class TestMarketProfileAnalyzer:
    def test_findings(self):
        result = MarketProfileAnalyzer().analyze(make_data(oscillating_candles(50)))
        assert isinstance(result.findings, MarketProfileFindings)
        assert result.findings.poc is not None
        assert 0 <= result.score <= 100

    def test_insufficient_data(self):
        result = MarketProfileAnalyzer().analyze(make_data(oscillating_candles(5)))
        assert result.score == 0
        assert result.bias == Bias.NEUTRAL
