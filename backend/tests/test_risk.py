"""Tests for stop placement, targets and position sizing."""

import pytest

from signal_core.constants import instrument_type, is_supported, pip_size
from signal_core.errors import ConfigurationError
from signal_core.models.signal import Direction
from signal_core.risk import PriceZone, RiskManager, RiskParams, pip_value_per_lot, round_price


def long_params(**overrides) -> RiskParams:
    values = dict(
        symbol="EURUSD",
        direction=Direction.LONG,
        entry_price=1.1000,
        account_balance=10_000,
        atr=0.0020,
        swing_low=1.0980,
    )
    values.update(overrides)
    return RiskParams(**values)


class TestInstruments:
    @pytest.mark.parametrize(
        "symbol,pip",
        [("EURUSD", 0.0001), ("USDJPY", 0.01), ("XAUUSD", 0.1), ("US30", 1.0), ("EURGBP", 0.0001)],
    )
    def test_pip_size(self, symbol, pip):
        assert pip_size(symbol) == pip

    def test_instrument_type(self):
        assert instrument_type("xauusd") == "metals"
        assert instrument_type("GER40") == "indices"
        assert instrument_type("EURUSD") == "forex"

    def test_supported(self):
        assert is_supported("eurusd")
        assert not is_supported("BTCUSD")

    def test_pip_value(self):
        assert pip_value_per_lot("EURUSD", 1.1) == 10.0
        assert pip_value_per_lot("USDJPY", 150.0) == pytest.approx(10 / 150)
        assert pip_value_per_lot("XAUUSD", 2000.0) == 10.0
        assert pip_value_per_lot("US30", 38000.0) == 1.0

    def test_round_price(self):
        assert round_price(1.1234567, "EURUSD") == 1.12346
        assert round_price(150.12345, "USDJPY") == 150.123
        assert round_price(2034.567, "XAUUSD") == 2034.57


class TestStopLoss:
    def test_structure_tighter_than_atr(self):
        stop = RiskManager().stop_loss(long_params())
        assert stop.method == "structure"
        assert stop.pips == pytest.approx(20.0)
        assert stop.price == pytest.approx(1.0980)

    def test_order_block_can_win(self):
        stop = RiskManager().stop_loss(long_params(order_block=PriceZone(high=1.0995, low=1.0985)))
        assert stop.method == "order_block"
        assert stop.pips == pytest.approx(15.0)

    def test_clamped_to_minimum(self):
        stop = RiskManager().stop_loss(long_params(atr=0.0002, swing_low=None))
        assert stop.method == "atr"
        assert stop.pips == pytest.approx(10.0)

    def test_clamped_to_maximum(self):
        stop = RiskManager().stop_loss(long_params(atr=0.0100, swing_low=None))
        assert stop.pips == pytest.approx(50.0)
        assert stop.price == pytest.approx(1.0950)

    def test_no_usable_candidate(self):
        stop = RiskManager().stop_loss(long_params(atr=0.0, swing_low=1.1050))
        assert stop.method == "max_distance"
        assert stop.pips == pytest.approx(50.0)

    def test_short_stop_above_entry(self):
        params = long_params(direction=Direction.SHORT, swing_low=None, swing_high=1.1025)
        stop = RiskManager().stop_loss(params)
        assert stop.method == "structure"
        assert stop.price == pytest.approx(1.1025)


class TestAssessment:
    def test_long_targets_ordered(self):
        assessment = RiskManager().calculate(long_params())
        prices = [tp.price for tp in assessment.take_profits]
        assert prices == pytest.approx([1.1030, 1.1050, 1.1080])
        assert assessment.stop_loss.price < assessment.entry < prices[0] < prices[1] < prices[2]
        assert [tp.close_percent for tp in assessment.take_profits] == [40, 40, 20]

    def test_short_targets_ordered(self):
        params = long_params(direction=Direction.SHORT, swing_low=None, swing_high=1.1025)
        assessment = RiskManager().calculate(params)
        prices = [tp.price for tp in assessment.take_profits]
        assert prices == pytest.approx([1.09625, 1.09375, 1.0900])
        assert assessment.stop_loss.price > assessment.entry > prices[0] > prices[1] > prices[2]

    def test_risk_reward(self):
        rr = RiskManager().calculate(long_params()).risk_reward
        assert rr.ratios == pytest.approx([1.5, 2.5, 4.0])
        assert rr.average == pytest.approx(2.4)
        assert rr.meets_minimum

    def test_position_size(self):
        assessment = RiskManager().calculate(long_params())
        size = assessment.position_size
        assert size.risk_amount == 100.0
        assert size.lots == pytest.approx(0.5)
        assert size.units == 50_000
        assert assessment.risk_amount == 100.0
        assert assessment.potential_profit.per_target == pytest.approx([60.0, 100.0, 80.0])
        assert assessment.potential_profit.total == pytest.approx(240.0)
        assert assessment.is_valid

    def test_size_scales_with_balance(self):
        manager = RiskManager()
        small = manager.calculate(long_params(account_balance=10_000)).position_size.lots
        large = manager.calculate(long_params(account_balance=20_000)).position_size.lots
        assert large == pytest.approx(small * 2)

    def test_risk_percent_capped(self):
        size = RiskManager().calculate(long_params(risk_percent=5.0)).position_size
        assert size.risk_percent == 2.0
        assert size.risk_amount == 200.0

    def test_volatility_adjustment(self):
        manager = RiskManager()
        assert manager.volatility_adjustment(0.0020, "EURUSD").level == "low"
        assert manager.volatility_adjustment(0.0050, "EURUSD").level == "normal"
        high = manager.volatility_adjustment(0.0100, "EURUSD")
        assert high.level == "high"
        assert high.adjustment == 0.7

    def test_reward_below_minimum(self):
        assessment = RiskManager(min_risk_reward=3.0).calculate(long_params())
        assert not assessment.is_valid
        assert assessment.validity.issues == ["Risk/Reward below minimum 3.0"]


class TestConfiguration:
    def test_two_targets_rejected(self):
        with pytest.raises(ConfigurationError):
            RiskManager(tp_ratios=(1.5, 2.5))

    def test_partials_must_sum_to_100(self):
        with pytest.raises(ConfigurationError) as exc_info:
            RiskManager(partial_close_percents=(40, 40, 10))
        assert exc_info.value.setting == "partial_close_percents"

    def test_default_risk_above_cap(self):
        with pytest.raises(ConfigurationError):
            RiskManager(default_risk_percent=3.0, max_risk_percent=2.0)

    def test_inverted_stop_range(self):
        with pytest.raises(ConfigurationError):
            RiskManager(min_sl_pips=60, max_sl_pips=50)


class TestTradeManagement:
    def test_trailing_stop_follows_price(self):
        trail = RiskManager.trailing_stop("EURUSD", Direction.LONG, 1.1000, 1.1050, 0.0020)
        assert trail.price == pytest.approx(1.1030)
        assert trail.pips == pytest.approx(20.0)

    def test_trailing_stop_never_past_entry(self):
        assert RiskManager.trailing_stop("EURUSD", Direction.LONG, 1.1000, 1.1005, 0.0020).price == 1.1
        assert RiskManager.trailing_stop("EURUSD", Direction.SHORT, 1.1000, 1.0995, 0.0020).price == 1.1

    def test_break_even(self):
        assert RiskManager.break_even("EURUSD", Direction.LONG, 1.1000, 0.0001).price == pytest.approx(1.1001)
        assert RiskManager.break_even("EURUSD", Direction.SHORT, 1.1000, 0.0001).price == pytest.approx(1.0999)
