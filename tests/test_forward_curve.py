"""
Tests for forward curve construction from put-call parity.
"""

import logging
from datetime import date, timedelta

import numpy as np
import pytest

from vol_calibration.curves import FlatYieldCurve, InterpolationMethod
from vol_calibration.forward_curve import build_forward_curve, forward_at_maturity, parity_forward
from vol_calibration.instruments import OptionQuote, OptionType, PriceModel, Underlying, time_to_maturity

from conftest import make_flat_vol_chain


VALUATION = date(2023, 11, 3)
UNDERLYING = Underlying("IDX")


def _quote(strike, maturity, option_type):
    return OptionQuote(f"IDX-{maturity:%Y%m%d}-{option_type.value[0]}-{strike:g}", "IDX",
                       float(strike), maturity, option_type, PriceModel.FORWARD)


@pytest.fixture
def three_maturity_chain():
    """Strike 4 quoted on both sides at three maturities."""
    quotes = [
        (date(2023, 11, 17), 0.73, 0.05),
        (date(2023, 12, 15), 0.64, 0.08),
        (date(2024, 1, 19), 0.53, 0.40),
    ]
    options, price_map = [], {UNDERLYING: 4.5}
    for maturity, call_price, put_price in quotes:
        call = _quote(4, maturity, OptionType.CALL)
        put = _quote(4, maturity, OptionType.PUT)
        options += [call, put]
        price_map[call] = call_price
        price_map[put] = put_price
    return options, price_map


class TestParity:
    """Forward estimates from put/call pairs."""

    def test_parity_forward(self):
        """F = K + (C - P) e^{rT}."""
        assert parity_forward(100.0, 7.0, 5.0, 0.5, 0.0) == pytest.approx(102.0)
        assert parity_forward(100.0, 7.0, 5.0, 0.5, 0.04) == pytest.approx(100.0 + 2.0 * np.exp(0.02))

    def test_average_over_strikes(self):
        """Estimates are averaged unless a reference strike is given."""
        maturity = VALUATION + timedelta(days=91)
        T = time_to_maturity(VALUATION, maturity)
        options, price_map = [], {}
        for strike, c, p in [(95.0, 8.0, 2.0), (105.0, 2.0, 6.0)]:
            call, put = _quote(strike, maturity, OptionType.CALL), _quote(strike, maturity, OptionType.PUT)
            options += [call, put]
            price_map.update({call: c, put: p})
        expected = np.mean([95.0 + 6.0 * np.exp(0.01 * T), 105.0 - 4.0 * np.exp(0.01 * T)])
        assert forward_at_maturity(options, price_map, T, 0.01) == pytest.approx(expected)
        assert forward_at_maturity(options, price_map, T, 0.01, reference_strike=105.0) == \
            pytest.approx(105.0 - 4.0 * np.exp(0.01 * T))

    def test_no_pair_gives_none(self):
        """Legs on different strikes give no estimate."""
        maturity = VALUATION + timedelta(days=30)
        call = _quote(100, maturity, OptionType.CALL)
        put = _quote(110, maturity, OptionType.PUT)
        assert forward_at_maturity([call, put], {call: 1.0, put: 9.0}, 0.08, 0.01) is None


class TestBuildForwardCurve:
    """Curve construction across maturities."""

    def test_points_from_each_maturity(self, three_maturity_chain):
        """One sorted point per maturity."""
        options, price_map = three_maturity_chain
        curve = build_forward_curve(VALUATION, options, price_map, FlatYieldCurve(0.01), UNDERLYING)
        assert curve.underlying_id == "IDX"
        assert len(curve) == 3
        times = [p.time_to_maturity for p in curve.points]
        assert times == sorted(times)
        assert curve.points[0].forward_price == pytest.approx(4.0 + 0.68 * np.exp(0.01 * 14 / 365))

    def test_spline_interpolation(self, three_maturity_chain):
        """Natural spline between maturities."""
        options, price_map = three_maturity_chain
        curve = build_forward_curve(VALUATION, options, price_map, FlatYieldCurve(0.01), UNDERLYING)
        assert curve.get_forward_price(0.1) == pytest.approx(4.598, abs=1e-3)

    def test_linear_interpolation(self, three_maturity_chain):
        """Linear interpolation when requested."""
        options, price_map = three_maturity_chain
        curve = build_forward_curve(VALUATION, options, price_map, FlatYieldCurve(0.01), UNDERLYING,
                                    method=InterpolationMethod.LINEAR)
        assert curve.get_forward_price(0.1) == pytest.approx(4.584, abs=1e-3)

    def test_recovers_carry_forward(self):
        """A model-priced chain gives back S e^{(r-q)T}."""
        underlying, options, price_map = make_flat_vol_chain(
            rate=0.03, dividend_yield=0.01, price_model=PriceModel.FORWARD,
        )
        curve = build_forward_curve(VALUATION, options, price_map, FlatYieldCurve(0.03), underlying)
        assert len(curve) == 4
        for p in curve.points:
            assert p.forward_price == pytest.approx(100.0 * np.exp(0.02 * p.time_to_maturity), abs=1e-8)

    def test_missing_leg_and_missing_price_skipped(self, three_maturity_chain):
        """Maturities without a priced pair add no point."""
        options, price_map = three_maturity_chain
        # drop the put price at the middle maturity, the call at the last
        price_map = dict(price_map)
        del price_map[options[3]]
        options = options[:4] + options[5:]
        curve = build_forward_curve(VALUATION, options, price_map, FlatYieldCurve(0.01), UNDERLYING)
        assert len(curve) == 1

    def test_expired_maturity_skipped(self, three_maturity_chain):
        """Maturities on or before valuation are ignored."""
        options, price_map = three_maturity_chain
        curve = build_forward_curve(date(2023, 12, 20), options, price_map, FlatYieldCurve(0.01), UNDERLYING)
        assert len(curve) == 1

    def test_empty_chain_gives_empty_curve(self, caplog):
        """An empty chain gives an empty curve and a warning."""
        with caplog.at_level(logging.WARNING, logger="vol_calibration.forward_curve"):
            curve = build_forward_curve(VALUATION, [], {}, FlatYieldCurve(0.01), UNDERLYING)
        assert curve.is_empty
        assert "no points" in caplog.text

    def test_underlying_taken_from_chain(self, three_maturity_chain):
        """Without an underlying the curve is labelled from the chain."""
        options, price_map = three_maturity_chain
        curve = build_forward_curve(VALUATION, options, price_map, FlatYieldCurve(0.01))
        assert curve.underlying_id == "IDX"
