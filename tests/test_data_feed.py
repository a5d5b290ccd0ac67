"""
Tests for synthetic chains and tabular chain I/O.
"""

from datetime import date

import numpy as np
import pandas as pd
import pytest

from vol_calibration import config
from vol_calibration.arbitrage_filter import filter_arbitrage
from vol_calibration.curves import FlatYieldCurve
from vol_calibration.data_feed import (
    CHAIN_COLUMNS, chain_from_frame, chain_to_frame, generate_synthetic_chain,
    get_option_data, load_chain_csv, save_chain_csv, smile_volatility,
)
from vol_calibration.instruments import OptionType, PriceModel
from vol_calibration.surface_builder import build_surface


VALUATION = date(2024, 3, 1)


@pytest.fixture
def synthetic_chain():
    """Default synthetic chain at the test valuation date."""
    return generate_synthetic_chain(VALUATION)


class TestSyntheticChain:
    """The generated smile chain."""

    def test_shape(self, synthetic_chain):
        """Two options per strike per expiry plus the underlying price."""
        underlying, options, price_map = synthetic_chain
        n_expected = len(config.SYNTHETIC_EXPIRY_DAYS) * config.SYNTHETIC_N_STRIKES * 2
        assert len(options) == n_expected
        assert len(price_map) == n_expected + 1
        assert price_map[underlying] == config.SYNTHETIC_SPOT

    def test_instrument_ids(self, synthetic_chain):
        """Ids encode expiry, type and strike and are unique."""
        _, options, _ = synthetic_chain
        assert options[0].instrument_id == "SYNTH-20240331-C-80"
        assert options[1].instrument_id == "SYNTH-20240331-P-80"
        assert len({o.instrument_id for o in options}) == len(options)

    def test_prices_non_negative_and_rounded(self, synthetic_chain):
        """Prices are floored at zero and kept to 6 decimals."""
        _, options, price_map = synthetic_chain
        for option in options:
            assert price_map[option] >= 0
            assert price_map[option] == round(price_map[option], 6)

    def test_deterministic_with_seed(self):
        """The same seed gives the same noisy prices."""
        _, options_a, prices_a = generate_synthetic_chain(VALUATION, noise_std=0.02, seed=7)
        _, options_b, prices_b = generate_synthetic_chain(VALUATION, noise_std=0.02, seed=7)
        assert [prices_a[o] for o in options_a] == [prices_b[o] for o in options_b]

    def test_noise_changes_prices(self):
        """Noise moves prices off the model values."""
        _, options, clean = generate_synthetic_chain(VALUATION)
        _, _, noisy = generate_synthetic_chain(VALUATION, noise_std=0.05, seed=1)
        assert any(clean[o] != noisy[o] for o in options)

    def test_smile_shape(self):
        """Downside skew over a convex smile."""
        T = 0.25
        atm = smile_volatility(0.0, T)
        assert smile_volatility(-0.2, T) > atm
        # negative skew: downside richer than upside
        assert smile_volatility(-0.2, T) > smile_volatility(0.2, T)
        # without skew both wings sit above ATM
        assert smile_volatility(-0.2, T, skew=0.0) > atm
        assert smile_volatility(0.2, T, skew=0.0) > atm

    @pytest.mark.parametrize("price_model", [PriceModel.SPOT_DIVIDEND, PriceModel.FORWARD])
    def test_surface_recovers_smile(self, price_model):
        """Every quote that survives the filter solves back to the smile."""
        underlying, options, price_map = generate_synthetic_chain(VALUATION, price_model=price_model)
        surface = build_surface(VALUATION, underlying, options, price_map,
                                FlatYieldCurve(config.SYNTHETIC_RATE))
        assert len(surface) == len(filter_arbitrage(options, price_map, config.SYNTHETIC_SPOT))
        for p in surface.points:
            expected = smile_volatility(p.log_moneyness, p.time_to_maturity)
            assert p.volatility == pytest.approx(expected, abs=2e-3)


class TestTabularIO:
    """Chains to and from DataFrames and CSV."""

    def test_frame_layout(self, synthetic_chain):
        """Underlying row first, then one row per option."""
        df = chain_to_frame(*synthetic_chain)
        assert list(df.columns) == CHAIN_COLUMNS
        assert df.iloc[0]["instrument_id"] == "SYNTH"
        assert pd.isna(df.iloc[0]["option_type"]) or df.iloc[0]["option_type"] is None

    def test_csv_round_trip(self, synthetic_chain, tmp_path):
        """Saving then loading gives the same chain."""
        underlying, options, price_map = synthetic_chain
        path = tmp_path / "chain.csv"
        save_chain_csv(path, underlying, options, price_map)
        u2, options2, prices2 = load_chain_csv(path)
        assert u2 == underlying
        assert options2 == options
        for o in options:
            assert prices2[o] == pytest.approx(price_map[o])

    def test_unpriced_row_kept_as_option(self):
        """A blank price keeps the option out of the price map only."""
        df = pd.DataFrame([
            {"instrument_id": "U", "underlying_id": "U", "strike": np.nan, "maturity": None,
             "option_type": None, "price_model": None, "dividend_yield": np.nan, "price": 50.0},
            {"instrument_id": "U-C-50", "underlying_id": "U", "strike": 50.0, "maturity": "2024-06-21",
             "option_type": "c", "price_model": "forward", "dividend_yield": np.nan, "price": np.nan},
        ], columns=CHAIN_COLUMNS)
        underlying, options, price_map = chain_from_frame(df)
        assert len(options) == 1
        option = options[0]
        assert option.option_type is OptionType.CALL
        assert option.price_model is PriceModel.FORWARD
        assert option.dividend_yield == 0.0
        assert option.maturity == date(2024, 6, 21)
        assert option not in price_map
        assert price_map[underlying] == 50.0

    def test_missing_columns(self):
        """Frames without the chain columns are refused."""
        with pytest.raises(ValueError, match="missing columns"):
            chain_from_frame(pd.DataFrame({"instrument_id": ["U"]}))

    def test_needs_exactly_one_underlying(self, synthetic_chain):
        """Zero or two underlying rows are refused."""
        df = chain_to_frame(*synthetic_chain)
        with pytest.raises(ValueError, match="exactly one underlying"):
            chain_from_frame(pd.concat([df, df.iloc[[0]]], ignore_index=True))
        with pytest.raises(ValueError, match="exactly one underlying"):
            chain_from_frame(df.iloc[1:])


class TestGetOptionData:
    """Source dispatch."""

    def test_synthetic(self):
        """Synthetic source honours the price model."""
        underlying, options, _ = get_option_data("synthetic", valuation_date=VALUATION,
                                                 price_model=PriceModel.FORWARD)
        assert underlying.instrument_id == "SYNTH"
        assert all(o.price_model is PriceModel.FORWARD for o in options)

    def test_csv_needs_path(self):
        """The csv source needs a path."""
        with pytest.raises(ValueError):
            get_option_data("csv")

    def test_unknown_source(self):
        """Unknown sources raise."""
        with pytest.raises(ValueError):
            get_option_data("bloomberg")
