"""
Shared test fixtures and pytest configuration.
"""

from datetime import date, timedelta

import numpy as np
import pytest

from vol_calibration.curves import FlatYieldCurve
from vol_calibration.instruments import OptionQuote, OptionType, PriceModel, Underlying, time_to_maturity
from vol_calibration.pricing import price_by_model


VALUATION_DATE = date(2023, 11, 3)


@pytest.fixture(autouse=True)
def set_random_seed():
    """Ensure test reproducibility."""
    np.random.seed(42)
    yield


@pytest.fixture
def valuation_date():
    return VALUATION_DATE


def make_option(strike, days, option_type, price_model=PriceModel.SPOT_DIVIDEND,
                dividend_yield=0.0, underlying_id="UND", valuation=VALUATION_DATE):
    maturity = valuation + timedelta(days=days)
    return OptionQuote(
        instrument_id=f"{underlying_id}-{days}-{option_type.value}-{strike:g}",
        underlying_id=underlying_id,
        strike=float(strike),
        maturity=maturity,
        option_type=option_type,
        price_model=price_model,
        dividend_yield=dividend_yield,
    )


def make_flat_vol_chain(
    vol=0.25,
    spot=100.0,
    rate=0.0,
    dividend_yield=0.0,
    strikes=(80, 85, 90, 95, 100, 105, 110, 115, 120),
    expiry_days=(30, 91, 182, 365),
    price_model=PriceModel.SPOT_DIVIDEND,
    option_types=(OptionType.CALL, OptionType.PUT),
    valuation=VALUATION_DATE,
):
    """Chain priced off one flat vol. With zero rates it is free of static arbitrage."""
    underlying = Underlying("UND")
    price_map = {underlying: spot}
    options = []
    for days in expiry_days:
        T = time_to_maturity(valuation, valuation + timedelta(days=days))
        forward = spot * np.exp((rate - dividend_yield) * T)
        for K in strikes:
            for option_type in option_types:
                option = make_option(K, days, option_type, price_model, dividend_yield, valuation=valuation)
                reference = forward if price_model is PriceModel.FORWARD else spot
                price_map[option] = price_by_model(option, reference, vol, T, rate).price
                options.append(option)
    return underlying, options, price_map


@pytest.fixture
def flat_chain():
    return make_flat_vol_chain()


@pytest.fixture
def flat_curve():
    return FlatYieldCurve(0.0)
