"""
Dispatch on an option's declared pricing convention.

Keeps the model switch in one place so the surface builder and the
synthetic data generator agree on which kernel prices what.
"""

from typing import Optional

from . import black76, black_scholes
from .implied_vol import ImpliedVolResult, SeedStrategy
from .instruments import OptionQuote, PricingResult, PriceModel


def price_by_model(
    option: OptionQuote,
    reference_price: float,
    volatility: float,
    time_to_maturity: float,
    risk_free_rate: float,
) -> PricingResult:
    """
    Price `option` under its own convention.

    reference_price is the spot for SPOT_DIVIDEND and the forward for FORWARD.
    """
    days_per_year = option.day_count.days_per_year
    if option.price_model is PriceModel.SPOT_DIVIDEND:
        return black_scholes.calculate(
            option.option_type, option.strike, reference_price, volatility,
            time_to_maturity, risk_free_rate, option.dividend_yield, days_per_year,
        )
    if option.price_model is PriceModel.FORWARD:
        return black76.calculate(
            option.option_type, option.strike, reference_price, volatility,
            time_to_maturity, risk_free_rate, days_per_year,
        )
    raise ValueError(f"Unsupported price model: {option.price_model}")


def implied_volatility_by_model(
    option: OptionQuote,
    market_price: float,
    reference_price: float,
    time_to_maturity: float,
    risk_free_rate: float,
    initial_guess: Optional[float] = None,
) -> ImpliedVolResult:
    """
    Solve implied vol with the solver strategy each model defaults to.

    A given initial_guess seeds the Newton iteration under either model.
    """
    if option.price_model is PriceModel.SPOT_DIVIDEND:
        return black_scholes.implied_volatility(
            option.option_type, option.strike, market_price, reference_price,
            time_to_maturity, risk_free_rate, option.dividend_yield,
            initial_guess=initial_guess,
        )
    if option.price_model is PriceModel.FORWARD:
        # an explicit seed switches Black-76 off its bracket search
        strategy = SeedStrategy.BRACKET if initial_guess is None else SeedStrategy.FIXED
        return black76.implied_volatility(
            option.option_type, option.strike, market_price, reference_price,
            time_to_maturity, risk_free_rate, strategy, initial_guess,
        )
    raise ValueError(f"Unsupported price model: {option.price_model}")
