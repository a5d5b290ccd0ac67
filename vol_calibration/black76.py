"""
Black-76 pricing for European options quoted against a forward price.

Same structure as the BSM kernel with the spot replaced by the forward
and both legs discounted at the risk-free rate; there is no separate
dividend discount because carry is already inside F.

    d1 = (ln(F/K) + 0.5 sigma^2 T) / (sigma sqrt(T))
    C  = e^{-rT} (F N(d1) - K N(d2))
    P  = e^{-rT} (K N(-d2) - F N(-d1))

Greeks use the same units as black_scholes (vega/rho per point, theta
per day). Delta and gamma are with respect to the forward.
"""

from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
from scipy.stats import norm

from . import config
from .implied_vol import ImpliedVolResult, SeedStrategy, solve_implied_volatility
from .instruments import DateLike, OptionQuote, OptionType, PricingResult, option_time_to_maturity


@dataclass(frozen=True)
class CommonCalculations:
    d1: float
    d2: float
    cdf_d1: float
    cdf_d2: float
    pdf_d1: float
    pdf_d2: float
    discount: float

    @classmethod
    def from_inputs(cls, F: float, K: float, r: float, sigma: float,
                    T: float) -> "CommonCalculations":
        vol_sqrt_t = sigma * np.sqrt(T)
        _d1 = (np.log(F / K) + 0.5 * sigma**2 * T) / vol_sqrt_t
        _d2 = _d1 - vol_sqrt_t
        return cls(
            d1=_d1,
            d2=_d2,
            cdf_d1=norm.cdf(_d1),
            cdf_d2=norm.cdf(_d2),
            pdf_d1=norm.pdf(_d1),
            pdf_d2=norm.pdf(_d2),
            discount=np.exp(-r * T),
        )


def _as_option_type(option_type: Union[OptionType, str]) -> OptionType:
    if isinstance(option_type, OptionType):
        return option_type
    return OptionType.from_string(option_type)


def option_price(option_type: OptionType, F: float, K: float,
                 common: CommonCalculations) -> float:
    if option_type is OptionType.CALL:
        return common.discount * (F * common.cdf_d1 - K * common.cdf_d2)
    return common.discount * (K * norm.cdf(-common.d2) - F * norm.cdf(-common.d1))


def delta(option_type: OptionType, common: CommonCalculations) -> float:
    if option_type is OptionType.CALL:
        return common.discount * common.cdf_d1
    return common.discount * (common.cdf_d1 - 1.0)


def gamma(F: float, sigma: float, T: float, common: CommonCalculations) -> float:
    return common.discount * common.pdf_d1 / (F * sigma * np.sqrt(T))


def vega(F: float, T: float, common: CommonCalculations) -> float:
    return common.discount * F * np.sqrt(T) * common.pdf_d1 / 100.0


def rho(option_type: OptionType, K: float, T: float, common: CommonCalculations) -> float:
    """
    Strike-leg rate sensitivity per point, holding F fixed the way
    the BSM rho holds S fixed.
    """
    if option_type is OptionType.CALL:
        return K * T * common.discount * common.cdf_d2 / 100.0
    return -K * T * common.discount * norm.cdf(-common.d2) / 100.0


def theta(option_type: OptionType, F: float, K: float, sigma: float, T: float,
          r: float, common: CommonCalculations,
          days_per_year: Optional[float] = None) -> float:
    """Time decay per calendar day."""
    if days_per_year is None:
        days_per_year = config.DAYS_PER_YEAR

    time_decay = -(F * common.discount * common.pdf_d1 * sigma) / (2 * np.sqrt(T))

    if option_type is OptionType.CALL:
        carry = (-r * K * common.discount * common.cdf_d2
                 + r * F * common.discount * common.cdf_d1)
    else:
        carry = (r * K * common.discount * norm.cdf(-common.d2)
                 - r * F * common.discount * norm.cdf(-common.d1))

    return (time_decay + carry) / days_per_year


def calculate(
    option_type: Union[OptionType, str],
    strike: float,
    forward_price: float,
    volatility: float,
    time_to_maturity: float,
    risk_free_rate: float,
    days_per_year: Optional[float] = None,
) -> PricingResult:
    """Price and greeks of a European option on a forward. Unrounded."""
    option_type = _as_option_type(option_type)
    F, K, T = forward_price, strike, time_to_maturity
    r, sigma = risk_free_rate, volatility

    common = CommonCalculations.from_inputs(F, K, r, sigma, T)
    return PricingResult(
        price=float(option_price(option_type, F, K, common)),
        delta=float(delta(option_type, common)),
        gamma=float(gamma(F, sigma, T, common)),
        vega=float(vega(F, T, common)),
        theta=float(theta(option_type, F, K, sigma, T, r, common, days_per_year)),
        rho=float(rho(option_type, K, T, common)),
    )


def price_option(
    valuation_time: DateLike,
    option: OptionQuote,
    forward_price: float,
    volatility: float,
    risk_free_rate: float,
) -> PricingResult:
    T = option_time_to_maturity(valuation_time, option)
    return calculate(
        option.option_type,
        option.strike,
        forward_price,
        volatility,
        T,
        risk_free_rate,
        option.day_count.days_per_year,
    )


def implied_volatility(
    option_type: Union[OptionType, str],
    strike: float,
    market_price: float,
    forward_price: float,
    time_to_maturity: float,
    risk_free_rate: float,
    strategy: SeedStrategy = SeedStrategy.BRACKET,
    initial_guess: Optional[float] = None,
) -> ImpliedVolResult:
    """
    Invert Black-76 against an observed price.

    Seeds with a coarse bisection over [0, 5] by default, which is more
    forgiving than a fixed seed on skewed or convex parts of the chain.
    """
    option_type = _as_option_type(option_type)
    F, K, T, r = forward_price, strike, time_to_maturity, risk_free_rate

    def pricer(sigma: float):
        common = CommonCalculations.from_inputs(F, K, r, sigma, T)
        return option_price(option_type, F, K, common), vega(F, T, common)

    return solve_implied_volatility(pricer, market_price, strategy, initial_guess)
