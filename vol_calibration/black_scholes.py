"""
Black-Scholes-Merton pricing, greeks, and implied volatility inversion
for European options on a spot underlying with a continuous dividend yield.

Everything here is closed-form except the IV solver, which is the shared
Newton iteration in implied_vol (fixed seed by default for this model).

Greek units follow the desk convention rather than raw partials:
    vega  : per 1 vol point (dV/dsigma / 100)
    rho   : per 1 rate point (dV/dr / 100)
    theta : per calendar day (annual theta / days per year)

The kernel does not guard T <= 0 or sigma <= 0; d1 is undefined there.
Callers validate upstream.

References:
    Black, F. & Scholes, M. (1973). The Pricing of Options and Corporate Liabilities.
    Merton, R.C. (1973). Theory of Rational Option Pricing.
    Hull, J.C. (2018). Options, Futures, and Other Derivatives. 10th ed.
"""

from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
from scipy.stats import norm

from . import config
from .implied_vol import ImpliedVolResult, SeedStrategy, solve_implied_volatility
from .instruments import DateLike, OptionQuote, OptionType, PricingResult, option_time_to_maturity


# ════════════════════════════════════════════════════════════════════════
#  COMMON TERMS
# ════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CommonCalculations:
    """d1/d2, their normal CDF/PDF, and both discount factors.

    Recomputed on every pricing call. The solver changes sigma each
    iteration, so nothing here may be cached across calls.
    """
    d1: float
    d2: float
    cdf_d1: float
    cdf_d2: float
    pdf_d1: float
    pdf_d2: float
    dividend_discount: float
    rate_discount: float

    @classmethod
    def from_inputs(cls, S: float, K: float, r: float, q: float,
                    sigma: float, T: float) -> "CommonCalculations":
        _d1 = d1(S, K, T, r, sigma, q)
        _d2 = _d1 - sigma * np.sqrt(T)
        return cls(
            d1=_d1,
            d2=_d2,
            cdf_d1=norm.cdf(_d1),
            cdf_d2=norm.cdf(_d2),
            pdf_d1=norm.pdf(_d1),
            pdf_d2=norm.pdf(_d2),
            dividend_discount=np.exp(-q * T),
            rate_discount=np.exp(-r * T),
        )


def d1(S: float, K: float, T: float, r: float, sigma: float, q: float = 0.0) -> float:
    """
    Compute d1 in the Black-Scholes-Merton formula.

    Parameters
    ----------
    S : spot price
    K : strike price
    T : time to expiry in years
    r : risk-free rate (annualized, continuous compounding)
    sigma : volatility (annualized)
    q : continuous dividend yield (default 0)
    """
    return (np.log(S / K) + (r - q + 0.5 * sigma**2) * T) / (sigma * np.sqrt(T))


def d2(S: float, K: float, T: float, r: float, sigma: float, q: float = 0.0) -> float:
    """Compute d2 = d1 - sigma * sqrt(T)."""
    return d1(S, K, T, r, sigma, q) - sigma * np.sqrt(T)


def _as_option_type(option_type: Union[OptionType, str]) -> OptionType:
    if isinstance(option_type, OptionType):
        return option_type
    return OptionType.from_string(option_type)


# ════════════════════════════════════════════════════════════════════════
#  PRICING
# ════════════════════════════════════════════════════════════════════════

def option_price(option_type: OptionType, S: float, K: float,
                 common: CommonCalculations) -> float:
    """
    European price under BSM:
        C = S e^{-qT} N(d1) - K e^{-rT} N(d2)
        P = K e^{-rT} N(-d2) - S e^{-qT} N(-d1)
    """
    if option_type is OptionType.CALL:
        return (S * common.dividend_discount * common.cdf_d1
                - K * common.rate_discount * common.cdf_d2)
    return (K * common.rate_discount * norm.cdf(-common.d2)
            - S * common.dividend_discount * norm.cdf(-common.d1))


# ════════════════════════════════════════════════════════════════════════
#  GREEKS
# ════════════════════════════════════════════════════════════════════════

def delta(option_type: OptionType, common: CommonCalculations) -> float:
    """
    dV/dS. Call delta is in [0, e^{-qT}], put delta in [-e^{-qT}, 0].
    """
    if option_type is OptionType.CALL:
        return common.dividend_discount * common.cdf_d1
    return common.dividend_discount * (common.cdf_d1 - 1.0)


def gamma(S: float, sigma: float, T: float, common: CommonCalculations) -> float:
    """d²V/dS². Same for calls and puts."""
    return common.dividend_discount * common.pdf_d1 / (S * sigma * np.sqrt(T))


def vega(S: float, T: float, common: CommonCalculations) -> float:
    """dV/dsigma per 1 vol point. Same for calls and puts."""
    return common.dividend_discount * S * np.sqrt(T) * common.pdf_d1 / 100.0


def rho(option_type: OptionType, K: float, T: float, common: CommonCalculations) -> float:
    """dV/dr per 1 rate point."""
    if option_type is OptionType.CALL:
        return K * T * common.rate_discount * common.cdf_d2 / 100.0
    return -K * T * common.rate_discount * norm.cdf(-common.d2) / 100.0


def theta(option_type: OptionType, S: float, K: float, sigma: float, T: float,
          r: float, q: float, common: CommonCalculations,
          days_per_year: Optional[float] = None) -> float:
    """
    Time decay per calendar day.

    The annualized BSM theta is split into the gamma-driven decay shared
    by calls and puts, plus the carry terms on each leg.
    """
    if days_per_year is None:
        days_per_year = config.DAYS_PER_YEAR

    time_decay = -(S * common.dividend_discount * common.pdf_d1 * sigma) / (2 * np.sqrt(T))

    if option_type is OptionType.CALL:
        carry = (-r * K * common.rate_discount * common.cdf_d2
                 + q * S * common.dividend_discount * common.cdf_d1)
    else:
        carry = (r * K * common.rate_discount * norm.cdf(-common.d2)
                 - q * S * common.dividend_discount * norm.cdf(-common.d1))

    return (time_decay + carry) / days_per_year


# ════════════════════════════════════════════════════════════════════════
#  ENTRY POINTS
# ════════════════════════════════════════════════════════════════════════

def calculate(
    option_type: Union[OptionType, str],
    strike: float,
    underlying_price: float,
    volatility: float,
    time_to_maturity: float,
    risk_free_rate: float,
    dividend_yield: float = 0.0,
    days_per_year: Optional[float] = None,
) -> PricingResult:
    """
    Price and greeks of a European option on a dividend-paying spot.

    Unrounded, use PricingResult.rounded() for presentation.
    """
    option_type = _as_option_type(option_type)
    S, K, T = underlying_price, strike, time_to_maturity
    r, q, sigma = risk_free_rate, dividend_yield, volatility

    common = CommonCalculations.from_inputs(S, K, r, q, sigma, T)
    return PricingResult(
        price=float(option_price(option_type, S, K, common)),
        delta=float(delta(option_type, common)),
        gamma=float(gamma(S, sigma, T, common)),
        vega=float(vega(S, T, common)),
        theta=float(theta(option_type, S, K, sigma, T, r, q, common, days_per_year)),
        rho=float(rho(option_type, K, T, common)),
    )


def price_option(
    valuation_time: DateLike,
    option: OptionQuote,
    underlying_price: float,
    volatility: float,
    risk_free_rate: float,
) -> PricingResult:
    """Price an option from its reference data (maturity, day count, dividend yield)."""
    T = option_time_to_maturity(valuation_time, option)
    return calculate(
        option.option_type,
        option.strike,
        underlying_price,
        volatility,
        T,
        risk_free_rate,
        option.dividend_yield,
        option.day_count.days_per_year,
    )


def implied_volatility(
    option_type: Union[OptionType, str],
    strike: float,
    market_price: float,
    underlying_price: float,
    time_to_maturity: float,
    risk_free_rate: float,
    dividend_yield: float = 0.0,
    strategy: SeedStrategy = SeedStrategy.FIXED,
    initial_guess: Optional[float] = None,
) -> ImpliedVolResult:
    """
    Invert BSM against an observed price.

    Seeds from a fixed guess unless another strategy is requested. Never
    raises on non-convergence; check the result's status instead.
    """
    option_type = _as_option_type(option_type)
    S, K, T = underlying_price, strike, time_to_maturity
    r, q = risk_free_rate, dividend_yield

    def pricer(sigma: float):
        common = CommonCalculations.from_inputs(S, K, r, q, sigma, T)
        return option_price(option_type, S, K, common), vega(S, T, common)

    return solve_implied_volatility(pricer, market_price, strategy, initial_guess)
