"""
Instrument and result types shared by the pricing and calibration modules.

Reference data (option quotes, the underlying) is immutable once created:
option quotes double as keys of the price map, so they must stay hashable.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

from . import config


DateLike = Union[date, datetime]


class OptionType(Enum):
    CALL = "CALL"
    PUT = "PUT"

    @classmethod
    def from_string(cls, value: str) -> "OptionType":
        """Accepts 'call'/'c'/'put'/'p' in any case."""
        key = str(value).strip().lower()
        if key in ("c", "call"):
            return cls.CALL
        if key in ("p", "put"):
            return cls.PUT
        raise ValueError(f"Unknown option_type: {value}. Use 'call' or 'put'.")


class PriceModel(Enum):
    """Pricing convention declared by an option's reference data."""
    SPOT_DIVIDEND = "SPOT_DIVIDEND"    # Black-Scholes-Merton, continuous yield
    FORWARD = "FORWARD"                # Black-76

    @classmethod
    def from_string(cls, value: str) -> "PriceModel":
        key = str(value).strip().lower()
        if key in ("spot", "spot_dividend", "bsm", "black_scholes"):
            return cls.SPOT_DIVIDEND
        if key in ("forward", "black76", "black_76"):
            return cls.FORWARD
        raise ValueError(f"Unknown price_model: {value}. Use 'spot' or 'forward'.")


class DayCountConvention(Enum):
    ACT365 = 365.0
    ACT360 = 360.0

    @property
    def days_per_year(self) -> float:
        return self.value


@dataclass(frozen=True)
class Underlying:
    instrument_id: str


@dataclass(frozen=True)
class OptionQuote:
    """European option reference data. Never mutated after creation."""
    instrument_id: str
    underlying_id: str
    strike: float
    maturity: date
    option_type: OptionType
    price_model: PriceModel = PriceModel.SPOT_DIVIDEND
    dividend_yield: float = 0.0
    day_count: DayCountConvention = DayCountConvention.ACT365

    @property
    def is_call(self) -> bool:
        return self.option_type is OptionType.CALL


@dataclass(frozen=True)
class PricingResult:
    """Price and greeks of one option under one convention.

    vega and rho are per 1 point (1%) move, theta per calendar day.
    """
    price: float
    delta: float
    gamma: float
    vega: float
    theta: float
    rho: float

    def rounded(self, decimals: Optional[int] = None) -> "PricingResult":
        """Presentation rounding, applied at the boundary only."""
        if decimals is None:
            decimals = config.RESULT_DECIMALS
        return replace(
            self,
            price=round(self.price, decimals),
            delta=round(self.delta, decimals),
            gamma=round(self.gamma, decimals),
            vega=round(self.vega, decimals),
            theta=round(self.theta, decimals),
            rho=round(self.rho, decimals),
        )


def as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def days_between(start: DateLike, end: DateLike) -> int:
    """Whole calendar days from start to end (negative if end is earlier)."""
    return (as_date(end) - as_date(start)).days


def time_to_maturity(
    valuation_time: DateLike,
    maturity: DateLike,
    day_count: Optional[DayCountConvention] = None,
) -> float:
    """
    Year fraction between valuation and maturity under a day-count convention.

    Only whole days count; intraday times are truncated to their date.
    Defaults to ACT/365.
    """
    days_per_year = day_count.days_per_year if day_count is not None else config.DAYS_PER_YEAR
    return days_between(valuation_time, maturity) / days_per_year


def option_time_to_maturity(valuation_time: DateLike, option: OptionQuote) -> float:
    return time_to_maturity(valuation_time, option.maturity, option.day_count)
