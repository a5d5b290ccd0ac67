"""
Option chain sources and conversion to/from tabular form.

Two ways to get a chain into the calibration code:
    1. Synthetic: price a full put/call grid off a smooth, skewed vol
       smile with the pricing kernels (offline, reproducible)
    2. CSV / DataFrame: one row per instrument, the underlying included

Either way the result is the same triple the calibration modules consume:
(underlying, list of OptionQuote, price map keyed by instrument).

Tabular schema:
    instrument_id, underlying_id, strike, maturity, option_type,
    price_model, dividend_yield, price

The underlying is the row whose option_type is empty.
"""

import logging
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from . import config
from .curves import FlatYieldCurve
from .instruments import (
    DateLike, OptionQuote, OptionType, PriceModel, Underlying, as_date, option_time_to_maturity,
)
from .pricing import price_by_model

logger = logging.getLogger(__name__)

CHAIN_COLUMNS = [
    "instrument_id", "underlying_id", "strike", "maturity",
    "option_type", "price_model", "dividend_yield", "price",
]

Chain = Tuple[Underlying, List[OptionQuote], Dict]


# ════════════════════════════════════════════════════════════════════════
#  SYNTHETIC DATA
# ════════════════════════════════════════════════════════════════════════

def smile_volatility(
    log_moneyness: float,
    T: float,
    atm_vol: float = None,
    skew: float = None,
    smile: float = None,
    term_decay: float = None,
) -> float:
    """
    Simple equity-style smile: quadratic in log-moneyness, with skew and
    curvature fading as sqrt(T) grows and a slowly declining ATM level.
    """
    if atm_vol is None:
        atm_vol = config.SYNTHETIC_ATM_VOL
    if skew is None:
        skew = config.SYNTHETIC_SKEW
    if smile is None:
        smile = config.SYNTHETIC_SMILE
    if term_decay is None:
        term_decay = config.SYNTHETIC_TERM_DECAY

    damp = 1.0 / np.sqrt(max(T, 1e-4) / 0.25 + 1.0)
    level = max(atm_vol - term_decay * T, 0.01)
    return float(level + skew * damp * log_moneyness + smile * damp * log_moneyness**2)


def generate_synthetic_chain(
    valuation_date: DateLike,
    spot: float = None,
    rate: float = None,
    dividend_yield: float = None,
    expiry_days: Sequence[int] = None,
    strikes: Optional[Sequence[float]] = None,
    price_model: PriceModel = PriceModel.SPOT_DIVIDEND,
    noise_std: float = 0.0,
    seed: Optional[int] = None,
    underlying_id: str = "SYNTH",
) -> Chain:
    """
    Price a full put/call chain from a known smile.

    Parameters
    ----------
    valuation_date : date the chain is priced on
    spot : underlying price (default: config.SYNTHETIC_SPOT)
    rate : flat continuously-compounded rate (default: config.SYNTHETIC_RATE)
    dividend_yield : continuous yield (default: config.SYNTHETIC_DIVIDEND_YIELD)
    expiry_days : calendar days to each expiry (default: config.SYNTHETIC_EXPIRY_DAYS)
    strikes : strike list (default: evenly spaced within spot * (1 ± bound))
    price_model : convention declared on every generated option
    noise_std : relative price noise; 0 keeps the chain arbitrage-free
    seed : random seed for the noise (default: config.SEED)

    Returns
    -------
    underlying, options, price_map
    """
    if spot is None:
        spot = config.SYNTHETIC_SPOT
    if rate is None:
        rate = config.SYNTHETIC_RATE
    if dividend_yield is None:
        dividend_yield = config.SYNTHETIC_DIVIDEND_YIELD
    if expiry_days is None:
        expiry_days = config.SYNTHETIC_EXPIRY_DAYS
    if strikes is None:
        bound = config.SYNTHETIC_STRIKE_BOUND
        strikes = np.round(np.linspace(spot * (1 - bound), spot * (1 + bound),
                                       config.SYNTHETIC_N_STRIKES), 2)
    if seed is None:
        seed = config.SEED

    rng = np.random.default_rng(seed)
    yield_curve = FlatYieldCurve(rate)
    base = as_date(valuation_date)

    underlying = Underlying(underlying_id)
    price_map: Dict = {underlying: float(spot)}
    options: List[OptionQuote] = []

    for days in expiry_days:
        maturity = base + timedelta(days=int(days))
        for K in strikes:
            for option_type in (OptionType.CALL, OptionType.PUT):
                option = OptionQuote(
                    instrument_id=f"{underlying_id}-{maturity:%Y%m%d}-{option_type.value[0]}-{K:g}",
                    underlying_id=underlying_id,
                    strike=float(K),
                    maturity=maturity,
                    option_type=option_type,
                    price_model=price_model,
                    dividend_yield=float(dividend_yield),
                )
                T = option_time_to_maturity(valuation_date, option)
                r = yield_curve.get_yield(T)
                forward = spot * np.exp((r - dividend_yield) * T)
                sigma = smile_volatility(np.log(K / spot), T)
                reference = forward if price_model is PriceModel.FORWARD else spot
                price = price_by_model(option, reference, sigma, T, r).price
                if noise_std > 0:
                    price *= 1.0 + rng.normal(0.0, noise_std)
                options.append(option)
                price_map[option] = round(max(price, 0.0), 6)

    logger.info("generated %d synthetic options on %s", len(options), underlying_id)
    return underlying, options, price_map


# ════════════════════════════════════════════════════════════════════════
#  TABULAR I/O
# ════════════════════════════════════════════════════════════════════════

def chain_to_frame(underlying: Underlying, options: Sequence[OptionQuote], price_map: Dict) -> pd.DataFrame:
    """Flatten a chain to the tabular schema (underlying first)."""
    rows = [{
        "instrument_id": underlying.instrument_id,
        "underlying_id": underlying.instrument_id,
        "strike": np.nan,
        "maturity": None,
        "option_type": None,
        "price_model": None,
        "dividend_yield": np.nan,
        "price": price_map.get(underlying, np.nan),
    }]
    for option in options:
        rows.append({
            "instrument_id": option.instrument_id,
            "underlying_id": option.underlying_id,
            "strike": option.strike,
            "maturity": option.maturity.isoformat(),
            "option_type": option.option_type.value,
            "price_model": option.price_model.value,
            "dividend_yield": option.dividend_yield,
            "price": price_map.get(option, np.nan),
        })
    return pd.DataFrame(rows, columns=CHAIN_COLUMNS)


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, float) and np.isnan(value)) or str(value).strip() == ""


def chain_from_frame(df: pd.DataFrame) -> Chain:
    """
    Rebuild (underlying, options, price map) from the tabular schema.

    Rows without a price are kept as options but left out of the price
    map, matching how the calibration code treats missing quotes.

    Raises
    ------
    ValueError : missing columns, or not exactly one underlying row
    """
    missing = [c for c in CHAIN_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"chain is missing columns: {missing}")

    is_underlying = df["option_type"].apply(_is_blank)
    if is_underlying.sum() != 1:
        raise ValueError(f"expected exactly one underlying row, found {int(is_underlying.sum())}")

    u_row = df[is_underlying].iloc[0]
    underlying = Underlying(str(u_row["instrument_id"]))
    price_map: Dict = {}
    if not _is_blank(u_row["price"]):
        price_map[underlying] = float(u_row["price"])

    options = []
    for _, row in df[~is_underlying].iterrows():
        price_model = (PriceModel.SPOT_DIVIDEND if _is_blank(row["price_model"])
                       else PriceModel.from_string(row["price_model"]))
        option = OptionQuote(
            instrument_id=str(row["instrument_id"]),
            underlying_id=str(row["underlying_id"]),
            strike=float(row["strike"]),
            maturity=pd.Timestamp(row["maturity"]).date(),
            option_type=OptionType.from_string(row["option_type"]),
            price_model=price_model,
            dividend_yield=0.0 if _is_blank(row["dividend_yield"]) else float(row["dividend_yield"]),
        )
        options.append(option)
        if not _is_blank(row["price"]):
            price_map[option] = float(row["price"])

    return underlying, options, price_map


def load_chain_csv(path) -> Chain:
    """Read a chain CSV written by save_chain_csv (or by hand, same schema)."""
    return chain_from_frame(pd.read_csv(path))


def save_chain_csv(path, underlying: Underlying, options: Sequence[OptionQuote], price_map: Dict) -> None:
    chain_to_frame(underlying, options, price_map).to_csv(path, index=False)


def get_option_data(
    source: str = "synthetic",
    valuation_date: Optional[date] = None,
    path=None,
    price_model: PriceModel = PriceModel.SPOT_DIVIDEND,
    spot: float = None,
    rate: float = None,
) -> Chain:
    """
    Main entry point for getting a chain.

    Parameters
    ----------
    source : "csv" or "synthetic"
    valuation_date : pricing date for synthetic chains (default: today)
    path : CSV path (csv source only)
    price_model : convention for synthetic options
    spot, rate : synthetic market (defaults in config)
    """
    if source == "csv":
        if path is None:
            raise ValueError("csv source needs a path")
        return load_chain_csv(path)
    elif source == "synthetic":
        if valuation_date is None:
            valuation_date = date.today()
        return generate_synthetic_chain(valuation_date, spot=spot, rate=rate, price_model=price_model)
    else:
        raise ValueError(f"Unknown source: {source}. Use 'csv' or 'synthetic'.")
