"""
Forward price curve from put-call parity.

For a European put/call pair at the same strike and maturity,

    C - P = e^{-rT} (F - K)   =>   F = K + (C - P) e^{rT}

so every strike quoted on both sides gives an estimate of the forward.
Estimates are averaged per maturity, one point per maturity goes on the
curve, and the curve interpolates in time to maturity.

Sparse chains degrade gracefully: a strike missing a leg or a price is
skipped, and a maturity with no usable pair contributes no point.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from .curves import ForwardPricePoint, ForwardPriceCurve, InterpolationMethod
from .instruments import DateLike, OptionQuote, OptionType, Underlying, option_time_to_maturity

logger = logging.getLogger(__name__)


def parity_forward(strike: float, call_price: float, put_price: float,
                   time_to_maturity: float, risk_free_rate: float) -> float:
    """Forward implied by one put/call pair."""
    return strike + (call_price - put_price) * np.exp(risk_free_rate * time_to_maturity)


def _group_by_maturity(options: Sequence[OptionQuote]) -> Dict:
    grouped = defaultdict(list)
    for option in options:
        grouped[option.maturity].append(option)
    return grouped


def _pair_legs(options_at_maturity: List[OptionQuote]) -> Dict[float, Dict[OptionType, OptionQuote]]:
    """strike -> {CALL: option, PUT: option}; the first quote of each leg wins."""
    legs: Dict[float, Dict[OptionType, OptionQuote]] = defaultdict(dict)
    for option in options_at_maturity:
        legs[option.strike].setdefault(option.option_type, option)
    return legs


def forward_at_maturity(
    options_at_maturity: List[OptionQuote],
    price_map: Mapping,
    time_to_maturity: float,
    risk_free_rate: float,
    reference_strike: Optional[float] = None,
) -> Optional[float]:
    """
    Average parity forward over the strikes quoted on both sides.

    With reference_strike, only that strike is used. Returns None when no
    strike has both legs priced.
    """
    estimates = []
    for strike, legs in _pair_legs(options_at_maturity).items():
        if reference_strike is not None and not np.isclose(strike, reference_strike):
            continue
        call = legs.get(OptionType.CALL)
        put = legs.get(OptionType.PUT)
        if call is None or put is None:
            continue
        call_price = price_map.get(call)
        put_price = price_map.get(put)
        if call_price is None or put_price is None:
            logger.debug("no price for one leg at strike %s, skipping", strike)
            continue
        estimates.append(parity_forward(strike, call_price, put_price,
                                        time_to_maturity, risk_free_rate))

    if not estimates:
        return None
    return float(np.mean(estimates))


def build_forward_curve(
    valuation_time: DateLike,
    options: Sequence[OptionQuote],
    price_map: Mapping,
    yield_curve,
    underlying: Optional[Underlying] = None,
    reference_strike: Optional[float] = None,
    method: InterpolationMethod = InterpolationMethod.CUBIC_SPLINE,
) -> ForwardPriceCurve:
    """
    Build the forward price curve for one underlying from its option chain.

    Parameters
    ----------
    valuation_time : valuation date (datetimes are truncated to the date)
    options : option chain on a single underlying
    price_map : instrument -> observed price
    yield_curve : object exposing get_yield(time_to_maturity)
    underlying : used only to label the curve (default: taken from the chain)
    reference_strike : if given, use only this strike at every maturity
                       instead of averaging across strikes
    method : interpolation method handed to the curve

    Returns
    -------
    ForwardPriceCurve : may be empty if nothing in the chain is usable
    """
    if underlying is not None:
        underlying_id = underlying.instrument_id
    elif options:
        underlying_id = options[0].underlying_id
    else:
        underlying_id = ""

    points = []
    for maturity, options_at_maturity in _group_by_maturity(options).items():
        T = option_time_to_maturity(valuation_time, options_at_maturity[0])
        if T <= 0:
            logger.debug("maturity %s is not after valuation, skipping", maturity)
            continue

        r = yield_curve.get_yield(T)
        forward = forward_at_maturity(options_at_maturity, price_map, T, r, reference_strike)
        if forward is None:
            logger.debug("no put/call pair at maturity %s, no forward point", maturity)
            continue
        points.append(ForwardPricePoint(T, forward))

    points.sort(key=lambda p: p.time_to_maturity)
    if not points:
        logger.warning("forward curve for %s has no points", underlying_id or "<empty chain>")
    else:
        logger.info("forward curve for %s built from %d maturities", underlying_id, len(points))

    return ForwardPriceCurve(underlying_id, tuple(points), method)
