"""
Implied volatility by Newton iteration on vega.

One solver serves both pricing conventions: the caller hands in a
`pricer(sigma) -> (price, vega)` closure over the kernel it wants to
invert, and picks how the iteration is seeded:

    BRACKET : a few bisection steps over [0, 5] to land near the root.
              Lands Newton where price is close to linear in vol.
    FIXED   : start from a constant (default 30% vol).

Newton steps are `sigma -= (price - market) / (vega * 100)` because the
kernels quote vega per vol point. Every iterate is clamped into
[IV_CLAMP_MIN, IV_CLAMP_MAX]. The loop stops as soon as either the price
residual or the vol step drops below IV_THRESHOLD.

The solver never raises on non-convergence. The result carries a status
so callers can decide how much to trust a calibrated point.

References:
    Hull, J.C. (2018). Options, Futures, and Other Derivatives. 10th ed., ch. 15.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

import numpy as np

from . import config

logger = logging.getLogger(__name__)

Pricer = Callable[[float], Tuple[float, float]]


class SeedStrategy(Enum):
    BRACKET = "BRACKET"
    FIXED = "FIXED"


class SolverStatus(Enum):
    CONVERGED = "CONVERGED"
    MAX_ITERATIONS_REACHED = "MAX_ITERATIONS_REACHED"
    DEGENERATE_VEGA = "DEGENERATE_VEGA"
    AT_BOUND = "AT_BOUND"


@dataclass(frozen=True)
class ImpliedVolResult:
    """Tagged solver outcome. `volatility` is the last clamped iterate."""
    volatility: float
    status: SolverStatus
    iterations: int
    price_error: float

    @property
    def converged(self) -> bool:
        return self.status is SolverStatus.CONVERGED

    def __float__(self) -> float:
        return float(self.volatility)


def clamp_volatility(sigma: float) -> float:
    return max(config.IV_CLAMP_MIN, min(sigma, config.IV_CLAMP_MAX))


def bracket_initial_guess(
    pricer: Pricer,
    market_price: float,
    lower: float = None,
    upper: float = None,
    iterations: int = None,
) -> float:
    """
    Bisection seed: narrow [lower, upper] toward the vol whose model price
    matches the market, for a fixed (small) number of steps.

    Option prices are increasing in vol, so a model price above the market
    means the root is below the midpoint.
    """
    if lower is None:
        lower = config.IV_BRACKET_LOWER
    if upper is None:
        upper = config.IV_BRACKET_UPPER
    if iterations is None:
        iterations = config.IV_BRACKET_ITERATIONS

    for _ in range(iterations):
        mid = (lower + upper) / 2.0
        price, _ = pricer(mid)
        if price > market_price:
            upper = mid
        elif price < market_price:
            lower = mid
        else:
            return mid
    return (lower + upper) / 2.0


def solve_implied_volatility(
    pricer: Pricer,
    market_price: float,
    strategy: SeedStrategy = SeedStrategy.FIXED,
    initial_guess: Optional[float] = None,
    max_iter: int = None,
    tol: float = None,
) -> ImpliedVolResult:
    """
    Invert a pricing kernel against an observed market price.

    Parameters
    ----------
    pricer : callable sigma -> (theoretical price, vega per vol point)
    market_price : observed option price
    strategy : how to seed the Newton iteration
    initial_guess : seed for SeedStrategy.FIXED (default: config.IV_FIXED_SEED)
    max_iter : iteration cap (default: config.IV_MAX_ITERATIONS)
    tol : threshold on price residual and vol step (default: config.IV_THRESHOLD)

    Returns
    -------
    ImpliedVolResult
    """
    if max_iter is None:
        max_iter = config.IV_MAX_ITERATIONS
    if tol is None:
        tol = config.IV_THRESHOLD

    if strategy is SeedStrategy.BRACKET:
        sigma = bracket_initial_guess(pricer, market_price)
    elif strategy is SeedStrategy.FIXED:
        sigma = config.IV_FIXED_SEED if initial_guess is None else initial_guess
    else:
        raise ValueError(f"Unknown seed strategy: {strategy}")

    sigma = clamp_volatility(sigma)
    diff = np.nan

    for i in range(max_iter):
        price, vega = pricer(sigma)
        diff = price - market_price

        if not np.isfinite(vega) or abs(vega) < config.VEGA_EPSILON:
            # deep ITM/OTM or near expiry, the step is undefined
            logger.debug("vega vanished at sigma=%.6f after %d iterations", sigma, i)
            return ImpliedVolResult(sigma, SolverStatus.DEGENERATE_VEGA, i + 1, abs(diff))

        updated = clamp_volatility(sigma - diff / (vega * config.VEGA_SCALE))
        step = updated - sigma
        sigma = updated

        if abs(diff) <= tol:
            return ImpliedVolResult(sigma, SolverStatus.CONVERGED, i + 1, abs(diff))
        if abs(step) <= tol:
            if sigma in (config.IV_CLAMP_MIN, config.IV_CLAMP_MAX):
                # pinned by the clamp: the market price is outside the model range
                return ImpliedVolResult(sigma, SolverStatus.AT_BOUND, i + 1, abs(diff))
            return ImpliedVolResult(sigma, SolverStatus.CONVERGED, i + 1, abs(diff))

    logger.debug("implied vol did not converge in %d iterations (residual %.3g)", max_iter, diff)
    return ImpliedVolResult(sigma, SolverStatus.MAX_ITERATIONS_REACHED, max_iter, abs(diff))
