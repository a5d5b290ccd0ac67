"""
Term-structure objects consumed and produced by the calibration code.

Yield curves are an input: anything with `get_yield(time_to_maturity)`
works. Two simple implementations live here for tests and the CLI;
real bootstrapped curves come from elsewhere.

The forward price curve is an output of forward_curve.build_forward_curve.
It is immutable once built and queried by time to maturity.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence, Tuple

import numpy as np
from scipy.interpolate import CubicSpline


class InterpolationMethod(Enum):
    CUBIC_SPLINE = "CUBIC_SPLINE"
    LINEAR = "LINEAR"


def _make_interpolator(x: np.ndarray, y: np.ndarray, method: InterpolationMethod):
    """
    Build a callable x -> y over strictly increasing knots.

    A single knot gives a flat curve; two knots fall back to linear since
    a natural spline through two points is a line anyway.
    """
    if len(x) == 1:
        return lambda t: float(y[0])
    if method is InterpolationMethod.CUBIC_SPLINE and len(x) > 2:
        # natural end conditions, extrapolates with the end cubics
        spline = CubicSpline(x, y, bc_type="natural", extrapolate=True)
        return lambda t: float(spline(t))
    # linear with flat extrapolation
    return lambda t: float(np.interp(t, x, y))


def _check_knots(times: np.ndarray, name: str) -> None:
    if np.any(np.diff(times) <= 0):
        raise ValueError(f"{name} time-to-maturity points must be strictly increasing")


# ════════════════════════════════════════════════════════════════════════
#  YIELD CURVES
# ════════════════════════════════════════════════════════════════════════

class FlatYieldCurve:
    """Same continuously-compounded rate at every maturity."""

    def __init__(self, rate: float):
        self.rate = float(rate)

    def get_yield(self, time_to_maturity: float) -> float:
        return self.rate

    def __repr__(self) -> str:
        return f"FlatYieldCurve(rate={self.rate})"


class InterpolatedYieldCurve:
    """
    Zero-rate curve through (time to maturity, rate) knots.

    Parameters
    ----------
    maturities : year fractions, strictly increasing
    yields : continuously-compounded zero rates
    method : interpolation between knots (default natural cubic spline)
    """

    def __init__(self, maturities: Sequence[float], yields: Sequence[float],
                 method: InterpolationMethod = InterpolationMethod.CUBIC_SPLINE):
        t = np.asarray(maturities, dtype=float)
        y = np.asarray(yields, dtype=float)
        if t.size == 0 or t.shape != y.shape:
            raise ValueError("maturities and yields must be non-empty and the same length")
        _check_knots(t, "yield curve")
        self.maturities = t
        self.yields = y
        self.method = method
        self._interp = _make_interpolator(t, y, method)

    def get_yield(self, time_to_maturity: float) -> float:
        return self._interp(time_to_maturity)


# ════════════════════════════════════════════════════════════════════════
#  FORWARD PRICE CURVE
# ════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ForwardPricePoint:
    time_to_maturity: float
    forward_price: float


@dataclass(frozen=True)
class ForwardPriceCurve:
    """
    Interpolated forward prices for one underlying at one valuation time.

    An empty curve is legal (an empty chain produces one) but cannot be
    queried; check `is_empty` first.
    """
    underlying_id: str
    points: Tuple[ForwardPricePoint, ...]
    method: InterpolationMethod = InterpolationMethod.CUBIC_SPLINE
    _interp: object = field(init=False, repr=False, compare=False, default=None)

    def __post_init__(self):
        object.__setattr__(self, "points", tuple(self.points))
        if not self.points:
            return
        t = np.array([p.time_to_maturity for p in self.points], dtype=float)
        f = np.array([p.forward_price for p in self.points], dtype=float)
        _check_knots(t, "forward curve")
        object.__setattr__(self, "_interp", _make_interpolator(t, f, self.method))

    @property
    def is_empty(self) -> bool:
        return not self.points

    def get_forward_price(self, time_to_maturity: float) -> float:
        if self._interp is None:
            raise ValueError(f"forward curve for {self.underlying_id} has no points")
        return self._interp(time_to_maturity)

    def __len__(self) -> int:
        return len(self.points)
