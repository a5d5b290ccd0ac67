"""
Implied volatility surface construction: from an option chain and a
price map to a cloud of (time to maturity, log-moneyness, vol) points.

The pipeline:
    1. Look up the underlying's observed price (spot)
    2. Drop quotes that violate static no-arbitrage (arbitrage_filter)
    3. For each surviving option, solve implied vol under the option's
       own pricing convention:
         - SPOT_DIVIDEND : BSM on the spot with the option's dividend yield
         - FORWARD       : Black-76 on the forward curve's forward, or on
                           S e^{(r - q) T} when no forward curve is given
    4. Round points to 5 decimals and attach the construction method

Points are independent of each other, so one bad quote (solver blow-up,
expired option, missing rate) costs that point only, never the surface.

The surface object interpolates on demand with scipy.griddata and can
render itself onto a regular grid for charting or export.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.interpolate import griddata
from scipy.ndimage import gaussian_filter
from scipy.spatial import QhullError

from . import config
from .arbitrage_filter import filter_arbitrage
from .curves import ForwardPriceCurve
from .instruments import DateLike, OptionQuote, PriceModel, Underlying, option_time_to_maturity
from .pricing import implied_volatility_by_model

logger = logging.getLogger(__name__)


class SurfaceConstructionMethod(Enum):
    HERMITE_BICUBIC = "cubic"    # Clough-Tocher piecewise cubic, C1
    LINEAR = "linear"
    NEAREST = "nearest"

    @classmethod
    def from_string(cls, value: str) -> "SurfaceConstructionMethod":
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown surface method: {value}. "
                             f"Use one of {[m.name for m in cls]}.") from None


@dataclass(frozen=True)
class ImpliedVolPoint:
    time_to_maturity: float
    log_moneyness: float
    volatility: float
    converged: bool = True


@dataclass(frozen=True)
class ImpliedVolatilitySurface:
    """Calibration points for one underlying plus how to interpolate them."""
    underlying_id: str
    spot_price: float
    method: SurfaceConstructionMethod
    points: Tuple[ImpliedVolPoint, ...]

    def __len__(self) -> int:
        return len(self.points)

    def _coordinates(self) -> Tuple[np.ndarray, np.ndarray]:
        if not self.points:
            raise ValueError(f"surface for {self.underlying_id} has no points")
        xy = np.array([(p.log_moneyness, p.time_to_maturity) for p in self.points], dtype=float)
        iv = np.array([p.volatility for p in self.points], dtype=float)
        return xy, iv

    def _interpolate(self, xi: Tuple[np.ndarray, np.ndarray], method: str) -> np.ndarray:
        xy, iv = self._coordinates()
        try:
            out = griddata(points=xy, values=iv, xi=xi, method=method)
        except (QhullError, ValueError):
            # too few or collinear points (e.g. a single expiry) for a triangulation
            out = griddata(points=xy, values=iv, xi=xi, method="nearest")
        nan_mask = np.isnan(out)
        if nan_mask.any():
            # outside the convex hull of the data
            nearest = griddata(points=xy, values=iv, xi=xi, method="nearest")
            out[nan_mask] = nearest[nan_mask]
        return out

    def get_volatility(self, time_to_maturity: float, log_moneyness: float) -> float:
        """Interpolated implied vol at one (T, log-moneyness) coordinate."""
        xi = (np.array([log_moneyness], dtype=float), np.array([time_to_maturity], dtype=float))
        return float(self._interpolate(xi, self.method.value)[0])

    def to_frame(self) -> pd.DataFrame:
        """Points as a DataFrame with columns [T, log_moneyness, iv, strike, converged]."""
        df = pd.DataFrame(
            [(p.time_to_maturity, p.log_moneyness, p.volatility, p.converged) for p in self.points],
            columns=["T", "log_moneyness", "iv", "converged"],
        )
        df.insert(3, "strike", self.spot_price * np.exp(df["log_moneyness"]))
        return df

    def to_grid(
        self,
        n_k: int = None,
        n_t: int = None,
        smooth_sigma: Optional[float] = None,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """
        Interpolate the points onto a regular (log-moneyness, T) grid.

        Parameters
        ----------
        n_k : grid points along log-moneyness (default: config.GRID_K_POINTS)
        n_t : grid points along maturity (default: config.GRID_T_POINTS)
        smooth_sigma : if provided, Gaussian smoothing with this sigma.
                       None = no smoothing.

        Returns
        -------
        k_grid : 1D log-moneyness values (n_k)
        T_grid : 1D maturities (n_t)
        k_mesh, T_mesh : 2D meshgrids (n_t x n_k)
        IV_mesh : 2D interpolated implied vols (n_t x n_k), no NaNs
        """
        if n_k is None:
            n_k = config.GRID_K_POINTS
        if n_t is None:
            n_t = config.GRID_T_POINTS

        xy, _ = self._coordinates()
        k, T = xy[:, 0], xy[:, 1]

        # percentiles keep a stray wing quote from stretching the grid
        k_min, k_max = np.percentile(k, [2, 98])
        T_min, T_max = T.min(), T.max()

        # avoid degenerate grids
        if k_max - k_min < 1e-3:
            k_min -= 0.05
            k_max += 0.05
        if T_max - T_min < 0.001:
            T_max = T_min + 0.01

        k_grid = np.linspace(k_min, k_max, n_k)
        T_grid = np.linspace(T_min, T_max, n_t)
        k_mesh, T_mesh = np.meshgrid(k_grid, T_grid)

        IV_mesh = self._interpolate((k_mesh, T_mesh), self.method.value)

        if smooth_sigma is not None and smooth_sigma > 0:
            IV_mesh = gaussian_filter(IV_mesh, sigma=smooth_sigma)

        return k_grid, T_grid, k_mesh, T_mesh, IV_mesh


# ════════════════════════════════════════════════════════════════════════
#  CONSTRUCTION
# ════════════════════════════════════════════════════════════════════════

def calculate_implied_vol_point(
    valuation_time: DateLike,
    option: OptionQuote,
    spot_price: float,
    market_price: float,
    yield_curve,
    forward_curve: Optional[ForwardPriceCurve] = None,
    decimals: int = None,
) -> ImpliedVolPoint:
    """
    Implied vol point for a single option.

    Raises
    ------
    ValueError : option already expired, or the solve produced a non-finite vol
    """
    if decimals is None:
        decimals = config.RESULT_DECIMALS

    T = option_time_to_maturity(valuation_time, option)
    if T <= 0:
        raise ValueError(f"{option.instrument_id} matures on or before the valuation date")

    log_moneyness = np.log(option.strike / spot_price)
    r = yield_curve.get_yield(T)

    if option.price_model is PriceModel.FORWARD:
        if forward_curve is not None and not forward_curve.is_empty:
            reference_price = forward_curve.get_forward_price(T)
        else:
            reference_price = spot_price * np.exp((r - option.dividend_yield) * T)
    else:
        reference_price = spot_price

    result = implied_volatility_by_model(option, market_price, reference_price, T, r)
    if not np.isfinite(result.volatility):
        raise ValueError(f"non-finite implied vol for {option.instrument_id}")

    return ImpliedVolPoint(
        time_to_maturity=round(T, decimals),
        log_moneyness=round(float(log_moneyness), decimals),
        volatility=round(float(result.volatility), decimals),
        converged=result.converged,
    )


def build_surface(
    valuation_time: DateLike,
    underlying: Underlying,
    options: Sequence[OptionQuote],
    price_map: Mapping,
    yield_curve,
    forward_curve: Optional[ForwardPriceCurve] = None,
    method: Optional[SurfaceConstructionMethod] = None,
) -> ImpliedVolatilitySurface:
    """
    Calibrate the implied volatility surface of one underlying.

    Parameters
    ----------
    valuation_time : valuation date
    underlying : the underlying instrument; its price must be in price_map
    options : option chain on the underlying
    price_map : instrument -> observed price (underlying and options)
    yield_curve : object exposing get_yield(time_to_maturity)
    forward_curve : forward prices for FORWARD-convention options (optional)
    method : construction method (default: config.SURFACE_METHOD)

    Returns
    -------
    ImpliedVolatilitySurface

    Raises
    ------
    ValueError : no observed price for the underlying
    """
    if method is None:
        method = SurfaceConstructionMethod.from_string(config.SURFACE_METHOD)

    spot_price = price_map.get(underlying)
    if spot_price is None:
        raise ValueError(f"no price for underlying {underlying.instrument_id}")
    spot_price = float(spot_price)

    filtered = filter_arbitrage(options, price_map, spot_price)

    points: List[ImpliedVolPoint] = []
    n_failed = 0
    for option in filtered:
        try:
            point = calculate_implied_vol_point(
                valuation_time, option, spot_price, price_map[option],
                yield_curve, forward_curve,
            )
        except (ValueError, ArithmeticError) as e:
            n_failed += 1
            logger.debug("dropping %s: %s", option.instrument_id, e)
            continue
        points.append(point)

    n_unconverged = sum(1 for p in points if not p.converged)
    if n_unconverged:
        logger.warning("%d of %d implied vols did not converge for %s",
                       n_unconverged, len(points), underlying.instrument_id)
    logger.info("surface for %s: %d points (%d filtered out, %d failed)",
                underlying.instrument_id, len(points), len(options) - len(filtered), n_failed)

    return ImpliedVolatilitySurface(
        underlying_id=underlying.instrument_id,
        spot_price=spot_price,
        method=method,
        points=tuple(points),
    )


# ════════════════════════════════════════════════════════════════════════
#  DIAGNOSTICS
# ════════════════════════════════════════════════════════════════════════

def extract_skew_slices(
    surface: ImpliedVolatilitySurface,
    target_maturities: list,
) -> dict:
    """
    IV vs log-moneyness for the maturities closest to each target.

    Returns
    -------
    dict : {T_value: DataFrame subset sorted by log_moneyness}, empty for an empty surface
    """
    df = surface.to_frame()
    if df.empty:
        return {}
    available_T = sorted(df["T"].unique())
    slices = {}

    for target_T in target_maturities:
        closest_T = min(available_T, key=lambda x: abs(x - target_T))
        if closest_T not in slices:
            subset = df[df["T"] == closest_T].sort_values("log_moneyness").copy()
            slices[closest_T] = subset

    return slices


def surface_statistics(surface: ImpliedVolatilitySurface) -> dict:
    """
    Summary statistics for a calibrated surface.

    Returns
    -------
    dict with keys:
        n_points         : total points
        n_expiries       : distinct maturities
        n_unconverged    : points whose solve did not converge
        moneyness_range  : (min, max) log-moneyness
        T_range          : (min, max)
        iv_range         : (min, max)
        atm_iv_mean      : mean IV for |log-moneyness| < 1%
    """
    df = surface.to_frame()
    if df.empty:
        return {"n_points": 0, "n_expiries": 0, "n_unconverged": 0}

    stats = {
        "n_points": len(df),
        "n_expiries": df["T"].nunique(),
        "n_unconverged": int((~df["converged"]).sum()),
        "moneyness_range": (df["log_moneyness"].min(), df["log_moneyness"].max()),
        "T_range": (df["T"].min(), df["T"].max()),
        "iv_range": (df["iv"].min(), df["iv"].max()),
    }

    atm_mask = df["log_moneyness"].abs() < 0.01
    stats["atm_iv_mean"] = df.loc[atm_mask, "iv"].mean() if atm_mask.any() else np.nan
    return stats
