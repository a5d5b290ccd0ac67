"""
Static no-arbitrage filter for option quotes.

Run before surface construction: a single stale or fat-fingered quote
turns into a spike in implied vol that the surface fit then bends around.

Quotes of one option type are laid out on a grid (rows are maturities
ascending, columns are strikes ascending within the row) and each
cell is checked against its neighbours:

    vertical  : next strike, same maturity.
                calls must not gain value as strike rises, puts must not lose it.
    calendar  : same strike, next maturity.
                price must not fall as maturity extends.
    butterfly : next two strikes K1 < K2 < K4, price must be convex in strike.
                for equal spacing: price(K1) - 2 price(K2) + price(K4) >= 0

A cell that fails any check is dropped. Checks without the neighbours
they need (grid edges, strikes missing at the next maturity) are skipped,
not failed. Rows do not need the same strikes or the same length.

Duplicate (maturity, strike) quotes of one type: the first one in the
input wins and later ones are excluded.

The calendar check compares raw prices, which is exact only with zero
carry. When the rate exceeds the dividend yield a deep in-the-money
European put can lose value as maturity extends without any arbitrage,
and such puts are dropped.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from . import config
from .instruments import OptionQuote, OptionType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GridCell:
    maturity: date
    strike: float
    price: float
    option: OptionQuote


class OptionGrid:
    """
    Sparse (maturity rank, strike rank) -> cell mapping for one option type.

    Every neighbour lookup goes through `cell()` or `find_strike()`, which
    return None when the neighbour does not exist.
    """

    def __init__(self, cells: Dict[Tuple[int, int], GridCell], maturities: List[date]):
        self._cells = cells
        self.maturities = maturities
        self._strike_rank: Dict[Tuple[int, float], int] = {}
        for (m, s), c in cells.items():
            self._strike_rank[(m, c.strike)] = s

    @classmethod
    def build(cls, options: Sequence[OptionQuote], price_map: Mapping) -> Tuple["OptionGrid", List[OptionQuote]]:
        """
        Lay out priced options on the grid.

        Returns the grid and the options that could not be placed
        (no price, or a duplicate of an earlier quote).
        """
        rejected = []
        rows: Dict[date, Dict[float, GridCell]] = defaultdict(dict)
        for option in options:
            price = price_map.get(option)
            if price is None:
                logger.debug("no price for %s, dropping", option.instrument_id)
                rejected.append(option)
                continue
            row = rows[option.maturity]
            if option.strike in row:
                logger.debug("duplicate quote %s at maturity %s strike %s, keeping %s",
                             option.instrument_id, option.maturity, option.strike,
                             row[option.strike].option.instrument_id)
                rejected.append(option)
                continue
            row[option.strike] = GridCell(option.maturity, option.strike, float(price), option)

        maturities = sorted(rows)
        cells = {}
        for m, maturity in enumerate(maturities):
            for s, strike in enumerate(sorted(rows[maturity])):
                cells[(m, s)] = rows[maturity][strike]
        return cls(cells, maturities), rejected

    def cell(self, maturity_rank: int, strike_rank: int) -> Optional[GridCell]:
        return self._cells.get((maturity_rank, strike_rank))

    def find_strike(self, maturity_rank: int, strike: float) -> Optional[GridCell]:
        rank = self._strike_rank.get((maturity_rank, strike))
        return None if rank is None else self._cells[(maturity_rank, rank)]

    def __iter__(self):
        """Cells in (maturity, strike) order."""
        for key in sorted(self._cells):
            yield key, self._cells[key]

    def __len__(self) -> int:
        return len(self._cells)


# ════════════════════════════════════════════════════════════════════════
#  CONDITIONS
# ════════════════════════════════════════════════════════════════════════

def has_vertical_spread_arbitrage(current: GridCell, next_strike: GridCell,
                                  option_type: OptionType, tol: float = 0.0) -> bool:
    if option_type is OptionType.CALL:
        return next_strike.price - current.price > tol
    return current.price - next_strike.price > tol


def has_calendar_spread_arbitrage(current: GridCell, next_maturity: GridCell,
                                  option_type: OptionType, tol: float = 0.0) -> bool:
    # same rule for both types: a longer-dated European option on the
    # same strike is worth at least as much
    return current.price - next_maturity.price > tol


def butterfly_value(k1: GridCell, k2: GridCell, k4: GridCell) -> float:
    """
    Value of the K1/K2/K4 butterfly per unit of the K1 wing.

    Long one K1, short (K4 - K1) / (K4 - K2) at K2, long (K2 - K1) / (K4 - K2)
    at K4; with equal spacing that is the usual 1 / -2 / 1.
    """
    span = k4.strike - k2.strike
    return (k1.price
            - (k4.strike - k1.strike) / span * k2.price
            + (k2.strike - k1.strike) / span * k4.price)


def has_butterfly_spread_arbitrage(k1: GridCell, k2: GridCell, k4: GridCell,
                                   option_type: OptionType, tol: float = 0.0) -> bool:
    # convex in strike for calls and puts alike
    return butterfly_value(k1, k2, k4) < -tol


def _violations(grid: OptionGrid, m: int, s: int, option_type: OptionType, tol: float) -> List[str]:
    current = grid.cell(m, s)
    found = []

    vertical = grid.cell(m, s + 1)
    if vertical is not None and has_vertical_spread_arbitrage(current, vertical, option_type, tol):
        found.append("vertical")

    calendar = grid.find_strike(m + 1, current.strike)
    if calendar is not None and has_calendar_spread_arbitrage(current, calendar, option_type, tol):
        found.append("calendar")

    wing = grid.cell(m, s + 2)
    if vertical is not None and wing is not None and \
            has_butterfly_spread_arbitrage(current, vertical, wing, option_type, tol):
        found.append("butterfly")

    return found


# ════════════════════════════════════════════════════════════════════════
#  FILTER
# ════════════════════════════════════════════════════════════════════════

def filter_arbitrage(
    options: Sequence[OptionQuote],
    price_map: Mapping,
    spot_price: float,
    tol: float = None,
) -> List[OptionQuote]:
    """
    Drop quotes that violate vertical, calendar, or butterfly no-arbitrage.

    Parameters
    ----------
    options : option chain on one underlying (calls and puts mixed)
    price_map : instrument -> observed price; unpriced options are dropped
    spot_price : underlying price, used for diagnostics
    tol : price tolerance before a violation counts (default: config.ARBITRAGE_TOLERANCE)

    Returns
    -------
    list of OptionQuote : accepted quotes, in their input order
    """
    if spot_price is None or spot_price <= 0:
        raise ValueError(f"spot_price must be positive, got {spot_price}")
    if tol is None:
        tol = config.ARBITRAGE_TOLERANCE

    by_type: Dict[OptionType, List[OptionQuote]] = defaultdict(list)
    for option in options:
        by_type[option.option_type].append(option)

    accepted = set()
    n_excluded = 0
    for option_type, options_of_type in by_type.items():
        grid, rejected = OptionGrid.build(options_of_type, price_map)
        n_excluded += len(rejected)
        for (m, s), cell in grid:
            found = _violations(grid, m, s, option_type, tol)
            if found:
                n_excluded += 1
                logger.debug("excluding %s %s K=%s (K/S=%.3f) T=%s: %s",
                             option_type.value, cell.option.instrument_id, cell.strike,
                             cell.strike / spot_price, cell.maturity, ", ".join(found))
                continue
            accepted.add(cell.option)

    logger.info("arbitrage filter kept %d of %d quotes (%d excluded)",
                len(accepted), len(options), n_excluded)
    # input order, equal quotes once
    kept = []
    seen = set()
    for option in options:
        if option in accepted and option not in seen:
            kept.append(option)
            seen.add(option)
    return kept
