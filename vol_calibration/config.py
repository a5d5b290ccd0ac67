"""
Global configuration for the calibration pipeline.

Keeps all magic numbers in one place. Functions take None defaults and
fall back to the values here, so overriding a constant at runtime (or via
CLI args in main.py) changes behaviour everywhere.
"""

import logging


# ── day count ────────────────────────────────────────────────────────────
DAYS_PER_YEAR = 365.0           # ACT/365, theta is quoted per calendar day


# ── implied vol solver ───────────────────────────────────────────────────
IV_BRACKET_LOWER = 0.0          # bisection seed search range
IV_BRACKET_UPPER = 5.0
IV_BRACKET_ITERATIONS = 5       # deliberately coarse, only produces a seed
IV_FIXED_SEED = 0.3             # seed for the fixed-seed strategy
IV_MAX_ITERATIONS = 1000
IV_THRESHOLD = 1e-4             # on both price residual and vol step
IV_CLAMP_MIN = 1e-6             # sigma = 0 makes d1 undefined
IV_CLAMP_MAX = 2.0
VEGA_SCALE = 100.0              # vega is quoted per 1 vol point
VEGA_EPSILON = 1e-12            # below this the Newton step is meaningless


# ── output precision ─────────────────────────────────────────────────────
RESULT_DECIMALS = 5             # pricing results and surface points


# ── arbitrage filter ─────────────────────────────────────────────────────
ARBITRAGE_TOLERANCE = 0.0       # price units; > 0 tolerates stale-quote noise


# ── surface ──────────────────────────────────────────────────────────────
SURFACE_METHOD = "HERMITE_BICUBIC"
GRID_K_POINTS = 50              # resolution along log-moneyness axis
GRID_T_POINTS = 30              # resolution along maturity axis


# ── synthetic chain defaults ─────────────────────────────────────────────
SYNTHETIC_SPOT = 100.0
SYNTHETIC_RATE = 0.03
SYNTHETIC_DIVIDEND_YIELD = 0.01
SYNTHETIC_EXPIRY_DAYS = [30, 60, 91, 182, 273, 365]
SYNTHETIC_STRIKE_BOUND = 0.20   # strikes span spot * (1 ± bound)
SYNTHETIC_N_STRIKES = 9
SYNTHETIC_ATM_VOL = 0.20
SYNTHETIC_SKEW = -0.10          # d(vol)/d(log-moneyness), equity-style
SYNTHETIC_SMILE = 0.30          # curvature in log-moneyness
SYNTHETIC_TERM_DECAY = 0.02     # ATM vol drop per year of maturity
SEED = 42


# ── logging ──────────────────────────────────────────────────────────────
LOG_LEVEL = logging.INFO
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
