"""
vol-calibration
===============
European option pricing, implied volatility, and per-underlying
calibration of forward curves and implied volatility surfaces.

Modules:
    instruments       - Option/underlying reference data, results, day counts
    black_scholes     - BSM pricing and greeks (spot + dividend yield)
    black76           - Black-76 pricing and greeks (forward)
    implied_vol       - Newton implied vol solver with bracket/fixed seeding
    pricing           - Dispatch on an option's pricing convention
    curves            - Yield curve and forward price curve objects
    forward_curve     - Put-call parity forward curve construction
    arbitrage_filter  - Static no-arbitrage filter on option grids
    surface_builder   - Implied volatility surface construction
    data_feed         - Synthetic chains and CSV/DataFrame chain I/O
    config            - Global constants and defaults
"""

__version__ = "0.3.0"
__author__ = "Leo"
