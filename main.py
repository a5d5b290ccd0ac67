#!/usr/bin/env python3
"""
main.py: run the calibration pipeline on one option chain.

Usage:
    python main.py                                   # synthetic spot-model chain
    python main.py --model forward                   # synthetic Black-76 chain
    python main.py --input chain.csv --rate 0.04     # chain from CSV
    python main.py --output surface.csv              # save the surface points
"""

import argparse
import logging
import sys
import time
from datetime import date

import numpy as np

from vol_calibration import config
from vol_calibration.curves import FlatYieldCurve
from vol_calibration.data_feed import get_option_data
from vol_calibration.forward_curve import build_forward_curve
from vol_calibration.instruments import PriceModel
from vol_calibration.surface_builder import SurfaceConstructionMethod, build_surface, surface_statistics


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Calibrate a forward curve and implied vol surface.")
    p.add_argument("--input", type=str, default=None, help="chain CSV (default: synthetic chain)")
    p.add_argument("--model", choices=["spot", "forward"], default="spot")
    p.add_argument("--rate", type=float, default=config.SYNTHETIC_RATE)
    p.add_argument("--spot", type=float, default=config.SYNTHETIC_SPOT)
    p.add_argument("--valuation-date", type=date.fromisoformat, default=None)
    p.add_argument("--method", choices=[m.name for m in SurfaceConstructionMethod],
                   default=config.SURFACE_METHOD)
    p.add_argument("--no-forward-curve", action="store_true")
    p.add_argument("--output", type=str, default=None, help="write surface points to CSV")
    p.add_argument("--verbose", action="store_true")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.LOG_LEVEL,
        format=config.LOG_FORMAT,
    )
    valuation_date = args.valuation_date or date.today()
    source = "csv" if args.input else "synthetic"

    print(f"\n{'='*60}")
    print(f"  Volatility Calibration")
    print(f"  Source: {source}  |  Valuation: {valuation_date}")
    print(f"{'='*60}\n")

    t0 = time.time()
    yield_curve = FlatYieldCurve(args.rate)

    # step 1: data
    print("[1/3] Loading option chain...")
    try:
        underlying, options, price_map = get_option_data(
            source=source,
            valuation_date=valuation_date,
            path=args.input,
            price_model=PriceModel.from_string(args.model),
            spot=args.spot,
            rate=args.rate,
        )
    except (ValueError, OSError) as e:
        print(f"\n  ERROR: {e}")
        sys.exit(1)
    print(f"       Underlying: {underlying.instrument_id}")
    print(f"       Options: {len(options)}")

    # step 2: forward curve
    forward_curve = None
    if args.no_forward_curve:
        print("\n[2/3] Skipping forward curve (--no-forward-curve flag)")
    else:
        print("\n[2/3] Building forward curve from put-call parity...")
        forward_curve = build_forward_curve(valuation_date, options, price_map, yield_curve, underlying)
        for point in forward_curve.points:
            print(f"       T={point.time_to_maturity:.4f}  F={point.forward_price:.4f}")

    # step 3: surface
    print("\n[3/3] Calibrating implied volatility surface...")
    try:
        surface = build_surface(
            valuation_date, underlying, options, price_map, yield_curve, forward_curve,
            method=SurfaceConstructionMethod.from_string(args.method),
        )
    except ValueError as e:
        print(f"\n  ERROR: {e}")
        sys.exit(1)

    stats = surface_statistics(surface)
    print(f"       Spot: {surface.spot_price:.2f}")
    print(f"       Points: {stats['n_points']}  (unconverged: {stats['n_unconverged']})")
    if stats["n_points"]:
        print(f"       Expiries: {stats['n_expiries']}")
        print(f"       IV range: {stats['iv_range'][0]:.1%} - {stats['iv_range'][1]:.1%}")
        if not np.isnan(stats["atm_iv_mean"]):
            print(f"       ATM IV (mean): {stats['atm_iv_mean']:.1%}")

    if args.output:
        surface.to_frame().to_csv(args.output, index=False)
        print(f"\n       Surface points saved to {args.output}")

    elapsed = time.time() - t0
    print(f"\n  Done in {elapsed:.1f}s.\n")


if __name__ == "__main__":
    main()
