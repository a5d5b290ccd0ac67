"""
Smoke tests for the command-line pipeline.
"""

from datetime import date

import pandas as pd
import pytest

import main
from vol_calibration.data_feed import generate_synthetic_chain, save_chain_csv


class TestMain:
    """End-to-end runs of the CLI."""

    def test_synthetic_run_writes_surface(self, tmp_path, capsys):
        """Default synthetic run writes the surface CSV."""
        out = tmp_path / "surface.csv"
        main.main(["--valuation-date", "2024-03-01", "--output", str(out)])
        df = pd.read_csv(out)
        assert list(df.columns) == ["T", "log_moneyness", "iv", "strike", "converged"]
        assert len(df) > 0
        assert "forward curve" in capsys.readouterr().out

    def test_forward_model_without_curve(self, tmp_path, capsys):
        """Black-76 chain without a parity curve."""
        out = tmp_path / "surface.csv"
        main.main(["--model", "forward", "--no-forward-curve", "--valuation-date", "2024-03-01",
                   "--method", "LINEAR", "--output", str(out)])
        assert len(pd.read_csv(out)) > 0
        assert "Skipping forward curve" in capsys.readouterr().out

    def test_csv_input(self, tmp_path, capsys):
        """A chain saved to CSV runs through the pipeline."""
        path = tmp_path / "chain.csv"
        save_chain_csv(path, *generate_synthetic_chain(date(2024, 3, 1)))
        main.main(["--input", str(path), "--valuation-date", "2024-03-01"])
        assert "Source: csv" in capsys.readouterr().out

    def test_missing_input_exits(self, tmp_path):
        """A missing input file exits with status 1."""
        with pytest.raises(SystemExit) as exc:
            main.main(["--input", str(tmp_path / "nope.csv")])
        assert exc.value.code == 1
