"""CLI entry point for the recharge-flow water balance.

Loads categorical grids and daily forcing, runs the monthly water balance on
the selected backend and prints the monthly table with the closure error.
"""

import argparse
import logging
import os
import sys
import time

from rechargeflow.config import ConfigurationError
from rechargeflow.datasets import load_datasets
from rechargeflow.forcing import load_forcing, replicate_years
from rechargeflow.output import save_run_output
from rechargeflow.params import ValidationError, load_config_with_overrides, load_tables
from rechargeflow.simulation import WaterBalanceModel


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Recharge-Flow Water Balance")
    parser.add_argument("--config", type=str, help="Path to YAML configuration file")
    parser.add_argument("--datasets", type=str, required=True,
                        help="Path to .npz bundle with 'landuse' and 'soil' code grids")
    parser.add_argument("--forcing", type=str, required=True,
                        help="Path to .npz bundle with 'date', 'precipitation' and 'pet'")
    parser.add_argument("--tables", type=str,
                        help="YAML file of lookup tables. Overrides config tables.")
    parser.add_argument("--backend", type=str,
                        help="Execution backend: host or device. Overrides config.")
    parser.add_argument("--block-dim", type=int, help="Device block size. Overrides config.")
    parser.add_argument("--years", type=int,
                        help="Repeat a single-year forcing over this many years")
    parser.add_argument("--output", type=str, help="Output directory (optional)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log every period")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # CLI flag wins over the environment, which wins over the config file
    execution = {}
    backend = args.backend or os.environ.get("RECHARGE_BACKEND")
    if backend:
        execution["backend"] = backend
    if args.block_dim is not None:
        execution["block_dim"] = args.block_dim

    try:
        if args.config:
            print(f"Loading config from {args.config}")
        config = load_config_with_overrides(
            args.config, {"execution": execution} if execution else None
        )

        if args.tables:
            config = config.with_updates(tables=load_tables(args.tables))

        datasets = load_datasets(args.datasets)
        forcing = load_forcing(args.forcing)
        if args.years is not None:
            forcing = replicate_years(forcing, args.years)

        model = WaterBalanceModel(datasets, config=config)
        print(
            f"Starting water balance: {model.cells.n_cells} active cells, "
            f"{len(forcing)} days on {config.backend.value}"
        )
        start_time = time.time()
        result = model.run(forcing)
    except (ConfigurationError, ValidationError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    print(f"{'period':>8} {'prec':>9} {'actet':>9} {'recharge':>9} {'runoff':>9} {'dS':>9}")
    for row in result.rows:
        print(
            f"{row.year:04d}-{row.month:02d} {row.prec:9.2f} {row.actet:9.2f} "
            f"{row.recharge:9.2f} {row.runoff:9.2f} {row.change_in_storage:9.2f}"
        )

    if args.output:
        paths = save_run_output(result, args.output)
        print(f"Saved results to {paths['table'].parent}")

    duration = time.time() - start_time
    print(f"Water balance finished in {duration:.2f}s")
    print(f"Balance error: {result.balance_error:.3e} mm")
    return 0


if __name__ == "__main__":
    sys.exit(main())
