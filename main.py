"""
Portfolio Projection - command line entry point

Runs the Monte Carlo projection from a JSON config and/or flags and prints the
yearly percentile bands, the probabilities and the terminal-value histogram.
Exports are optional.
"""
import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from config_utils import build_default_config, check_parameter_ranges
from io_utils import (
    bins_to_rows, config_to_dict, create_batch_export_zip, dict_to_config, export_distribution_csv,
    export_yearly_data_csv, format_currency, load_config_json, result_to_dict,
    yearly_data_frame,
)
from prng import SEED
from simulation import NUM_SIMULATIONS, MonteCarloSimulator

logger = logging.getLogger(__name__)

# CLI flag -> config field
_FLAG_FIELDS = {
    'initial_amount': float,
    'monthly_contribution': float,
    'annual_return_rate': float,
    'volatility': float,
    'inflation_rate': float,
    'expense_ratio': float,
    'contribution_years': int,
    'withdrawal_start_year': int,
    'withdrawal_years': int,
    'monthly_withdrawal': float,
    'annual_withdrawal_rate': float,
    'monthly_pension_income': float,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Monte Carlo projection of a portfolio through saving and withdrawal phases")
    parser.add_argument("--config", help="JSON file with simulation parameters")
    for name, kind in _FLAG_FIELDS.items():
        parser.add_argument(f"--{name.replace('_', '-')}", dest=name, type=kind, default=None)
    parser.add_argument("--tax-free", action="store_true", default=None,
                        help="Withdraw without capital-gains tax")
    parser.add_argument("--inflation-adjusted-withdrawal", action="store_true", default=None,
                        help="Grow the fixed monthly withdrawal with inflation")
    parser.add_argument("--sims", type=int, default=NUM_SIMULATIONS, help="Number of paths")
    parser.add_argument("--seed", type=int, default=SEED, help="Generator seed")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("--csv-dir", help="Write yearly_percentiles.csv and distribution.csv here")
    parser.add_argument("--zip", dest="zip_path", help="Write a ZIP with all exports")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def config_from_args(args: argparse.Namespace):
    """Config file (or defaults) with command line flags applied on top"""
    overrides = {name: getattr(args, name) for name in _FLAG_FIELDS
                 if getattr(args, name) is not None}
    for flag in ('tax_free', 'inflation_adjusted_withdrawal'):
        if getattr(args, flag):
            overrides[flag] = True

    if args.config:
        params = config_to_dict(load_config_json(args.config))
        if 'annual_withdrawal_rate' in overrides:
            params.pop('monthly_withdrawal', None)
            params.pop('inflation_adjusted_withdrawal', None)
        elif 'monthly_withdrawal' in overrides:
            params.pop('annual_withdrawal_rate', None)
        params.update(overrides)
        return dict_to_config(params)

    mode = "rate" if 'annual_withdrawal_rate' in overrides else "amount"
    return build_default_config(withdrawal_mode=mode, **overrides)


def print_report(result) -> None:
    print(yearly_data_frame(result).to_string(index=False))
    print()
    print(f"Total principal:       {format_currency(result.total_principal, 1)}")
    print(f"Failure probability:   {result.failure_probability:.2%}")
    print(f"Depletion probability: {result.depletion_probability:.2%}")
    print()
    print("Terminal value distribution:")
    for label, count in bins_to_rows(result):
        print(f"  {label:>20} {count:6d}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s [%(name)s]: %(message)s",
    )

    try:
        config = config_from_args(args)
        simulator = MonteCarloSimulator(config, num_sims=args.sims, seed=args.seed)
    except (OSError, ValueError) as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    for message in check_parameter_ranges(config_to_dict(config)).values():
        logger.warning(message)

    result = simulator.run_simulation()

    if args.json:
        print(json.dumps(result_to_dict(result), indent=2))
    else:
        print_report(result)

    if args.csv_dir:
        os.makedirs(args.csv_dir, exist_ok=True)
        with open(os.path.join(args.csv_dir, "yearly_percentiles.csv"), "w") as f:
            f.write(export_yearly_data_csv(result))
        with open(os.path.join(args.csv_dir, "distribution.csv"), "w") as f:
            f.write(export_distribution_csv(result))
        logger.info("Wrote CSV exports to %s", args.csv_dir)

    if args.zip_path:
        with open(args.zip_path, "wb") as f:
            f.write(create_batch_export_zip(config, result).getvalue())
        logger.info("Wrote export archive %s", args.zip_path)

    return 0


if __name__ == "__main__":
    sys.exit(main())
