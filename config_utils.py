"""
Configuration utilities for the portfolio projection.
Default parameters, input ranges and helpers that build a SimulationConfig
from defaults plus caller overrides.
"""
import json
import logging
import os
from typing import Any, Dict, Optional

from io_utils import CAMEL_TO_SNAKE, dict_to_config
from simulation import SimulationConfig

logger = logging.getLogger(__name__)

DEFAULTS_FILE_ENV = "PORTFOLIO_SIM_DEFAULTS"


def get_default_simulation_params() -> Dict[str, Any]:
    """Get default simulation parameters (flat snake_case mapping)"""
    return {
        'initial_amount': 0,
        'monthly_contribution': 0,
        'annual_return_rate': 5.0,
        'volatility': 15.0,
        'inflation_rate': 2.0,
        'expense_ratio': 0.1,
        'contribution_years': 30,
        'withdrawal_start_year': 30,
        'withdrawal_years': 30,
        'tax_free': False,
        'monthly_withdrawal': 200_000,
        'inflation_adjusted_withdrawal': False,
        'monthly_pension_income': 0,
    }


# Input ranges offered by the interactive controls: (min, max, step); None = unbounded
PARAMETER_RANGES = {
    'initial_amount': (0, None, 10_000),
    'monthly_contribution': (0, None, 1_000),
    'annual_return_rate': (0, 15, 0.5),
    'expense_ratio': (0, 3, 0.01),
    'inflation_rate': (0, 10, 0.5),
    'volatility': (5, 30, 1),
    'annual_withdrawal_rate': (0, 20, 0.5),
    'monthly_withdrawal': (0, None, 10_000),
    'monthly_pension_income': (0, None, 10_000),
}


def check_parameter_ranges(params: Dict[str, Any]) -> Dict[str, str]:
    """
    Compare parameters with the interactive input ranges.

    Out-of-range values are still simulated; this only reports them.

    Returns:
        Mapping of parameter name to a warning message
    """
    warnings = {}
    for name, (low, high, _step) in PARAMETER_RANGES.items():
        value = params.get(name)
        if value is None:
            continue
        if value < low or (high is not None and value > high):
            upper = "∞" if high is None else high
            warnings[name] = f"{name}={value} is outside the usual range [{low}, {upper}]"
    return warnings


def load_defaults_override(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load default overrides from a JSON file.

    The path defaults to the PORTFOLIO_SIM_DEFAULTS environment variable. A
    missing file yields no overrides.
    """
    path = path or os.environ.get(DEFAULTS_FILE_ENV)
    if not path:
        return {}
    if not os.path.exists(path):
        logger.warning("Defaults file %s does not exist, using built-in defaults", path)
        return {}
    with open(path, 'r') as f:
        overrides = json.load(f)
    if not isinstance(overrides, dict):
        raise ValueError(f"Defaults file {path} must contain a JSON object")
    logger.debug("Loaded %d default overrides from %s", len(overrides), path)
    return overrides


def build_default_config(current_total_assets: Optional[float] = None,
                         withdrawal_mode: str = "amount",
                         defaults_path: Optional[str] = None,
                         **overrides) -> SimulationConfig:
    """
    Build a config from the defaults.

    Args:
        current_total_assets: The user's aggregate investment value, used as
            the initial amount when given
        withdrawal_mode: "amount" (fixed monthly) or "rate" (4% default rate)
        defaults_path: Optional JSON file with default overrides
        **overrides: Final per-field overrides (snake_case or camelCase)

    Returns:
        SimulationConfig
    """
    params = get_default_simulation_params()
    params.update(_snake_keys(load_defaults_override(defaults_path)))
    if current_total_assets is not None:
        params['initial_amount'] = current_total_assets

    if withdrawal_mode == "rate":
        params.pop('monthly_withdrawal', None)
        params.pop('inflation_adjusted_withdrawal', None)
        params.setdefault('annual_withdrawal_rate', 4.0)
    elif withdrawal_mode == "amount":
        params.pop('annual_withdrawal_rate', None)
    else:
        raise ValueError(f"withdrawal_mode must be 'amount' or 'rate', got {withdrawal_mode!r}")

    params.update(_snake_keys(overrides))
    return dict_to_config(params)


def _snake_keys(params: Dict[str, Any]) -> Dict[str, Any]:
    return {CAMEL_TO_SNAKE.get(key, key): value for key, value in params.items()}
