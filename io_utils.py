"""
IO utilities for loading/saving simulation configs and exporting results.
Handles the flat (camelCase or snake_case) input mapping, JSON serialization
of configs and CSV/JSON exports of results.
"""
import io
import json
import logging
import zipfile
from typing import Any, Dict, List, Tuple

import numpy as np
import pandas as pd

from distribution import calculate_summary_stats
from simulation import SimulationConfig, SimulationResult
from withdrawal import RateBased

logger = logging.getLogger(__name__)

# Flat input keys as used by the interactive UI
CAMEL_TO_SNAKE = {
    'initialAmount': 'initial_amount',
    'monthlyContribution': 'monthly_contribution',
    'annualReturnRate': 'annual_return_rate',
    'volatility': 'volatility',
    'inflationRate': 'inflation_rate',
    'contributionYears': 'contribution_years',
    'withdrawalStartYear': 'withdrawal_start_year',
    'withdrawalYears': 'withdrawal_years',
    'taxFree': 'tax_free',
    'monthlyWithdrawal': 'monthly_withdrawal',
    'annualWithdrawalRate': 'annual_withdrawal_rate',
    'expenseRatio': 'expense_ratio',
    'inflationAdjustedWithdrawal': 'inflation_adjusted_withdrawal',
    'monthlyPensionIncome': 'monthly_pension_income',
}

REQUIRED_FIELDS = [
    'initial_amount', 'monthly_contribution', 'annual_return_rate', 'volatility',
    'inflation_rate', 'contribution_years', 'withdrawal_start_year', 'withdrawal_years',
]
_YEAR_FIELDS = {'contribution_years', 'withdrawal_start_year', 'withdrawal_years'}
_BOOL_FIELDS = {'tax_free', 'inflation_adjusted_withdrawal'}


def _to_year_count(name: str, value: Any) -> int:
    """Accept ints and integral floats (JSON numbers) for year counts"""
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    try:
        as_float = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if not as_float.is_integer():
        raise ValueError(f"{name} must be a whole number of years, got {value!r}")
    return int(as_float)


def _to_number(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be numeric, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be numeric, got {value!r}")


def normalize_keys(param_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert camelCase keys to snake_case and drop unknown keys.

    Args:
        param_dict: Flat input mapping

    Returns:
        Dictionary keyed by snake_case field names
    """
    known = set(CAMEL_TO_SNAKE.values())
    normalized = {}
    for key, value in param_dict.items():
        name = CAMEL_TO_SNAKE.get(key, key)
        if name not in known:
            logger.warning("Ignoring unknown simulation parameter %r", key)
            continue
        if name in normalized:
            raise ValueError(f"Parameter {name!r} given more than once")
        normalized[name] = value
    return normalized


def dict_to_config(param_dict: Dict[str, Any]) -> SimulationConfig:
    """
    Convert a flat input mapping to a SimulationConfig.

    Optional withdrawal selectors set to None count as absent.

    Raises:
        ValueError: on missing or malformed fields, or when both
            monthlyWithdrawal and annualWithdrawalRate are set
    """
    fields = normalize_keys(param_dict)
    missing = [name for name in REQUIRED_FIELDS if fields.get(name) is None]
    if missing:
        raise ValueError(f"Missing required field(s): {', '.join(missing)}")

    kwargs = {}
    for name, value in fields.items():
        if name in _YEAR_FIELDS:
            kwargs[name] = _to_year_count(name, value)
        elif name in _BOOL_FIELDS:
            kwargs[name] = bool(value)
        elif value is None and name in ('monthly_withdrawal', 'annual_withdrawal_rate'):
            kwargs[name] = None
        elif value is None:
            continue
        else:
            kwargs[name] = _to_number(name, value)
    return SimulationConfig.from_inputs(**kwargs)


def config_to_dict(config: SimulationConfig) -> Dict[str, Any]:
    """
    Convert SimulationConfig to a flat snake_case dictionary for JSON.

    Exactly one of monthly_withdrawal / annual_withdrawal_rate is written.
    """
    param_dict = {
        'initial_amount': config.initial_amount,
        'monthly_contribution': config.monthly_contribution,
        'annual_return_rate': config.annual_return_rate,
        'volatility': config.volatility,
        'inflation_rate': config.inflation_rate,
        'contribution_years': config.contribution_years,
        'withdrawal_start_year': config.withdrawal_start_year,
        'withdrawal_years': config.withdrawal_years,
        'tax_free': config.tax_free,
        'expense_ratio': config.expense_ratio,
        'monthly_pension_income': config.monthly_pension_income,
    }
    if isinstance(config.withdrawal, RateBased):
        param_dict['annual_withdrawal_rate'] = config.withdrawal.rate
    else:
        param_dict['monthly_withdrawal'] = config.withdrawal.amount
        param_dict['inflation_adjusted_withdrawal'] = config.withdrawal.inflation_adjusted
    return param_dict


def save_config_json(config: SimulationConfig, filepath: str) -> None:
    """Save a simulation config to a JSON file"""
    with open(filepath, 'w') as f:
        json.dump(config_to_dict(config), f, indent=2)


def load_config_json(filepath: str) -> SimulationConfig:
    """Load a simulation config from a JSON file"""
    with open(filepath, 'r') as f:
        return parse_config_json(f.read())


def create_config_download_json(config: SimulationConfig) -> str:
    return json.dumps(config_to_dict(config), indent=2)


def parse_config_json(json_string: str) -> SimulationConfig:
    """
    Parse a JSON string to SimulationConfig.

    Raises:
        ValueError: on invalid JSON or invalid parameters
    """
    try:
        param_dict = json.loads(json_string)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e}") from e
    if not isinstance(param_dict, dict):
        raise ValueError("Config JSON must be an object")
    return dict_to_config(param_dict)


def validate_config_json(json_string: str) -> Tuple[bool, str]:
    """
    Validate an uploaded config JSON.

    Returns:
        (is_valid, error_message)
    """
    try:
        parse_config_json(json_string)
    except ValueError as e:
        return False, str(e)
    return True, ""


def result_to_dict(result: SimulationResult) -> Dict[str, Any]:
    """
    Convert a result to the camelCase record shape used by the UI.

    Optional per-year keys are omitted when absent.
    """
    yearly = []
    for d in result.yearly_data:
        record = {
            'year': d.year,
            'p10': d.p10,
            'p25': d.p25,
            'p50': d.p50,
            'p75': d.p75,
            'p90': d.p90,
            'principal': d.principal,
            'isContributing': d.is_contributing,
            'isWithdrawing': d.is_withdrawing,
        }
        if d.depletion_rate is not None:
            record['depletionRate'] = d.depletion_rate
        if d.median_yearly_withdrawal is not None:
            record['medianYearlyWithdrawal'] = d.median_yearly_withdrawal
        yearly.append(record)

    return {
        'yearlyData': yearly,
        'failureProbability': result.failure_probability,
        'depletionProbability': result.depletion_probability,
        'distribution': [
            {'rangeEnd': b.range_end, 'count': b.count, 'isDepleted': b.is_depleted}
            for b in result.distribution
        ],
    }


def yearly_data_frame(result: SimulationResult) -> pd.DataFrame:
    """Year-by-year percentile table"""
    return pd.DataFrame([
        {
            'year': d.year,
            'p10': d.p10,
            'p25': d.p25,
            'p50': d.p50,
            'p75': d.p75,
            'p90': d.p90,
            'principal': d.principal,
            'is_contributing': d.is_contributing,
            'is_withdrawing': d.is_withdrawing,
            'depletion_rate': d.depletion_rate,
            'median_yearly_withdrawal': d.median_yearly_withdrawal,
        }
        for d in result.yearly_data
    ])


def export_yearly_data_csv(result: SimulationResult) -> str:
    """Export percentile bands per year to a CSV string"""
    return yearly_data_frame(result).to_csv(index=False)


def export_distribution_csv(result: SimulationResult) -> str:
    """Export the terminal-value histogram to a CSV string"""
    df = pd.DataFrame(
        [(b.range_end, b.count, b.is_depleted) for b in result.distribution],
        columns=['range_end', 'count', 'is_depleted'],
    )
    return df.to_csv(index=False)


def export_terminal_values_csv(result: SimulationResult) -> str:
    """Export sorted terminal path values to a CSV string"""
    df = pd.DataFrame({
        'rank': range(1, len(result.terminal_values) + 1),
        'terminal_value': result.terminal_values,
    })
    return df.to_csv(index=False)


def create_summary_report(config: SimulationConfig, result: SimulationResult) -> Dict[str, Any]:
    """
    Create summary report of a simulation.

    Args:
        config: Simulation config
        result: Simulation result

    Returns:
        Dictionary with summary information
    """
    terminal = result.terminal_values
    terminal_stats = {
        'mean': float(np.mean(terminal)),
        'median': float(np.median(terminal)),
        'std': float(np.std(terminal)),
        'min': float(terminal[0]),
        'max': float(terminal[-1]),
    }

    withdrawal: Dict[str, Any]
    if isinstance(config.withdrawal, RateBased):
        withdrawal = {'mode': 'rate', 'annual_rate': config.withdrawal.rate}
    else:
        withdrawal = {
            'mode': 'amount',
            'monthly_amount': config.withdrawal.amount,
            'inflation_adjusted': config.withdrawal.inflation_adjusted,
        }

    return {
        'simulation_info': {
            'num_simulations': len(terminal),
            'horizon_years': result.yearly_data[-1].year,
            'initial_amount': config.initial_amount,
            'tax_free': config.tax_free,
        },
        'withdrawal': withdrawal,
        'summary': calculate_summary_stats(result),
        'terminal_value_stats': terminal_stats,
    }


def export_summary_report_json(report: Dict[str, Any]) -> str:
    return json.dumps(report, indent=2, default=str)


def create_batch_export_zip(config: SimulationConfig, result: SimulationResult) -> io.BytesIO:
    """
    Create ZIP file containing all export files.

    Returns:
        BytesIO object containing ZIP file
    """
    zip_buffer = io.BytesIO()

    with zipfile.ZipFile(zip_buffer, 'w', zipfile.ZIP_DEFLATED) as zip_file:
        zip_file.writestr('config.json', create_config_download_json(config))
        zip_file.writestr('yearly_percentiles.csv', export_yearly_data_csv(result))
        zip_file.writestr('distribution.csv', export_distribution_csv(result))
        zip_file.writestr('terminal_values.csv', export_terminal_values_csv(result))
        zip_file.writestr('summary_report.json',
                          export_summary_report_json(create_summary_report(config, result)))

    zip_buffer.seek(0)
    return zip_buffer


def format_currency(value: float, precision: int = 0, symbol: str = "¥") -> str:
    """
    Format currency values for display.

    Args:
        value: Numeric value to format
        precision: Number of decimal places
        symbol: Currency symbol prefix

    Returns:
        Formatted string such as "¥12M"
    """
    if abs(value) >= 1_000_000:
        return f"{symbol}{value/1_000_000:.{precision}f}M"
    elif abs(value) >= 1_000:
        return f"{symbol}{value/1_000:.{precision}f}K"
    return f"{symbol}{value:.{precision}f}"


def bins_to_rows(result: SimulationResult) -> List[Tuple[str, int]]:
    """Histogram rows labelled by range, for text display"""
    rows = []
    lower = 0.0
    for b in result.distribution:
        if b.is_depleted:
            rows.append(("depleted", b.count))
            continue
        rows.append((f"{format_currency(lower)}-{format_currency(b.range_end)}", b.count))
        lower = b.range_end
    return rows
