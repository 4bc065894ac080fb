"""
Reduction of simulated path values into reportable statistics:
yearly percentile snapshots, failure/depletion probabilities and the
terminal-value histogram.
"""
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

PERCENTILES = (("p10", 0.10), ("p25", 0.25), ("p50", 0.50), ("p75", 0.75), ("p90", 0.90))

NUM_MAIN_BINS = 10
MAX_TAIL_BINS = 5


@dataclass(frozen=True)
class YearlySnapshot:
    """Percentile band and phase flags at the end of one simulated year"""
    year: int
    p10: float
    p25: float
    p50: float
    p75: float
    p90: float
    principal: float
    is_contributing: bool
    is_withdrawing: bool
    depletion_rate: Optional[float] = None
    median_yearly_withdrawal: Optional[float] = None

    def percentile(self, name: str) -> float:
        if name not in dict(PERCENTILES):
            raise ValueError(f"Unknown percentile {name!r}")
        return getattr(self, name)


@dataclass(frozen=True)
class DistributionBin:
    """One terminal-value histogram bin"""
    range_end: float
    count: int
    is_depleted: bool


def round_half_up(value: float) -> float:
    """Round to the nearest currency unit, halves rounded up"""
    return float(math.floor(value + 0.5))


def percentile_index(num_sims: int, q: float) -> int:
    return int(num_sims * q)


def year_zero_snapshot(initial_amount: float) -> YearlySnapshot:
    """Starting point: every path holds the initial amount"""
    return YearlySnapshot(
        year=0,
        p10=initial_amount,
        p25=initial_amount,
        p50=initial_amount,
        p75=initial_amount,
        p90=initial_amount,
        principal=initial_amount,
        is_contributing=False,
        is_withdrawing=False,
    )


def depletion_rate(values: np.ndarray) -> float:
    """Share of paths at (or below) zero"""
    return int(np.count_nonzero(values <= 0)) / len(values)


def build_yearly_snapshot(phase, values: np.ndarray, principal_total: float,
                          sorted_buffer: Optional[np.ndarray] = None,
                          yearly_withdrawals: Optional[np.ndarray] = None) -> YearlySnapshot:
    """
    Reduce the path array at a year boundary.

    Args:
        phase: YearPhase of the year just simulated
        values: Current path values
        principal_total: Contributions to date (identical for every path)
        sorted_buffer: Optional scratch array reused for sorting
        yearly_withdrawals: Per-path withdrawals this year (rate mode only)

    Returns:
        YearlySnapshot for the year
    """
    n = len(values)
    if sorted_buffer is None:
        sorted_buffer = np.empty(n)
    sorted_buffer[:] = values
    sorted_buffer.sort()

    bands = {name: round_half_up(sorted_buffer[percentile_index(n, q)]) for name, q in PERCENTILES}
    median = sorted_buffer[percentile_index(n, 0.5)]

    rate = None
    median_withdrawal = None
    if phase.is_withdrawing:
        rate = depletion_rate(values)
        if yearly_withdrawals is not None:
            median_withdrawal = round_half_up(np.sort(yearly_withdrawals)[percentile_index(n, 0.5)])

    return YearlySnapshot(
        year=phase.year,
        principal=round_half_up(min(principal_total, median)),
        is_contributing=phase.is_contributing,
        is_withdrawing=phase.is_withdrawing,
        depletion_rate=rate,
        median_yearly_withdrawal=median_withdrawal,
        **bands,
    )


def failure_probability(final_values: np.ndarray, total_principal: float) -> float:
    """
    Share of paths ending below the total contributed principal.

    Depleted paths always count, so the result is never below the depletion
    rate even when no principal was contributed.
    """
    lost = (final_values < total_principal) | (final_values <= 0)
    return int(np.count_nonzero(lost)) / len(final_values)


def depletion_probability(yearly_data: Sequence[YearlySnapshot]) -> float:
    """Depletion rate of the final year, 0 when that year does not withdraw"""
    if not yearly_data or yearly_data[-1].depletion_rate is None:
        return 0.0
    return yearly_data[-1].depletion_rate


def build_distribution(final_values: np.ndarray) -> List[DistributionBin]:
    """
    Histogram of terminal values.

    Depleted paths (value <= 0) share a single leading bin. Positive values are
    binned with width max(p90, 1) / 10, extended by up to five tail bins of the
    same width; values past the last bin are counted in it.
    """
    sorted_values = np.sort(final_values)
    n = len(sorted_values)
    bins: List[DistributionBin] = []

    depleted = int(np.count_nonzero(sorted_values <= 0))
    if depleted > 0:
        bins.append(DistributionBin(range_end=0.0, count=depleted, is_depleted=True))

    max_value = sorted_values[-1]
    if max_value > 0:
        p90 = sorted_values[percentile_index(n, 0.9)]
        bin_width = max(p90, 1.0) / NUM_MAIN_BINS
        needed_bins = min(math.ceil(max_value / bin_width), NUM_MAIN_BINS + MAX_TAIL_BINS)
        positive = sorted_values[sorted_values > 0]
        idx = np.minimum(np.floor(positive / bin_width).astype(np.int64), needed_bins - 1)
        counts = np.bincount(idx, minlength=needed_bins)
        for b in range(needed_bins):
            bins.append(DistributionBin(
                range_end=round_half_up((b + 1) * bin_width),
                count=int(counts[b]),
                is_depleted=False,
            ))

    return bins


def drawdown_end_value(result, percentile: str = "p50") -> Optional[float]:
    """
    Portfolio value at the last withdrawing year for the chosen band.

    Returns None when the run has no withdrawal years.
    """
    withdrawing = [d for d in result.yearly_data if d.is_withdrawing]
    if not withdrawing:
        return None
    return withdrawing[-1].percentile(percentile)


def calculate_summary_stats(result) -> Dict[str, float]:
    """Headline numbers of a simulation result"""
    final = result.yearly_data[-1]
    terminal = result.terminal_values
    return {
        'years': final.year,
        'final_p10': final.p10,
        'final_p50': final.p50,
        'final_p90': final.p90,
        'terminal_mean': float(np.mean(terminal)),
        'total_principal': result.total_principal,
        'failure_probability': result.failure_probability,
        'depletion_probability': result.depletion_probability,
        'success_rate': 1.0 - result.depletion_probability,
    }
