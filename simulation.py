"""
Monte Carlo portfolio projection engine.
Simulates lognormal monthly returns for many paths through contribution and
withdrawal phases. Pure function of its configuration, decoupled from UI.
"""
import logging
import math
import numbers
import time
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

from distribution import (
    DistributionBin, YearlySnapshot, build_distribution, build_yearly_snapshot,
    depletion_probability, failure_probability, year_zero_snapshot,
)
from phases import PhaseSchedule
from prng import SEED, Mulberry32
from withdrawal import (
    FixedAmount, RateBased, WithdrawalMode, WithdrawalModel, withdrawal_mode_from_fields,
)

logger = logging.getLogger(__name__)

NUM_SIMULATIONS = 5000
MONTHS_PER_YEAR = 12


def _is_real(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


@dataclass(frozen=True)
class SimulationConfig:
    """Inputs of one simulation run. Rates are percentages, amounts currency units."""
    initial_amount: float
    monthly_contribution: float
    annual_return_rate: float
    volatility: float
    inflation_rate: float
    contribution_years: int
    withdrawal_start_year: int
    withdrawal_years: int
    tax_free: bool = False
    withdrawal: WithdrawalMode = field(default_factory=FixedAmount)
    expense_ratio: float = 0.0
    monthly_pension_income: float = 0.0

    def __post_init__(self):
        self._validate()

    def _validate(self):
        for name in ('contribution_years', 'withdrawal_start_year', 'withdrawal_years'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")

        for name in ('initial_amount', 'monthly_contribution', 'volatility',
                     'expense_ratio', 'monthly_pension_income'):
            value = getattr(self, name)
            if not _is_real(value) or not math.isfinite(value) or value < 0:
                raise ValueError(f"{name} must be a finite non-negative number, got {value!r}")

        for name in ('annual_return_rate', 'inflation_rate'):
            value = getattr(self, name)
            if not _is_real(value) or not math.isfinite(value):
                raise ValueError(f"{name} must be finite, got {value!r}")
        if self.inflation_rate <= -100:
            raise ValueError(f"inflation_rate must be greater than -100, got {self.inflation_rate!r}")

        if not isinstance(self.withdrawal, (FixedAmount, RateBased)):
            raise ValueError(f"withdrawal must be FixedAmount or RateBased, got {self.withdrawal!r}")

    @classmethod
    def from_inputs(cls, *, monthly_withdrawal: Optional[float] = None,
                    annual_withdrawal_rate: Optional[float] = None,
                    inflation_adjusted_withdrawal: bool = False,
                    **kwargs) -> "SimulationConfig":
        """Build a config from flat withdrawal fields (at most one selector may be set)"""
        withdrawal = withdrawal_mode_from_fields(
            monthly_withdrawal, annual_withdrawal_rate, inflation_adjusted_withdrawal)
        return cls(withdrawal=withdrawal, **kwargs)


@dataclass(frozen=True)
class SimulationResult:
    """Results from Monte Carlo simulation"""
    yearly_data: Tuple[YearlySnapshot, ...]
    failure_probability: float
    depletion_probability: float
    distribution: Tuple[DistributionBin, ...]
    terminal_values: np.ndarray = field(repr=False, compare=False)
    total_principal: float = 0.0


class MonteCarloSimulator:
    """Monte Carlo projection of a portfolio with contributions, withdrawals and gains tax"""

    def __init__(self, config: SimulationConfig, num_sims: int = NUM_SIMULATIONS,
                 seed: int = SEED):
        self.config = config
        self.num_sims = num_sims
        self.seed = seed
        self._validate_params()

    def _validate_params(self):
        """Validate simulation parameters"""
        if isinstance(self.num_sims, bool) or not isinstance(self.num_sims, numbers.Integral) \
                or self.num_sims < 1:
            raise ValueError(f"num_sims must be a positive integer, got {self.num_sims!r}")

    def _monthly_growth_params(self) -> Tuple[float, float]:
        """Real monthly log-drift and volatility of the lognormal return process"""
        cfg = self.config
        mu = (cfg.annual_return_rate - cfg.expense_ratio) / 100
        sigma = cfg.volatility / 100
        ri = cfg.inflation_rate / 100
        monthly_drift = (mu - ri - (sigma * sigma) / 2) / 12
        monthly_sigma = sigma / math.sqrt(12)
        return monthly_drift, monthly_sigma

    def run_simulation(self) -> SimulationResult:
        """Run Monte Carlo simulation"""
        started = time.perf_counter()
        cfg = self.config
        n = self.num_sims
        rng = Mulberry32(self.seed)
        schedule = PhaseSchedule.from_config(cfg)
        monthly_drift, monthly_sigma = self._monthly_growth_params()

        # Path state, mutated in place every month
        values = np.full(n, cfg.initial_amount, dtype=np.float64)
        cost_basis = np.full(n, cfg.initial_amount, dtype=np.float64)
        sorted_buffer = np.empty(n)
        withdrawals = WithdrawalModel.from_config(cfg, n)

        total_principal = cfg.initial_amount
        yearly_data = [year_zero_snapshot(cfg.initial_amount)]

        for phase in schedule:
            withdrawals.start_year()

            for _ in range(MONTHS_PER_YEAR):
                if phase.is_withdrawing:
                    withdrawals.begin_month()

                z = rng.gaussians(n)
                values *= np.exp(monthly_drift + monthly_sigma * z)

                if phase.is_contributing:
                    values += cfg.monthly_contribution
                    cost_basis += cfg.monthly_contribution

                if phase.is_withdrawing:
                    withdrawals.apply(values, cost_basis)

                if phase.is_contributing:
                    total_principal += cfg.monthly_contribution

            yearly_data.append(build_yearly_snapshot(
                phase, values, total_principal, sorted_buffer,
                yearly_withdrawals=withdrawals.yearly_withdrawals,
            ))

        terminal_values = np.sort(values)
        terminal_values.flags.writeable = False

        result = SimulationResult(
            yearly_data=tuple(yearly_data),
            failure_probability=failure_probability(values, total_principal),
            depletion_probability=depletion_probability(yearly_data),
            distribution=tuple(build_distribution(values)),
            terminal_values=terminal_values,
            total_principal=total_principal,
        )
        logger.debug(
            "Simulated %d paths over %d years in %.3fs (failure %.4f, depletion %.4f)",
            n, schedule.total_years, time.perf_counter() - started,
            result.failure_probability, result.depletion_probability,
        )
        return result


def simulate_monte_carlo(config: SimulationConfig) -> SimulationResult:
    """Run the standard 5000-path simulation for a config"""
    return MonteCarloSimulator(config).run_simulation()
