"""
Withdrawal strategies and the per-month withdrawal step.

Two strategies exist: a fixed nominal monthly amount (optionally growing with
inflation) and a rate-based amount locked per path when withdrawals begin.
Portfolio values are real (inflation-adjusted), so a constant nominal
withdrawal is deflated month by month in rate mode.
"""
import math
import numbers
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from tax import capital_gains_tax, effective_tax_rate, gain_ratio, reduce_cost_basis


def _check_amount(name: str, value: float) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Real) \
            or not math.isfinite(value) or value < 0:
        raise ValueError(f"{name} must be a finite non-negative number, got {value!r}")


@dataclass(frozen=True)
class FixedAmount:
    """Fixed monthly withdrawal, optionally inflation-adjusted"""
    amount: float = 0.0
    inflation_adjusted: bool = False

    def __post_init__(self):
        _check_amount("Monthly withdrawal", self.amount)


@dataclass(frozen=True)
class RateBased:
    """Annual withdrawal rate (%) applied to each path's value at withdrawal start"""
    rate: float

    def __post_init__(self):
        _check_amount("Annual withdrawal rate", self.rate)


WithdrawalMode = Union[FixedAmount, RateBased]


def withdrawal_mode_from_fields(monthly_withdrawal: Optional[float] = None,
                                annual_withdrawal_rate: Optional[float] = None,
                                inflation_adjusted: bool = False) -> WithdrawalMode:
    """
    Build a withdrawal mode from the flat input fields.

    Raises:
        ValueError: if both selectors are populated
    """
    if monthly_withdrawal is not None and annual_withdrawal_rate is not None:
        raise ValueError(
            "Specify either monthly_withdrawal or annual_withdrawal_rate, not both"
        )
    if annual_withdrawal_rate is not None:
        return RateBased(rate=float(annual_withdrawal_rate))
    return FixedAmount(
        amount=float(monthly_withdrawal or 0.0),
        inflation_adjusted=bool(inflation_adjusted),
    )


def is_rate_mode(mode: WithdrawalMode) -> bool:
    """A zero rate withdraws nothing and is treated like an empty fixed amount"""
    return isinstance(mode, RateBased) and mode.rate > 0


class WithdrawalModel:
    """Per-run withdrawal state: running amounts, per-path locks and yearly totals"""

    def __init__(self, mode: WithdrawalMode, num_sims: int, inflation_rate: float,
                 monthly_pension_income: float = 0.0, tax_free: bool = False):
        self.mode = mode
        self.rate_mode = is_rate_mode(mode)
        self.pension = monthly_pension_income
        self.tax_rate = effective_tax_rate(tax_free)

        ri = inflation_rate / 100
        inflation_adjusted = isinstance(mode, FixedAmount) and mode.inflation_adjusted
        self.monthly_inflation_factor = (1 + ri) ** (1 / 12) if inflation_adjusted else 1.0
        self.current_amount = mode.amount if isinstance(mode, FixedAmount) else 0.0

        # Rate mode: nominal amount locked per path, deflated by a shared multiplier
        self.monthly_nominal_deflator = 1 / (1 + ri) ** (1 / 12) if self.rate_mode and ri > 0 else 1.0
        self.deflation_multiplier = 1.0
        self._rate_started = False
        self.locked_amounts = np.zeros(num_sims) if self.rate_mode else None
        self.yearly_withdrawals = np.zeros(num_sims) if self.rate_mode else None

    @classmethod
    def from_config(cls, config, num_sims: int) -> "WithdrawalModel":
        return cls(
            mode=config.withdrawal,
            num_sims=num_sims,
            inflation_rate=config.inflation_rate,
            monthly_pension_income=config.monthly_pension_income,
            tax_free=config.tax_free,
        )

    def start_year(self) -> None:
        if self.yearly_withdrawals is not None:
            self.yearly_withdrawals.fill(0.0)

    def begin_month(self) -> None:
        """Advance shared withdrawal amounts; call once per withdrawing month"""
        if not self.rate_mode:
            self.current_amount *= self.monthly_inflation_factor
        elif self._rate_started:
            self.deflation_multiplier *= self.monthly_nominal_deflator
        else:
            self._rate_started = True

    def _gross_withdrawal(self, values: np.ndarray, active: np.ndarray) -> np.ndarray:
        if not self.rate_mode:
            return np.full(active.shape, self.current_amount)
        unlocked = self.locked_amounts[active] == 0
        if unlocked.any():
            self.locked_amounts[active[unlocked]] = values[unlocked] * self.mode.rate / 100 / 12
        return self.locked_amounts[active] * self.deflation_multiplier

    def apply(self, values: np.ndarray, cost_basis: np.ndarray) -> np.ndarray:
        """
        Withdraw from every path with a positive value, in place.

        Args:
            values: Path values, floored at 0 on return
            cost_basis: Path cost bases, reduced proportionally

        Returns:
            Indices of the paths that withdrew this month
        """
        active = np.flatnonzero(values > 0)
        if active.size == 0:
            return active
        v = values[active]
        net = np.maximum(self._gross_withdrawal(v, active) - self.pension, 0.0)
        if self.yearly_withdrawals is not None:
            self.yearly_withdrawals[active] += net

        tax = capital_gains_tax(net, gain_ratio(v, cost_basis[active]), self.tax_rate)
        cost_basis[active] = reduce_cost_basis(cost_basis[active], net, v)
        values[active] = np.maximum(v - net - tax, 0.0)
        return active
