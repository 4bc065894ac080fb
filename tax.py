"""
Proportional capital-gains taxation for portfolio withdrawals.
Only the gain share of each withdrawal is taxed, at a flat rate; the cost basis
shrinks in proportion to the share of the portfolio withdrawn.
"""
import numpy as np

# Flat rate on realised gains (income tax 15.315% + resident tax 5%)
TAX_RATE = 0.20315


def effective_tax_rate(tax_free: bool = False) -> float:
    """Tax rate applied to gains, zero for tax-free accounts"""
    return 0.0 if tax_free else TAX_RATE


def gain_ratio(value, cost_basis):
    """
    Share of the current value that is unrealised gain.

    Args:
        value: Portfolio value(s) before the withdrawal
        cost_basis: Contributed principal still held

    Returns:
        (value - cost_basis) / value where value exceeds the basis, else 0
    """
    value = np.asarray(value, dtype=np.float64)
    cost_basis = np.asarray(cost_basis, dtype=np.float64)
    out = np.zeros(np.broadcast(value, cost_basis).shape)
    np.divide(value - cost_basis, value, out=out, where=value > cost_basis)
    return out


def capital_gains_tax(net_withdrawal, ratio, tax_rate: float):
    """Tax owed on a withdrawal whose gain share is `ratio`"""
    return np.asarray(net_withdrawal, dtype=np.float64) * ratio * tax_rate


def reduce_cost_basis(cost_basis, net_withdrawal, value):
    """
    Scale the cost basis down by the fraction of the portfolio withdrawn.

    The fraction is capped at 1, so withdrawing everything (or more) leaves a
    zero basis. Callers pass strictly positive values.
    """
    cost_basis = np.asarray(cost_basis, dtype=np.float64)
    withdrawal_ratio = np.minimum(np.asarray(net_withdrawal, dtype=np.float64) / value, 1.0)
    return cost_basis * (1 - withdrawal_ratio)
