"""
Phase scheduling for the simulation horizon.
Classifies every simulated year as contributing, withdrawing, both, or idle.
"""
from dataclasses import dataclass
from typing import Iterator, NamedTuple


class YearPhase(NamedTuple):
    """Contribution/withdrawal flags for one simulated year"""
    year: int
    is_contributing: bool
    is_withdrawing: bool

    @property
    def label(self) -> str:
        if self.is_contributing and self.is_withdrawing:
            return "both"
        if self.is_contributing:
            return "contributing"
        if self.is_withdrawing:
            return "withdrawing"
        return "idle"


@dataclass(frozen=True)
class PhaseSchedule:
    """Year-level schedule derived from the contribution and withdrawal windows"""
    contribution_years: int
    withdrawal_start_year: int
    withdrawal_years: int

    @classmethod
    def from_config(cls, config) -> "PhaseSchedule":
        return cls(
            contribution_years=config.contribution_years,
            withdrawal_start_year=config.withdrawal_start_year,
            withdrawal_years=config.withdrawal_years,
        )

    @property
    def withdrawal_end_year(self) -> int:
        return self.withdrawal_start_year + self.withdrawal_years

    @property
    def total_years(self) -> int:
        return max(self.contribution_years, self.withdrawal_end_year)

    def is_contributing(self, year: int) -> bool:
        return 1 <= year <= self.contribution_years

    def is_withdrawing(self, year: int) -> bool:
        return self.withdrawal_start_year < year <= self.withdrawal_end_year

    def phase(self, year: int) -> YearPhase:
        return YearPhase(year, self.is_contributing(year), self.is_withdrawing(year))

    def __iter__(self) -> Iterator[YearPhase]:
        for year in range(1, self.total_years + 1):
            yield self.phase(year)


def total_years(config) -> int:
    """Number of simulated years (year 0 excluded)"""
    return PhaseSchedule.from_config(config).total_years


def year_phase(config, year: int) -> YearPhase:
    return PhaseSchedule.from_config(config).phase(year)


def iter_year_phases(config) -> Iterator[YearPhase]:
    """Yield the phase of years 1..total_years in order"""
    return iter(PhaseSchedule.from_config(config))
