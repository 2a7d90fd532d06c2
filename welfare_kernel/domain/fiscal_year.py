"""
Fiscal-year bucketing (``welfare_kernel.domain.fiscal_year``).

Yearly caps are keyed by an integer fiscal-year identifier.  A fiscal year
is named after the calendar year in which it ends: with the default July
start, FY 2025 runs from 1 July 2024 to 30 June 2025.  A January start
makes the fiscal year equal to the calendar year.

Pure functions of a date.  The calculator is injected into the services
so the kernel never reads a wall clock to pick a bucket.
"""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Protocol


class FiscalYearCalculator(Protocol):
    """Maps a calendar date to its fiscal-year identifier."""

    def fiscal_year_for(self, on: date) -> int:
        ...


@dataclass(frozen=True)
class FiscalYearRange:
    """Inclusive first and last day of a fiscal year."""

    fiscal_year: int
    start_date: date
    end_date: date

    def contains(self, on: date) -> bool:
        return self.start_date <= on <= self.end_date


@dataclass(frozen=True)
class StartMonthFiscalYear:
    """Fiscal year beginning on the first day of ``start_month``."""

    start_month: int = 7

    def __post_init__(self):
        if not 1 <= self.start_month <= 12:
            raise ValueError(f"start_month must be 1-12, got {self.start_month}")

    def fiscal_year_for(self, on: date) -> int:
        if self.start_month == 1:
            return on.year
        return on.year + 1 if on.month >= self.start_month else on.year

    def range_of(self, fiscal_year: int) -> FiscalYearRange:
        if self.start_month == 1:
            return FiscalYearRange(
                fiscal_year, date(fiscal_year, 1, 1), date(fiscal_year, 12, 31)
            )
        start = date(fiscal_year - 1, self.start_month, 1)
        end = date(fiscal_year, self.start_month, 1) - timedelta(days=1)
        return FiscalYearRange(fiscal_year, start, end)

    def is_date_in(self, fiscal_year: int, on: date) -> bool:
        return self.range_of(fiscal_year).contains(on)

    def label(self, fiscal_year: int) -> str:
        """Display form, e.g. ``FY 2025 (Jul 2024 - Jun 2025)``."""
        rng = self.range_of(fiscal_year)
        return (
            f"FY {fiscal_year} "
            f"({calendar.month_abbr[rng.start_date.month]} {rng.start_date.year} - "
            f"{calendar.month_abbr[rng.end_date.month]} {rng.end_date.year})"
        )
