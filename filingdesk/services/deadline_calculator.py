"""
FilingDesk - UK Statutory Deadline Calculator

Pure functions computing the due dates a filing period generates:

VAT Returns (HMRC):
- Due one calendar month and seven days after the VAT period end

Limited Company Accounts (Companies House / HMRC):
- Annual accounts: 9 months after the accounting reference date
- Corporation tax payment: 9 months and 1 day after the period end
- CT600 return: 12 months after the period end
- Confirmation statement: anniversary of the last statement (or of
  incorporation) plus 14 days

Sole Traders and Partnerships (HMRC Self Assessment):
- 31 January following the end of the tax year (5 April) containing the
  period end

Month arithmetic follows the "corresponding date" rule: a period ending on
the last day of a month is due on the last day of the target month
(30 September + 9 months = 30 June, 28 February + 9 months = 30 November).

Missing or malformed boundary dates never raise here. They come back as an
INSUFFICIENT_DATA result so the caller can render "not yet determined".
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from dateutil.relativedelta import relativedelta

from filingdesk.config import settings
from filingdesk.models.filing import DeadlineStatus, Obligation
from filingdesk.models.workflow import WorkflowType
from filingdesk.utils.clock import london_date


class CalculationStatus(str, Enum):
    DETERMINED = "determined"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass(frozen=True)
class PeriodBoundaries:
    """
    Dates a calculation may need.

    ``confirmation_anchor`` is the last confirmation statement date, or the
    incorporation date for a company that has not filed one yet.
    """
    period_start: Any = None
    period_end: Any = None
    confirmation_anchor: Any = None


@dataclass(frozen=True)
class ComputedDeadline:
    obligation: Obligation
    due_date: Optional[date]
    status: CalculationStatus
    reason: Optional[str] = None

    @property
    def is_determined(self) -> bool:
        return self.status == CalculationStatus.DETERMINED


@dataclass(frozen=True)
class VATQuarter:
    quarter_group: str
    period_start: date
    period_end: date
    filing_due: date

    @property
    def label(self) -> str:
        return f"{self.period_start.isoformat()}_to_{self.period_end.isoformat()}"


# Stagger groups: the calendar months in which VAT quarters end
VAT_QUARTER_GROUPS: Mapping[str, Tuple[int, ...]] = MappingProxyType({
    "1_4_7_10": (1, 4, 7, 10),
    "2_5_8_11": (2, 5, 8, 11),
    "3_6_9_12": (3, 6, 9, 12),
})

OBLIGATIONS_BY_TYPE: Mapping[WorkflowType, Tuple[Obligation, ...]] = MappingProxyType({
    WorkflowType.VAT_QUARTER: (Obligation.VAT_RETURN,),
    WorkflowType.LTD_ACCOUNTS: (
        Obligation.ANNUAL_ACCOUNTS,
        Obligation.CORPORATION_TAX_PAYMENT,
        Obligation.CT600_RETURN,
        Obligation.CONFIRMATION_STATEMENT,
    ),
    WorkflowType.NON_LTD_ACCOUNTS: (Obligation.SELF_ASSESSMENT,),
})

TAX_YEAR_END_MONTH = 4
TAX_YEAR_END_DAY = 5


# ===========================================
# DATE ARITHMETIC
# ===========================================

def is_month_end(value: date) -> bool:
    return (value + timedelta(days=1)).day == 1


def add_months(value: date, months: int) -> date:
    """Add calendar months using the statutory corresponding-date rule."""
    result = value + relativedelta(months=months)
    if is_month_end(value):
        result = result + relativedelta(day=31)
    return result


def coerce_date(value: Any) -> Optional[date]:
    """
    Normalise a boundary value to a date.

    A datetime carrying an offset is read as the London calendar date of
    that instant; a naive one is taken at its own date. Returns None for
    anything that is not a date, a datetime or an ISO 8601 string.
    """
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    if isinstance(value, datetime):
        return london_date(value) if value.tzinfo is not None else value.date()
    if isinstance(value, date):
        return value
    return None


# ===========================================
# INDIVIDUAL RULES
# ===========================================

def vat_return_due(period_end: date) -> date:
    """2024-09-30 -> 2024-11-07"""
    return add_months(period_end, 1) + timedelta(days=7)


def accounts_due(period_end: date) -> date:
    return add_months(period_end, 9)


def corporation_tax_payment_due(period_end: date) -> date:
    return add_months(period_end, 9) + timedelta(days=1)


def ct600_return_due(period_end: date) -> date:
    return add_months(period_end, 12)


def confirmation_statement_due(anchor: date) -> date:
    return add_months(anchor, 12) + timedelta(days=14)


def tax_year_end_containing(value: date) -> date:
    """The 5 April ending the UK tax year that ``value`` falls in."""
    end = date(value.year, TAX_YEAR_END_MONTH, TAX_YEAR_END_DAY)
    if value > end:
        end = date(value.year + 1, TAX_YEAR_END_MONTH, TAX_YEAR_END_DAY)
    return end


def self_assessment_due(period_end: date) -> date:
    return date(tax_year_end_containing(period_end).year + 1, 1, 31)


# ===========================================
# PERIOD HELPERS
# ===========================================

def vat_quarter_for(quarter_group: str, reference_date: date) -> VATQuarter:
    """
    The VAT quarter of a stagger group that is open on ``reference_date``.

    Raises:
        ValueError: unknown quarter group
    """
    if quarter_group not in VAT_QUARTER_GROUPS:
        raise ValueError(
            f"Invalid quarter group: {quarter_group}. "
            f"Expected one of {', '.join(VAT_QUARTER_GROUPS)}"
        )

    year = reference_date.year
    end_month = next(
        (m for m in VAT_QUARTER_GROUPS[quarter_group] if m >= reference_date.month),
        None,
    )
    if end_month is None:
        end_month = VAT_QUARTER_GROUPS[quarter_group][0]
        year += 1

    period_end = date(year, end_month, 1) + relativedelta(day=31)
    period_start = (period_end - relativedelta(months=2)).replace(day=1)
    return VATQuarter(
        quarter_group=quarter_group,
        period_start=period_start,
        period_end=period_end,
        filing_due=vat_return_due(period_end),
    )


def next_vat_quarter(quarter_group: str, current_period_end: date) -> VATQuarter:
    return vat_quarter_for(quarter_group, add_months(current_period_end, 3))


def ltd_period_after(last_accounts_made_up_to: date) -> Tuple[date, date]:
    """Accounting period following the last filed accounts."""
    return (
        last_accounts_made_up_to + timedelta(days=1),
        add_months(last_accounts_made_up_to, 12),
    )


def tax_year_period(ending_year: int) -> Tuple[date, date]:
    """6 April to 5 April of the tax year ending in ``ending_year``."""
    return (
        date(ending_year - 1, TAX_YEAR_END_MONTH, TAX_YEAR_END_DAY + 1),
        date(ending_year, TAX_YEAR_END_MONTH, TAX_YEAR_END_DAY),
    )


# ===========================================
# OBLIGATIONS
# ===========================================

def _insufficient(obligation: Obligation, reason: str) -> ComputedDeadline:
    return ComputedDeadline(
        obligation=obligation,
        due_date=None,
        status=CalculationStatus.INSUFFICIENT_DATA,
        reason=reason,
    )


def _determined(obligation: Obligation, due: date) -> ComputedDeadline:
    return ComputedDeadline(obligation=obligation, due_date=due, status=CalculationStatus.DETERMINED)


def _period_problem(boundaries: PeriodBoundaries) -> Optional[str]:
    if boundaries.period_end is None:
        return "period end date is missing"
    end = coerce_date(boundaries.period_end)
    if end is None:
        return f"period end date is malformed: {boundaries.period_end!r}"
    if boundaries.period_start is not None:
        start = coerce_date(boundaries.period_start)
        if start is None:
            return f"period start date is malformed: {boundaries.period_start!r}"
        if start >= end:
            return "period start must be before period end"
    return None


_PERIOD_END_RULES = {
    Obligation.VAT_RETURN: vat_return_due,
    Obligation.ANNUAL_ACCOUNTS: accounts_due,
    Obligation.CORPORATION_TAX_PAYMENT: corporation_tax_payment_due,
    Obligation.CT600_RETURN: ct600_return_due,
    Obligation.SELF_ASSESSMENT: self_assessment_due,
}


def compute_obligation(obligation: Obligation, boundaries: PeriodBoundaries) -> ComputedDeadline:
    if obligation == Obligation.CONFIRMATION_STATEMENT:
        anchor = coerce_date(boundaries.confirmation_anchor)
        if anchor is None:
            return _insufficient(
                obligation,
                "no incorporation or previous confirmation statement date",
            )
        return _determined(obligation, confirmation_statement_due(anchor))

    problem = _period_problem(boundaries)
    if problem:
        return _insufficient(obligation, problem)
    return _determined(obligation, _PERIOD_END_RULES[obligation](coerce_date(boundaries.period_end)))


def compute_obligations(
    workflow_type: WorkflowType,
    boundaries: PeriodBoundaries,
) -> Dict[Obligation, ComputedDeadline]:
    """Every obligation generated by a period of ``workflow_type``."""
    return {
        obligation: compute_obligation(obligation, boundaries)
        for obligation in OBLIGATIONS_BY_TYPE[workflow_type]
    }


# ===========================================
# STATUS SIGNALS
# ===========================================

def days_until(due: Optional[date], today: date) -> Optional[int]:
    if due is None:
        return None
    return (due - today).days


def deadline_status(
    due: Optional[date],
    today: date,
    due_soon_days: Optional[int] = None,
) -> DeadlineStatus:
    if due is None:
        return DeadlineStatus.PENDING
    if due_soon_days is None:
        due_soon_days = settings.deadline_due_soon_days

    remaining = days_until(due, today)
    if remaining < 0:
        return DeadlineStatus.OVERDUE
    if remaining <= due_soon_days:
        return DeadlineStatus.DUE_SOON
    return DeadlineStatus.UPCOMING
