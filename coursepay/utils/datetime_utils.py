"""Datetime utility functions for consistent timezone handling."""

from datetime import datetime, timezone

from dateutil.relativedelta import relativedelta

from coursepay.utils.enums import BillingCycle


def get_current_utc_datetime() -> datetime:
    """
    Get current datetime in UTC timezone.

    Returns:
        datetime: Current UTC datetime with timezone info

    Example:
        >>> now = get_current_utc_datetime()
        >>> now.tzinfo
        datetime.timezone.utc
    """
    return datetime.now(timezone.utc)


def add_billing_cycle(start: datetime, billing_cycle: BillingCycle | str) -> datetime:
    """
    Advance ``start`` by one calendar month or year.

    relativedelta clamps to the last day of the target month, so
    2024-01-31 + 1 month is 2024-02-29 and 2024-02-29 + 1 year is 2025-02-28.
    """
    cycle = BillingCycle(billing_cycle)
    if cycle == BillingCycle.monthly:
        return start + relativedelta(months=1)
    return start + relativedelta(years=1)
