"""Spending-limit guard shared by the preview endpoint and the spend path.

The guard runs four independent checks against a :class:`SpendingSnapshot`
and reports the first failure in a fixed order: balance, daily, weekly,
monthly.  A limit of ``None`` means no ceiling for that period.
"""

from decimal import Decimal

from budget_app.schemas import SpendingSnapshot, SpendCheck

CHECK_ORDER = ("balance", "daily", "weekly", "monthly")

LIMIT_MESSAGES = {
    "daily": "Daily spending limit reached.",
    "weekly": "Weekly spending limit reached.",
    "monthly": "Monthly spending limit reached.",
}


def format_money(amount, currency: str = "CZK") -> str:
    """Format an amount with thousands separators and two decimals."""
    return f"{Decimal(amount):,.2f} {currency}"


def _under_limit(spent: Decimal, limit: Decimal | None, amount: Decimal) -> bool:
    if limit is None:
        return True
    return spent + amount <= limit


def evaluate_spend(
    snapshot: SpendingSnapshot, amount: Decimal, currency: str = "CZK"
) -> SpendCheck:
    amount = Decimal(amount)
    checks = {
        "balance": snapshot.balance >= amount,
        "daily": _under_limit(snapshot.daily_spent, snapshot.daily_limit, amount),
        "weekly": _under_limit(
            snapshot.weekly_spent, snapshot.weekly_limit, amount
        ),
        "monthly": _under_limit(
            snapshot.monthly_spent, snapshot.monthly_limit, amount
        ),
    }
    allowed = all(checks.values())
    reason = None
    for name in CHECK_ORDER:
        if checks[name]:
            continue
        if name == "balance":
            short = format_money(amount - snapshot.balance, currency)
            reason = f"Insufficient balance. You need {short} more."
        else:
            reason = LIMIT_MESSAGES[name]
        break
    return SpendCheck(allowed=allowed, checks=checks, reason=reason)
