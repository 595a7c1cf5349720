"""
Threshold evaluation for price alerts.
"""

from decimal import Decimal

from sentinel.schemas.sentinel import Condition


def evaluate(price: Decimal, threshold: Decimal, condition: Condition | str) -> bool:
    """
    Check whether a price meets a sentinel's alert condition.

    Comparison is strict: a price equal to the threshold never triggers.
    An unrecognized condition never triggers.

    Args:
        price: Observed price
        threshold: Configured threshold
        condition: "above" or "below"

    Returns:
        True if the alert should fire
    """
    if condition == Condition.ABOVE:
        return price > threshold
    if condition == Condition.BELOW:
        return price < threshold
    return False


def alert_title(price: Decimal, threshold: Decimal, condition: Condition | str) -> str:
    """Title of the notification sent when an alert fires."""
    label = condition.value if isinstance(condition, Condition) else str(condition)
    return f"Price alert: {price} is {label} your threshold of {threshold}"
