"""Baseline vs current coverage comparison."""

from decimal import Decimal, InvalidOperation

from covgate.config import ConfigError
from covgate.models import Classification, RegressionVerdict

Number = Decimal | int | float | str


def evaluate(baseline: Number, current: Number, tolerance: Number = 0) -> RegressionVerdict:
    """Classify the move from *baseline* to *current*.

    ``delta`` is always exactly ``current - baseline``; *tolerance* only widens
    the band that counts as UNCHANGED.

    Raises:
        ConfigError: *tolerance* is negative.
        ValueError:  an input is not a finite number.
    """
    base = _to_decimal(baseline, "baseline")
    cur = _to_decimal(current, "current")
    tol = _to_decimal(tolerance, "tolerance")
    if tol < 0:
        raise ConfigError(f"tolerance must be >= 0, got {tolerance}")

    if cur < base - tol:
        classification = Classification.REGRESSED
    elif cur > base + tol:
        classification = Classification.IMPROVED
    else:
        classification = Classification.UNCHANGED

    return RegressionVerdict(
        baseline=base,
        current=cur,
        delta=cur - base,
        classification=classification,
        tolerance=tol,
    )


def _to_decimal(value: Number, name: str) -> Decimal:
    # Go through str() so 82.3 (float) becomes Decimal("82.3"), not its binary expansion.
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"{name} is not a number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"{name} must be finite, got {value!r}")
    return result
