"""
fixed_point.py - Checked integer fixed-point arithmetic

All quantities are non-negative integers bounded by UINT256_MAX. Python ints
never wrap, so every helper checks the result against the numeric width and
raises instead of producing an out-of-range value. Division always floors.

Ordering matters: mul_div() multiplies before dividing so that no precision
is lost to an early truncation.
"""

from .core import UINT256_MAX, ArithmeticOverflow, ArithmeticUnderflow, EngineError


def _check(value: int, op: str) -> int:
    if value < 0:
        raise ArithmeticUnderflow(f"{op} result {value} is negative")
    if value > UINT256_MAX:
        raise ArithmeticOverflow(f"{op} result {value} exceeds uint256")
    return value


def checked_add(a: int, b: int) -> int:
    """a + b, failing on overflow."""
    return _check(a + b, "add")


def checked_sub(a: int, b: int, error: type = ArithmeticUnderflow, message: str = "") -> int:
    """
    a - b, failing instead of going negative.

    Args:
        a: Minuend
        b: Subtrahend
        error: EngineError subclass raised on underflow (default
            ArithmeticUnderflow; callers pass e.g. InsufficientCollateral)
        message: Optional message for the raised error

    Raises:
        error: if b > a
    """
    if b > a:
        if not issubclass(error, EngineError):
            raise TypeError(f"underflow error must be an EngineError, got {error!r}")
        raise error(message or f"subtraction underflow: {a} - {b}")
    return a - b


def checked_mul(a: int, b: int) -> int:
    """a * b, failing on overflow."""
    return _check(a * b, "mul")


def checked_div(a: int, b: int) -> int:
    """Floor division; a zero divisor is an arithmetic error, not infinity."""
    if b == 0:
        raise ArithmeticOverflow("division by zero")
    return _check(a // b, "div")


def mul_div(a: int, b: int, denominator: int) -> int:
    """
    Compute a * b / denominator with multiplication first.

    The intermediate product is checked against uint256 as well as the
    final result.
    """
    return checked_div(checked_mul(a, b), denominator)
