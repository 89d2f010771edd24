"""
Montgomery reduction primitives.

All functions are stateless and work on plain Python integers. R is always a
power of two, so "mod R" is a mask with ``r_mask = R - 1`` and "divide by R" is
a right shift by ``r_mask.bit_length()``.

The final subtraction in :func:`reduce_multiply` is a data-dependent branch on
purpose. The timing experiment in ``timing_attack`` measures exactly that
branch, so it must not be rewritten as a constant-time selection.
"""

from typing import Tuple


def to_domain(a: int, r: int, n: int) -> int:
    """
    Return ``a * r mod n``.

    Enters the Montgomery domain when ``r`` is R and leaves it when ``r`` is
    ``R^-1 mod n``.
    """
    return (a * r) % n


def _redc(a_bar: int, b_bar: int, n: int, r_mask: int, n_prime: int) -> int:
    # a_bar * b_bar * R^-1 mod n, before the final subtraction (result < 2n)
    t = a_bar * b_bar
    m = (t * n_prime) & r_mask
    return (t + m * n) >> r_mask.bit_length()


def reduce_multiply(a_bar: int, b_bar: int, n: int, r_mask: int, n_prime: int) -> int:
    """
    Montgomery product of two domain values.

    Args:
        a_bar: first operand in the Montgomery domain, ``0 <= a_bar < n``
        b_bar: second operand in the Montgomery domain, ``0 <= b_bar < n``
        n: odd modulus
        r_mask: ``R - 1``
        n_prime: ``-n^-1 mod R``

    Returns:
        The domain representation of ``a * b mod n``, always in ``[0, n)``.
    """
    t = _redc(a_bar, b_bar, n, r_mask, n_prime)
    if t >= n:
        return t - n
    return t


def reduce_multiply_traced(
    a_bar: int, b_bar: int, n: int, r_mask: int, n_prime: int
) -> Tuple[int, bool]:
    """Same as :func:`reduce_multiply`, also reporting whether the subtraction fired."""
    t = _redc(a_bar, b_bar, n, r_mask, n_prime)
    if t >= n:
        return t - n, True
    return t, False


def needs_reduction(a_bar: int, b_bar: int, n: int, r_mask: int, n_prime: int) -> bool:
    """Predict whether multiplying ``a_bar`` by ``b_bar`` takes the final subtraction."""
    return _redc(a_bar, b_bar, n, r_mask, n_prime) >= n


__all__ = [
    "needs_reduction",
    "reduce_multiply",
    "reduce_multiply_traced",
    "to_domain",
]
