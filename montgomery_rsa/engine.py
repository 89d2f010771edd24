"""
Modular exponentiation on top of Montgomery multiplication.

The per-modulus parameters live in an explicit :class:`MontgomeryContext`.
Callers that work on one modulus can hold the context themselves; the
:class:`MontgomeryEngine` keeps the most recent one and only re-derives it when
a different modulus is requested.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from common import utils
from montgomery_rsa.reducer import reduce_multiply, to_domain

Multiply = Callable[[int, int, int, int, int], int]


@dataclass(frozen=True)
class MontgomeryContext:
    n: int
    r: int
    r_mask: int
    n_prime: int
    r_inverse: int

    @property
    def r_bits(self) -> int:
        return self.r_mask.bit_length()


def derive_context(n: int) -> MontgomeryContext:
    """
    Derive the Montgomery parameters for an odd modulus.

    R is the power of two one bit above the most significant set bit of ``n``.
    Raises ``ValueError`` when ``n`` is not invertible modulo R (``n`` even).
    """
    r = 1 << n.bit_length()
    n_prime = (-utils.modinv(n, r)) % r
    return MontgomeryContext(
        n=n,
        r=r,
        r_mask=r - 1,
        n_prime=n_prime,
        r_inverse=utils.modinv(r, n),
    )


def montgomery_power(
    a_bar: int,
    exponent: int,
    n: int,
    r_mask: int,
    n_prime: int,
    multiply: Multiply = reduce_multiply,
) -> int:
    """
    Left-to-right square-and-multiply inside the Montgomery domain.

    Starts from ``a_bar`` (the leading exponent bit) and scans from the second
    most significant bit down to bit 0. Exponents with a bit length of 0 or 1
    return ``a_bar`` unchanged.
    """
    result = a_bar
    for i in range(exponent.bit_length() - 2, -1, -1):
        result = multiply(result, result, n, r_mask, n_prime)
        if (exponent >> i) & 1:
            result = multiply(result, a_bar, n, r_mask, n_prime)
    return result


def exponentiate(
    a: int,
    exponent: int,
    context: MontgomeryContext,
    multiply: Multiply = reduce_multiply,
) -> int:
    a_bar = to_domain(a, context.r, context.n)
    result_bar = montgomery_power(a_bar, exponent, context.n, context.r_mask, context.n_prime, multiply)
    return to_domain(result_bar, context.r_inverse, context.n)


class MontgomeryEngine:
    """RSA-style exponentiation that caches the context of the last modulus."""

    def __init__(self) -> None:
        self.context: Optional[MontgomeryContext] = None

    def init(self, modulus: int) -> MontgomeryContext:
        if self.context is not None and self.context.n == modulus:
            return self.context
        utils.debug(f"Deriving Montgomery context for a {modulus.bit_length()}-bit modulus.")
        self.context = derive_context(modulus)
        return self.context

    def exponentiate(self, a: int, exponent: int, modulus: int) -> int:
        return exponentiate(a, exponent, self.init(modulus))

    def encrypt(self, message: int, public_exponent: int, modulus: int) -> int:
        return self.exponentiate(message, public_exponent, modulus)

    def decrypt(self, ciphertext: int, private_exponent: int, modulus: int) -> int:
        return self.exponentiate(ciphertext, private_exponent, modulus)


__all__ = [
    "MontgomeryContext",
    "MontgomeryEngine",
    "derive_context",
    "exponentiate",
    "montgomery_power",
]
