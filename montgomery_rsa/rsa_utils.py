import math
import random
from typing import List, Optional, Tuple

from common import utils

PUBLIC_EXPONENT = 0x10001

# 2048-bit reference key used by the timing experiment.
REFERENCE_MODULUS = int(
    "a12360b5a6d58b1a7468ce7a7158f7a2562611bd163ae754996bc6a2421aa17d3cf6d4d46a06a9d437525571a2bfe939"
    "5d440d7b09e9912a2a1f2e6cb072da2d0534cd626acf8451c0f0f1dca1ac0c18017536ea314cf3d2fa5e27a13000c454"
    "2e4cf86b407b2255f9819a763797c221c8ed7e7050bc1c9e57c35d5bb0bddcdb98f4a1b58f6d8b8d6edb292fd0f7fa82"
    "dc5fdcd78b04ca09e7bc3f4164d901b119c4f427d054e7848fdf7110352c4e612d02489da801ec9ab978d98831fa7f87"
    "2fa750b092967ff6bdd223199af209383bbce36799a5ed5856f587f7d420e8d76a58b398ef1f7b290bc5b75ef59182bf"
    "a02fafb7caeb504bd9f77348aea61ae9",
    16,
)
REFERENCE_PRIVATE_EXPONENT = int(
    "1801d152befc69b1134eda145bf6c94e224fa1acee36f06826436c609840a776a532911ae48101a460699fd9424a1d51"
    "329804fa23cbec98bf95cdb0dbc900c05c5a358f48228ab03372b25610b0354d0e4a8c57efe86b1b2fb9ff6580655cda"
    "bddb31d7a8cfaf99e7866ba0d93f7ee8d1aab07fc347836c03df537569ab9fcfca8ebf5662feafbdf196bb6c925dbc87"
    "8f89985096fabd6430511c0ca9c4d99b6f9f5dd9aa3ddfac12f6c2d3194ab99c897ba25bf71e53cd33c1573e242d75c4"
    "8cd2537d1766bbbf4f7235c40ce3f49b18e00c874932412743dc28b7d3d32e85c922c1d9a8e5bf4c7dd6fe4545dd6992"
    "95d51945d1fc507c24a709e87561b001",
    16,
)


def generate_rsa_keypair(bits: int = 512) -> Tuple[int, int, int]:
    e = PUBLIC_EXPONENT
    while True:
        p = utils.generate_large_prime(bits // 2)
        q = utils.generate_large_prime(bits // 2)
        if p == q:
            continue
        phi = (p - 1) * (q - 1)
        if math.gcd(e, phi) != 1:
            continue
        d = utils.modinv(e, phi)
        n = p * q
        if n.bit_length() < bits:
            continue
        return n, e, d


def exponent_prefix(exponent: int, length: int) -> int:
    """Keep the ``length`` most significant bits of ``exponent``."""
    shift = exponent.bit_length() - length
    if shift <= 0:
        return exponent
    return exponent >> shift


def exponent_bits(exponent: int) -> List[int]:
    """Bits of ``exponent`` from the most significant one down."""
    return [int(bit) for bit in bin(exponent)[2:]]


def bit_from_top(exponent: int, index: int) -> int:
    """Bit ``index`` counted from the most significant bit (index 0)."""
    return (exponent >> (exponent.bit_length() - 1 - index)) & 1


def random_message(modulus: int, rng: Optional[random.Random] = None) -> int:
    """A random value with one bit less than the modulus, hence below it."""
    rng = rng or random.Random()
    return rng.getrandbits(modulus.bit_length() - 1)


__all__ = [
    "PUBLIC_EXPONENT",
    "REFERENCE_MODULUS",
    "REFERENCE_PRIVATE_EXPONENT",
    "bit_from_top",
    "exponent_bits",
    "exponent_prefix",
    "generate_rsa_keypair",
    "random_message",
]
