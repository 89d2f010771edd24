"""Timing sources for the decryption oracle."""

import random
from typing import Optional

from common import utils
from montgomery_rsa.engine import MontgomeryContext, MontgomeryEngine, exponentiate
from montgomery_rsa.reducer import reduce_multiply_traced

TIMING_SOURCES = ("wall", "synthetic")

SYNTHETIC_BASE = 1000.0
SYNTHETIC_PENALTY = 20.0
SYNTHETIC_NOISE = 5.0


class ReductionCounter:
    """Drop-in for ``reduce_multiply`` that counts final subtractions."""

    def __init__(self) -> None:
        self.count = 0

    def __call__(self, a_bar: int, b_bar: int, n: int, r_mask: int, n_prime: int) -> int:
        result, reduced = reduce_multiply_traced(a_bar, b_bar, n, r_mask, n_prime)
        if reduced:
            self.count += 1
        return result


class WallClockTiming:
    """Times the engine's decryption with the monotonic performance counter."""

    def __init__(self, engine: Optional[MontgomeryEngine] = None) -> None:
        self.engine = engine or MontgomeryEngine()

    def __call__(self, ciphertext: int, private_exponent: int, context: MontgomeryContext) -> float:
        self.engine.init(context.n)
        elapsed, _ = utils.measure_ns(self.engine.decrypt, ciphertext, private_exponent, context.n)
        return float(elapsed)


class SyntheticTiming:
    """
    Deterministic cost model of a decryption.

    Runs the real exponentiation and charges ``penalty`` per final
    subtraction on top of ``base``, plus half-normal noise. A large penalty
    plays the role of repeating the subtraction to amplify the leak.
    """

    def __init__(
        self,
        penalty: float = SYNTHETIC_PENALTY,
        base: float = SYNTHETIC_BASE,
        noise: float = SYNTHETIC_NOISE,
        seed: Optional[int] = None,
    ) -> None:
        self.penalty = penalty
        self.base = base
        self.noise = noise
        self.rng = random.Random(seed)

    def __call__(self, ciphertext: int, private_exponent: int, context: MontgomeryContext) -> float:
        counter = ReductionCounter()
        exponentiate(ciphertext, private_exponent, context, multiply=counter)
        jitter = abs(self.rng.gauss(0, self.noise)) if self.noise else 0.0
        return self.base + self.penalty * counter.count + jitter


def build_timing(
    kind: str,
    *,
    penalty: float = SYNTHETIC_PENALTY,
    noise: float = SYNTHETIC_NOISE,
    seed: Optional[int] = None,
):
    if kind == "wall":
        return WallClockTiming()
    if kind == "synthetic":
        return SyntheticTiming(penalty=penalty, noise=noise, seed=seed)
    raise ValueError(f"unsupported timing source: {kind}")


__all__ = [
    "ReductionCounter",
    "SyntheticTiming",
    "TIMING_SOURCES",
    "WallClockTiming",
    "build_timing",
]
