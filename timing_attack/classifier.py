"""
Timing oracle for one exponent bit of a Montgomery exponentiation.

Every sample is placed in two of four buckets, one per guess of the attacked
bit:

    0: bit guessed 1, next squaring predicted to take the final subtraction
    1: bit guessed 1, next squaring predicted not to take it
    2: bit guessed 0, next squaring predicted to take the final subtraction
    3: bit guessed 0, next squaring predicted not to take it

Only the correct guess predicts a subtraction that really happens, so its
reduction/no-reduction pair shows the larger gap between mean timings.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Tuple

from scipy import stats

from montgomery_rsa.engine import montgomery_power
from montgomery_rsa.reducer import needs_reduction, reduce_multiply, to_domain

GUESS_ONE_REDUCTION = 0
GUESS_ONE_NO_REDUCTION = 1
GUESS_ZERO_REDUCTION = 2
GUESS_ZERO_NO_REDUCTION = 3

METHODS = ("means", "welch")


@dataclass
class Bucket:
    total: float = 0.0
    count: int = 0
    # running mean and sum of squared deviations (Welford)
    mean: float = 0.0
    m2: float = 0.0

    def add(self, duration: float) -> None:
        self.total += duration
        self.count += 1
        delta = duration - self.mean
        self.mean += delta / self.count
        self.m2 += delta * (duration - self.mean)

    def std(self) -> float:
        if self.count < 2:
            return 0.0
        return math.sqrt(self.m2 / (self.count - 1))


class TimingClassifier:
    def __init__(self) -> None:
        self.buckets: List[Bucket] = [Bucket() for _ in range(4)]

    def reset(self) -> None:
        """Forget all samples; call between independent trials."""
        self.buckets = [Bucket() for _ in range(4)]

    def which_set(
        self,
        candidate: int,
        n: int,
        r_mask: int,
        n_prime: int,
        known_prefix: int = 1,
    ) -> Tuple[int, int]:
        """
        Classify one candidate message for both guesses of the next exponent bit.

        ``known_prefix`` holds the exponent bits already known, leading 1
        included. With the default the attacked bit is the second most
        significant one.

        Returns ``(bucket for guess 1, bucket for guess 0)``.
        """
        a_bar = to_domain(candidate, r_mask + 1, n)
        state = montgomery_power(a_bar, known_prefix, n, r_mask, n_prime)
        squared = reduce_multiply(state, state, n, r_mask, n_prime)

        guess_one = reduce_multiply(a_bar, squared, n, r_mask, n_prime)
        if needs_reduction(guess_one, guess_one, n, r_mask, n_prime):
            bucket_one = GUESS_ONE_REDUCTION
        else:
            bucket_one = GUESS_ONE_NO_REDUCTION

        if needs_reduction(squared, squared, n, r_mask, n_prime):
            bucket_zero = GUESS_ZERO_REDUCTION
        else:
            bucket_zero = GUESS_ZERO_NO_REDUCTION
        return bucket_one, bucket_zero

    def add_time(self, duration: float, bucket: int) -> None:
        self.buckets[bucket].add(duration)

    def mean_of(self, bucket: int) -> float:
        selected = self.buckets[bucket]
        return selected.total / selected.count

    def means(self) -> List[float]:
        return [self.mean_of(index) for index in range(len(self.buckets))]

    def counts(self) -> List[int]:
        return [bucket.count for bucket in self.buckets]

    def welch_statistics(self) -> Dict[str, Tuple[float, float]]:
        """Welch's t-test of the reduction bucket against the no-reduction bucket, per guess."""
        return {
            "guess_one": self._welch(GUESS_ONE_REDUCTION, GUESS_ONE_NO_REDUCTION),
            "guess_zero": self._welch(GUESS_ZERO_REDUCTION, GUESS_ZERO_NO_REDUCTION),
        }

    def _welch(self, first: int, second: int) -> Tuple[float, float]:
        a = self.buckets[first]
        b = self.buckets[second]
        if a.count < 2 or b.count < 2:
            raise ZeroDivisionError("Welch's t-test needs at least two samples per bucket")
        result = stats.ttest_ind_from_stats(
            a.mean, a.std(), a.count,
            b.mean, b.std(), b.count,
            equal_var=False,
        )
        return float(result.statistic), float(result.pvalue)

    def is_one(self, method: str = "means") -> bool:
        """
        Decide the attacked bit.

        ``means`` compares ``y0 - y1`` with ``y2 - y3``; ``welch`` compares the
        two t statistics instead, falling back to ``means`` when a statistic is
        not finite (buckets without spread). Both raise ``ZeroDivisionError``
        when a bucket has no samples.
        """
        if method == "means":
            y = self.means()
            return (y[0] - y[1]) > (y[2] - y[3])
        if method == "welch":
            welch = self.welch_statistics()
            t_one = welch["guess_one"][0]
            t_zero = welch["guess_zero"][0]
            if not (math.isfinite(t_one) and math.isfinite(t_zero)):
                return self.is_one("means")
            return t_one > t_zero
        raise ValueError(f"unknown decision method: {method}")


__all__ = [
    "Bucket",
    "GUESS_ONE_NO_REDUCTION",
    "GUESS_ONE_REDUCTION",
    "GUESS_ZERO_NO_REDUCTION",
    "GUESS_ZERO_REDUCTION",
    "METHODS",
    "TimingClassifier",
]
