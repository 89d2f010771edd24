"""
Timing experiment against the Montgomery engine.

For each exponent-prefix length the secret exponent is truncated to its top
bits, random messages are decrypted under the truncated key and timed, and the
classifier decides the attacked bit. A trial succeeds when the verdict matches
the real bit. Accuracy is expected to fall as the prefix grows: the later
multiplications add timing variance the classifier does not model.
"""

import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from common import utils
from montgomery_rsa import rsa_utils
from montgomery_rsa.engine import MontgomeryContext, derive_context
from timing_attack.classifier import METHODS, TimingClassifier
from timing_attack.timing import SYNTHETIC_NOISE, SYNTHETIC_PENALTY, TIMING_SOURCES, build_timing

# =============================================================================
# Configuration
# =============================================================================

DEFAULT_LENGTHS = (3, 5, 10, 20, 50, 100)
DEFAULT_TRIALS = 20
DEFAULT_SAMPLES = 10000


@dataclass
class ExperimentConfig:
    lengths: Sequence[int] = field(default_factory=lambda: list(DEFAULT_LENGTHS))
    trials: int = DEFAULT_TRIALS
    samples: int = DEFAULT_SAMPLES
    timing: str = "wall"
    method: str = "means"
    target_bit: int = 1
    seed: Optional[int] = None
    penalty: float = SYNTHETIC_PENALTY
    noise: float = SYNTHETIC_NOISE

    def __post_init__(self) -> None:
        self.lengths = list(self.lengths)
        if not self.lengths:
            raise ValueError("at least one exponent prefix length is required")
        if self.target_bit < 1:
            raise ValueError("target bit must be below the leading bit")
        shortest = self.target_bit + 2
        for length in self.lengths:
            if length < shortest:
                raise ValueError(
                    f"prefix length {length} leaves no squaring after bit {self.target_bit}; use >= {shortest}"
                )
        if self.trials <= 0:
            raise ValueError("trials must be positive")
        if self.samples <= 0:
            raise ValueError("samples must be positive")
        if self.timing not in TIMING_SOURCES:
            raise ValueError(f"unsupported timing source: {self.timing}")
        if self.method not in METHODS:
            raise ValueError(f"unknown decision method: {self.method}")


# =============================================================================
# Trials
# =============================================================================

def run_trial(
    classifier: TimingClassifier,
    timing,
    key_prefix: int,
    context: MontgomeryContext,
    samples: int,
    rng: random.Random,
    *,
    known_prefix: int = 1,
    method: str = "means",
    durations: Optional[List[float]] = None,
) -> Dict[str, Any]:
    """
    Collect ``samples`` timings for ``key_prefix`` and return the classifier's verdict.

    Classification happens outside the timed call; only the decryption is
    measured by ``timing``.
    """
    classifier.reset()
    for _ in range(samples):
        message = rsa_utils.random_message(context.n, rng)
        bucket_one, bucket_zero = classifier.which_set(
            message, context.n, context.r_mask, context.n_prime, known_prefix
        )
        duration = timing(message, key_prefix, context)
        classifier.add_time(duration, bucket_one)
        classifier.add_time(duration, bucket_zero)
        if durations is not None:
            durations.append(duration)

    verdict = classifier.is_one(method)
    means = classifier.means()
    utils.debug(
        "bit 1: set 0 (reduction) {:.2f} set 1 {:.2f} | bit 0: set 2 (reduction) {:.2f} set 3 {:.2f}".format(*means)
    )
    return {
        "is_one": verdict,
        "bucket_means": means,
        "bucket_counts": classifier.counts(),
    }


def recover_bits(
    classifier: TimingClassifier,
    timing,
    key_prefix: int,
    context: MontgomeryContext,
    samples: int,
    rng: random.Random,
    *,
    method: str = "means",
) -> Dict[str, Any]:
    """
    Recover the bits of ``key_prefix`` one at a time, each guess feeding the next.

    The leading bit is known, and the last bit has no following squaring to
    observe, so bits 1 to ``bit_length - 2`` are attacked.
    """
    actual = rsa_utils.exponent_bits(key_prefix)
    known = 1
    recovered = [1]
    for _ in range(1, len(actual) - 1):
        trial = run_trial(
            classifier, timing, key_prefix, context, samples, rng,
            known_prefix=known, method=method,
        )
        bit = 1 if trial["is_one"] else 0
        recovered.append(bit)
        known = (known << 1) | bit
    attacked = actual[1:-1]
    correct = sum(1 for a, b in zip(attacked, recovered[1:]) if a == b)
    return {
        "actual_bits": actual,
        "recovered_bits": recovered,
        "attacked_bits": len(attacked),
        "correct_bits": correct,
    }


# =============================================================================
# Experiment
# =============================================================================

def run_experiment(config: ExperimentConfig, modulus: int, private_exponent: int) -> Dict[str, Any]:
    context = derive_context(modulus)
    rng = random.Random(config.seed)
    timing = build_timing(config.timing, penalty=config.penalty, noise=config.noise, seed=config.seed)
    classifier = TimingClassifier()
    durations: List[float] = []

    results = []
    total_success = 0
    for length in config.lengths:
        key = rsa_utils.exponent_prefix(private_exponent, length)
        known_prefix = rsa_utils.exponent_prefix(key, config.target_bit)
        actual_bit = rsa_utils.bit_from_top(key, config.target_bit)
        success = 0
        verdicts = []
        for trial in range(config.trials):
            outcome = run_trial(
                classifier, timing, key, context, config.samples, rng,
                known_prefix=known_prefix, method=config.method, durations=durations,
            )
            guessed = 1 if outcome["is_one"] else 0
            verdicts.append(guessed)
            if guessed == actual_bit:
                success += 1
                utils.debug(f"SUCCESS: bit {config.target_bit} guessed {guessed} for length {length} (trial {trial})")
            else:
                utils.debug(f"FAILED: bit {config.target_bit} guessed {guessed} for length {length} (trial {trial})")
        utils.info(f"Length {length}: {success}/{config.trials} trials guessed bit {config.target_bit} correctly.")
        total_success += success
        results.append(
            {
                "length": length,
                "actual_bit": actual_bit,
                "verdicts": verdicts,
                "successes": success,
                "trials": config.trials,
                "accuracy": success / config.trials,
            }
        )

    accuracy = total_success / (config.trials * len(config.lengths))
    utils.info(f"Overall accuracy: {accuracy:.2%}")
    return {
        "lengths": results,
        "total_successes": total_success,
        "total_trials": config.trials * len(config.lengths),
        "accuracy": accuracy,
        "timing_stats": utils.timing_summary(durations),
        "modulus_bits": modulus.bit_length(),
        "target_bit": config.target_bit,
        "timing_source": config.timing,
        "method": config.method,
        "samples": config.samples,
    }


__all__ = [
    "DEFAULT_LENGTHS",
    "DEFAULT_SAMPLES",
    "DEFAULT_TRIALS",
    "ExperimentConfig",
    "recover_bits",
    "run_experiment",
    "run_trial",
]
