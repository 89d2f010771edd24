import argparse
import json
import random
import sys
from pathlib import Path

CURRENT_DIR = Path(__file__).resolve().parent
ROOT_DIR = CURRENT_DIR.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from common import utils
from montgomery_rsa import rsa_utils
from montgomery_rsa.engine import derive_context
from timing_attack import experiment
from timing_attack.classifier import METHODS, TimingClassifier
from timing_attack.timing import SYNTHETIC_NOISE, SYNTHETIC_PENALTY, TIMING_SOURCES, build_timing


def load_key(bits: int):
    if bits:
        utils.info(f"Generating RSA key pair ({bits}-bit modulus) for the timing experiment.")
        n, _, d = rsa_utils.generate_rsa_keypair(bits)
        return n, d
    utils.info("Using the 2048-bit reference key.")
    return rsa_utils.REFERENCE_MODULUS, rsa_utils.REFERENCE_PRIVATE_EXPONENT


def timing_attack_demo(config: experiment.ExperimentConfig, bits: int = 0) -> dict:
    n, d = load_key(bits)
    utils.info(
        f"Timing {config.samples} decryptions per trial, {config.trials} trials per length, "
        f"lengths {config.lengths} ({config.timing} timing, {config.method} verdict)."
    )
    results = experiment.run_experiment(config, n, d)
    return {
        "attack": "montgomery_timing",
        "success_rate": results["accuracy"],
        "correlation_found": results["accuracy"] > 0.7,
        "trials": config.trials,
        "seed": config.seed,
        **results,
    }


def bit_recovery_demo(config: experiment.ExperimentConfig, bits: int = 0) -> dict:
    n, d = load_key(bits)
    length = max(config.lengths)
    key = rsa_utils.exponent_prefix(d, length)
    utils.info(f"Recovering bits 1..{length - 2} of a {length}-bit exponent prefix one at a time.")
    recovery = experiment.recover_bits(
        TimingClassifier(),
        build_timing(config.timing, penalty=config.penalty, noise=config.noise, seed=config.seed),
        key,
        derive_context(n),
        config.samples,
        random.Random(config.seed),
        method=config.method,
    )
    success_rate = recovery["correct_bits"] / recovery["attacked_bits"]
    utils.info(f"Recovered {recovery['correct_bits']}/{recovery['attacked_bits']} attacked bits.")
    return {
        "attack": "montgomery_bit_recovery",
        "success_rate": success_rate,
        "correct_bit_count": recovery["correct_bits"],
        "bit_count": recovery["attacked_bits"],
        "recovered_key_bits": recovery["recovered_bits"],
        "actual_key_bits": recovery["actual_bits"],
        "modulus_bits": n.bit_length(),
        "timing_source": config.timing,
        "method": config.method,
        "samples": config.samples,
        "seed": config.seed,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Timing side-channel attack on Montgomery exponentiation.")
    parser.add_argument("--run", default="timing_demo", choices=["timing_demo", "recover_bits"], help="Demo target.")
    parser.add_argument("--lengths", type=int, nargs="+", default=list(experiment.DEFAULT_LENGTHS), help="Exponent prefix lengths.")
    parser.add_argument("--trials", type=int, default=experiment.DEFAULT_TRIALS, help="Trials per prefix length.")
    parser.add_argument("--samples", type=int, default=experiment.DEFAULT_SAMPLES, help="Timing samples per trial.")
    parser.add_argument("--timing", default="wall", choices=list(TIMING_SOURCES), help="Timing source.")
    parser.add_argument("--method", default="means", choices=list(METHODS), help="Bit decision rule.")
    parser.add_argument("--target-bit", type=int, default=1, help="Attacked bit, counted from the MSB.")
    parser.add_argument("--penalty", type=float, default=SYNTHETIC_PENALTY, help="Synthetic cost per final subtraction.")
    parser.add_argument("--noise", type=float, default=SYNTHETIC_NOISE, help="Synthetic timing noise.")
    parser.add_argument("--bits", type=int, default=0, help="Generate a key of this size instead of the reference key.")
    parser.add_argument("--seed", type=int, default=None, help="Random seed.")
    parser.add_argument("--verbose", action="store_true", help="Print per-trial bucket means.")
    parser.add_argument("--log-dir", default="logs", help="Directory to store JSON logs.")
    args = parser.parse_args()

    utils.set_verbose(args.verbose)
    config = experiment.ExperimentConfig(
        lengths=args.lengths,
        trials=args.trials,
        samples=args.samples,
        timing=args.timing,
        method=args.method,
        target_bit=args.target_bit,
        seed=args.seed,
        penalty=args.penalty,
        noise=args.noise,
    )

    if args.run == "timing_demo":
        result = timing_attack_demo(config, args.bits)
        prefix = "montgomery_attack_timing"
    else:
        result = bit_recovery_demo(config, args.bits)
        prefix = "montgomery_attack_recovery"
    _, payload = utils.save_json_result(result, args.log_dir, prefix)
    print(json.dumps(payload), flush=True)


if __name__ == "__main__":
    main()
