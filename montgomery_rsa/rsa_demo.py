import argparse
import json
import random
import sys
from pathlib import Path
from typing import Optional

CURRENT_DIR = Path(__file__).resolve().parent
ROOT_DIR = CURRENT_DIR.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from common import utils
from montgomery_rsa import rsa_utils
from montgomery_rsa.engine import MontgomeryEngine


def demo_round_trip(runs: int = 1000, bits: int = 0, seed: Optional[int] = None) -> dict:
    if bits:
        utils.info(f"Generating RSA key pair ({bits}-bit modulus).")
        n, e, d = rsa_utils.generate_rsa_keypair(bits)
    else:
        utils.info("Using the 2048-bit reference key.")
        n, e, d = rsa_utils.REFERENCE_MODULUS, rsa_utils.PUBLIC_EXPONENT, rsa_utils.REFERENCE_PRIVATE_EXPONENT

    engine = MontgomeryEngine()
    message = rsa_utils.random_message(n, random.Random(seed))
    utils.info("Encrypting a random message with Montgomery exponentiation.")
    ciphertext = engine.encrypt(message, e, n)

    utils.info(f"Decrypting the ciphertext {runs} times.")
    durations = []
    decrypted = None
    for _ in range(runs):
        elapsed, decrypted = utils.measure_ns(engine.decrypt, ciphertext, d, n)
        durations.append(elapsed)

    exchange_ok = decrypted == message
    matches_pow = ciphertext == pow(message, e, n) and decrypted == pow(ciphertext, d, n)
    if exchange_ok:
        utils.info("Round trip completed successfully.")
    else:
        utils.error("Decrypted message differs from the original.")
    stats = utils.timing_summary(durations)
    utils.info(f"Average decryption time: {stats['mean']:.0f} ns")

    return {
        "mode": "demo",
        "exchange_ok": exchange_ok,
        "matches_builtin_pow": matches_pow,
        "message_hex": format(message, "x"),
        "ciphertext_hex": format(ciphertext, "x"),
        "decrypted_hex": format(decrypted, "x"),
        "key_size_bits": n.bit_length(),
        "runs": runs,
        "timing_stats": stats,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="RSA round trip with Montgomery exponentiation.")
    parser.add_argument("--mode", default="demo", choices=["demo"], help="Execution mode.")
    parser.add_argument("--runs", type=int, default=1000, help="Number of timed decryptions.")
    parser.add_argument("--bits", type=int, default=0, help="Generate a key of this size instead of the reference key.")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for the message.")
    parser.add_argument("--log-dir", default="logs", help="Directory to store JSON logs.")
    args = parser.parse_args()

    if args.runs <= 0:
        raise ValueError("runs must be positive")

    result = demo_round_trip(args.runs, args.bits, args.seed)
    _, payload = utils.save_json_result(result, args.log_dir, "montgomery_rsa_demo")
    print(json.dumps(payload), flush=True)


if __name__ == "__main__":
    main()
