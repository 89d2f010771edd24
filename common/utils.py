import json
import os
import secrets
import sys
import time
from copy import deepcopy
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Sequence, Tuple

import numpy as np

_VERBOSE = False


def set_verbose(enabled: bool) -> None:
    global _VERBOSE
    _VERBOSE = bool(enabled)


def debug(message: str) -> None:
    if _VERBOSE:
        print(f"[DEBUG] {message}", flush=True)


def info(message: str) -> None:
    print(f"[INFO] {message}", flush=True)


def warning(message: str) -> None:
    print(f"[WARNING] {message}", flush=True)


def error(message: str) -> None:
    print(f"[ERROR] {message}", flush=True, file=sys.stderr)


def current_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def save_json_result(
    data: Dict[str, Any],
    log_dir: str,
    prefix: str,
) -> Tuple[Path, Dict[str, Any]]:
    """
    Save structured JSON data into the logs directory and return the saved path
    together with the data payload that includes the json_log_path field.
    """
    ensure_directory(Path(log_dir))
    logfile = Path(log_dir) / f"{prefix}_{current_timestamp()}_{os.getpid()}.json"
    payload = deepcopy(data)
    payload["json_log_path"] = str(logfile)
    with logfile.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, sort_keys=True)
        handle.write("\n")
    return logfile, payload


def is_probable_prime(n: int, rounds: int = 16) -> bool:
    if n < 2:
        return False
    small_primes = [2, 3, 5, 7, 11, 13, 17, 19, 23, 29]
    if n in small_primes:
        return True
    if any((n % p) == 0 for p in small_primes):
        return False
    # n - 1 = 2^s * d
    d = n - 1
    s = 0
    while d % 2 == 0:
        d //= 2
        s += 1
    for _ in range(rounds):
        a = secrets.randbelow(n - 3) + 2
        x = pow(a, d, n)
        if x == 1 or x == n - 1:
            continue
        for _ in range(s - 1):
            x = pow(x, 2, n)
            if x == n - 1:
                break
        else:
            return False
    return True


def generate_large_prime(bits: int = 256) -> int:
    """
    Generate a probable prime number with the specified bit length using
    Miller-Rabin rounds sufficient for the experiments.
    """
    assert bits >= 8, "Bit length too small for prime generation"
    while True:
        candidate = secrets.randbits(bits) | (1 << (bits - 1)) | 1
        if is_probable_prime(candidate):
            return candidate


def egcd(a: int, b: int) -> Tuple[int, int, int]:
    """Return (g, x, y) with a*x + b*y == g == gcd(a, b)."""
    old_r, r = a, b
    old_x, x = 1, 0
    old_y, y = 0, 1
    while r:
        q = old_r // r
        old_r, r = r, old_r - q * r
        old_x, x = x, old_x - q * x
        old_y, y = y, old_y - q * y
    return old_r, old_x, old_y


def modinv(a: int, m: int) -> int:
    g, x, _ = egcd(a % m, m)
    if g != 1:
        raise ValueError("modular inverse does not exist")
    return x % m


def monotonic_time_ns() -> int:
    return time.perf_counter_ns()


def measure_ns(func: Callable[..., Any], *args: Any) -> Tuple[int, Any]:
    """Run ``func(*args)`` and return the elapsed nanoseconds with its result."""
    start = monotonic_time_ns()
    result = func(*args)
    end = monotonic_time_ns()
    return end - start, result


def timing_summary(durations: Sequence[float]) -> Dict[str, float]:
    samples = np.asarray(durations, dtype=np.float64)
    return {
        "count": int(samples.size),
        "mean": float(np.mean(samples)),
        "std": float(np.std(samples)),
        "median": float(np.median(samples)),
        "min": float(np.min(samples)),
        "max": float(np.max(samples)),
        "p95": float(np.percentile(samples, 95)),
    }


__all__ = [
    "current_timestamp",
    "debug",
    "egcd",
    "ensure_directory",
    "error",
    "generate_large_prime",
    "info",
    "is_probable_prime",
    "measure_ns",
    "modinv",
    "monotonic_time_ns",
    "save_json_result",
    "set_verbose",
    "timing_summary",
    "warning",
]
