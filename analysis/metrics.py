#!/usr/bin/env python3

"""
Metrics aggregator for the Montgomery timing experiment.

Reads the JSON logs written by ``timing_attack/attack.py`` and reports, per
scenario (attack kind, timing source and decision rule), the bit-guess accuracy
for every exponent prefix length with a Wilson interval, the overall accuracy,
and a bootstrap interval of the mean decryption time across runs.
"""

from __future__ import annotations

import argparse
import json
import math
import random
import statistics
import sys
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

CURRENT_DIR = Path(__file__).resolve().parent
ROOT_DIR = CURRENT_DIR.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from common import utils


def percentile(values: List[float], q: float) -> float:
    if not values:
        raise ValueError("empty data")
    values = sorted(values)
    k = (len(values) - 1) * q
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return values[int(k)]
    return values[int(f)] * (c - k) + values[int(c)] * (k - f)


def wilson_interval(successes: int, total: int, confidence: float = 0.95) -> Optional[Tuple[float, float, float]]:
    if total <= 0:
        return None
    z = {
        0.80: 1.2816,
        0.90: 1.6449,
        0.95: 1.96,
        0.99: 2.5758,
    }.get(confidence, 1.96)
    phat = successes / total
    denom = 1 + (z ** 2) / total
    centre = phat + (z ** 2) / (2 * total)
    margin = z * math.sqrt((phat * (1 - phat) + (z ** 2) / (4 * total)) / total)
    return phat, max(0.0, (centre - margin) / denom), min(1.0, (centre + margin) / denom)


def bootstrap_mean_ci(values: List[float], iterations: int = 2000, confidence: float = 0.95) -> Optional[Tuple[float, float, float, float]]:
    if not values:
        return None
    if len(values) == 1:
        return values[0], 0.0, values[0], values[0]
    rnd = random.Random(1337)
    n = len(values)
    means = []
    for _ in range(iterations):
        sample = [rnd.choice(values) for _ in range(n)]
        means.append(sum(sample) / n)
    alpha = 1 - confidence
    return (
        statistics.mean(values),
        statistics.pstdev(values),
        percentile(means, alpha / 2),
        percentile(means, 1 - alpha / 2),
    )


def scenario_key(data: Dict[str, Any]) -> str:
    return "{}:{}:{}".format(data.get("attack"), data.get("timing_source"), data.get("method"))


def load_logs(paths: Iterable[Path]) -> List[Dict[str, Any]]:
    records = []
    for path in paths:
        if not path.exists():
            utils.warning(f"Skipping missing log {path}")
            continue
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            utils.warning(f"Skipping unreadable log {path}")
            continue
        if not data.get("attack"):
            continue
        data.setdefault("json_log_path", str(path))
        records.append(data)
    return records


def _rate(successes: int, total: int) -> Dict[str, Any]:
    interval = wilson_interval(successes, total)
    if interval is None:
        return {"value": None, "ci95": [None, None], "successes": successes, "total": total}
    value, low, high = interval
    return {"value": value, "ci95": [low, high], "successes": successes, "total": total}


def aggregate(records: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    grouped: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for data in records:
        grouped[scenario_key(data)].append(data)

    metrics: Dict[str, Dict[str, Any]] = {}
    for scenario, items in sorted(grouped.items()):
        per_length: Dict[int, List[int]] = defaultdict(lambda: [0, 0])
        successes = 0
        total = 0
        mean_times: List[float] = []
        for data in items:
            for entry in data.get("lengths", []):
                counts = per_length[int(entry["length"])]
                counts[0] += int(entry["successes"])
                counts[1] += int(entry["trials"])
            if "total_successes" in data:
                successes += int(data["total_successes"])
                total += int(data["total_trials"])
            elif "correct_bit_count" in data:
                successes += int(data["correct_bit_count"])
                total += int(data["bit_count"])
            timing_stats = data.get("timing_stats") or {}
            if timing_stats.get("mean") is not None:
                mean_times.append(float(timing_stats["mean"]))

        summary: Dict[str, Any] = {
            "runs": len(items),
            "accuracy": _rate(successes, total),
            "per_length": {
                str(length): _rate(*counts) for length, counts in sorted(per_length.items())
            },
        }
        runtime = bootstrap_mean_ci(mean_times)
        if runtime is not None:
            mean_val, std_dev, low, high = runtime
            summary["decrypt_time"] = {"mean": mean_val, "std": std_dev, "ci95": [low, high]}
        metrics[scenario] = summary
    return metrics


def main() -> None:
    parser = argparse.ArgumentParser(description="Aggregate metrics from timing attack JSON logs.")
    parser.add_argument("--output", help="Optional path to write summary JSON.")
    parser.add_argument("--list-file", help="File containing newline-separated JSON paths.")
    parser.add_argument("json_paths", nargs="*", help="JSON artifact paths.")
    args = parser.parse_args()

    json_paths: List[Path] = [Path(p) for p in args.json_paths]
    if args.list_file:
        list_path = Path(args.list_file)
        if list_path.exists():
            lines = [line.strip() for line in list_path.read_text(encoding="utf-8").splitlines()]
            json_paths.extend(Path(line) for line in lines if line)

    records = load_logs(json_paths)
    utils.info(f"Aggregating {len(records)} attack logs.")
    summary = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "sources": [data["json_log_path"] for data in records],
        "metrics": aggregate(records),
    }
    if args.output:
        output = Path(args.output)
        utils.ensure_directory(output.parent)
        output.write_text(json.dumps(summary, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        summary["summary_path"] = str(output)
    print(json.dumps(summary), flush=True)


if __name__ == "__main__":
    main()
