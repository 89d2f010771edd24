#!/usr/bin/env python3

"""Convert an aggregated metrics summary into CSV rows."""

from __future__ import annotations

import argparse
import csv
import json
import sys
from pathlib import Path
from typing import Any, Dict, Iterator, TextIO

FIELDNAMES = [
    "scenario",
    "metric",
    "length",
    "value",
    "ci95_low",
    "ci95_high",
]


def iter_rows(metrics: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    for scenario, values in metrics.items():
        accuracy = values.get("accuracy")
        if accuracy:
            yield _row(scenario, "accuracy", "", accuracy["value"], accuracy["ci95"])
        for length, payload in values.get("per_length", {}).items():
            yield _row(scenario, "accuracy", length, payload["value"], payload["ci95"])
        decrypt_time = values.get("decrypt_time")
        if decrypt_time:
            yield _row(scenario, "decrypt_time", "", decrypt_time["mean"], decrypt_time["ci95"])


def _row(scenario: str, metric: str, length: str, value: Any, ci95) -> Dict[str, Any]:
    return {
        "scenario": scenario,
        "metric": metric,
        "length": length,
        "value": value,
        "ci95_low": ci95[0],
        "ci95_high": ci95[1],
    }


def write_csv(metrics: Dict[str, Any], stream: TextIO) -> int:
    writer = csv.DictWriter(stream, fieldnames=FIELDNAMES)
    writer.writeheader()
    count = 0
    for row in iter_rows(metrics):
        writer.writerow(row)
        count += 1
    return count


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Metrics JSON to CSV")
    parser.add_argument("summary_json", help="Path to a summary written by analysis/metrics.py")
    args = parser.parse_args()

    data = json.loads(Path(args.summary_json).read_text(encoding="utf-8"))
    write_csv(data.get("metrics", {}), sys.stdout)
