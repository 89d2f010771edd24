import io
import json

import pytest

from analysis.csv_export import write_csv
from analysis.metrics import aggregate, bootstrap_mean_ci, load_logs, percentile, wilson_interval


def _attack_log(successes, timing_mean):
    return {
        "attack": "montgomery_timing",
        "timing_source": "wall",
        "method": "means",
        "lengths": [
            {"length": 3, "successes": successes[0], "trials": 20},
            {"length": 5, "successes": successes[1], "trials": 20},
        ],
        "total_successes": sum(successes),
        "total_trials": 40,
        "timing_stats": {"mean": timing_mean},
    }


def test_percentile_and_bootstrap():
    assert percentile([4.0, 1.0, 3.0, 2.0], 0.5) == 2.5
    assert percentile([1.0, 2.0, 3.0], 1.0) == 3.0
    with pytest.raises(ValueError):
        percentile([], 0.5)
    mean_val, std_dev, low, high = bootstrap_mean_ci([10.0, 12.0, 14.0])
    assert mean_val == 12.0
    assert low <= mean_val <= high
    assert bootstrap_mean_ci([]) is None
    assert bootstrap_mean_ci([5.0]) == (5.0, 0.0, 5.0, 5.0)


def test_wilson_interval():
    value, low, high = wilson_interval(18, 20)
    assert value == 0.9
    assert 0.6 < low < 0.9 < high <= 1.0
    assert wilson_interval(0, 0) is None
    assert wilson_interval(20, 20)[2] == pytest.approx(1.0)


def test_aggregate_groups_by_scenario():
    records = [
        _attack_log((20, 15), 1000.0),
        _attack_log((18, 11), 1100.0),
        {
            "attack": "montgomery_bit_recovery",
            "timing_source": "synthetic",
            "method": "welch",
            "correct_bit_count": 7,
            "bit_count": 8,
        },
    ]
    metrics = aggregate(records)
    wall = metrics["montgomery_timing:wall:means"]
    assert wall["runs"] == 2
    assert wall["per_length"]["3"]["successes"] == 38
    assert wall["per_length"]["3"]["total"] == 40
    assert wall["per_length"]["5"]["value"] == pytest.approx(26 / 40)
    assert wall["accuracy"]["value"] == pytest.approx(64 / 80)
    assert wall["decrypt_time"]["mean"] == 1050.0

    recovery = metrics["montgomery_bit_recovery:synthetic:welch"]
    assert recovery["accuracy"]["value"] == pytest.approx(7 / 8)
    assert recovery["per_length"] == {}
    assert "decrypt_time" not in recovery


def test_load_logs_skips_non_attack_and_broken_files(tmp_path):
    good = tmp_path / "attack.json"
    good.write_text(json.dumps(_attack_log((1, 1), 5.0)), encoding="utf-8")
    demo = tmp_path / "demo.json"
    demo.write_text(json.dumps({"mode": "demo", "exchange_ok": True}), encoding="utf-8")
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    records = load_logs([good, demo, broken, tmp_path / "missing.json"])
    assert len(records) == 1
    assert records[0]["json_log_path"] == str(good)


def test_write_csv():
    metrics = aggregate([_attack_log((20, 10), 1000.0)])
    stream = io.StringIO()
    rows = write_csv(metrics, stream)
    assert rows == 4
    lines = stream.getvalue().strip().splitlines()
    assert lines[0] == "scenario,metric,length,value,ci95_low,ci95_high"
    assert lines[1].startswith("montgomery_timing:wall:means,accuracy,,0.75,")
    assert lines[3].startswith("montgomery_timing:wall:means,accuracy,5,0.5,")
