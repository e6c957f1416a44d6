import csv
import json
import logging

import pytest

from blobsim.headless import run_headless


def _read_csv(path):
    with path.open(newline="") as handle:
        return list(csv.reader(handle))


def test_headless_basic_log_header(tmp_path):
    log_path = tmp_path / "basic.csv"
    run_headless(steps=2, seed=1, log_path=log_path, deterministic_log=True, log_format="basic")
    rows = _read_csv(log_path)
    assert len(rows) == 3
    assert rows[0] == [
        "tick",
        "population",
        "teams",
        "individuals",
        "merges",
        "fights",
        "deaths",
        "spawns",
        "tick_ms",
    ]
    assert rows[1][0] == "1"
    assert rows[1][-1] == "0.000"


def test_headless_detailed_log_ratios(tmp_path):
    log_path = tmp_path / "detailed.csv"
    run_headless(steps=3, seed=2, log_path=log_path, deterministic_log=True, log_format="detailed")
    rows = _read_csv(log_path)
    assert len(rows) == 4
    header = rows[0]
    idx = {name: i for i, name in enumerate(header)}
    for key in [
        "combat_teams", "largest_team", "avg_aggression", "avg_life", "absorptions", "rebellions", "crises", "fortunes"
    ]:
        assert key in idx

    first_row = rows[1]
    population = int(first_row[idx["population"]])
    team_count = int(first_row[idx["teams"]])
    avg_team_size = float(first_row[idx["avg_team_size"]])
    expected = 0.0 if team_count == 0 else population / team_count
    assert avg_team_size == pytest.approx(expected, abs=1e-4)
    assert float(first_row[idx["tick_ms"]]) == 0.0
    assert int(first_row[idx["individuals"]]) <= team_count


def test_headless_deterministic_logs_match(tmp_path):
    first = tmp_path / "a.csv"
    second = tmp_path / "b.csv"
    run_headless(steps=20, seed=5, log_path=first, deterministic_log=True)
    run_headless(steps=20, seed=5, log_path=second, deterministic_log=True)
    assert first.read_text() == second.read_text()


def test_headless_summary_output(tmp_path):
    summary_path = tmp_path / "summary.json"
    world = run_headless(
        steps=4,
        seed=3,
        log_path=None,
        deterministic_log=True,
        log_format="basic",
        summary_path=summary_path,
        summary_window=2,
    )
    payload = json.loads(summary_path.read_text())
    assert payload["steps"] == 4
    assert payload["seed"] == 3
    assert payload["log_format"] == "basic"
    assert payload["invariant_violations"] == 0
    assert payload["population"]["max"] >= world.population
    assert payload["tail_window"]["window"] == 2
    assert set(payload["totals"]) >= {"merges", "fights", "deaths"}


def test_headless_reads_yaml_config(tmp_path, caplog):
    config_path = tmp_path / "sim.yaml"
    config_path.write_text("initial_population: 12\nmax_population: 12\n")
    with caplog.at_level(logging.INFO, logger="blobsim"):
        world = run_headless(steps=1, seed=4, log_path=None, config_path=config_path)
    assert world.population == 12
    assert "Running 1 steps" in caplog.text


def test_headless_rejects_unknown_format(tmp_path):
    with pytest.raises(ValueError):
        run_headless(steps=1, seed=1, log_path=tmp_path / "x.csv", log_format="fancy")
