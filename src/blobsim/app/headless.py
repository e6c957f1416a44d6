from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from pathlib import Path
from typing import Optional

from ..config import SimulationConfig
from ..sim.core.world import World
from ..sim.types.metrics import TickMetrics

logger = logging.getLogger(__name__)

_BASIC_HEADER = [
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

_DETAILED_HEADER = [
    "tick",
    "population",
    "teams",
    "individuals",
    "combat_teams",
    "largest_team",
    "avg_team_size",
    "avg_aggression",
    "avg_life",
    "merges",
    "fights",
    "coordinated_combats",
    "absorptions",
    "rebellions",
    "crises",
    "fortunes",
    "deaths",
    "spawns",
    "avg_speed",
    "tick_ms",
    "tick_ms_per_agent",
]


def _format_basic_row(metrics: TickMetrics, tick_ms: float) -> list[object]:
    return [
        metrics.tick,
        metrics.population,
        metrics.teams,
        metrics.individuals,
        metrics.merges,
        metrics.fights,
        metrics.deaths,
        metrics.spawns,
        f"{tick_ms:.3f}",
    ]


def _format_detailed_row(world: World, metrics: TickMetrics, tick_ms: float) -> list[object]:
    population = metrics.population
    if population <= 0:
        avg_speed = 0.0
        tick_ms_per_agent = 0.0
    else:
        speed_sum = 0.0
        for agent in world.agents:
            speed_sum += math.hypot(agent.velocity.x, agent.velocity.y)
        avg_speed = speed_sum / population
        tick_ms_per_agent = tick_ms / population
    avg_team_size = 0.0 if metrics.teams == 0 else population / metrics.teams
    return [
        metrics.tick,
        population,
        metrics.teams,
        metrics.individuals,
        metrics.combat_teams,
        metrics.largest_team,
        f"{avg_team_size:.4f}",
        f"{metrics.average_aggression:.4f}",
        f"{metrics.average_life:.4f}",
        metrics.merges,
        metrics.fights,
        metrics.coordinated_combats,
        metrics.absorptions,
        metrics.rebellions,
        metrics.crises,
        metrics.fortunes,
        metrics.deaths,
        metrics.spawns,
        f"{avg_speed:.4f}",
        f"{tick_ms:.3f}",
        f"{tick_ms_per_agent:.4f}",
    ]


def _percentile(sorted_values: list[float], percentile: float) -> float:
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    pos = (len(sorted_values) - 1) * percentile
    low = int(math.floor(pos))
    high = int(math.ceil(pos))
    if low == high:
        return float(sorted_values[low])
    weight = pos - low
    return float(sorted_values[low] + (sorted_values[high] - sorted_values[low]) * weight)


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(sum(values) / len(values)),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p99": _percentile(sorted_values, 0.99),
    }


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    log_format: str = "detailed",
    summary_path: Optional[Path] = None,
    summary_window: int = 5000,
    config_path: Optional[Path] = None,
) -> World:
    config = SimulationConfig.from_yaml(config_path) if config_path else SimulationConfig()
    if seed is not None:
        config.seed = seed
    world = World(config)

    log_mode = log_format.lower().strip()
    if log_mode not in {"basic", "detailed"}:
        raise ValueError(f"Unknown log format: {log_format}")

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_DETAILED_HEADER if log_mode == "detailed" else _BASIC_HEADER)

    tick_ms_series: list[float] = []
    population_series: list[float] = []
    team_series: list[float] = []
    totals = {
        key: 0
        for key in ("merges", "fights", "absorptions", "rebellions", "crises", "fortunes", "deaths", "spawns")
    }

    logger.info("Running %d steps with seed %s", steps, config.seed)
    try:
        for _ in range(steps):
            metrics = world.step()
            tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms
            for key in totals:
                totals[key] += getattr(metrics, key)
            if summary_path:
                tick_ms_series.append(tick_ms)
                population_series.append(float(metrics.population))
                team_series.append(float(metrics.teams))
            if writer:
                if log_mode == "detailed":
                    writer.writerow(_format_detailed_row(world, metrics, tick_ms))
                else:
                    writer.writerow(_format_basic_row(metrics, tick_ms))
    finally:
        if csv_file:
            csv_file.close()

    logger.info(
        "Finished: %d agents in %d teams, %d merges, %d fights, %d deaths",
        world.population,
        len(world.teams),
        totals["merges"],
        totals["fights"],
        totals["deaths"],
    )
    problems = world.check_invariants()
    for problem in problems:
        logger.warning("Invariant violated: %s", problem)

    if summary_path:
        window = max(1, int(summary_window))
        tail_slice = slice(max(0, len(tick_ms_series) - window), len(tick_ms_series))
        summary = {
            "steps": steps,
            "seed": config.seed,
            "log_format": log_mode,
            "deterministic_log": deterministic_log,
            "tick_ms": _summary_stats(tick_ms_series),
            "population": _summary_stats(population_series),
            "teams": _summary_stats(team_series),
            "totals": totals,
            "invariant_violations": len(problems),
            "tail_window": {
                "window": window,
                "tick_ms": _summary_stats(tick_ms_series[tail_slice]),
                "population": _summary_stats(population_series[tail_slice]),
                "teams": _summary_stats(team_series[tail_slice]),
            },
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))
    return world


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless blob team simulation")
    parser.add_argument("--steps", type=int, default=3000)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--config", type=Path, default=None, help="YAML file overriding simulation defaults")
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write metrics")
    parser.add_argument(
        "--log-format",
        choices=["basic", "detailed"],
        default="detailed",
        help="CSV format to write when --log is provided.",
    )
    parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Optional JSON file to write summary stats for the run.",
    )
    parser.add_argument(
        "--summary-window",
        type=int,
        default=5000,
        help="Tail window size (ticks) for summary stats.",
    )
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write tick_ms as 0.000 so runs with identical seeds produce identical CSVs.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Verbosity of simulation event logging.",
    )
    args = parser.parse_args()
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    run_headless(
        args.steps,
        args.seed,
        args.log,
        deterministic_log=args.deterministic_log,
        log_format=args.log_format,
        summary_path=args.summary,
        summary_window=args.summary_window,
        config_path=args.config,
    )


if __name__ == "__main__":
    main()
