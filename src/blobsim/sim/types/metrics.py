from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class TickEvents:
    merges: int = 0
    fights: int = 0
    coordinated_combats: int = 0
    absorptions: int = 0
    rebellions: int = 0
    crises: int = 0
    fortunes: int = 0
    deaths: int = 0
    spawns: int = 0


@dataclass(slots=True)
class TickMetrics:
    tick: int
    population: int
    teams: int
    individuals: int
    combat_teams: int
    largest_team: int
    average_aggression: float
    average_life: float
    merges: int = 0
    fights: int = 0
    coordinated_combats: int = 0
    absorptions: int = 0
    rebellions: int = 0
    crises: int = 0
    fortunes: int = 0
    deaths: int = 0
    spawns: int = 0
    tick_duration_ms: float = 0.0
