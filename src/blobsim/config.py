from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

from .exceptions import ConfigurationError


@dataclass
class AgentConfig:
    min_speed: float = 0.5
    max_speed: float = 3.0
    min_force: float = 0.02
    max_force: float = 0.1
    min_size: float = 8.0
    max_size: float = 20.0
    interaction_padding: float = 15.0
    interaction_cooldown_seconds: float = 2.0
    target_radius: float = 20.0
    target_change_min_seconds: float = 3.0
    target_change_max_seconds: float = 8.0
    wander_radius: float = 25.0
    wander_distance: float = 80.0
    wander_jitter: float = 0.3
    cohesion_radius: float = 80.0
    rally_arrival_radius: float = 30.0
    retreat_impulse: float = 5.0


@dataclass
class TeamConfig:
    start_aggression: tuple[float, float] = (10.0, 50.0)
    max_size: tuple[int, int] = (6, 14)
    merged_max_size_cap: int = 12
    growth_life_bonus: float = 5.0
    growth_aggression_relief: float = 3.0
    member_loss_base_penalty: float = 20.0
    member_loss_per_member_penalty: float = 2.0
    member_loss_max_penalty: float = 30.0
    member_loss_aggression: float = 10.0
    aggression_decay_rate: float = 0.2
    life_regen_rate: float = 0.8
    combat_fatigue: float = 0.2
    aging_grace_seconds: float = 300.0
    event_chance: float = 0.02
    crisis_chance: float = 0.4
    fortune_chance: float = 0.2
    rebellion_min_members: int = 4
    rebellion_base_chance: float = 0.002
    rebel_aggression_boost: float = 20.0
    rebellion_aggression_relief: float = 15.0
    cooperation_aggression_ceiling: float = 70.0


@dataclass
class CombatConfig:
    base_damage: int = 8
    strength_divisor: int = 5
    random_damage_range: int = 10
    min_damage: int = 2
    team_size_protection: float = 0.05
    large_penalty_threshold: int = 6
    large_penalty_rate: float = 0.15
    winner_life_gain: float = 0.4
    winner_aggression_increase: float = 4.0
    loser_aggression_increase: float = 10.0
    absorption_chance: float = 0.08
    absorption_winner_aggression: float = 65.0
    absorption_loser_aggression: float = 35.0
    combat_duration_seconds: float = 3.0
    coordinated_min_members: int = 3
    attack_chance_scale: float = 0.3


@dataclass
class LifecycleConfig:
    team_update_interval: int = 120
    death_check_interval: int = 60
    replenish_interval: int = 60
    collision_passes: int = 500


@dataclass
class SimulationConfig:
    time_step: float = 1.0 / 60.0
    initial_population: int = 100
    max_population: int = 500
    world_width: float = 1280.0
    world_height: float = 720.0
    spawn_margin: float = 50.0
    cell_size: float = 50.0
    seed: Optional[int] = None
    config_version: str = "v1"
    agent: AgentConfig = field(default_factory=AgentConfig)
    team: TeamConfig = field(default_factory=TeamConfig)
    combat: CombatConfig = field(default_factory=CombatConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text())
        return load_config(data or {})

    @property
    def target_population(self) -> int:
        return min(self.initial_population, self.max_population)

    def validate(self) -> "SimulationConfig":
        if self.time_step <= 0.0:
            raise ConfigurationError(f"time_step must be positive, got {self.time_step}")
        if self.initial_population < 0 or self.max_population < 0:
            raise ConfigurationError("population counts must be non-negative")
        if self.world_width <= 0.0 or self.world_height <= 0.0:
            raise ConfigurationError("world dimensions must be positive")
        if self.cell_size <= 0.0:
            raise ConfigurationError(f"cell_size must be positive, got {self.cell_size}")
        low, high = self.team.start_aggression
        if not 0.0 <= low <= high <= 100.0:
            raise ConfigurationError(f"start_aggression must lie within [0, 100], got {(low, high)}")
        low_size, high_size = self.team.max_size
        if not 1 <= low_size <= high_size:
            raise ConfigurationError(f"team max_size range is invalid: {(low_size, high_size)}")
        if not 3.0 <= self.combat.combat_duration_seconds <= 5.0:
            raise ConfigurationError(
                f"combat_duration_seconds must be between 3 and 5, got {self.combat.combat_duration_seconds}"
            )
        for name in ("team_update_interval", "death_check_interval", "replenish_interval", "collision_passes"):
            if getattr(self.lifecycle, name) < 1:
                raise ConfigurationError(f"{name} must be at least 1")
        return self


@dataclass
class AppConfig:
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    broadcast_interval: int = 2


def _section(cls, raw: dict | None, name: str):
    raw = raw or {}
    known = {item.name for item in fields(cls)}
    unknown = set(raw) - known
    if unknown:
        raise ConfigurationError(f"Unknown {name} keys: {sorted(unknown)}")
    values = {}
    for key, value in raw.items():
        # YAML has no tuples; ranges arrive as two-item lists
        if isinstance(value, list):
            if len(value) != 2:
                raise ConfigurationError(f"{name}.{key} must be a [min, max] pair")
            value = (value[0], value[1])
        values[key] = value
    return cls(**values)


def load_config(raw: dict) -> SimulationConfig:
    agent = _section(AgentConfig, raw.get("agent"), "agent")
    team = _section(TeamConfig, raw.get("team"), "team")
    combat = _section(CombatConfig, raw.get("combat"), "combat")
    lifecycle = _section(LifecycleConfig, raw.get("lifecycle"), "lifecycle")
    sim_values = {k: v for k, v in raw.items() if k not in {"agent", "team", "combat", "lifecycle"}}
    known = {item.name for item in fields(SimulationConfig)}
    unknown = set(sim_values) - known
    if unknown:
        raise ConfigurationError(f"Unknown simulation keys: {sorted(unknown)}")
    config = SimulationConfig(agent=agent, team=team, combat=combat, lifecycle=lifecycle, **sim_values)
    return config.validate()
