from __future__ import annotations

import logging
import math
from time import perf_counter
from typing import Any, Dict, List, Optional

from pygame.math import Vector2

from ...config import SimulationConfig
from ...rng import SimulationRng
from ...spatial_grid import SpatialGrid
from ..systems import interactions, lifecycle, metrics as metrics_system, steering, teams
from ..types.metrics import TickEvents, TickMetrics
from ..types.snapshot import Snapshot, SnapshotMetadata, SnapshotWorld
from ..utils.math2d import _map_range
from .agent import Agent
from .team import Team

logger = logging.getLogger(__name__)

_PALETTE = (
    (255, 99, 71),
    (64, 224, 208),
    (255, 215, 0),
    (138, 43, 226),
    (50, 205, 50),
    (255, 105, 180),
    (30, 144, 255),
    (255, 140, 0),
    (0, 206, 209),
    (220, 20, 60),
    (154, 205, 50),
    (186, 85, 211),
)


class World:
    """Owns every agent and team and advances them in fixed steps.

    Agents and teams refer to each other by id only. Anything that moves an
    agent between rosters (merge, split, absorption, removal) goes through
    this class or the team system it delegates to.
    """

    _UNASSIGNED = -1

    def __init__(self, config: SimulationConfig, rng: SimulationRng | None = None):
        self._config = config.validate()
        self._rng = rng if rng is not None else SimulationRng(config.seed)
        self._grid = SpatialGrid(config.cell_size)
        self._agents: Dict[int, Agent] = {}
        self._teams: Dict[int, Team] = {}
        self._neighbor_scratch: List[Agent] = []
        self._events = TickEvents()
        self._metrics: TickMetrics | None = None
        self._next_id = 1
        self._next_team_id = 1
        self._palette_index = 0
        self._tick = 0
        self._time = 0.0
        self._bootstrap_population()

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def agents(self) -> List[Agent]:
        return list(self._agents.values())

    @property
    def teams(self) -> List[Team]:
        return list(self._teams.values())

    @property
    def population(self) -> int:
        return len(self._agents)

    @property
    def tick(self) -> int:
        return self._tick

    @property
    def time(self) -> float:
        return self._time

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    def get_agent(self, agent_id: int | None) -> Optional[Agent]:
        if agent_id is None:
            return None
        return self._agents.get(agent_id)

    def get_team(self, team_id: int | None) -> Optional[Team]:
        if team_id is None:
            return None
        return self._teams.get(team_id)

    def team_of(self, agent: Agent) -> Team:
        return self._teams[agent.team_id]

    def team_members(self, team: Team) -> List[Agent]:
        agents = self._agents
        return [agents[agent_id] for agent_id in team.member_ids if agent_id in agents]

    def team_center(self, team: Team) -> Optional[Vector2]:
        return teams.center_position(self, team)

    def spawn_agent(self, position: Vector2 | None = None, team_id: int | None = None) -> Optional[Agent]:
        if len(self._agents) >= self._config.max_population:
            logger.debug("Spawn declined: population cap %d reached", self._config.max_population)
            return None
        team: Optional[Team] = None
        if team_id is not None:
            team = self._teams.get(team_id)
            if team is None or team.is_full:
                logger.warning("Spawn declined: team %s is missing or full", team_id)
                return None
        agent = self._create_agent(position)
        self._agents[agent.id] = agent
        if team is None:
            team = teams.create_team(self, color=agent.color, name=f"Solo-{agent.id}")
        teams.add_member(self, team, agent)
        return agent

    def remove_agent(self, agent_id: int) -> bool:
        agent = self._agents.get(agent_id)
        if agent is None:
            return False
        team = self._teams.get(agent.team_id)
        if team is not None:
            teams.remove_member(self, team, agent)
            if not team.member_ids:
                self._discard_team(team)
        del self._agents[agent_id]
        return True

    def remove_nearest_agent(self, position: Vector2, max_distance: float = 50.0) -> Optional[int]:
        nearest: Optional[Agent] = None
        best_sq = max_distance * max_distance
        # commands arrive between steps, after agents have moved
        self._grid.rebuild(self._agents.values())
        for agent in self._grid.get_neighbors(position, max_distance):
            dist_sq = agent.position.distance_squared_to(position)
            if dist_sq < best_sq:
                nearest = agent
                best_sq = dist_sq
        if nearest is None:
            return None
        self.remove_agent(nearest.id)
        return nearest.id

    def transfer_agent(self, agent_id: int, team_id: int) -> bool:
        agent = self._agents.get(agent_id)
        target = self._teams.get(team_id)
        if agent is None or target is None or agent.team_id == team_id or target.is_full:
            return False
        source = self._teams.get(agent.team_id)
        if source is not None:
            teams.remove_member(self, source, agent)
        teams.add_member(self, target, agent)
        if source is not None and not source.member_ids:
            self._discard_team(source)
        return True

    def merge_teams(self, first_id: int, second_id: int) -> Optional[Team]:
        return teams.merge_teams(self, self._teams.get(first_id), self._teams.get(second_id))

    def split_team(self, team_id: int) -> Optional[Team]:
        team = self._teams.get(team_id)
        if team is None or not team.member_ids:
            logger.warning("Cannot split missing or empty team %s", team_id)
            return None
        return teams.split_team(self, team)

    def reset(self) -> None:
        self._agents.clear()
        self._teams.clear()
        self._grid.clear()
        self._neighbor_scratch.clear()
        self._rng.reset()
        self._events = TickEvents()
        self._metrics = None
        self._next_id = 1
        self._next_team_id = 1
        self._palette_index = 0
        self._tick = 0
        self._time = 0.0
        self._bootstrap_population()

    def step(self) -> TickMetrics:
        start = perf_counter()
        config = self._config
        cadence = config.lifecycle
        self._events = TickEvents()
        agents = list(self._agents.values())
        neighbors = self._neighbor_scratch
        max_size = config.agent.max_size
        # buckets go stale as agents move within a phase
        slack = max_size + 2.0 * config.agent.max_speed
        contact_radius = 2.0 * (max_size + config.agent.interaction_padding) + slack
        steering_radius = 2.0 * (max_size + steering.SEPARATION_MARGIN) + slack

        self._grid.rebuild(agents)
        for agent in agents:
            self._grid.collect_neighbors(agent.position, contact_radius, neighbors, exclude_id=agent.id)
            steering.resolve_collisions(self, agent, neighbors)
            interactions.check_interactions(self, agent, neighbors)

        self._grid.rebuild(agents)
        for agent in agents:
            self._grid.collect_neighbors(agent.position, steering_radius, neighbors, exclude_id=agent.id)
            steering.compute_steering(self, agent, neighbors)
            steering.integrate(agent)
            steering.resolve_collisions(self, agent, neighbors)
            steering.wrap_position(self, agent)
        steering.resolve_all_collisions(self)

        self._tick += 1
        self._time = self._tick * config.time_step
        if self._tick % cadence.team_update_interval == 0:
            lifecycle.run_team_sweep(self)
        if self._tick % cadence.death_check_interval == 0:
            lifecycle.sweep_dead_teams(self)
        if self._tick % cadence.replenish_interval == 0:
            lifecycle.replenish_population(self)
        self._prune_empty_teams()

        elapsed_ms = (perf_counter() - start) * 1000.0
        metrics = metrics_system.create_metrics(
            self._tick, len(self._agents), self._teams.values(), self._events, elapsed_ms
        )
        self._metrics = metrics
        return metrics

    def snapshot(self, tick: int | None = None) -> Snapshot:
        if tick is None:
            tick = self._tick
        metrics = self._metrics
        if metrics is None:
            metrics = metrics_system.create_metrics(tick, len(self._agents), self._teams.values(), TickEvents(), 0.0)
        config = self._config
        metadata = SnapshotMetadata(
            sim_dt=config.time_step,
            tick_rate=0.0 if config.time_step <= 0 else 1.0 / config.time_step,
            seed=self._rng.seed,
            config_version=config.config_version,
        )
        return Snapshot(
            tick=tick,
            metrics=metrics,
            agents=[self._agent_snapshot(agent) for agent in self._agents.values()],
            teams=[teams.team_stats(self, team) for team in self._teams.values() if team.member_ids],
            world=SnapshotWorld(width=config.world_width, height=config.world_height),
            metadata=metadata,
        )

    def check_invariants(self) -> List[str]:
        """Describe every broken membership, leadership or bounds rule. Empty means healthy."""
        problems: List[str] = []
        seen: Dict[int, int] = {}
        for team in self._teams.values():
            if not team.member_ids:
                problems.append(f"team {team.id} is registered but empty")
            if team.size > team.max_size:
                problems.append(f"team {team.id} has {team.size} members, max {team.max_size}")
            if not 0.0 <= team.life <= 100.0:
                problems.append(f"team {team.id} life {team.life} out of range")
            if not 0.0 <= team.aggression <= 100.0:
                problems.append(f"team {team.id} aggression {team.aggression} out of range")
            for agent_id in team.member_ids:
                if agent_id in seen:
                    problems.append(f"agent {agent_id} listed by teams {seen[agent_id]} and {team.id}")
                seen[agent_id] = team.id
                agent = self._agents.get(agent_id)
                if agent is None:
                    problems.append(f"team {team.id} lists unknown agent {agent_id}")
                elif agent.team_id != team.id:
                    problems.append(f"agent {agent_id} points at team {agent.team_id}, listed by {team.id}")
            members = self.team_members(team)
            leaders = [member for member in members if member.is_team_leader]
            expected = teams.get_leader(self, team, members)
            if members and (len(leaders) != 1 or leaders[0] is not expected or team.leader_id != expected.id):
                problems.append(f"team {team.id} leader is not its single most-leading member")
        for agent in self._agents.values():
            if agent.id not in seen:
                problems.append(f"agent {agent.id} belongs to no team roster")
        return problems

    def _bootstrap_population(self) -> None:
        for _ in range(self._config.target_population):
            self.spawn_agent()
        logger.debug("Bootstrapped %d agents in %d teams", len(self._agents), len(self._teams))

    def _create_agent(self, position: Vector2 | None) -> Agent:
        config = self._config
        settings = config.agent
        rng = self._rng
        if position is None:
            margin = config.spawn_margin
            position = Vector2(
                rng.next_range(margin, max(margin, config.world_width - margin)),
                rng.next_range(margin, max(margin, config.world_height - margin)),
            )
        leadership = rng.next_int_inclusive(1, 100)
        strength = rng.next_int_inclusive(1, 100)
        size = _map_range(strength, 1, 100, settings.min_size, settings.max_size)
        agent = Agent(
            id=self._next_id,
            team_id=self._UNASSIGNED,
            position=Vector2(position),
            leadership=leadership,
            strength=strength,
            max_speed=_map_range(strength, 1, 100, settings.min_speed, settings.max_speed),
            max_force=_map_range(leadership, 1, 100, settings.min_force, settings.max_force),
            size=size,
            interaction_radius=size + settings.interaction_padding,
            target=steering.random_target(self),
            color=self._next_color(),
            velocity=rng.next_unit_circle(),
            wander_angle=rng.next_range(0.0, 2.0 * math.pi),
            last_target_change=self._time,
            target_change_interval=rng.next_range(
                settings.target_change_min_seconds, settings.target_change_max_seconds
            ),
            interaction_cooldown=settings.interaction_cooldown_seconds,
        )
        self._next_id += 1
        return agent

    def _next_color(self) -> tuple[int, int, int]:
        color = _PALETTE[self._palette_index % len(_PALETTE)]
        self._palette_index += 1
        return color

    def _discard_team(self, team: Team) -> None:
        if team.in_combat:
            teams.end_combat(self, team)
        self._teams.pop(team.id, None)

    def _prune_empty_teams(self) -> None:
        for team in [team for team in self._teams.values() if not team.member_ids]:
            self._discard_team(team)

    def _agent_snapshot(self, agent: Agent) -> Dict[str, Any]:
        return {
            "id": agent.id,
            "x": agent.position.x,
            "y": agent.position.y,
            "vx": agent.velocity.x,
            "vy": agent.velocity.y,
            "size": agent.size,
            "color": list(agent.color),
            "team": agent.team_id,
            "is_team_leader": agent.is_team_leader,
            "in_combat": agent.in_combat,
            "leadership": agent.leadership,
            "strength": agent.strength,
        }
