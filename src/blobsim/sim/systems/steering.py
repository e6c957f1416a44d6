from __future__ import annotations

import logging
import math
from typing import List, Optional, TYPE_CHECKING

from pygame.math import Vector2

from ..core.agent import Agent
from ..core.team import Team
from ..utils.math2d import _clamp_length, _map_range, _safe_normalize

if TYPE_CHECKING:
    from ..core.world import World

logger = logging.getLogger(__name__)

COLLISION_MARGIN = 2.0
SEPARATION_MARGIN = 5.0
ATTACHMENT_MARGIN = 10.0


def random_target(world: World) -> Vector2:
    config = world._config
    margin = config.spawn_margin
    return Vector2(
        world._rng.next_range(margin, max(margin, config.world_width - margin)),
        world._rng.next_range(margin, max(margin, config.world_height - margin)),
    )


def seek(agent: Agent, target: Vector2) -> Vector2:
    desired = _safe_normalize(target - agent.position) * agent.max_speed
    return _clamp_length(desired - agent.velocity, agent.max_force)


def wander(world: World, agent: Agent) -> Vector2:
    settings = world._config.agent
    agent.wander_angle += world._rng.next_range(-settings.wander_jitter, settings.wander_jitter)
    circle = _safe_normalize(agent.velocity) * settings.wander_distance + agent.position
    offset = Vector2(
        math.cos(agent.wander_angle) * settings.wander_radius,
        math.sin(agent.wander_angle) * settings.wander_radius,
    )
    return seek(agent, circle + offset)


def separate(world: World, agent: Agent, neighbors: List[Agent]) -> Vector2:
    steer = Vector2()
    count = 0
    for other in neighbors:
        if other is agent:
            continue
        offset = agent.position - other.position
        distance = offset.length()
        min_safe = (agent.size + other.size) / 2.0 + SEPARATION_MARGIN
        if distance < min_safe:
            if distance == 0.0:
                offset = _random_axis(world)
            direction = _safe_normalize(offset)
            steer += direction * _map_range(distance, 0.0, min_safe, 5.0, 1.0)
            count += 1
        elif distance < min_safe * 2.0:
            steer += _safe_normalize(offset) * 0.5
            count += 1
    if count == 0:
        return steer
    steer /= count
    # Near-overlaps may push back with up to three times the normal force.
    return _clamp_length(steer, agent.max_force * 3.0)


def cohesion(world: World, agent: Agent, members: List[Agent]) -> Vector2:
    if len(members) <= 1:
        return Vector2()
    radius = world._config.agent.cohesion_radius
    total = Vector2()
    count = 0
    for other in members:
        distance = agent.position.distance_to(other.position)
        if 0.0 < distance < radius:
            total += other.position
            count += 1
    if count == 0:
        return Vector2()
    return seek(agent, total / count)


def attachment(world: World, agent: Agent, members: List[Agent]) -> Vector2:
    if len(members) <= 1:
        return Vector2()
    ideal = (agent.size + world._config.agent.interaction_padding) * 1.2
    others = [other for other in members if other is not agent]
    others.sort(key=lambda other: agent.position.distance_squared_to(other.position))
    force = Vector2()
    connections = 0
    for other in others[: min(3, len(members) - 1)]:
        offset = other.position - agent.position
        distance = offset.length()
        min_safe = (agent.size + other.size) / 2.0 + ATTACHMENT_MARGIN
        if min_safe < distance < ideal * 1.5 and distance > ideal:
            force += _safe_normalize(offset) * ((distance - ideal) * 0.05)
            connections += 1
    if connections == 0:
        return force
    force /= connections
    return _clamp_length(force, agent.max_force * 0.2)


def _ring_slot(index: int, team_size: int, small: float, medium: float, inner: float, outer: float,
               rotation: float = 0.0) -> Vector2:
    if team_size <= 3:
        angle = index * 2.0 * math.pi / team_size + rotation
        radius = small
    elif team_size <= 6:
        angle = index * 2.0 * math.pi / team_size
        radius = medium
    else:
        inner_count = team_size // 2
        in_inner = index < inner_count
        ring_index = index if in_inner else index - inner_count
        ring_size = inner_count if in_inner else team_size - inner_count
        angle = ring_index * 2.0 * math.pi / ring_size
        radius = inner if in_inner else outer
    return Vector2(math.cos(angle) * radius, math.sin(angle) * radius)


def formation(world: World, agent: Agent, team: Team, members: List[Agent]) -> Vector2:
    if len(members) <= 1:
        return Vector2()
    center = world.team_center(team)
    if center is None or agent.id not in team.member_ids:
        return Vector2()
    index = team.member_ids.index(agent.id)
    slot = center + _ring_slot(index, len(members), 20.0, 28.0, 20.0, 40.0)
    return seek(agent, slot) * 0.3


def follow_offset(agent: Agent, team: Team) -> Vector2:
    if team.leader_id is None or agent.id not in team.member_ids:
        return Vector2()
    index = team.member_ids.index(agent.id)
    # small squads trail behind the leader, larger ones surround it
    return _ring_slot(index, team.size, 25.0, 30.0, 25.0, 45.0, rotation=math.pi)


def combat_movement(world: World, agent: Agent, team: Team) -> Vector2:
    if not team.in_combat or team.combat_target_id is None:
        return Vector2()
    if team.rally_point is not None:
        if agent.position.distance_to(team.rally_point) > world._config.agent.rally_arrival_radius:
            return seek(agent, team.rally_point)
    enemy = world.get_team(team.combat_target_id)
    if enemy is None:
        return Vector2()
    nearest: Optional[Agent] = None
    nearest_dist_sq = float("inf")
    for other in world.team_members(enemy):
        dist_sq = agent.position.distance_squared_to(other.position)
        if dist_sq < nearest_dist_sq:
            nearest = other
            nearest_dist_sq = dist_sq
    if nearest is None:
        return Vector2()
    return seek(agent, nearest.position)


def _maybe_retarget(world: World, agent: Agent) -> None:
    now = world.time
    settings = world._config.agent
    arrived = agent.position.distance_to(agent.target) < settings.target_radius
    if arrived or now - agent.last_target_change > agent.target_change_interval:
        agent.target = random_target(world)
        agent.last_target_change = now
        agent.target_change_interval = world._rng.next_range(
            settings.target_change_min_seconds, settings.target_change_max_seconds
        )


def compute_steering(world: World, agent: Agent, neighbors: List[Agent]) -> Vector2:
    """Accumulate this step's weighted forces into ``agent.acceleration``."""
    team = world.team_of(agent)
    members = world.team_members(team)
    agent.in_combat = team.in_combat
    agent.combat_target_id = team.combat_target_id if team.in_combat else None

    if team.in_combat:
        agent.apply_force(combat_movement(world, agent, team) * 1.8)
        agent.apply_force(formation(world, agent, team, members) * 2.0)
        agent.apply_force(attachment(world, agent, members) * 2.5)
        agent.apply_force(separate(world, agent, neighbors) * 1.8)
        agent.apply_force(wander(world, agent) * 0.1)
        return agent.acceleration

    leader = world.get_agent(team.leader_id) if team.leader_id is not None else None
    if agent.is_team_leader or team.is_individual or leader is None or leader is agent:
        _maybe_retarget(world, agent)
        agent.apply_force(seek(agent, agent.target) * 0.6)
        agent.apply_force(wander(world, agent) * 0.2)
        agent.apply_force(separate(world, agent, neighbors) * 1.2)
        if len(members) >= 3:
            weight = _map_range(len(members), 3, 12, 1.5, 2.5)
            agent.apply_force(formation(world, agent, team, members) * weight)
            agent.apply_force(attachment(world, agent, members) * 1.2)
        else:
            weight = _map_range(agent.leadership, 1, 100, 0.3, 0.8)
            agent.apply_force(cohesion(world, agent, members) * weight)
        return agent.acceleration

    slot = leader.position + follow_offset(agent, team)
    agent.apply_force(seek(agent, slot) * 2.5)
    agent.apply_force(formation(world, agent, team, members) * 3.0)
    agent.apply_force(attachment(world, agent, members) * 2.0)
    agent.apply_force(separate(world, agent, neighbors) * 0.8)
    return agent.acceleration


def integrate(agent: Agent) -> None:
    agent.velocity += agent.acceleration
    agent.velocity = _clamp_length(agent.velocity, agent.max_speed)
    agent.position += agent.velocity
    agent.acceleration.update(0.0, 0.0)


def _random_axis(world: World) -> Vector2:
    axis = Vector2(world._rng.next_range(-1.0, 1.0), world._rng.next_range(-1.0, 1.0))
    if axis.length_squared() < 1e-12:
        return Vector2(1.0, 0.0)
    return axis


def resolve_collisions(world: World, agent: Agent, neighbors: List[Agent]) -> int:
    """Push ``agent`` and each overlapping neighbour apart. Returns the number of pairs fixed."""
    resolved = 0
    for other in neighbors:
        if other is agent:
            continue
        offset = agent.position - other.position
        distance = offset.length()
        min_distance = (agent.size + other.size) / 2.0 + COLLISION_MARGIN
        if distance >= min_distance:
            continue
        overlap = min_distance - distance
        if distance == 0.0:
            offset = _random_axis(world)
        axis = _safe_normalize(offset)
        move = overlap / 2.0 + 1.0
        agent.position += axis * move
        other.position -= axis * move
        agent.velocity += axis * 0.5
        other.velocity -= axis * 0.5
        resolved += 1
    return resolved


def resolve_all_collisions(world: World, max_passes: int | None = None) -> int:
    """Run whole-population passes until no pair overlaps.

    ``max_passes`` (default ``lifecycle.collision_passes``) only bounds pathological
    pileups; a warning is logged when it is reached with overlaps left. Returns passes used.
    """
    passes = max_passes if max_passes is not None else world._config.lifecycle.collision_passes
    agents = world.agents
    max_size = world._config.agent.max_size
    # pushes inside a pass move agents away from their bucket
    radius = 2.0 * max_size + COLLISION_MARGIN
    grid = world._grid
    neighbors: List[Agent] = []
    used = 0
    for _ in range(max(1, passes)):
        used += 1
        grid.rebuild(agents)
        fixed = 0
        for agent in agents:
            grid.collect_neighbors(agent.position, radius, neighbors, exclude_id=agent.id)
            later = [other for other in neighbors if other.id > agent.id]
            fixed += resolve_collisions(world, agent, later)
        if fixed == 0:
            return used
    logger.warning("Collision resolution stopped after %d passes with overlaps remaining", used)
    return used


def wrap_position(world: World, agent: Agent) -> None:
    width = world._config.world_width
    height = world._config.world_height
    size = agent.size
    if agent.position.x < -size:
        agent.position.x = width + size
    elif agent.position.x > width + size:
        agent.position.x = -size
    if agent.position.y < -size:
        agent.position.y = height + size
    elif agent.position.y > height + size:
        agent.position.y = -size
