from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from pygame.math import Vector2

from ..core.agent import Agent
from ..core.team import Team
from ..utils.math2d import _clamp_value, _midpoint

if TYPE_CHECKING:
    from ..core.world import World

logger = logging.getLogger(__name__)


def _stat(value: float) -> float:
    return _clamp_value(value, 0.0, 100.0)


def _darker(color: tuple[int, int, int], factor: float = 0.7) -> tuple[int, int, int]:
    return (int(color[0] * factor), int(color[1] * factor), int(color[2] * factor))


def create_team(
    world: World,
    color: tuple[int, int, int],
    name: str | None = None,
    aggression: float | None = None,
    max_size: int | None = None,
) -> Team:
    settings = world._config.team
    if aggression is None:
        aggression = world._rng.next_range(*settings.start_aggression)
    if max_size is None:
        max_size = world._rng.next_int_inclusive(*settings.max_size)
    team_id = world._next_team_id
    world._next_team_id += 1
    team = Team(
        id=team_id,
        name=name or f"Team-{team_id}",
        color=color,
        aggression=_stat(aggression),
        max_size=max_size,
        created_at=world.time,
    )
    world._teams[team_id] = team
    return team


def add_member(world: World, team: Team, agent: Agent) -> bool:
    if agent.id in team.member_ids or team.is_full:
        return False
    settings = world._config.team
    agent.is_team_leader = False
    team.member_ids.append(agent.id)
    agent.team_id = team.id
    agent.in_combat = team.in_combat
    agent.combat_target_id = team.combat_target_id
    team.life = _stat(team.life + settings.growth_life_bonus)
    team.aggression = _stat(team.aggression - settings.growth_aggression_relief)
    select_leader(world, team)
    if team.size == 2:
        team.name = f"Team-{team.id}"
        harmonize_colors(world, team)
    return True


def remove_member(world: World, team: Team, agent: Agent) -> bool:
    if agent.id not in team.member_ids:
        return False
    settings = world._config.team
    team.member_ids.remove(agent.id)
    agent.is_team_leader = False
    agent.in_combat = False
    agent.combat_target_id = None
    remaining = team.size
    penalty = min(
        settings.member_loss_max_penalty,
        settings.member_loss_base_penalty + settings.member_loss_per_member_penalty * remaining,
    )
    team.life = _stat(team.life - penalty)
    team.aggression = _stat(team.aggression + settings.member_loss_aggression)
    if remaining == 1:
        team.name = f"Solo-{team.member_ids[0]}"
    select_leader(world, team)
    if remaining == 0:
        team.life = 0.0
        logger.info("%s has been completely wiped out", team.name)
    else:
        logger.debug("%s lost a member, life dropped by %.0f to %.0f", team.name, penalty, team.life)
    return True


def select_leader(world: World, team: Team) -> Optional[Agent]:
    members = world.team_members(team)
    for member in members:
        member.is_team_leader = False
    best = get_leader(world, team, members)
    team.leader_id = best.id if best is not None else None
    if best is not None:
        best.is_team_leader = True
    return best


def get_leader(world: World, team: Team, members: List[Agent] | None = None) -> Optional[Agent]:
    if members is None:
        members = world.team_members(team)
    best: Optional[Agent] = None
    for member in members:
        if best is None or member.leadership > best.leadership:
            best = member
    return best


def harmonize_colors(world: World, team: Team, base: tuple[int, int, int] | None = None) -> None:
    members = world.team_members(team)
    if not members:
        return
    if base is None:
        leader = world.get_agent(team.leader_id) if team.leader_id is not None else None
        base = leader.color if leader is not None else members[0].color
    for member in members:
        member.color = base
    team.color = base


def total_strength(world: World, team: Team) -> int:
    return sum(member.strength for member in world.team_members(team))


def average_leadership(world: World, team: Team) -> float:
    members = world.team_members(team)
    if not members:
        return 0.0
    return sum(member.leadership for member in members) / len(members)


def average_strength(world: World, team: Team) -> float:
    members = world.team_members(team)
    if not members:
        return 0.0
    return sum(member.strength for member in members) / len(members)


def strongest_member(world: World, team: Team) -> Optional[Agent]:
    strongest: Optional[Agent] = None
    for member in world.team_members(team):
        if strongest is None or member.strength > strongest.strength:
            strongest = member
    return strongest


def update_morale(world: World, team: Team) -> None:
    """Periodic drift of aggression and life: size pressure, aging, healing, random events."""
    settings = world._config.team
    rng = world._rng
    size = team.size

    if size > 5:
        team.aggression = _stat(team.aggression + 2.0)
        team.life = _stat(team.life - size * 0.05)
    elif size < 3:
        team.aggression = _stat(team.aggression - 3.0)

    if not team.in_combat:
        team.aggression = _stat(team.aggression - settings.aggression_decay_rate)

    grace = settings.aging_grace_seconds
    overdue = max(0.0, world.time - team.created_at - grace)
    if overdue > 0.0 and grace > 0.0:
        size_multiplier = 1.0 + ((size - 4) * 0.2 if size > 4 else 0.0)
        team.life = _stat(team.life - (overdue / grace) * 0.05 * size_multiplier)

    if team.in_combat:
        team.life = _stat(team.life - settings.combat_fatigue)
    elif team.life < 100.0:
        team.life = _stat(team.life + settings.life_regen_rate)

    if rng.chance(settings.event_chance):
        event = rng.next_float()
        if event < settings.crisis_chance:
            team.life = _stat(team.life - 12.0)
            team.aggression = _stat(team.aggression + 8.0)
            world._events.crises += 1
            logger.info("%s suffered a crisis, life %.0f", team.name, team.life)
        elif event > 1.0 - settings.fortune_chance:
            team.life = _stat(team.life + 8.0)
            team.aggression = _stat(team.aggression - 4.0)
            world._events.fortunes += 1
            logger.info("%s had good fortune, life %.0f", team.name, team.life)

    if team.life <= 10.0 and size > 0:
        logger.debug("%s has critically low life: %.0f", team.name, team.life)


def _move_member(world: World, source: Team, target: Team, agent: Agent) -> None:
    source.member_ids.remove(agent.id)
    target.member_ids.append(agent.id)
    agent.team_id = target.id
    agent.is_team_leader = False
    agent.in_combat = target.in_combat
    agent.combat_target_id = target.combat_target_id


def merge_teams(world: World, first: Optional[Team], second: Optional[Team]) -> Optional[Team]:
    """Fold two teams into a new one.

    Members that do not fit in the merged roster are spun off into their own
    singleton teams, so the population is unchanged.
    """
    if first is None or second is None or first is second or not first.member_ids or not second.member_ids:
        logger.warning(
            "Invalid team merge attempt: %s + %s",
            first.name if first is not None else None,
            second.name if second is not None else None,
        )
        return first
    dominant = first if first.size >= second.size else second
    merged = create_team(
        world,
        color=dominant.color,
        name=f"Merged-{world._next_team_id}",
        aggression=(first.aggression + second.aggression) / 2.0,
        max_size=min(world._config.team.merged_max_size_cap, first.max_size + second.max_size // 2),
    )
    overflow = 0
    for source in (first, second):
        for agent_id in list(source.member_ids):
            agent = world._agents[agent_id]
            if not merged.is_full:
                _move_member(world, source, merged, agent)
                continue
            solo = create_team(world, color=agent.color, name=f"Solo-{agent.id}")
            _move_member(world, source, solo, agent)
            select_leader(world, solo)
            overflow += 1
    for source in (first, second):
        source.life = 0.0
        world._discard_team(source)
    select_leader(world, merged)
    harmonize_colors(world, merged, merged.color)
    world._events.merges += 1
    logger.info(
        "Cooperation: %s + %s = %s (%d members, %d spun off)",
        first.name,
        second.name,
        merged.name,
        merged.size,
        overflow,
    )
    return merged


def check_for_rebellion(world: World, team: Optional[Team]) -> Optional[Team]:
    if team is None or not team.member_ids:
        logger.warning("Rebellion check on a missing or empty team ignored")
        return None
    settings = world._config.team
    if team.size < settings.rebellion_min_members:
        return None
    chance = (team.aggression / 100.0) * settings.rebellion_base_chance
    if not world._rng.chance(chance):
        return None
    return split_team(world, team)


def split_team(world: World, team: Team) -> Optional[Team]:
    """Move the back half of the roster into a new rebel team."""
    split_size = team.size // 2
    if split_size <= 0:
        logger.warning("Cannot split %s with %d members", team.name, team.size)
        return None
    settings = world._config.team
    rebel_ids = team.member_ids[-split_size:]
    rebel_color = _darker(team.color)
    sampled_max = world._rng.next_int_inclusive(*settings.max_size)
    rebels = create_team(
        world,
        color=rebel_color,
        name=f"Rebel-{world._next_team_id}",
        aggression=team.aggression + settings.rebel_aggression_boost,
        max_size=max(sampled_max, split_size),
    )
    for agent_id in rebel_ids:
        _move_member(world, team, rebels, world._agents[agent_id])
    harmonize_colors(world, rebels, rebel_color)
    select_leader(world, rebels)
    select_leader(world, team)
    team.aggression = _stat(team.aggression - settings.rebellion_aggression_relief)
    world._events.rebellions += 1
    logger.info("Rebellion! %s (%d) split from %s (%d)", rebels.name, rebels.size, team.name, team.size)
    return rebels


def should_attack(world: World, team: Team, other: Team) -> bool:
    if team.is_individual or team.size < 2:
        return False
    if other.is_individual or other.size < 2:
        return False
    aggression_factor = team.aggression / 100.0
    size_factor = min(1.0, team.size / (other.size + 1))
    capacity_factor = team.size / team.max_size
    probability = aggression_factor * 0.4 + size_factor * 0.4 + capacity_factor * 0.2
    return world._rng.chance(probability * world._config.combat.attack_chance_scale)


def center_position(world: World, team: Team) -> Optional[Vector2]:
    members = world.team_members(team)
    if not members:
        return None
    total = Vector2()
    for member in members:
        total += member.position
    return total / len(members)


def start_combat(world: World, team: Team, enemy: Team) -> bool:
    if team.in_combat or team.is_individual or team.size < 2:
        return False
    team.in_combat = True
    team.combat_target_id = enemy.id
    team.combat_start_time = world.time
    own_center = center_position(world, team)
    enemy_center = center_position(world, enemy)
    if own_center is not None and enemy_center is not None:
        team.rally_point = _midpoint(own_center, enemy_center)
    for member in world.team_members(team):
        member.in_combat = True
        member.combat_target_id = enemy.id
    logger.info("%s (%d) declares war on %s (%d)", team.name, team.size, enemy.name, enemy.size)
    return True


def end_combat(world: World, team: Team) -> None:
    team.in_combat = False
    team.combat_target_id = None
    team.rally_point = None
    for member in world.team_members(team):
        member.in_combat = False
        member.combat_target_id = None


def update_combat(world: World, team: Team) -> bool:
    """End combat on timeout or once the enemy is gone. Returns True when combat ended."""
    if not team.in_combat:
        return False
    elapsed = world.time - team.combat_start_time
    enemy = world.get_team(team.combat_target_id) if team.combat_target_id is not None else None
    if elapsed > world._config.combat.combat_duration_seconds or enemy is None or not enemy.member_ids:
        end_combat(world, team)
        logger.debug("%s ended combat after %.1fs", team.name, elapsed)
        return True
    return False


def team_stats(world: World, team: Team) -> Dict[str, Any]:
    leader = get_leader(world, team)
    strongest = strongest_member(world, team)
    return {
        "id": team.id,
        "name": team.name,
        "members": team.size,
        "max_size": team.max_size,
        "aggression": team.aggression,
        "cooperation": 100.0 - team.aggression,
        "life": team.life,
        "total_strength": total_strength(world, team),
        "average_strength": average_strength(world, team),
        "average_leadership": average_leadership(world, team),
        "strongest": strongest.id if strongest is not None else None,
        "leader": leader.id if leader is not None else None,
        "is_individual": team.is_individual,
        "in_combat": team.in_combat,
        "color": list(team.color),
    }
