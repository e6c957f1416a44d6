from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, TYPE_CHECKING

from ..core.agent import Agent
from ..core.team import Team
from ..utils.math2d import _clamp_value, _safe_normalize
from . import teams

if TYPE_CHECKING:
    from ..core.world import World

logger = logging.getLogger(__name__)


class InteractionKind(str, Enum):
    COMBAT = "Combat"
    COOPERATE = "Cooperate"
    FIGHT = "Fight"


@dataclass(slots=True)
class CombatOutcome:
    winner_id: int
    loser_id: int
    winner_team_id: int
    loser_team_id: int
    damage: int
    life_gain: int
    absorbed: bool = False


def check_interactions(world: World, agent: Agent, neighbors: List[Agent]) -> Optional[InteractionKind]:
    """Handle at most one encounter for ``agent``: the lowest-id neighbour of another team in reach."""
    if not agent.can_interact(world.time):
        return None
    for other in neighbors:
        if other is agent or other.team_id == agent.team_id:
            continue
        if other.id not in world._agents:
            continue
        reach = agent.interaction_radius + other.interaction_radius
        if agent.position.distance_squared_to(other.position) < reach * reach:
            return handle_interaction(world, agent, other)
    return None


def handle_interaction(world: World, agent: Agent, other: Agent) -> Optional[InteractionKind]:
    now = world.time
    if not other.can_interact(now):
        return None
    agent.last_interaction = now
    other.last_interaction = now

    own_team = world.team_of(agent)
    other_team = world.team_of(other)
    combat = world._config.combat
    min_members = combat.coordinated_min_members
    if (
        not own_team.is_individual
        and not other_team.is_individual
        and own_team.size >= min_members
        and other_team.size >= min_members
    ):
        # both sides roll even when the first already wants a fight
        own_attack = teams.should_attack(world, own_team, other_team)
        other_attack = teams.should_attack(world, other_team, own_team)
        if own_attack or other_attack:
            initiate_team_combat(world, own_team, other_team)
            return InteractionKind.COMBAT

    rng = world._rng
    own_wants = rng.chance(own_team.cooperation_probability())
    other_wants = rng.chance(other_team.cooperation_probability())
    ceiling = world._config.team.cooperation_aggression_ceiling
    if (
        (own_wants and other_team.aggression < ceiling)
        or (other_wants and own_team.aggression < ceiling)
        or (own_wants and other_wants)
    ):
        cooperate(world, agent, other)
        return InteractionKind.COOPERATE
    fight(world, agent, other)
    return InteractionKind.FIGHT


def initiate_team_combat(world: World, own_team: Team, other_team: Team) -> None:
    started = teams.start_combat(world, own_team, other_team)
    started = teams.start_combat(world, other_team, own_team) or started
    if started:
        world._events.coordinated_combats += 1
        logger.info(
            "Team battle: %s (%d) vs %s (%d)", own_team.name, own_team.size, other_team.name, other_team.size
        )


def cooperate(world: World, agent: Agent, other: Agent) -> Optional[Team]:
    own_team = world.team_of(agent)
    other_team = world.team_of(other)
    combined = own_team.size + other_team.size
    allowed = max(own_team.max_size, other_team.max_size)
    if combined <= allowed or own_team.is_individual or other_team.is_individual:
        return world.merge_teams(own_team.id, other_team.id)
    logger.debug("Alliance formed between %s and %s (too large to merge)", own_team.name, other_team.name)
    return None


def fight(world: World, agent: Agent, other: Agent) -> CombatOutcome:
    own_team = world.team_of(agent)
    other_team = world.team_of(other)
    rng = world._rng
    own_roll = teams.total_strength(world, own_team) * rng.next_range(0.8, 1.2)
    other_roll = teams.total_strength(world, other_team) * rng.next_range(0.8, 1.2)
    world._events.fights += 1
    if own_roll > other_roll:
        return apply_combat_effects(world, agent, other)
    return apply_combat_effects(world, other, agent)


def combat_damage(world: World, winner: Agent, loser: Agent, loser_size: int) -> int:
    combat = world._config.combat
    strength_bonus = abs(winner.strength - loser.strength) // combat.strength_divisor
    random_bonus = int(world._rng.next_float() * combat.random_damage_range)
    damage = combat.base_damage + strength_bonus + random_bonus
    protection = max(0, loser_size - 1) * combat.team_size_protection
    if loser_size > combat.large_penalty_threshold:
        protection -= (loser_size - combat.large_penalty_threshold) * combat.large_penalty_rate
    return max(combat.min_damage, int(damage * (1.0 - protection)))


def apply_combat_effects(world: World, winner: Agent, loser: Agent) -> CombatOutcome:
    combat = world._config.combat
    winner_team = world.team_of(winner)
    loser_team = world.team_of(loser)

    damage = combat_damage(world, winner, loser, loser_team.size)
    life_gain = int(damage * combat.winner_life_gain)
    winner_team.life = _clamp_value(winner_team.life + life_gain, 0.0, 100.0)
    loser_team.life = _clamp_value(loser_team.life - damage, 0.0, 100.0)
    winner_team.aggression = _clamp_value(winner_team.aggression + combat.winner_aggression_increase, 0.0, 100.0)
    loser_team.aggression = _clamp_value(loser_team.aggression + combat.loser_aggression_increase, 0.0, 100.0)
    logger.debug(
        "%s beat %s: damage %d, winner life %.0f, loser life %.0f",
        winner_team.name,
        loser_team.name,
        damage,
        winner_team.life,
        loser_team.life,
    )

    outcome = CombatOutcome(
        winner_id=winner.id,
        loser_id=loser.id,
        winner_team_id=winner_team.id,
        loser_team_id=loser_team.id,
        damage=damage,
        life_gain=life_gain,
    )
    can_absorb = not winner_team.is_full
    should_absorb = (
        winner_team.aggression > combat.absorption_winner_aggression
        and loser_team.aggression < combat.absorption_loser_aggression
        and world._rng.chance(combat.absorption_chance)
    )
    if can_absorb and should_absorb and world.transfer_agent(loser.id, winner_team.id):
        outcome.absorbed = True
        world._events.absorptions += 1
        logger.info("%s absorbed agent %d from %s", winner_team.name, loser.id, loser_team.name)
        return outcome

    retreat = _safe_normalize(loser.position - winner.position) * world._config.agent.retreat_impulse
    loser.velocity += retreat
    if loser_team.life <= 0.0:
        logger.info("%s was defeated in combat", loser_team.name)
    return outcome
