from __future__ import annotations

import logging
from typing import Tuple, TYPE_CHECKING

from . import teams

if TYPE_CHECKING:
    from ..core.world import World

logger = logging.getLogger(__name__)


def run_team_sweep(world: World) -> None:
    """Coarse per-team update: combat timeout, rebellion, then morale."""
    for team in list(world._teams.values()):
        if not team.member_ids:
            continue
        teams.update_combat(world, team)
        teams.check_for_rebellion(world, team)
        teams.update_morale(world, team)


def sweep_dead_teams(world: World) -> Tuple[int, int]:
    """Remove every team whose life ran out together with its agents, then spawn replacements."""
    deaths = 0
    for team in list(world._teams.values()):
        if team.life > 0.0 or not team.member_ids:
            continue
        perished = len(team.member_ids)
        logger.info("%s has died, %d agents perished", team.name, perished)
        for agent_id in list(team.member_ids):
            world._agents.pop(agent_id, None)
        team.member_ids.clear()
        team.leader_id = None
        world._discard_team(team)
        deaths += perished

    spawned = 0
    if deaths > 0:
        room = max(0, world._config.max_population - len(world._agents))
        for _ in range(min(deaths, room)):
            if world.spawn_agent() is None:
                break
            spawned += 1
        logger.debug("Spawned %d replacements for %d deaths", spawned, deaths)
    world._events.deaths += deaths
    world._events.spawns += spawned
    return deaths, spawned


def replenish_population(world: World) -> int:
    """Top the population back up to the configured target."""
    missing = world._config.target_population - len(world._agents)
    spawned = 0
    for _ in range(max(0, missing)):
        if world.spawn_agent() is None:
            break
        spawned += 1
    if spawned:
        logger.debug("Replenished %d agents", spawned)
    world._events.spawns += spawned
    return spawned
