from __future__ import annotations

from typing import Iterable

from ..core.team import Team
from ..types.metrics import TickEvents, TickMetrics


def create_metrics(
    tick: int,
    population: int,
    teams: Iterable[Team],
    events: TickEvents,
    duration_ms: float,
) -> TickMetrics:
    team_count = 0
    individuals = 0
    combat_teams = 0
    largest = 0
    aggression_sum = 0.0
    life_sum = 0.0
    for team in teams:
        if not team.member_ids:
            continue
        team_count += 1
        if team.is_individual:
            individuals += 1
        if team.in_combat:
            combat_teams += 1
        largest = max(largest, team.size)
        aggression_sum += team.aggression
        life_sum += team.life
    return TickMetrics(
        tick=tick,
        population=population,
        teams=team_count,
        individuals=individuals,
        combat_teams=combat_teams,
        largest_team=largest,
        average_aggression=0.0 if team_count == 0 else aggression_sum / team_count,
        average_life=0.0 if team_count == 0 else life_sum / team_count,
        merges=events.merges,
        fights=events.fights,
        coordinated_combats=events.coordinated_combats,
        absorptions=events.absorptions,
        rebellions=events.rebellions,
        crises=events.crises,
        fortunes=events.fortunes,
        deaths=events.deaths,
        spawns=events.spawns,
        tick_duration_ms=duration_ms,
    )
