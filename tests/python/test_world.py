from __future__ import annotations

import logging

import pytest
from pygame.math import Vector2

from blobsim.config import LifecycleConfig, SimulationConfig
from blobsim.sim.core.world import World
from blobsim.sim.systems import lifecycle


def run_steps(config: SimulationConfig, steps: int):
    world = World(config)
    history = []
    for _ in range(steps):
        metrics = world.step()
        history.append((metrics.population, metrics.teams, metrics.merges, metrics.fights, metrics.deaths))
    return history


def _team_at(world, size: int, origin=(200.0, 200.0)):
    first = world.spawn_agent(Vector2(origin))
    team = world.team_of(first)
    team.max_size = max(size, team.max_size)
    members = [first]
    for index in range(1, size):
        members.append(world.spawn_agent(Vector2(origin[0] + 30.0 * index, origin[1]), team_id=team.id))
    return team, members


def test_bootstrap_creates_solo_teams_inside_margin():
    config = SimulationConfig(seed=3, initial_population=20)
    world = World(config)
    assert world.population == 20
    assert len(world.teams) == 20
    for agent in world.agents:
        team = world.team_of(agent)
        assert team.name == f"Solo-{agent.id}"
        assert team.leader_id == agent.id
        assert config.spawn_margin <= agent.position.x <= config.world_width - config.spawn_margin
        assert config.spawn_margin <= agent.position.y <= config.world_height - config.spawn_margin
    assert world.check_invariants() == []


def test_deterministic_steps():
    config = SimulationConfig(seed=1234, initial_population=40)
    result_a = run_steps(config, 150)
    config_b = SimulationConfig(seed=1234, initial_population=40)
    result_b = run_steps(config_b, 150)
    assert result_a == result_b


def test_population_conserved_between_deaths_and_spawns():
    world = World(SimulationConfig(seed=11, initial_population=60))
    previous = world.population
    for _ in range(300):
        metrics = world.step()
        if metrics.deaths == 0 and metrics.spawns == 0:
            assert metrics.population == previous
        assert metrics.population <= world.config.max_population
        assert world.check_invariants() == []
        previous = metrics.population


def test_dead_team_is_replaced_one_for_one(make_world):
    world = make_world()
    team, members = _team_at(world, 4)
    old_ids = {agent.id for agent in members}
    team.life = 0.0

    deaths, spawned = lifecycle.sweep_dead_teams(world)

    assert (deaths, spawned) == (4, 4)
    assert team.member_ids == []
    assert world.get_team(team.id) is None
    assert world.population == 4
    assert not old_ids & {agent.id for agent in world.agents}
    assert all(world.team_of(agent).is_individual for agent in world.agents)
    assert world.check_invariants() == []


def test_replacements_respect_population_cap(make_world):
    world = make_world(max_population=5)
    team, _ = _team_at(world, 4)
    world.spawn_agent(Vector2(800.0, 500.0))
    team.life = 0.0
    world.config.max_population = 3

    deaths, spawned = lifecycle.sweep_dead_teams(world)

    assert deaths == 4
    assert spawned == 2
    assert world.population == 3


def test_death_sweep_runs_on_cadence(make_world):
    world = make_world()
    team, _ = _team_at(world, 2, origin=(300.0, 300.0))
    team.life = 0.0
    interval = world.config.lifecycle.death_check_interval
    for _ in range(interval - 1):
        assert world.step().deaths == 0
    metrics = world.step()
    assert metrics.deaths == 2
    assert metrics.spawns == 2
    assert world.population == 2


def test_replenish_tops_up_to_initial_population():
    world = World(SimulationConfig(seed=5, initial_population=10, lifecycle=LifecycleConfig(replenish_interval=5)))
    for agent in world.agents[:3]:
        world.remove_agent(agent.id)
    assert world.population == 7
    for _ in range(5):
        metrics = world.step()
    assert metrics.spawns >= 3
    assert world.population == 10


def test_spawn_declined_at_population_cap(make_world, caplog):
    world = make_world(initial_population=3, max_population=3)
    with caplog.at_level(logging.DEBUG, logger="blobsim"):
        assert world.spawn_agent() is None
    assert world.population == 3
    assert "population cap" in caplog.text


def test_spawn_into_full_team_is_declined(make_world):
    world = make_world()
    team, _ = _team_at(world, 2)
    team.max_size = 2
    assert world.spawn_agent(Vector2(500.0, 500.0), team_id=team.id) is None
    assert world.spawn_agent(team_id=999) is None
    assert world.population == 2


def test_remove_agent_updates_roster_and_prunes_empty_team(make_world):
    world = make_world()
    team, members = _team_at(world, 3)

    assert world.remove_agent(members[0].id)
    assert team.member_ids == [members[1].id, members[2].id]
    assert world.get_agent(members[0].id) is None
    assert not world.remove_agent(members[0].id)
    assert world.check_invariants() == []

    world.remove_agent(members[1].id)
    world.remove_agent(members[2].id)
    assert world.get_team(team.id) is None
    assert world.population == 0


def test_remove_nearest_agent(make_world):
    world = make_world()
    near = world.spawn_agent(Vector2(100.0, 100.0))
    world.spawn_agent(Vector2(300.0, 300.0))
    assert world.remove_nearest_agent(Vector2(110.0, 100.0)) == near.id
    assert world.remove_nearest_agent(Vector2(700.0, 700.0)) is None
    assert world.population == 1


def test_remove_nearest_agent_finds_agents_moved_since_last_step(make_world):
    world = make_world(initial_population=2)
    world.step()
    mover = world.agents[0]
    mover.position = Vector2(640.0, 360.0)
    world.agents[1].position = Vector2(100.0, 100.0)
    assert world.remove_nearest_agent(Vector2(645.0, 360.0), max_distance=10.0) == mover.id
    assert world.get_agent(mover.id) is None


def test_transfer_agent(make_world):
    world = make_world()
    target, _ = _team_at(world, 2, origin=(100.0, 100.0))
    mover = world.spawn_agent(Vector2(600.0, 400.0))
    source_id = mover.team_id

    assert not world.transfer_agent(mover.id, source_id)
    assert world.transfer_agent(mover.id, target.id)
    assert mover.team_id == target.id
    assert world.get_team(source_id) is None

    target.max_size = target.size
    outsider = world.spawn_agent(Vector2(900.0, 400.0))
    assert not world.transfer_agent(outsider.id, target.id)
    assert world.check_invariants() == []


def test_snapshot_contains_agents_teams_and_metadata():
    config = SimulationConfig(seed=7, time_step=0.5, initial_population=4)
    world = World(config)
    world.step()
    snapshot = world.snapshot()

    assert snapshot.tick == 1
    assert snapshot.world.width == pytest.approx(config.world_width)
    assert snapshot.world.height == pytest.approx(config.world_height)
    assert snapshot.metadata.sim_dt == pytest.approx(0.5)
    assert snapshot.metadata.tick_rate == pytest.approx(2.0)
    assert snapshot.metadata.seed == 7
    assert snapshot.metrics.population == world.population
    payload = snapshot.agents[0]
    for key in ["id", "x", "y", "vx", "vy", "size", "color", "team", "is_team_leader", "in_combat"]:
        assert key in payload
    assert sum(team["members"] for team in snapshot.teams) == world.population


def test_snapshot_before_first_step_has_metrics():
    world = World(SimulationConfig(seed=2, initial_population=3))
    snapshot = world.snapshot(0)
    assert snapshot.metrics.population == 3
    assert snapshot.metrics.teams == 3


def test_reset_rebuilds_initial_state():
    world = World(SimulationConfig(seed=21, initial_population=15))
    first_positions = [(agent.position.x, agent.position.y) for agent in world.agents]
    for _ in range(30):
        world.step()
    world.reset()
    assert world.tick == 0
    assert world.time == 0.0
    assert world.population == 15
    assert [agent.id for agent in world.agents] == list(range(1, 16))
    assert [(agent.position.x, agent.position.y) for agent in world.agents] == first_positions


def test_clock_advances_with_fixed_step():
    world = World(SimulationConfig(seed=1, initial_population=2, time_step=0.25))
    for _ in range(8):
        world.step()
    assert world.tick == 8
    assert world.time == pytest.approx(2.0)


@pytest.mark.config_change
def test_long_run_keeps_invariants():
    world = World(SimulationConfig(seed=99))
    merges = 0
    for _ in range(3000):
        metrics = world.step()
        merges += metrics.merges
        assert metrics.population <= world.config.max_population
    assert world.check_invariants() == []
    assert merges > 0
