from __future__ import annotations

import itertools
import logging
import math

from pygame.math import Vector2
from pytest import approx

from blobsim.config import SimulationConfig
from blobsim.sim.core.world import World
from blobsim.sim.systems import steering, teams


def _assert_no_overlaps(world: World) -> None:
    for first, second in itertools.combinations(world.agents, 2):
        distance = first.position.distance_to(second.position)
        assert distance >= (first.size + second.size) / 2.0, (first.id, second.id, distance)


def test_seek_is_limited_by_max_force(make_world):
    world = make_world()
    agent = world.spawn_agent(Vector2(100.0, 100.0))
    agent.velocity = Vector2()
    force = steering.seek(agent, Vector2(900.0, 100.0))
    assert force.length() <= agent.max_force + 1e-9
    assert force.x > 0.0


def test_integrate_clamps_speed_and_clears_acceleration(make_world):
    world = make_world()
    agent = world.spawn_agent(Vector2(100.0, 100.0))
    agent.velocity = Vector2()
    agent.apply_force(Vector2(50.0, 0.0))
    steering.integrate(agent)
    assert agent.velocity.length() == approx(agent.max_speed)
    assert agent.position.x == approx(100.0 + agent.max_speed)
    assert agent.acceleration == Vector2()


def test_wrap_position_crosses_edges(make_world):
    world = make_world()
    agent = world.spawn_agent(Vector2(100.0, 100.0))
    agent.position = Vector2(world.config.world_width + agent.size + 1.0, -agent.size - 1.0)
    steering.wrap_position(world, agent)
    assert agent.position.x == approx(-agent.size)
    assert agent.position.y == approx(world.config.world_height + agent.size)


def test_resolve_collisions_pushes_overlapping_pair_apart(make_world):
    world = make_world()
    first = world.spawn_agent(Vector2(400.0, 400.0))
    second = world.spawn_agent(Vector2(404.0, 400.0))
    fixed = steering.resolve_collisions(world, first, [second])
    assert fixed == 1
    assert first.position.distance_to(second.position) >= (first.size + second.size) / 2.0


def test_coincident_agents_are_separated(make_world):
    world = make_world()
    first = world.spawn_agent(Vector2(400.0, 400.0))
    second = world.spawn_agent(Vector2(400.0, 400.0))
    steering.resolve_collisions(world, first, [second])
    assert first.position.distance_to(second.position) > 0.0


def test_resolve_all_collisions_clears_a_crowd(make_world):
    world = make_world()
    for index in range(8):
        world.spawn_agent(Vector2(600.0 + (index % 4) * 3.0, 350.0 + (index // 4) * 3.0))
    steering.resolve_all_collisions(world, max_passes=200)
    _assert_no_overlaps(world)


def test_steps_leave_no_overlapping_pairs():
    world = World(SimulationConfig(seed=8, initial_population=30))
    for _ in range(10):
        world.step()
        _assert_no_overlaps(world)


def test_ring_slot_layouts():
    small = steering._ring_slot(0, 3, 20.0, 28.0, 20.0, 40.0)
    assert small.length() == approx(20.0)
    medium = steering._ring_slot(2, 5, 20.0, 28.0, 20.0, 40.0)
    assert medium.length() == approx(28.0)
    inner = [steering._ring_slot(i, 8, 20.0, 28.0, 20.0, 40.0) for i in range(4)]
    outer = [steering._ring_slot(i, 8, 20.0, 28.0, 20.0, 40.0) for i in range(4, 8)]
    assert all(slot.length() == approx(20.0) for slot in inner)
    assert all(slot.length() == approx(40.0) for slot in outer)
    assert inner[1].x == approx(0.0, abs=1e-9)
    assert inner[1].y == approx(20.0)


def test_small_squads_trail_behind_leader():
    offset = steering._ring_slot(0, 2, 25.0, 30.0, 25.0, 45.0, rotation=math.pi)
    assert offset.x == approx(-25.0)
    assert offset.y == approx(0.0, abs=1e-9)


def test_followers_mirror_team_combat_state(make_world):
    world = make_world()
    first = world.spawn_agent(Vector2(200.0, 200.0))
    team = world.team_of(first)
    team.max_size = 6
    follower = world.spawn_agent(Vector2(230.0, 200.0), team_id=team.id)
    enemy_lead = world.spawn_agent(Vector2(500.0, 200.0))
    enemy = world.team_of(enemy_lead)
    enemy.max_size = 6
    world.spawn_agent(Vector2(530.0, 200.0), team_id=enemy.id)
    teams.start_combat(world, team, enemy)
    follower.in_combat = False
    follower.combat_target_id = None

    steering.compute_steering(world, follower, [])

    assert follower.in_combat
    assert follower.combat_target_id == enemy.id
    assert follower.acceleration.length() > 0.0


def test_combat_movement_heads_for_rally_point(make_world):
    world = make_world()
    first = world.spawn_agent(Vector2(100.0, 100.0))
    team = world.team_of(first)
    team.max_size = 6
    world.spawn_agent(Vector2(130.0, 100.0), team_id=team.id)
    enemy_lead = world.spawn_agent(Vector2(700.0, 100.0))
    enemy = world.team_of(enemy_lead)
    enemy.max_size = 6
    world.spawn_agent(Vector2(730.0, 100.0), team_id=enemy.id)
    teams.start_combat(world, team, enemy)
    first.velocity = Vector2()

    force = steering.combat_movement(world, first, team)

    assert team.rally_point.x > first.position.x
    assert force.x > 0.0


def test_solo_agent_retargets_after_interval(make_world):
    world = make_world()
    agent = world.spawn_agent(Vector2(100.0, 100.0))
    agent.target = Vector2(1000.0, 600.0)
    agent.last_target_change = -100.0
    steering.compute_steering(world, agent, [])
    assert agent.last_target_change == world.time
    cfg = world.config.agent
    assert cfg.target_change_min_seconds <= agent.target_change_interval <= cfg.target_change_max_seconds


def test_dense_pileup_is_cleared_within_one_step(make_world):
    world = make_world()
    for index in range(60):
        world.spawn_agent(Vector2(600.0 + index % 8, 350.0 + index // 8))
    assert world.population == 60

    world.step()

    _assert_no_overlaps(world)


def test_collision_pass_cap_is_reported(make_world, caplog):
    world = make_world()
    for index in range(20):
        world.spawn_agent(Vector2(600.0 + index % 4, 350.0 + index // 4))

    with caplog.at_level(logging.WARNING, logger="blobsim"):
        used = steering.resolve_all_collisions(world, max_passes=1)

    assert used == 1
    assert "overlaps remaining" in caplog.text
