from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from pygame.math import Vector2


@dataclass(slots=True)
class Agent:
    id: int
    team_id: int
    position: Vector2
    leadership: int
    strength: int
    max_speed: float
    max_force: float
    size: float
    interaction_radius: float
    target: Vector2
    color: tuple[int, int, int] = (200, 200, 200)
    velocity: Vector2 = field(default_factory=Vector2)
    acceleration: Vector2 = field(default_factory=Vector2)
    wander_angle: float = 0.0
    last_target_change: float = 0.0
    target_change_interval: float = 5.0
    last_interaction: float = float("-inf")
    interaction_cooldown: float = 2.0
    is_team_leader: bool = False
    in_combat: bool = False
    combat_target_id: Optional[int] = None

    def apply_force(self, force: Vector2) -> None:
        self.acceleration += force

    def can_interact(self, now: float) -> bool:
        return now - self.last_interaction >= self.interaction_cooldown
