from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from pygame.math import Vector2


@dataclass(slots=True)
class Team:
    id: int
    name: str
    color: tuple[int, int, int]
    aggression: float
    max_size: int
    created_at: float
    member_ids: List[int] = field(default_factory=list)
    life: float = 100.0
    leader_id: Optional[int] = None
    in_combat: bool = False
    combat_target_id: Optional[int] = None
    combat_start_time: float = 0.0
    rally_point: Optional[Vector2] = None

    @property
    def size(self) -> int:
        return len(self.member_ids)

    @property
    def is_individual(self) -> bool:
        return len(self.member_ids) == 1

    @property
    def is_full(self) -> bool:
        return len(self.member_ids) >= self.max_size

    def cooperation_probability(self) -> float:
        return (100.0 - self.aggression) / 100.0
