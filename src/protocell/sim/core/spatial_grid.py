from __future__ import annotations

import math
from typing import TYPE_CHECKING, Dict, Iterable, List, Tuple

from pygame.math import Vector2

if TYPE_CHECKING:
    from .entity import Entity


class SpatialGrid:
    def __init__(self, cell_size: float = 1.0) -> None:
        self._cell_size = cell_size
        self._cells: Dict[Tuple[int, int], List["Entity"]] = {}
        self._active_keys: List[Tuple[int, int]] = []

    def clear(self) -> None:
        for key in self._active_keys:
            bucket = self._cells.get(key)
            if bucket:
                bucket.clear()
        self._active_keys.clear()

    def rebuild(self, entities: Iterable["Entity"]) -> None:
        self.clear()
        for entity in entities:
            if entity.is_active:
                self.insert(entity)

    def insert(self, entity: "Entity") -> None:
        key = self.cell_key(entity.position)
        bucket = self._cells.get(key)
        if bucket is None:
            bucket = []
            self._cells[key] = bucket
            self._active_keys.append(key)
        elif not bucket:
            # Bucket exists but was cleared at the start of this tick; mark it active again.
            self._active_keys.append(key)
        bucket.append(entity)

    def get_neighbors(self, position: Vector2, radius: float, exclude_id: int | None = None) -> List["Entity"]:
        """Active entities within `radius` of `position`, judged by the positions they were indexed at."""
        found: List["Entity"] = []
        base_key = self.cell_key(position)
        cell_range = int(math.ceil(radius / self._cell_size))
        radius_sq = radius * radius
        pos_x = position.x
        pos_y = position.y

        for dx in range(-cell_range, cell_range + 1):
            for dy in range(-cell_range, cell_range + 1):
                bucket = self._cells.get((base_key[0] + dx, base_key[1] + dy))
                if not bucket:
                    continue
                for entity in bucket:
                    if not entity.is_active or entity.id == exclude_id:
                        continue
                    offset_x = entity.position.x - pos_x
                    offset_y = entity.position.y - pos_y
                    if offset_x * offset_x + offset_y * offset_y <= radius_sq:
                        found.append(entity)
        return found

    def cell_key(self, position: Vector2) -> Tuple[int, int]:
        return (int(math.floor(position.x / self._cell_size)), int(math.floor(position.y / self._cell_size)))
