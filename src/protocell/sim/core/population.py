from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional, Set

from ..types.snapshot import EntityView
from .entity import Entity

logger = logging.getLogger(__name__)


class Population:
    """
    Active entities keyed by id, iterated in id order.

    Children created while a tick is running wait in a pending list until `flush_births`, so a
    tick never visits an entity that did not exist when it started. Merge links are only
    changed through `link` and `unlink`, which keep both sides of the relationship in step.
    """

    def __init__(self, capacity: int, base_transfer_rate: float = 0.05) -> None:
        self._capacity = capacity
        self._base_transfer_rate = base_transfer_rate
        self._entities: Dict[int, Entity] = {}
        self._pending: List[Entity] = []
        self._next_id = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def pending(self) -> List[Entity]:
        return self._pending

    def __len__(self) -> int:
        return len(self._entities)

    def __iter__(self) -> Iterator[Entity]:
        return iter(self._entities.values())

    def __contains__(self, entity_id: int) -> bool:
        return entity_id in self._entities

    def get(self, entity_id: int) -> Optional[Entity]:
        entity = self._entities.get(entity_id)
        if entity is None or not entity.is_active:
            return None
        return entity

    def active(self) -> List[Entity]:
        return [entity for entity in self._entities.values() if entity.is_active]

    def next_id(self) -> int:
        entity_id = self._next_id
        self._next_id += 1
        return entity_id

    def has_room(self) -> bool:
        return len(self._entities) + len(self._pending) < self._capacity

    def add(self, entity: Entity) -> bool:
        if not self.has_room():
            return False
        self._entities[entity.id] = entity
        return True

    def queue_birth(self, entity: Entity) -> bool:
        if not self.has_room():
            return False
        self._pending.append(entity)
        return True

    def flush_births(self) -> int:
        added = len(self._pending)
        for entity in self._pending:
            self._entities[entity.id] = entity
        self._pending.clear()
        return added

    def remove_inactive(self) -> List[Entity]:
        dead = [entity for entity in self._entities.values() if not entity.is_active]
        for entity in dead:
            self.unlink_all(entity)
            del self._entities[entity.id]
        return dead

    def clear(self) -> None:
        self._entities.clear()
        self._pending.clear()
        self._next_id = 0

    def link(self, a: Entity, b: Entity) -> bool:
        if a.id == b.id or b.id in a.merge.merged_with:
            return False
        a.merge.merged_with.add(b.id)
        b.merge.merged_with.add(a.id)
        a.merge.is_merged = True
        b.merge.is_merged = True
        return True

    def unlink(self, a: Entity, b: Entity) -> None:
        a.merge.merged_with.discard(b.id)
        b.merge.merged_with.discard(a.id)
        self._settle(a)
        self._settle(b)

    def unlink_all(self, entity: Entity) -> None:
        for partner_id in list(entity.merge.merged_with):
            partner = self._entities.get(partner_id)
            if partner is not None:
                partner.merge.merged_with.discard(entity.id)
                self._settle(partner)
        entity.merge.merged_with.clear()
        self._settle(entity)

    def _settle(self, entity: Entity) -> None:
        if entity.merge.merged_with:
            return
        entity.merge.is_merged = False
        entity.merge.merge_strength = 0.0
        entity.merge.merge_timer = 0
        entity.merge.energy_transfer_rate = self._base_transfer_rate

    def partners(self, entity: Entity) -> List[Entity]:
        found = []
        for partner_id in sorted(entity.merge.merged_with):
            partner = self.get(partner_id)
            if partner is not None:
                found.append(partner)
        return found

    def group_ids(self, entity: Entity) -> Set[int]:
        return {entity.id, *entity.merge.merged_with}

    def is_symmetric(self) -> bool:
        for entity in self._entities.values():
            for partner_id in entity.merge.merged_with:
                partner = self._entities.get(partner_id)
                if partner is None or entity.id not in partner.merge.merged_with:
                    return False
        return True

    def snapshot(self) -> List[EntityView]:
        views = []
        for entity in self._entities.values():
            if not entity.is_active:
                continue
            views.append(
                EntityView(
                    id=entity.id,
                    x=entity.position.x,
                    y=entity.position.y,
                    vx=entity.velocity.x,
                    vy=entity.velocity.y,
                    energy=entity.energy,
                    age=entity.age,
                    tissue_integrity=entity.tissue_integrity,
                    oscillation=entity.internal.oscillation,
                    stability=entity.internal.stability,
                    elasticity=entity.membrane.elasticity,
                    permeability=entity.membrane.permeability,
                    thickness=entity.membrane.thickness,
                    is_merged=entity.merge.is_merged,
                    merged_with=tuple(sorted(entity.merge.merged_with)),
                    pattern_count=len(entity.memory.patterns),
                    queued_energy=entity.queued_energy,
                )
            )
        return views
