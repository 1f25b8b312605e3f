from __future__ import annotations

import pytest

from protocell.sim.utils.ring import RingBuffer


def test_ring_overwrites_oldest_and_iterates_in_order():
    ring: RingBuffer[int] = RingBuffer(3)
    for value in range(5):
        ring.append(value)

    assert len(ring) == 3
    assert ring.capacity == 3
    assert ring.to_list() == [2, 3, 4]
    assert ring.latest() == 4


def test_ring_partial_fill_and_clear():
    ring: RingBuffer[str] = RingBuffer(4)
    assert ring.latest() is None
    ring.append("a")
    ring.append("b")
    assert list(ring) == ["a", "b"]

    ring.clear()
    assert len(ring) == 0
    assert ring.to_list() == []
    ring.append("c")
    assert ring.to_list() == ["c"]


@pytest.mark.parametrize("capacity", [0, -2])
def test_ring_rejects_non_positive_capacity(capacity):
    with pytest.raises(ValueError):
        RingBuffer(capacity)
