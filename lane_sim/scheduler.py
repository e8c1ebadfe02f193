from __future__ import annotations

from dataclasses import dataclass
from typing import List

from .models import LANE_CAPACITY, SPACING, Action, InsertItem, LaneView, Snapshot, TakeItem


def entry_has_room(lane: LaneView) -> bool:
    if len(lane.items) >= LANE_CAPACITY:
        return False
    tail = lane.tail
    return tail is None or tail + SPACING <= lane.length - 1


@dataclass
class SimpleScheduler:
    """A simple greedy feeder.

    Strategy:
    - Drop the next ready item onto its lane's entry whenever the entry is
      clear of the lane's last item by at least the spacing minimum.
    - Take any item held at the exit of a sink lane.
    """

    consume_sinks: bool = True

    def decide(self, snap: Snapshot) -> List[Action]:
        actions: List[Action] = []

        if self.consume_sinks:
            for lid in snap.sink_lanes:
                if snap.lanes[lid].held_at_exit:
                    actions.append(TakeItem(lane_id=lid))

        for lid in sorted(snap.ready_items):
            if not snap.ready_items[lid]:
                continue
            if entry_has_room(snap.lanes[lid]):
                actions.append(InsertItem(lane_id=lid))

        return actions
