"""Per-lane movement for one simulation tick.

Items are processed from the exit (position 0) backwards. Each follower is
bounded by the already-computed new position of the item ahead of it, so an
item can never overtake, never close a compliant gap below ``SPACING`` and
never shrink a gap that was already too small (it simply waits).

The lead item is bounded by the exit. On a lane with a connection it crosses
onto the destination lane when its move reaches or passes position 0, keeping
the excess movement; if the destination has no room it waits at 0 instead.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .models import LANE_CAPACITY, SPACING, Item, LaneView, Slot


@dataclass(frozen=True)
class Transfer:
    item: Item
    position: int  # in destination lane coordinates


@dataclass(frozen=True)
class TickResult:
    next_items: Tuple[Slot, ...]
    transfer: Optional[Transfer] = None
    blocked: bool = False  # lead wanted to cross but the destination refused


def transfer_position(overshoot: int, destination: LaneView) -> Optional[int]:
    """Landing position on ``destination`` for an item that passed the exit by
    ``overshoot`` positions, or None if the destination cannot take it."""
    if len(destination.items) >= LANE_CAPACITY:
        return None
    entry = destination.length - 1
    # One hop per tick: leftover movement never carries past the destination's exit.
    pos = max(entry - overshoot, 0)
    tail = destination.tail
    if tail is not None:
        pos = max(pos, tail + SPACING)
    if pos > entry:
        return None
    return pos


def compute_next_state(lane: LaneView, destination: Optional[LaneView] = None) -> TickResult:
    """Compute ``lane``'s next item list from the current generation.

    ``destination`` is the read-only view of the lane ``lane.connection_out``
    resolves to (including transfers the step driver has already accepted into
    it this step). Neither argument is modified.
    """
    items = lane.items
    if not items:
        return TickResult(next_items=())

    next_items: List[Slot] = []
    transfer: Optional[Transfer] = None
    blocked = False

    # Lead item: bounded only by the exit.
    pos0, item0 = items[0]
    tentative = pos0 - lane.speed
    if tentative > 0:
        ahead = tentative
        next_items.append((tentative, item0))
    elif lane.connection_out is not None and destination is not None:
        landing = transfer_position(-tentative, destination)
        if landing is None:
            blocked = True
            ahead = 0
            next_items.append((0, item0))
        else:
            transfer = Transfer(item=item0, position=landing)
            # Followers see the transferred item where it sits past our exit.
            ahead = landing - (destination.length - 1)
    else:
        ahead = 0
        next_items.append((0, item0))

    for pos, item in items[1:]:
        new_pos = max(pos - lane.speed, ahead + SPACING, 0)
        if new_pos > pos:
            # Already too close to the item ahead: hold position.
            new_pos = pos
        next_items.append((new_pos, item))
        ahead = new_pos

    return TickResult(next_items=tuple(next_items), transfer=transfer, blocked=blocked)


def spacing_violations(items: Sequence[Slot]) -> List[Tuple[int, int]]:
    """Adjacent position pairs closer than ``SPACING``."""
    out: List[Tuple[int, int]] = []
    for (a, _), (b, _) in zip(items, items[1:]):
        if b - a < SPACING:
            out.append((a, b))
    return out
