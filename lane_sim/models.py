from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .errors import CapacityExceeded, InvalidPosition, OrderViolation

Coord = Tuple[int, int]  # (row, col)

Item = Any
Slot = Tuple[int, Item]  # (position, item)

SPACING = 64
LANE_CAPACITY = 8
DEFAULT_LANE_LENGTH = 256

SPEED_TIERS: Dict[str, int] = {
    "regular": 8,
    "fast": 16,
    "express": 24,
    "turbo": 32,
}


def speed_for_tier(tier: str) -> int:
    key = str(tier).strip().lower()
    if key not in SPEED_TIERS:
        raise ValueError(f"Unknown speed tier '{tier}'. Known tiers: {', '.join(SPEED_TIERS)}")
    return SPEED_TIERS[key]


def check_slots(slots: Sequence[Slot], length: int, lane_id: str = "?") -> None:
    """Raise if ``slots`` cannot be the item list of a lane of ``length``.

    Checks capacity, position range and strict ascending order. Spacing is
    not checked here; overlaps are a legal (if undesirable) lane state.
    """
    if len(slots) > LANE_CAPACITY:
        raise CapacityExceeded(
            f"Lane {lane_id}: {len(slots)} items exceeds capacity {LANE_CAPACITY}"
        )
    prev: Optional[int] = None
    for pos, _ in slots:
        if not isinstance(pos, int) or isinstance(pos, bool):
            raise InvalidPosition(f"Lane {lane_id}: position {pos!r} is not an integer")
        if pos < 0 or pos >= length:
            raise InvalidPosition(f"Lane {lane_id}: position {pos} outside 0..{length - 1}")
        if prev is not None and pos <= prev:
            raise OrderViolation(
                f"Lane {lane_id}: positions not strictly ascending ({prev} then {pos})"
            )
        prev = pos


# =========================
# Domain entities
# =========================

class Lane:
    """One directional channel of items; position 0 is the exit.

    Length, speed and the outward connection are fixed at construction.
    The item list is only ever replaced wholesale through :meth:`commit`.
    """

    def __init__(
        self,
        lane_id: str,
        speed: int,
        length: int = DEFAULT_LANE_LENGTH,
        connection_out: Optional[str] = None,
        items: Iterable[Slot] = (),
    ) -> None:
        for name, value in (("speed", speed), ("length", length)):
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"Lane {lane_id}: {name} must be an integer, got {value!r}")
            if value <= 0:
                raise ValueError(f"Lane {lane_id}: {name} must be positive, got {value}")
        self._lane_id = str(lane_id)
        self._speed = speed
        self._length = length
        self._connection_out = None if connection_out is None else str(connection_out)
        self._items: Tuple[Slot, ...] = ()
        self.commit(items)

    @property
    def lane_id(self) -> str:
        return self._lane_id

    @property
    def speed(self) -> int:
        return self._speed

    @property
    def length(self) -> int:
        return self._length

    @property
    def connection_out(self) -> Optional[str]:
        return self._connection_out

    @property
    def entry(self) -> int:
        return self._length - 1

    def current_items(self) -> Tuple[Slot, ...]:
        return self._items

    def commit(self, next_items: Iterable[Slot]) -> None:
        slots = tuple((pos, item) for pos, item in next_items)
        check_slots(slots, self._length, self._lane_id)
        self._items = slots

    def view(self) -> "LaneView":
        return LaneView(
            lane_id=self._lane_id,
            length=self._length,
            speed=self._speed,
            connection_out=self._connection_out,
            items=self._items,
        )

    # ---------------------------
    # External inserter / consumer helpers
    # ---------------------------

    def place_item(self, item: Item, position: int) -> None:
        """Put ``item`` at ``position`` as-is, overlaps allowed."""
        slots = list(self._items)
        if any(pos == position for pos, _ in slots):
            raise OrderViolation(f"Lane {self._lane_id}: position {position} already occupied")
        slots.append((position, item))
        slots.sort(key=lambda s: s[0])
        self.commit(slots)

    def accept_item(self, item: Item, position: int) -> bool:
        """Insert ``item`` at or behind ``position`` honoring the spacing minimum.

        Returns False when the lane is full or no spacing-safe position exists
        between ``position`` and the entry.
        """
        if len(self._items) >= LANE_CAPACITY:
            return False
        pos = max(0, min(int(position), self.entry))
        for ahead, _ in self._items:
            if ahead <= pos < ahead + SPACING:
                pos = ahead + SPACING
        if pos > self.entry:
            return False
        for behind, _ in self._items:
            if behind > pos and behind - pos < SPACING:
                return False
        self.place_item(item, pos)
        return True

    def take_exit_item(self) -> Optional[Item]:
        if not self._items or self._items[0][0] != 0:
            return None
        _, item = self._items[0]
        self.commit(self._items[1:])
        return item

    def __repr__(self) -> str:
        return (
            f"Lane({self._lane_id!r}, speed={self._speed}, length={self._length}, "
            f"connection_out={self._connection_out!r}, items={list(self._items)!r})"
        )


@dataclass
class Belt:
    """Display grouping of two lanes; the simulation never reads it."""

    belt_id: str
    coord: Optional[Coord]
    direction: Optional[str]
    tier: str
    left_lane_id: str
    right_lane_id: str

    @property
    def lane_ids(self) -> Tuple[str, str]:
        return (self.left_lane_id, self.right_lane_id)


# =========================
# Actions (control commands)
# =========================

@dataclass(frozen=True)
class InsertItem:
    lane_id: str
    item: Item = None
    position: Optional[int] = None  # None -> lane entry


@dataclass(frozen=True)
class TakeItem:
    lane_id: str


Action = Union[InsertItem, TakeItem]


# =========================
# Snapshot views (scheduler / tick engine use)
# =========================

@dataclass(frozen=True)
class LaneView:
    lane_id: str
    length: int
    speed: int
    connection_out: Optional[str]
    items: Tuple[Slot, ...]

    @property
    def tail(self) -> Optional[int]:
        return self.items[-1][0] if self.items else None

    @property
    def held_at_exit(self) -> bool:
        return bool(self.items) and self.items[0][0] == 0


@dataclass(frozen=True)
class BeltView:
    belt_id: str
    coord: Optional[Coord]
    direction: Optional[str]
    tier: str
    left_lane_id: str
    right_lane_id: str


@dataclass(frozen=True)
class TransferRecord:
    src_lane: str
    dst_lane: str
    item: Item
    position: int


@dataclass(frozen=True)
class Snapshot:
    tick: int
    lanes: Dict[str, LaneView]
    belts: Dict[str, BeltView]
    ready_items: Dict[str, List[Item]]
    sink_lanes: List[str]
    consumed: List[Item]
    alarms: List[str]
