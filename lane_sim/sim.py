from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol, Tuple
import logging
import random

from .config import Config
from .grid import Grid
from .topology import Topology, fan_in
from .tick import TickResult, compute_next_state
from .models import (
    Action,
    Belt,
    BeltView,
    InsertItem,
    Item,
    Lane,
    LaneView,
    Slot,
    Snapshot,
    TakeItem,
    TransferRecord,
    check_slots,
)

log = logging.getLogger(__name__)


class Scheduler(Protocol):
    def decide(self, snap: Snapshot) -> List[Action]: ...


@dataclass
class FrameData:
    tick: int
    start_items: Dict[str, Tuple[Slot, ...]]
    end_items: Dict[str, Tuple[Slot, ...]]
    transfers: List[TransferRecord]
    blocked_lanes: List[str]  # lanes whose lead item was held by back-pressure
    alarms: List[str]


class LaneSystem:
    """Tick-based step driver for a graph of lanes.

    Each step is double-buffered:
    - Every lane computes its next item list from the *current* generation
      only (its own items plus a read-only view of its destination).
    - Transfers into a destination are collected in an incoming list owned by
      the driver for the step. Lanes are evaluated in sorted id order, and a
      lane sees the transfers already accepted into its destination, so
      several lanes feeding one destination are resolved deterministically.
    - Only after every next state exists are they all committed at once.
    """

    def __init__(
        self,
        lanes: Dict[str, Lane],
        belts: Optional[Dict[str, Belt]] = None,
        item_arrivals: Optional[List[Tuple[int, str, Item]]] = None,  # (time, lane_id, item)
        sink_lanes: Optional[Iterable[str]] = None,
    ) -> None:
        self.lanes = lanes
        self.belts = belts or {}
        self.item_arrivals = sorted(item_arrivals or [], key=lambda a: (a[0], a[1]))
        self._arrival_idx = 0
        self.ready_items: Dict[str, List[Item]] = {}
        self.sink_lanes: List[str] = sorted(set(sink_lanes or []))

        self.consumed: List[Item] = []
        self.tick: int = 0
        self.alarms: List[str] = []

        self._order: List[str] = sorted(lanes)

        self._validate_connections()
        log.info(
            "Lane system ready: %d lanes, %d belts, %d scheduled arrivals",
            len(self.lanes),
            len(self.belts),
            len(self.item_arrivals),
        )
        for dst, srcs in fan_in(self.lanes).items():
            if len(srcs) > 1:
                log.info("Lane %s is fed by %d lanes: %s", dst, len(srcs), ", ".join(srcs))

    # ---------------------------
    # Construction
    # ---------------------------

    @staticmethod
    def from_yaml(path: str) -> "LaneSystem":
        return LaneSystem.from_config(Config.from_yaml(path))

    @staticmethod
    def from_config(cfg: Config) -> "LaneSystem":
        lanes: Dict[str, Lane] = {}
        belts: Dict[str, Belt] = {}

        if cfg.grid is not None:
            grid = Grid.from_rows(cfg.grid.rows)
            topo = Topology.from_grid(
                grid,
                default_tier=cfg.sim.default_tier,
                tier_overrides={b.pos: b.tier for b in cfg.belts},
                lane_length=cfg.sim.lane_length,
            )
            lanes.update(topo.lanes)
            belts.update(topo.belts)
        elif cfg.belts:
            raise ValueError("Belt tier overrides given but the config has no grid.")

        for lc in cfg.lanes:
            if lc.lane_id in lanes:
                raise ValueError(f"Duplicate lane id '{lc.lane_id}'")
            lanes[lc.lane_id] = Lane(
                lc.lane_id,
                speed=lc.speed,
                length=lc.length,
                connection_out=lc.connection_out,
                items=lc.items,
            )

        for sid in cfg.sinks:
            if sid not in lanes:
                raise ValueError(f"Sink lane '{sid}' is not defined.")

        arrivals: List[Tuple[int, str, Item]] = []
        for a in cfg.item_arrivals:
            if a.lane_id not in lanes:
                raise ValueError(f"Item arrival for unknown lane '{a.lane_id}'")
            arrivals.append((a.time, a.lane_id, a.item))

        if cfg.sim.random_items > 0:
            _scatter_items(lanes, cfg.sim.random_items, cfg.sim.seed)

        return LaneSystem(lanes=lanes, belts=belts, item_arrivals=arrivals, sink_lanes=cfg.sinks)

    # ---------------------------
    # Public API
    # ---------------------------

    def snapshot(self) -> Snapshot:
        return Snapshot(
            tick=self.tick,
            lanes={lid: self.lanes[lid].view() for lid in self._order},
            belts={
                bid: BeltView(
                    belt_id=b.belt_id,
                    coord=b.coord,
                    direction=b.direction,
                    tier=b.tier,
                    left_lane_id=b.left_lane_id,
                    right_lane_id=b.right_lane_id,
                )
                for bid, b in self.belts.items()
            },
            ready_items={lid: list(q) for lid, q in self.ready_items.items() if q},
            sink_lanes=list(self.sink_lanes),
            consumed=list(self.consumed),
            alarms=list(self.alarms),
        )

    def step(self, actions: Optional[List[Action]] = None) -> FrameData:
        self.alarms = []

        # 0) move arrivals to ready queues
        while (
            self._arrival_idx < len(self.item_arrivals)
            and self.item_arrivals[self._arrival_idx][0] <= self.tick
        ):
            _, lid, item = self.item_arrivals[self._arrival_idx]
            self.ready_items.setdefault(lid, []).append(item)
            self._arrival_idx += 1

        # 1) apply actions (inserters / consumers act between generations)
        self._apply_actions(actions or [])

        start_items = {lid: self.lanes[lid].current_items() for lid in self._order}

        # 2) compute every next state against the current generation
        next_items, incoming, transfers, blocked = self._compute_generation()

        # 3) merge incoming transfers behind each destination's own next state
        for dst, arrived in incoming.items():
            next_items[dst] = next_items[dst] + tuple(arrived)

        # 4) global swap; validate everything before touching any lane
        for lid in self._order:
            check_slots(next_items[lid], self.lanes[lid].length, lid)
        for lid in self._order:
            self.lanes[lid].commit(next_items[lid])

        end_items = {lid: self.lanes[lid].current_items() for lid in self._order}

        frame = FrameData(
            tick=self.tick,
            start_items=start_items,
            end_items=end_items,
            transfers=transfers,
            blocked_lanes=blocked,
            alarms=list(self.alarms),
        )

        self.tick += 1
        return frame

    def run(self, ticks: int, scheduler: Optional[Scheduler] = None) -> List[FrameData]:
        frames: List[FrameData] = []
        for _ in range(ticks):
            acts = scheduler.decide(self.snapshot()) if scheduler is not None else []
            frames.append(self.step(acts))
        return frames

    def item_count(self) -> int:
        return sum(len(ln.current_items()) for ln in self.lanes.values())

    # ---------------------------
    # Internals
    # ---------------------------

    def _validate_connections(self) -> None:
        for lid, ln in self.lanes.items():
            out = ln.connection_out
            if out is None:
                continue
            if out == lid:
                raise ValueError(f"Lane {lid} connects to itself.")
            if out not in self.lanes:
                raise ValueError(f"Lane {lid} connects to unknown lane '{out}'.")
        for sid in self.sink_lanes:
            if sid not in self.lanes:
                raise ValueError(f"Sink lane '{sid}' is not defined.")
        for _, lid, _ in self.item_arrivals:
            if lid not in self.lanes:
                raise ValueError(f"Item arrival for unknown lane '{lid}'")

    def _compute_generation(
        self,
    ) -> Tuple[Dict[str, Tuple[Slot, ...]], Dict[str, List[Slot]], List[TransferRecord], List[str]]:
        views: Dict[str, LaneView] = {lid: self.lanes[lid].view() for lid in self._order}
        next_items: Dict[str, Tuple[Slot, ...]] = {}
        incoming: Dict[str, List[Slot]] = {}
        transfers: List[TransferRecord] = []
        blocked: List[str] = []

        for lid in self._order:
            view = views[lid]
            dst_view: Optional[LaneView] = None
            if view.connection_out is not None:
                dst_view = self._destination_view(views[view.connection_out], incoming)
            result: TickResult = compute_next_state(view, dst_view)
            next_items[lid] = result.next_items

            if result.transfer is not None:
                dst = view.connection_out
                assert dst is not None
                incoming.setdefault(dst, []).append((result.transfer.position, result.transfer.item))
                transfers.append(
                    TransferRecord(
                        src_lane=lid,
                        dst_lane=dst,
                        item=result.transfer.item,
                        position=result.transfer.position,
                    )
                )
                log.debug(
                    "[tick %d] %r moved %s -> %s at %d",
                    self.tick, result.transfer.item, lid, dst, result.transfer.position,
                )
            elif result.blocked:
                blocked.append(lid)
                log.debug("[tick %d] %s held at exit: %s has no room", self.tick, lid, view.connection_out)

        return next_items, incoming, transfers, blocked

    @staticmethod
    def _destination_view(current: LaneView, incoming: Dict[str, List[Slot]]) -> LaneView:
        arrived = incoming.get(current.lane_id)
        if not arrived:
            return current
        return LaneView(
            lane_id=current.lane_id,
            length=current.length,
            speed=current.speed,
            connection_out=current.connection_out,
            items=current.items + tuple(arrived),
        )

    def _apply_actions(self, actions: List[Action]) -> None:
        # Takes first so an exit slot freed this tick is visible to inserts.
        for act in actions:
            if isinstance(act, TakeItem):
                self._take(act)
        for act in actions:
            if isinstance(act, InsertItem):
                self._insert(act)

    def _take(self, act: TakeItem) -> None:
        ln = self.lanes.get(act.lane_id)
        if ln is None:
            self._alarm(f"[tick {self.tick}] Unknown lane_id '{act.lane_id}'")
            return
        item = ln.take_exit_item()
        if item is None:
            self._alarm(f"[tick {self.tick}] Take on lane {act.lane_id} but no item held at exit.")
            return
        self.consumed.append(item)

    def _insert(self, act: InsertItem) -> None:
        ln = self.lanes.get(act.lane_id)
        if ln is None:
            self._alarm(f"[tick {self.tick}] Unknown lane_id '{act.lane_id}'")
            return

        queue = self.ready_items.get(act.lane_id, [])
        from_queue = act.item is None
        if from_queue and not queue:
            self._alarm(f"[tick {self.tick}] Insert on lane {act.lane_id} but no item is ready.")
            return
        item = queue[0] if from_queue else act.item
        position = ln.entry if act.position is None else act.position

        if not ln.accept_item(item, position):
            self._alarm(f"[tick {self.tick}] Lane {act.lane_id} has no room for {item!r} at {position}.")
            return
        if from_queue:
            queue.pop(0)

    def _alarm(self, msg: str) -> None:
        log.warning(msg)
        self.alarms.append(msg)


def _scatter_items(lanes: Dict[str, Lane], count: int, seed: int) -> None:
    rng = random.Random(seed)
    order = sorted(lanes)
    placed = 0
    attempts = 0
    while placed < count:
        attempts += 1
        if attempts > count * 50:
            raise ValueError(f"random_items={count} does not fit on {len(lanes)} lanes")
        ln = lanes[rng.choice(order)]
        if ln.accept_item(f"I{placed:02d}", rng.randrange(ln.length)):
            placed += 1
