from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from .grid import Grid
from .models import DEFAULT_LANE_LENGTH, Belt, Coord, Lane, speed_for_tier

DIRS = {
    "U": (-1, 0),
    "D": (1, 0),
    "L": (0, -1),
    "R": (0, 1),
}
OPP = {"U": "D", "D": "U", "L": "R", "R": "L"}

SIDES = ("left", "right")


def neighbor(rc: Coord, d: str) -> Coord:
    dr, dc = DIRS[d]
    return (rc[0] + dr, rc[1] + dc)


def belt_id_for(rc: Coord) -> str:
    return f"B{rc[0]:02d}{rc[1]:02d}"


def lane_id_for(belt_id: str, side: str) -> str:
    return f"{belt_id}.{side}"


def _downstream_belt(grid: Grid, rc: Coord) -> Optional[Coord]:
    """The belt cell this belt feeds, or None if it feeds nothing."""
    d = grid.direction(rc)
    nb = neighbor(rc, d)
    if not grid.is_belt(nb):
        return None
    # Two belts facing each other do not connect.
    if grid.direction(nb) == OPP[d]:
        return None
    return nb


@dataclass
class Topology:
    grid: Grid
    belts: Dict[str, Belt]
    lanes: Dict[str, Lane]
    coord_to_belt: Dict[Coord, str]

    def downstream_of(self, belt_id: str) -> Optional[str]:
        belt = self.belts[belt_id]
        if belt.coord is None:
            return None
        nb = _downstream_belt(self.grid, belt.coord)
        return None if nb is None else self.coord_to_belt[nb]

    @staticmethod
    def from_grid(
        grid: Grid,
        default_tier: str = "regular",
        tier_overrides: Optional[Mapping[Coord, str]] = None,
        lane_length: int = DEFAULT_LANE_LENGTH,
    ) -> "Topology":
        tier_overrides = dict(tier_overrides or {})
        for rc in tier_overrides:
            if not grid.is_belt(rc):
                raise ValueError(f"Belt tier override at {rc} does not point at a belt cell.")

        belts: Dict[str, Belt] = {}
        coord_to_belt: Dict[Coord, str] = {}
        for rc in grid.iter_belt_coords():
            bid = belt_id_for(rc)
            belts[bid] = Belt(
                belt_id=bid,
                coord=rc,
                direction=grid.direction(rc),
                tier=str(tier_overrides.get(rc, default_tier)).lower(),
                left_lane_id=lane_id_for(bid, "left"),
                right_lane_id=lane_id_for(bid, "right"),
            )
            coord_to_belt[rc] = bid

        lanes: Dict[str, Lane] = {}
        for bid, belt in belts.items():
            speed = speed_for_tier(belt.tier)
            nb = _downstream_belt(grid, belt.coord)  # type: ignore[arg-type]
            for side in SIDES:
                out = None if nb is None else lane_id_for(coord_to_belt[nb], side)
                lid = lane_id_for(bid, side)
                lanes[lid] = Lane(lid, speed=speed, length=lane_length, connection_out=out)

        return Topology(grid=grid, belts=belts, lanes=lanes, coord_to_belt=coord_to_belt)


def chain_order(lanes: Mapping[str, Lane]) -> List[List[str]]:
    """Group lanes into upstream-to-downstream chains (for display/debug).

    Each chain starts at a lane nothing feeds into (or at an arbitrary member
    of a cycle) and follows ``connection_out`` until it ends or repeats.
    """
    fed = {ln.connection_out for ln in lanes.values() if ln.connection_out is not None}
    starts = [lid for lid in sorted(lanes) if lid not in fed]
    seen: Dict[str, bool] = {}
    chains: List[List[str]] = []

    def walk(start: str) -> List[str]:
        chain: List[str] = []
        cur: Optional[str] = start
        while cur is not None and cur in lanes and cur not in seen:
            seen[cur] = True
            chain.append(cur)
            cur = lanes[cur].connection_out
        return chain

    for lid in starts:
        chains.append(walk(lid))
    # Whatever is left sits on a cycle.
    for lid in sorted(lanes):
        if lid not in seen:
            chains.append(walk(lid))
    return chains


def fan_in(lanes: Mapping[str, Lane]) -> Dict[str, Tuple[str, ...]]:
    """Destination lane id -> source lane ids feeding it, sorted."""
    out: Dict[str, List[str]] = {}
    for lid in sorted(lanes):
        dst = lanes[lid].connection_out
        if dst is not None:
            out.setdefault(dst, []).append(lid)
    return {k: tuple(v) for k, v in out.items()}
