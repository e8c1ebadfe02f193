from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import yaml

from .models import DEFAULT_LANE_LENGTH, speed_for_tier

Coord = Tuple[int, int]


@dataclass
class BeltConfig:
    pos: Coord
    tier: str


@dataclass
class LaneConfig:
    lane_id: str
    speed: int
    length: int = DEFAULT_LANE_LENGTH
    connection_out: Optional[str] = None
    items: List[Tuple[int, Any]] = field(default_factory=list)


@dataclass
class ItemArrivalConfig:
    time: int
    lane_id: str
    item: Any


@dataclass
class SimConfig:
    lane_length: int = DEFAULT_LANE_LENGTH
    default_tier: str = "regular"
    seed: int = 0
    random_items: int = 0  # items scattered over the lanes at start


@dataclass
class GridConfig:
    rows: List[str]


@dataclass
class Config:
    grid: Optional[GridConfig]
    sim: SimConfig
    belts: List[BeltConfig]
    lanes: List[LaneConfig]
    item_arrivals: List[ItemArrivalConfig]
    sinks: List[str]

    @staticmethod
    def from_yaml(path: str) -> "Config":
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return Config.from_dict(data or {})

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Config":
        if not isinstance(data, dict):
            raise ValueError(f"Config root must be a mapping, got {type(data).__name__}")

        grid_data = data.get("grid")
        grid: Optional[GridConfig] = None
        if grid_data is not None:
            rows = grid_data.get("rows") if isinstance(grid_data, dict) else None
            if not isinstance(rows, list) or not rows:
                raise ValueError(f"Grid section needs a non-empty 'rows' list: {grid_data!r}")
            grid = GridConfig(rows=[str(r) for r in rows])

        sim_data = data.get("simulation", {}) or {}
        sim = SimConfig(
            lane_length=int(sim_data.get("lane_length", DEFAULT_LANE_LENGTH)),
            default_tier=str(sim_data.get("default_tier", "regular")),
            seed=int(sim_data.get("seed", 0)),
            random_items=int(sim_data.get("random_items", 0)),
        )
        speed_for_tier(sim.default_tier)  # validate early
        if sim.lane_length <= 0:
            raise ValueError(f"simulation.lane_length must be positive, got {sim.lane_length}")

        belts: List[BeltConfig] = []
        for b in data.get("belts", []) or []:
            if "pos" not in b:
                raise ValueError(f"Belt override is missing 'pos': {b!r}")
            tier = str(b.get("tier", sim.default_tier))
            speed_for_tier(tier)
            belts.append(BeltConfig(pos=tuple(b["pos"]), tier=tier))

        lanes: List[LaneConfig] = []
        for ln in data.get("lanes", []) or []:
            if "id" not in ln:
                raise ValueError(f"Lane entry is missing 'id': {ln!r}")
            lane_id = str(ln["id"])
            if "speed" in ln:
                speed = int(ln["speed"])
            else:
                speed = speed_for_tier(ln.get("tier", sim.default_tier))
            items: List[Tuple[int, Any]] = []
            for entry in ln.get("items", []) or []:
                if not isinstance(entry, (list, tuple)) or len(entry) != 2:
                    raise ValueError(f"Lane {lane_id}: item entries must be [position, item], got {entry!r}")
                items.append((int(entry[0]), entry[1]))
            items.sort(key=lambda s: s[0])
            out = ln.get("connection_out")
            lanes.append(
                LaneConfig(
                    lane_id=lane_id,
                    speed=speed,
                    length=int(ln.get("length", sim.lane_length)),
                    connection_out=None if out is None else str(out),
                    items=items,
                )
            )

        arrivals: List[ItemArrivalConfig] = []
        for a in data.get("item_arrivals", []) or []:
            missing = [k for k in ("time", "lane", "item") if not isinstance(a, dict) or k not in a]
            if missing:
                raise ValueError(f"Item arrival is missing {', '.join(map(repr, missing))}: {a!r}")
            arrivals.append(
                ItemArrivalConfig(
                    time=int(a["time"]),
                    lane_id=str(a["lane"]),
                    item=a["item"],
                )
            )
        arrivals.sort(key=lambda x: (x.time, x.lane_id))

        sinks = [str(s) for s in data.get("sinks", []) or []]

        return Config(
            grid=grid,
            sim=sim,
            belts=belts,
            lanes=lanes,
            item_arrivals=arrivals,
            sinks=sinks,
        )
