from __future__ import annotations

import argparse
import logging
from typing import Dict, Tuple

from lane_sim.sim import LaneSystem
from lane_sim.scheduler import SimpleScheduler
from lane_sim.topology import chain_order
from lane_sim.models import Slot


def _format_lanes(items: Dict[str, Tuple[Slot, ...]], system: LaneSystem) -> str:
    lines = []
    for chain in chain_order(system.lanes):
        for lid in chain:
            slots = " ".join(f"{pos}:{item}" for pos, item in items[lid])
            lines.append(f"  {lid:<14} [{slots}]")
    return "\n".join(lines)


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--config", type=str, default="example_config.yaml")
    ap.add_argument("--max-ticks", type=int, default=200)
    ap.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    ap.add_argument(
        "--show-lanes",
        action="store_true",
        help="Print every lane's items after each tick.",
    )
    args = ap.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    system = LaneSystem.from_yaml(args.config)
    sched = SimpleScheduler()

    transfers = 0
    blocked = 0
    for _ in range(args.max_ticks):
        snap = system.snapshot()
        acts = sched.decide(snap)
        frame = system.step(acts)
        transfers += len(frame.transfers)
        blocked += len(frame.blocked_lanes)
        if frame.alarms:
            print("\n".join(frame.alarms))
        if args.show_lanes:
            print(f"tick={frame.tick}")
            print(_format_lanes(frame.end_items, system))

    print("\n=== DONE ===")
    print(f"tick={system.tick}")
    print(f"transfers={transfers} back_pressure_holds={blocked}")
    print(f"items_on_lanes={system.item_count()}")
    print(f"consumed={len(system.consumed)} items: {system.consumed[:20]}")


if __name__ == "__main__":
    main()
