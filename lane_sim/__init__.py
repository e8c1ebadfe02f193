"""Conveyor lane tick-based simulator.

Public entrypoints:
- LaneSystem (from lane_sim.sim)
- compute_next_state (from lane_sim.tick)
- SimpleScheduler (from lane_sim.scheduler)
"""
from .sim import LaneSystem, FrameData
from .tick import compute_next_state, TickResult, Transfer
from .scheduler import SimpleScheduler
from .models import Lane, Belt, InsertItem, TakeItem, SPACING, LANE_CAPACITY, SPEED_TIERS
from .errors import LaneStateError, CapacityExceeded, OrderViolation, InvalidPosition
