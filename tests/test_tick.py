from __future__ import annotations

import random
from typing import List, Optional, Sequence, Tuple

import pytest

from lane_sim.models import LANE_CAPACITY, SPACING, LaneView
from lane_sim.tick import compute_next_state, spacing_violations, transfer_position


def view(
    items: Sequence[Tuple[int, object]],
    speed: int = 8,
    length: int = 256,
    connection_out: Optional[str] = None,
    lane_id: str = "A",
) -> LaneView:
    return LaneView(
        lane_id=lane_id,
        length=length,
        speed=speed,
        connection_out=connection_out,
        items=tuple(items),
    )


def positions(slots) -> List[int]:
    return [p for p, _ in slots]


# ---------------------------
# Single lane movement
# ---------------------------

def test_empty_lane_stays_empty():
    res = compute_next_state(view([]))
    assert res.next_items == ()
    assert res.transfer is None
    assert not res.blocked


@pytest.mark.parametrize("speed,expected", [(8, 92), (16, 84), (24, 76), (32, 68)])
def test_single_item_advances_by_speed(speed, expected):
    res = compute_next_state(view([(100, "a")], speed=speed))
    assert res.next_items == ((expected, "a"),)


def test_lead_clamps_at_exit_without_connection():
    res = compute_next_state(view([(10, "a")], speed=16))
    assert res.next_items == ((0, "a"),)
    assert res.transfer is None
    assert not res.blocked

    # and stays there
    res = compute_next_state(view(res.next_items, speed=16))
    assert res.next_items == ((0, "a"),)


def test_item_payload_is_carried_unchanged():
    payload = {"kind": "ore", "id": 42}
    res = compute_next_state(view([(100, payload)]))
    assert res.next_items[0][1] is payload


def test_compliant_pair_keeps_spacing():
    res = compute_next_state(view([(100, "a"), (170, "b")]))
    assert res.next_items == ((92, "a"), (162, "b"))


def test_follower_clamped_to_spacing_behind_lead():
    # lead stuck at the exit, follower may only close up to SPACING
    res = compute_next_state(view([(0, "a"), (70, "b")]))
    assert res.next_items == ((0, "a"), (64, "b"))


def test_exact_spacing_moves_together():
    res = compute_next_state(view([(100, "a"), (164, "b")]))
    assert res.next_items == ((92, "a"), (156, "b"))


def test_overlap_released_when_lead_opens_gap():
    # gap 63: lead moves 8, follower only needs to stay at 156
    res = compute_next_state(view([(100, "a"), (163, "b")]))
    assert res.next_items == ((92, "a"), (156, "b"))


def test_compacting_behind_held_item():
    items = ((0, "a"), (100, "b"))
    seen = []
    for _ in range(10):
        items = compute_next_state(view(items)).next_items
        seen.append(items[1][0])
    assert seen[:5] == [92, 84, 76, 68, 64]
    assert items == ((0, "a"), (64, "b"))


def test_three_items_compact_to_minimum_spacing():
    items = ((50, "a"), (120, "b"), (190, "c"))
    for _ in range(40):
        items = compute_next_state(view(items)).next_items
    assert positions(items) == [0, 64, 128]


# ---------------------------
# Overlap freeze
# ---------------------------

def test_overlap_freeze_then_release():
    res = compute_next_state(view([(5, "a"), (50, "b")]))
    # lead held at the exit, follower frozen
    assert res.next_items == ((0, "a"), (50, "b"))

    # lead removed by a consumer: follower becomes the lead and moves normally
    res = compute_next_state(view(res.next_items[1:]))
    assert res.next_items == ((42, "b"),)


def test_overlap_freeze_while_lead_transfers():
    dst = view([], lane_id="B")
    res = compute_next_state(view([(5, "a"), (50, "b")], connection_out="B"), dst)
    assert res.transfer is not None
    assert res.transfer.position == 252
    assert res.next_items == ((50, "b"),)

    res = compute_next_state(view(res.next_items, connection_out="B"), dst)
    assert res.next_items == ((42, "b"),)


def test_pre_existing_overlap_is_preserved_not_worsened():
    items = ((0, "a"), (30, "b"), (60, "c"))
    res = compute_next_state(view(items))
    assert res.next_items == items


# ---------------------------
# Boundary transfer
# ---------------------------

def test_transfer_carries_over_excess_movement():
    dst = view([], lane_id="B")
    res = compute_next_state(view([(5, "x")], speed=16, connection_out="B"), dst)
    assert res.next_items == ()
    assert res.transfer is not None
    assert res.transfer.item == "x"
    assert res.transfer.position == 255 - (16 - 5)


def test_transfer_when_reaching_exactly_zero():
    dst = view([], lane_id="B")
    res = compute_next_state(view([(8, "x")], connection_out="B"), dst)
    assert res.transfer is not None
    assert res.transfer.position == 255


def test_back_pressure_holds_item_at_exit():
    dst = view([(250, "y")], lane_id="B")
    res = compute_next_state(view([(3, "x")], connection_out="B"), dst)
    assert res.transfer is None
    assert res.blocked
    assert res.next_items == ((0, "x"),)


def test_transfer_clamped_behind_destination_tail():
    dst = view([(190, "y")], lane_id="B")
    res = compute_next_state(view([(4, "x"), (70, "z")], connection_out="B"), dst)
    assert res.transfer is not None
    assert res.transfer.position == 254
    # follower honors spacing across the boundary: 254 sits 1 past our exit
    assert res.next_items == ((63, "z"),)


def test_full_destination_refuses_transfer():
    dst = view([(p, f"d{p}") for p in range(0, LANE_CAPACITY * 10, 10)], lane_id="B")
    res = compute_next_state(view([(2, "x")], connection_out="B"), dst)
    assert res.blocked
    assert res.next_items == ((0, "x"),)


def test_missing_destination_view_holds_at_exit():
    res = compute_next_state(view([(2, "x")], connection_out="B"), None)
    assert res.next_items == ((0, "x"),)
    assert res.transfer is None


def test_no_multi_hop_into_short_lane():
    dst = view([], length=100, lane_id="B")
    res = compute_next_state(view([(10, "x")], speed=300, connection_out="B"), dst)
    assert res.transfer is not None
    assert res.transfer.position == 0


def test_only_lead_transfers_followers_stop_at_exit():
    dst = view([], lane_id="B")
    res = compute_next_state(view([(0, "x"), (64, "y")], speed=200, connection_out="B"), dst)
    assert res.transfer is not None
    assert res.transfer.position == 55
    assert res.next_items == ((0, "y"),)


def test_transfer_position_helper():
    assert transfer_position(0, view([], lane_id="B")) == 255
    assert transfer_position(10, view([(100, "y")], lane_id="B")) == 245
    assert transfer_position(10, view([(200, "y")], lane_id="B")) is None


def test_spacing_violations():
    assert spacing_violations(((0, "a"), (64, "b"), (100, "c"))) == [(64, 100)]
    assert spacing_violations(()) == []


# ---------------------------
# Invariants over random lanes
# ---------------------------

def _random_lane(rng: random.Random) -> Tuple[LaneView, Optional[LaneView]]:
    length = rng.choice([64, 128, 256, 300])
    count = rng.randint(0, min(LANE_CAPACITY, length))
    items = [(p, f"i{p}") for p in sorted(rng.sample(range(length), count))]
    speed = rng.choice([1, 8, 16, 24, 32, 50, 400])
    dst = None
    if rng.random() < 0.6:
        dst_length = rng.choice([32, 256])
        dst_count = rng.randint(0, min(LANE_CAPACITY, dst_length))
        dst_items = [(p, f"d{p}") for p in sorted(rng.sample(range(dst_length), dst_count))]
        dst = view(dst_items, length=dst_length, lane_id="B")
    lane = view(items, speed=speed, length=length, connection_out="B" if dst else None)
    return lane, dst


@pytest.mark.parametrize("seed", range(200))
def test_tick_invariants_hold(seed):
    rng = random.Random(seed)
    lane, dst = _random_lane(rng)
    res = compute_next_state(lane, dst)

    before = list(lane.items)
    after = list(res.next_items)
    if res.transfer is not None:
        assert res.transfer.item == before[0][1]
        assert 0 <= res.transfer.position < dst.length
        if dst.items:
            assert res.transfer.position >= dst.items[-1][0] + SPACING
        before = before[1:]

    assert [item for _, item in after] == [item for _, item in before]

    new = [p for p, _ in after]
    old = [p for p, _ in before]
    assert all(0 <= p < lane.length for p in new)
    assert all(a < b for a, b in zip(new, new[1:]))

    for o, n in zip(old, new):
        assert n <= o
        assert o - n <= lane.speed

    for i in range(1, len(old)):
        old_gap = old[i] - old[i - 1]
        new_gap = new[i] - new[i - 1]
        if old_gap >= SPACING:
            assert new_gap >= SPACING
        else:
            assert new_gap >= old_gap
