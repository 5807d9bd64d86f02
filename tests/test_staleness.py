import pytest

from openbook_cranker.staleness import SlotWatermark


def test_initial_watermark_accepts_any_slot():
    wm = SlotWatermark()
    assert wm.value == 0
    assert wm.accept(0)
    assert wm.value == 1


@pytest.mark.parametrize("slot,watermark", [(50, 51), (0, 1), (99, 100), (100, 100), (120, 100)])
def test_accept_iff_slot_not_below_watermark(slot, watermark):
    wm = SlotWatermark(watermark)
    accepted = wm.accept(slot)
    assert accepted is (slot >= watermark)
    assert wm.value == (slot + 1 if accepted else watermark)


def test_same_slot_is_rejected_twice():
    wm = SlotWatermark()
    assert wm.accept(42)
    assert not wm.accept(42)
    assert not wm.accept(41)
    assert wm.accept(43)
    assert wm.value == 44


def test_is_fresh_does_not_move_watermark():
    wm = SlotWatermark(10)
    assert wm.is_fresh(10)
    assert not wm.is_fresh(9)
    assert wm.value == 10
