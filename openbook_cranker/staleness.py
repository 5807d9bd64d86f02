from __future__ import annotations


class SlotWatermark:
    """Monotonic guard against processing a ledger read twice or out of order.

    A read taken at ``slot`` is accepted only when ``slot >= value``; the
    watermark then moves to ``slot + 1`` so the same read, or an older one
    from a lagging node, is rejected next time.
    """

    __slots__ = ("_value",)

    def __init__(self, initial: int = 0) -> None:
        self._value = int(initial)

    @property
    def value(self) -> int:
        return self._value

    def is_fresh(self, slot: int) -> bool:
        return slot >= self._value

    def accept(self, slot: int) -> bool:
        if not self.is_fresh(slot):
            return False
        self._value = slot + 1
        return True

    def __repr__(self) -> str:
        return f"SlotWatermark({self._value})"
