import random

import pytest
from solders.pubkey import Pubkey

from openbook_cranker import layouts
from openbook_cranker.errors import EventDecodeError
from openbook_cranker.inspector import implicated_accounts, inspect
from openbook_cranker.models import EventQueueSnapshot, FillEvent, OutEvent


def _snapshot(data):
    return EventQueueSnapshot(address=Pubkey.new_unique(), slot=10, data=data)


def test_repeated_account_moves_to_last_reference():
    a, b, c = (Pubkey.new_unique() for _ in range(3))
    events = [FillEvent(a), OutEvent(b), FillEvent(a), FillEvent(c), OutEvent(b)]
    assert implicated_accounts(events) == (a, c, b)


def test_equal_keys_from_distinct_objects_are_merged():
    a = Pubkey.new_unique()
    twin = Pubkey.from_bytes(bytes(a))
    assert implicated_accounts([FillEvent(a), OutEvent(twin)]) == (twin,)


@pytest.mark.parametrize("seed", range(20))
def test_no_duplicates_and_last_occurrence_order(seed):
    rng = random.Random(seed)
    pool = [Pubkey.new_unique() for _ in range(6)]
    events = [
        (FillEvent if rng.random() < 0.5 else OutEvent)(rng.choice(pool))
        for _ in range(rng.randint(0, 40))
    ]

    result = implicated_accounts(events)

    assert len(set(result)) == len(result)
    assert set(result) == {e.account for e in events}
    last_seen = {e.account: i for i, e in enumerate(events)}
    positions = [last_seen[acc] for acc in result]
    assert positions == sorted(positions)


def test_inspect_reports_pending_and_accounts(heap_factory):
    a, b = Pubkey.new_unique(), Pubkey.new_unique()
    data = heap_factory([(0, a), (1, b), (0, a)])

    result = inspect(_snapshot(data), lambda s: layouts.decode_events(s.data))

    assert result.pending == 3
    assert result.accounts == (b, a)


def test_inspect_empty_heap_skips_decoding(heap_factory):
    def boom(_snapshot):
        raise AssertionError("decoder must not run for an empty heap")

    result = inspect(_snapshot(heap_factory([])), boom)
    assert result.pending == 0
    assert result.accounts == ()


def test_inspect_missing_account_is_empty():
    result = inspect(_snapshot(None), lambda s: [])
    assert result.pending == 0


def test_inspect_corrupt_heap_is_empty(heap_factory):
    data = bytearray(heap_factory([(0, Pubkey.new_unique())]))
    data[:8] = bytes(8)
    assert inspect(_snapshot(bytes(data)), lambda s: []).pending == 0


def test_inspect_decoder_failure_is_empty(heap_factory):
    def bad(_snapshot):
        raise EventDecodeError("unknown event type 9")

    result = inspect(_snapshot(heap_factory([(0, Pubkey.new_unique())])), bad)
    assert result.pending == 0
    assert result.accounts == ()
