from solders.pubkey import Pubkey

from openbook_cranker.models import Inspection
from openbook_cranker.planner import is_priority, plan


def test_below_threshold_plans_nothing(make_config, venue_factory, ledger_factory):
    venue = venue_factory()
    ledger = ledger_factory([venue])
    config = make_config(min_events=5)

    assert plan(venue, Inspection(pending=4, accounts=(Pubkey.new_unique(),)), config, ledger) is None
    assert ledger.built == []


def test_plans_with_limit_and_accounts(make_config, venue_factory, ledger_factory):
    venue = venue_factory()
    ledger = ledger_factory([venue])
    accounts = (Pubkey.new_unique(), Pubkey.new_unique())
    config = make_config(consume_events_limit=7)

    item = plan(venue, Inspection(pending=3, accounts=accounts), config, ledger)

    assert item is not None
    assert item.venue == venue.address
    assert item.pending == 3
    assert item.priority is False
    assert ledger.built == [(venue.address, 7, accounts)]


def test_deep_queue_is_priority(make_config, venue_factory, ledger_factory):
    venue = venue_factory()
    config = make_config(priority_queue_limit=100)

    item = plan(venue, Inspection(pending=150), config, ledger_factory([venue]))

    assert item is not None and item.priority is True
    assert not is_priority(venue, 100, config)
    assert is_priority(venue, 101, config)


def test_allow_listed_market_is_priority(make_config, venue_factory):
    venue, other = venue_factory(), venue_factory()
    config = make_config(priority_markets=f" {venue.address} ,{Pubkey.new_unique()}")

    assert is_priority(venue, 1, config)
    assert not is_priority(other, 1, config)


def test_empty_allow_list_matches_nothing(make_config, venue_factory):
    config = make_config(priority_markets="")
    assert config.priority_markets == frozenset()
    assert not is_priority(venue_factory(), 1, config)
