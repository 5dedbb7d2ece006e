from __future__ import annotations

import pytest

from core.identity_map import MessageIdentityMap


def test_lookup_returns_recorded_destination() -> None:
    identities = MessageIdentityMap()
    identities.record("main", 5, 9001)

    assert identities.lookup("main", 5) == 9001
    assert identities.lookup("main", 6) is None


def test_records_are_scoped_per_bridge() -> None:
    identities = MessageIdentityMap()
    identities.record("first", 5, 1)
    identities.record("second", 5, 2)

    assert identities.lookup("first", 5) == 1
    assert identities.lookup("second", 5) == 2


def test_least_recently_used_record_is_evicted() -> None:
    identities = MessageIdentityMap(capacity=2)
    identities.record("main", 1, 101)
    identities.record("main", 2, 102)
    # Touch 1 so that 2 becomes the oldest entry.
    assert identities.lookup("main", 1) == 101
    identities.record("main", 3, 103)

    assert len(identities) == 2
    assert identities.lookup("main", 2) is None
    assert identities.lookup("main", 1) == 101
    assert identities.lookup("main", 3) == 103


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        MessageIdentityMap(capacity=0)
