import pytest

from chatwarden.storage.dedup_ledger import DedupLedger


def test_mark_seen_records_first_sighting_only():
    ledger = DedupLedger()
    assert ledger.mark_seen("m1", timestamp=100.0) is True
    assert ledger.mark_seen("m1", timestamp=200.0) is False
    assert ledger.seen("m1")
    assert "m1" in ledger
    assert len(ledger) == 1


def test_seen_handles_empty_ids():
    ledger = DedupLedger()
    assert ledger.seen(None) is False
    assert ledger.seen("") is False


def test_trim_drops_expired_entries_from_front():
    ledger = DedupLedger(ttl_seconds=60, max_entries=100, trim_floor=50)
    ledger.mark_seen("old-1", timestamp=0.0)
    ledger.mark_seen("old-2", timestamp=10.0)
    ledger.mark_seen("fresh", timestamp=95.0)

    assert ledger.trim(now=100.0) == 2
    assert not ledger.seen("old-1")
    assert not ledger.seen("old-2")
    assert ledger.seen("fresh")


def test_remarking_does_not_refresh_age():
    ledger = DedupLedger(ttl_seconds=60, max_entries=100, trim_floor=50)
    ledger.mark_seen("m1", timestamp=0.0)
    ledger.mark_seen("m1", timestamp=90.0)
    assert ledger.trim(now=100.0) == 1


def test_trim_enforces_ceiling_down_to_floor():
    ledger = DedupLedger(ttl_seconds=3600, max_entries=10, trim_floor=4, hard_cap=None)
    for index in range(12):
        ledger.mark_seen(f"m{index}", timestamp=1000.0 + index)

    assert ledger.trim(now=1100.0) == 8
    assert len(ledger) == 4
    # Oldest entries go first
    assert not ledger.seen("m7")
    assert ledger.seen("m8")
    assert ledger.seen("m11")


def test_trim_below_ceiling_keeps_everything():
    ledger = DedupLedger(ttl_seconds=3600, max_entries=10, trim_floor=4)
    for index in range(10):
        ledger.mark_seen(f"m{index}", timestamp=1000.0)
    assert ledger.trim(now=1000.0) == 0
    assert len(ledger) == 10


def test_hard_cap_trims_inline():
    ledger = DedupLedger(ttl_seconds=3600, max_entries=5, trim_floor=2, hard_cap=8)
    for index in range(9):
        ledger.mark_seen(f"m{index}")
    assert len(ledger) == 2
    assert ledger.seen("m8")


def test_evicted_ids_can_be_processed_again():
    ledger = DedupLedger(ttl_seconds=60, max_entries=100, trim_floor=50)
    ledger.mark_seen("m1", timestamp=0.0)
    ledger.trim(now=1000.0)
    assert ledger.mark_seen("m1", timestamp=1000.0) is True


def test_floor_above_ceiling_is_rejected():
    with pytest.raises(ValueError):
        DedupLedger(max_entries=10, trim_floor=11)
