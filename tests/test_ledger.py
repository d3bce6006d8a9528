"""
Ledger and Payload Sealing Tests

Copyright (c) 2026 Momentum. All rights reserved.
"""

import json

import pytest

from secops.automation.errors import LedgerError, SealingError
from secops.automation.ledger import (
    InMemoryLedger,
    JsonlLedger,
    LedgerAdapter,
    LedgerEntry,
    slugify,
)
from secops.automation.sealer import KEY_SIZE, NONCE_SIZE, AesGcmSealer, NullSealer


def make_adapter(recorder):
    return LedgerAdapter(
        recorder,
        prefix="phishing-prevention",
        event_type="Phishing Event",
        failure_type="Phishing Prevention Failure",
        finalization_type="Phishing Prevention Cycle Finalization",
        clock=lambda: 1700000000.7,
    )


class TestLedgerAdapter:
    """Entry construction."""

    def test_action_entry(self):
        ledger = InMemoryLedger()
        entry = make_adapter(ledger).record_action("0xabc", "Entity Blocked")
        assert entry == LedgerEntry(
            id="phishing-prevention-0xabc-entity-blocked",
            timestamp=1700000000,
            type="Phishing Event",
            status="Entity Blocked",
            details="Entity 0xabc: Entity Blocked.",
        )
        assert ledger.entries() == [entry]

    def test_repeated_events_share_id(self):
        ledger = InMemoryLedger()
        adapter = make_adapter(ledger)
        adapter.record_action("0xabc", "Warning Issued")
        adapter.record_action("0xabc", "Warning Issued")
        ids = {e.id for e in ledger}
        assert len(ledger) == 2
        assert ids == {"phishing-prevention-0xabc-warning-issued"}

    def test_failure_and_finalization_entries(self):
        ledger = InMemoryLedger()
        adapter = make_adapter(ledger)
        failure = adapter.record_failure("0xabc", "block_phishing_entity", 3)
        final = adapter.record_finalization(2000)
        assert failure.id == "phishing-prevention-failure-0xabc"
        assert failure.type == "Phishing Prevention Failure"
        assert failure.status == "Failed"
        assert final.id == "phishing-prevention-cycle-finalization-2000"
        assert final.status == "Finalized"

    def test_entry_filters(self):
        ledger = InMemoryLedger()
        adapter = make_adapter(ledger)
        adapter.record_action("a", "Warning Issued")
        adapter.record_failure("b", "warn", 3)
        assert len(ledger.entries(status="Failed")) == 1
        assert len(ledger.entries(type="Phishing Event")) == 1
        assert len(ledger.entries(id_prefix="phishing-prevention-failure")) == 1

    def test_slugify(self):
        assert slugify("Alert Issued") == "alert-issued"
        assert slugify("  Emergency  Locked/Down ") == "emergency-locked-down"


class TestJsonlLedger:
    """File-backed ledger."""

    def test_append_and_read(self, tmp_path):
        path = tmp_path / "ledger" / "events.jsonl"
        ledger = JsonlLedger(path)
        adapter = make_adapter(ledger)
        adapter.record_action("0xabc", "Warning Issued")
        adapter.record_finalization(1000)

        lines = path.read_text().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[0])["status"] == "Warning Issued"
        assert [e.status for e in ledger.read_all()] == ["Warning Issued", "Finalized"]

    def test_read_missing_file(self, tmp_path):
        assert JsonlLedger(tmp_path / "none.jsonl", fsync=False).read_all() == []

    def test_append_failure_raises_ledger_error(self, tmp_path):
        ledger = JsonlLedger(tmp_path / "events.jsonl", fsync=False)
        ledger.path = tmp_path  # a directory cannot be opened for append
        with pytest.raises(LedgerError):
            make_adapter(ledger).record_action("0xabc", "Warning Issued")

    def test_entry_round_trip(self):
        entry = LedgerEntry("id-1", 1, "T", "S", "d")
        assert LedgerEntry.from_dict(json.loads(entry.to_json())) == entry


class TestSealer:
    """Payload sealing."""

    def test_null_sealer(self):
        assert NullSealer().seal(b"data") == b"data"

    def test_aes_gcm_seal_unseal(self):
        sealer = AesGcmSealer(AesGcmSealer.generate_key(), associated_data=b"phishing_prevention")
        sealed = sealer.seal(b"payload")
        assert len(sealed) == NONCE_SIZE + len(b"payload") + 16
        assert sealer.unseal(sealed) == b"payload"

    def test_nonce_is_fresh(self):
        sealer = AesGcmSealer(AesGcmSealer.generate_key())
        assert sealer.seal(b"x") != sealer.seal(b"x")

    def test_associated_data_binds_protocol(self):
        key = AesGcmSealer.generate_key()
        sealed = AesGcmSealer(key, b"pos_slashing").seal(b"payload")
        with pytest.raises(SealingError):
            AesGcmSealer(key, b"phishing_prevention").unseal(sealed)

    def test_from_hex(self):
        key = bytes(range(KEY_SIZE))
        sealer = AesGcmSealer.from_hex(key.hex())
        assert AesGcmSealer(key).unseal(sealer.seal(b"p")) == b"p"

    def test_bad_keys(self):
        with pytest.raises(SealingError):
            AesGcmSealer(b"short")
        with pytest.raises(SealingError):
            AesGcmSealer.from_hex("zz" * KEY_SIZE)

    def test_rejects_non_bytes(self):
        with pytest.raises(SealingError):
            AesGcmSealer(AesGcmSealer.generate_key()).seal("text")
