"""
Test suite for audit module

Tests the hash-chained audit trail, tamper detection and chain recovery.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from hsa_ledger.storage import InMemoryStorage, SQLiteStorage
from hsa_ledger.audit import AuditTrail, AuditEvent, AuditEventType


class TestAuditEvent:
    """Test AuditEvent functionality"""

    def test_metadata_serialization(self):
        """Test that metadata is converted to JSON-friendly values"""
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT001",
            created_at=now,
            updated_at=now,
            sequence=0,
            event_type=AuditEventType.DEPOSIT_RECEIVED,
            entity_type="account",
            entity_id="ACC001",
            previous_hash="",
            current_hash="",
            metadata={
                "amount": Decimal('500.00'),
                "at": now,
                "type": AuditEventType.CARD_ISSUED,
                "terms": ("pharmacy",)
            }
        )

        assert event.metadata == {
            "amount": "500.00",
            "at": now.isoformat(),
            "type": "card_issued",
            "terms": ["pharmacy"]
        }

    def test_hash_is_deterministic(self):
        """Test hash calculation and verification"""
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT001", created_at=now, updated_at=now, sequence=0,
            event_type=AuditEventType.ACCOUNT_CREATED, entity_type="account",
            entity_id="ACC001", previous_hash="", current_hash="", metadata={"name": "Alice"}
        )
        event.current_hash = event.calculate_hash()

        assert len(event.current_hash) == 64
        assert event.verify_hash()

        event.metadata["name"] = "Mallory"
        assert not event.verify_hash()

    def test_dict_round_trip(self):
        """Test storage serialization"""
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT001", created_at=now, updated_at=now, sequence=3,
            event_type=AuditEventType.INTEREST_CREDITED, entity_type="transaction",
            entity_id="TXN001", previous_hash="abc", current_hash="def", metadata={"rate": "0.01"}
        )

        data = event.to_dict()
        assert data["event_type"] == "interest_credited"
        assert AuditEvent.from_dict(data) == event


class TestAuditTrail:
    """Test the hash chain"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)

    def test_chain_links_events(self):
        """Test that each event points at its predecessor"""
        first = self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "ACC001")
        second = self.audit_trail.log_event(
            AuditEventType.DEPOSIT_RECEIVED, "account", "ACC001", {"amount": "10.00"}
        )

        assert first.previous_hash == ""
        assert second.previous_hash == first.current_hash
        assert second.sequence == first.sequence + 1
        assert self.audit_trail.get_latest_hash() == second.current_hash
        assert self.audit_trail.count_events() == 2

    def test_integrity_valid(self):
        """Test verification of an untouched chain"""
        for i in range(5):
            self.audit_trail.log_event(AuditEventType.DEPOSIT_RECEIVED, "account", "ACC001", {"n": i})

        result = self.audit_trail.verify_integrity()
        assert result["valid"]
        assert result["total_events"] == 5
        assert result["hash_errors"] == []
        assert result["chain_breaks"] == []

    def test_tampering_detected(self):
        """Test that editing a stored event breaks verification"""
        self.audit_trail.log_event(AuditEventType.DEPOSIT_RECEIVED, "account", "ACC001", {"amount": "10.00"})
        event = self.audit_trail.log_event(
            AuditEventType.DEPOSIT_RECEIVED, "account", "ACC001", {"amount": "20.00"}
        )

        stored = self.storage.load("audit_events", event.id)
        stored["metadata"]["amount"] = "2000.00"
        self.storage.save("audit_events", event.id, stored)

        result = self.audit_trail.verify_integrity()
        assert not result["valid"]
        assert result["hash_errors"][0]["event_id"] == event.id

    def test_deleted_event_breaks_chain(self):
        """Test that removing an event is detected as a chain break"""
        events = [
            self.audit_trail.log_event(AuditEventType.DEPOSIT_RECEIVED, "account", "ACC001", {"n": i})
            for i in range(3)
        ]
        data = self.storage.load_all("audit_events")
        self.storage.clear_table("audit_events")
        for item in data:
            if item["id"] != events[1].id:
                self.storage.save("audit_events", item["id"], item)

        result = self.audit_trail.verify_integrity()
        assert not result["valid"]
        assert result["chain_breaks"][0]["event_id"] == events[2].id

    def test_queries(self):
        """Test lookups by entity and by type"""
        self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "ACC001")
        self.audit_trail.log_event(AuditEventType.CARD_ISSUED, "card", "CARD001")
        self.audit_trail.log_event(AuditEventType.DEPOSIT_RECEIVED, "account", "ACC001")

        account_events = self.audit_trail.get_events_for_entity("account", "ACC001")
        assert [e.event_type for e in account_events] == [
            AuditEventType.ACCOUNT_CREATED, AuditEventType.DEPOSIT_RECEIVED
        ]
        assert len(self.audit_trail.get_events_by_type(AuditEventType.CARD_ISSUED)) == 1

    def test_chain_resumes_after_restart(self, tmp_path):
        """Test that a new trail over persisted events continues the chain"""
        db_path = tmp_path / "audit.db"
        storage = SQLiteStorage(db_path)
        trail = AuditTrail(storage)
        last = trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "ACC001")
        storage.close()

        storage = SQLiteStorage(db_path)
        trail = AuditTrail(storage)
        assert trail.get_latest_hash() == last.current_hash

        nxt = trail.log_event(AuditEventType.DEPOSIT_RECEIVED, "account", "ACC001")
        assert nxt.previous_hash == last.current_hash
        assert nxt.sequence == 1
        assert trail.verify_integrity()["valid"]
        storage.close()

    def test_resync_after_rollback(self):
        """Test that resync drops a head that was rolled back"""
        kept = self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "ACC001")

        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.audit_trail.log_event(AuditEventType.DEPOSIT_RECEIVED, "account", "ACC001")
                raise RuntimeError("boom")

        self.audit_trail.resync()
        assert self.audit_trail.get_latest_hash() == kept.current_hash

        self.audit_trail.log_event(AuditEventType.DEPOSIT_RECEIVED, "account", "ACC001")
        assert self.audit_trail.verify_integrity()["valid"]
