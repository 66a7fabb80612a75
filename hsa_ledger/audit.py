"""
Audit Trail Module

Hash-chained audit log with SHA-256 for tamper detection. Every state change
in the ledger is logged here, deposits included: they never enter an
account's transaction history, so this chain is their only record.
"""

import hashlib
import json
import threading
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
from decimal import Decimal
import uuid

from .storage import StorageInterface, StorageRecord


class AuditEventType(Enum):
    """Types of audit events"""
    ACCOUNT_CREATED = "account_created"
    DEPOSIT_RECEIVED = "deposit_received"
    CARD_ISSUED = "card_issued"
    TRANSACTION_APPROVED = "transaction_approved"
    TRANSACTION_DECLINED = "transaction_declined"
    INTEREST_CREDITED = "interest_credited"


def _json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


@dataclass
class AuditEvent(StorageRecord):
    """
    Immutable audit event chained to its predecessor by hash.

    ``sequence`` orders the chain; timestamps alone can tie.
    """
    sequence: int
    event_type: AuditEventType
    entity_type: str
    entity_id: str
    previous_hash: str
    current_hash: str
    metadata: Dict[str, Any]

    def __post_init__(self):
        self.metadata = _json_safe(self.metadata or {})

    def calculate_hash(self) -> str:
        """SHA-256 over every field except current_hash"""
        hash_data = {
            'id': self.id,
            'sequence': self.sequence,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'previous_hash': self.previous_hash,
            'metadata': self.metadata
        }
        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['event_type'] = self.event_type.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            sequence=data['sequence'],
            event_type=AuditEventType(data['event_type']),
            entity_type=data['entity_type'],
            entity_id=data['entity_id'],
            previous_hash=data['previous_hash'],
            current_hash=data['current_hash'],
            metadata=data.get('metadata') or {}
        )


class AuditTrail:
    """
    Hash-chained audit trail for tamper detection
    """

    def __init__(self, storage: StorageInterface, table_name: str = "audit_events"):
        self.storage = storage
        self.table_name = table_name
        self._lock = threading.Lock()
        self._last_hash = ""
        self._next_sequence = 0
        self._load_chain_head()

    def _load_chain_head(self) -> None:
        """Pick up the chain where a persistent store left it"""
        events = self.storage.load_all(self.table_name)
        if events:
            head = max(events, key=lambda e: e['sequence'])
            self._last_hash = head['current_hash']
            self._next_sequence = head['sequence'] + 1

    def log_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> AuditEvent:
        """
        Append an event to the chain

        Args:
            event_type: Type of audit event
            entity_type: Type of entity being audited (account, card, transaction)
            entity_id: ID of the entity
            metadata: Additional event-specific data

        Returns:
            Created AuditEvent
        """
        with self._lock:
            now = datetime.now(timezone.utc)
            event = AuditEvent(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                sequence=self._next_sequence,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                previous_hash=self._last_hash,
                current_hash="",
                metadata=metadata or {}
            )
            event.current_hash = event.calculate_hash()

            self.storage.save(self.table_name, event.id, event.to_dict())

            # Only advance the head once the event is stored
            self._last_hash = event.current_hash
            self._next_sequence += 1

            return event

    def resync(self) -> None:
        """Reload the chain head, e.g. after the store rolled back a transaction"""
        # Lock order matches log_event: storage first, then the chain
        with self.storage.atomic(), self._lock:
            self._last_hash = ""
            self._next_sequence = 0
            self._load_chain_head()

    def _load_events(self, filters: Optional[Dict[str, Any]] = None) -> List[AuditEvent]:
        data = self.storage.find(self.table_name, filters or {})
        events = [AuditEvent.from_dict(item) for item in data]
        events.sort(key=lambda e: e.sequence)
        return events

    def get_events_for_entity(self, entity_type: str, entity_id: str) -> List[AuditEvent]:
        """All events for one entity, oldest first"""
        return self._load_events({'entity_type': entity_type, 'entity_id': entity_id})

    def get_events_by_type(self, event_type: AuditEventType) -> List[AuditEvent]:
        return self._load_events({'event_type': event_type.value})

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify every event hash and the continuity of the chain

        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'total_events': 0,
            'hash_errors': [],
            'chain_breaks': []
        }

        events = self._load_events()
        result['total_events'] = len(events)

        previous_hash = ""
        for position, event in enumerate(events):
            if not event.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_hash': event.calculate_hash(),
                    'actual_hash': event.current_hash
                })
            if event.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': event.previous_hash
                })
            previous_hash = event.current_hash

        return result

    def count_events(self) -> int:
        return self.storage.count(self.table_name)

    def get_latest_hash(self) -> str:
        return self._last_hash
