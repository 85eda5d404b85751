"""
Append-only audit recorder.

record() writes inside the caller's open transaction. If the write fails it raises
AuditWriteError, so the surrounding transaction rolls back the state change with it.
"""

from __future__ import annotations

import logging
from typing import Any

from estateclaims.errors import AuditWriteError
from estateclaims.identity import Caller
from estateclaims.models import AuditAction, AuditLogEntry, new_id, utcnow
from estateclaims.store.base import AUDIT_LOGS, WorkflowStore

logger = logging.getLogger(__name__)

DEFAULT_RECENT_LIMIT = 50


class AuditRecorder:
    def __init__(self, store: WorkflowStore):
        self.store = store

    def record(
        self,
        caller: Caller,
        action: AuditAction,
        entity_type: str,
        entity_id: str | None,
        detail: dict[str, Any] | None = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            id=new_id(),
            user_id=caller.user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=dict(detail or {}),
            created_at=utcnow(),
            ip_address=caller.ip_address,
            user_agent=caller.user_agent,
        )
        try:
            self.store.insert(AUDIT_LOGS, entry.to_document())
        except Exception as e:
            logger.error("Audit write failed for %s %s/%s: %s", action.value, entity_type, entity_id, e)
            raise AuditWriteError(
                "Audit entry could not be written; change rolled back",
                {"action": action.value, "entity_type": entity_type, "entity_id": entity_id},
            ) from e
        logger.debug("audit %s %s/%s by %s", action.value, entity_type, entity_id, caller.user_id)
        return entry

    def recent(self, limit: int = DEFAULT_RECENT_LIMIT) -> list[AuditLogEntry]:
        """Newest entries first."""
        docs = self.store.find(AUDIT_LOGS, sort=[("created_at", -1)], limit=limit)
        return [AuditLogEntry.from_document(d) for d in docs]

    def for_entity(self, entity_type: str, entity_id: str) -> list[AuditLogEntry]:
        """All entries for one entity, oldest first."""
        docs = self.store.find(
            AUDIT_LOGS,
            {"entity_type": entity_type, "entity_id": entity_id},
            sort=[("created_at", 1)],
        )
        return [AuditLogEntry.from_document(d) for d in docs]
