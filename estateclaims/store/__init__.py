# Data-access layer. The MongoDB implementation lives in estateclaims.store.mongo.

from estateclaims.store.base import (
    ASSET_CLAIMS,
    ASSETS,
    AUDIT_LOGS,
    COLLECTIONS,
    DOCUMENTS,
    SESSIONS,
    WorkflowStore,
)
from estateclaims.store.memory import InMemoryWorkflowStore

__all__ = [
    "ASSET_CLAIMS",
    "ASSETS",
    "AUDIT_LOGS",
    "COLLECTIONS",
    "DOCUMENTS",
    "SESSIONS",
    "InMemoryWorkflowStore",
    "WorkflowStore",
]
