"""Audit log for critical actions."""

from typing import Any

from orderpay.models.audit_log import AuditLog
from orderpay.stores.base import AuditStore


def actor_for(user_id: str | None) -> str:
    return f"user:{user_id}" if user_id else "guest"


async def log_event(
    audit: AuditStore,
    event_type: str,
    entity_type: str,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    user_id: str | None = None,
    actor: str | None = None,
    risk_score: int | None = None,
) -> AuditLog:
    """Append to the audit log. Security events carry a risk_score (0-10)."""
    return await audit.append(
        AuditLog(
            actor=actor or actor_for(user_id),
            user_id=user_id,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata=metadata or {},
            risk_score=risk_score,
        )
    )
