"""Audit service for recording reconciliation outcomes and subscription changes."""

from typing import Any

from sqlalchemy.orm import Session

from modelpass.repositories.audit_log_repository import AuditLogRepository


class AuditService:
    """Service for recording audit trail entries."""

    def __init__(self, db: Session):
        self.repo = AuditLogRepository(db)

    def log_settlement(
        self,
        settlement_ref: str,
        action: str,
        event_kind: str,
        outcome: dict[str, Any],
        actor_id: str | None = None,
        actor_type: str = "payment_provider",
    ) -> None:
        """Log what a payment delivery did for a settlement reference."""
        self.repo.create(
            resource_type="settlement",
            resource_id=settlement_ref,
            action=action,
            changes=outcome,
            actor_type=actor_type,
            actor_id=actor_id,
            metadata={"event_kind": event_kind},
        )

    def log_status_change(
        self,
        resource_type: str,
        resource_id: str,
        old_status: str,
        new_status: str,
        actor_type: str = "system",
        actor_id: str | None = None,
    ) -> None:
        """Log a status change event."""
        self.repo.create(
            resource_type=resource_type,
            resource_id=resource_id,
            action="status_changed",
            changes={"status": {"old": old_status, "new": new_status}},
            actor_type=actor_type,
            actor_id=actor_id,
        )
