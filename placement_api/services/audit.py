"""Audit trail writer.

Audit entries are written in their own session, after the primary
operation has committed. A failed write never reaches the caller: it is
logged and parked in a bounded in-process outbox which is retried before
the next write.
"""

import json
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from placement_api.config.database import SessionLocal
from placement_api.config.settings import settings
from placement_api.models import AuditLog, AuditAction
from placement_api.services.rbac import Actor, RequestContext

logger = structlog.get_logger()


@dataclass
class AuditEntry:
    """An audit record waiting to be written."""

    action: str
    performed_by: str
    performer_role: str
    drive_id: Optional[int] = None
    stage_id: Optional[int] = None
    affected_students: list[int] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    success: bool = True
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_model(self) -> AuditLog:
        return AuditLog(
            action=self.action,
            performed_by=self.performed_by,
            performer_role=self.performer_role,
            drive_id=self.drive_id,
            stage_id=self.stage_id,
            affected_students=json.dumps(self.affected_students) if self.affected_students else None,
            affected_count=len(self.affected_students),
            details=json.dumps(self.details, default=str) if self.details else None,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            success=self.success,
            error_message=self.error_message,
            created_at=self.created_at,
        )


class AuditLogger:
    """
    Best-effort, retrying audit writer.

    Usage:
        audit = AuditLogger()
        audit.record(AuditAction.MANUAL_ENTRY, actor, drive_id=1, stage_id=2)
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        max_pending: int = None,
    ):
        self.session_factory = session_factory
        self.max_pending = max_pending or settings.AUDIT_OUTBOX_MAX
        self._pending: deque[AuditEntry] = deque()
        self._lock = threading.Lock()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def record(
        self,
        action: AuditAction | str,
        actor: Actor,
        drive_id: Optional[int] = None,
        stage_id: Optional[int] = None,
        affected_students: Iterable[int] = (),
        details: Optional[dict[str, Any]] = None,
        context: Optional[RequestContext] = None,
        success: bool = True,
        error_message: Optional[str] = None,
    ) -> bool:
        """
        Append one audit entry.

        Returns:
            True if the entry was written, False if it was parked in the outbox
        """
        entry = AuditEntry(
            action=action.value if isinstance(action, AuditAction) else action,
            performed_by=actor.id,
            performer_role=actor.label,
            drive_id=drive_id,
            stage_id=stage_id,
            affected_students=list(affected_students),
            details=details or {},
            ip_address=context.ip_address if context else None,
            user_agent=context.user_agent if context else None,
            success=success,
            error_message=error_message,
        )

        self.flush_pending()

        if self._write([entry]):
            return True
        self._park([entry])
        return False

    def flush_pending(self) -> int:
        """Retry parked entries. Returns the number written."""
        with self._lock:
            if not self._pending:
                return 0
            entries = list(self._pending)
            self._pending.clear()

        if self._write(entries):
            logger.info("Audit outbox flushed", count=len(entries))
            return len(entries)

        self._park(entries)
        return 0

    def _write(self, entries: list[AuditEntry]) -> bool:
        db = None
        try:
            db = self.session_factory()
            db.add_all([entry.to_model() for entry in entries])
            db.commit()
            return True
        except SQLAlchemyError as e:
            if db is not None:
                db.rollback()
            logger.error(
                "Audit write failed",
                error=str(e),
                actions=[entry.action for entry in entries],
                count=len(entries),
            )
            return False
        finally:
            if db is not None:
                db.close()

    def _park(self, entries: list[AuditEntry]) -> None:
        with self._lock:
            for entry in entries:
                if len(self._pending) >= self.max_pending:
                    dropped = self._pending.popleft()
                    logger.error(
                        "Audit outbox full, dropping oldest entry",
                        action=dropped.action,
                        drive_id=dropped.drive_id,
                        created_at=dropped.created_at.isoformat(),
                    )
                self._pending.append(entry)
            logger.warning("Audit entries parked", pending=len(self._pending))


_audit_logger: AuditLogger = None


def get_audit_logger() -> AuditLogger:
    """Dependency returning the process-wide audit logger."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger
