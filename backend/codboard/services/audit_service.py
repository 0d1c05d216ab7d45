"""Audit trail writer.

WHAT: Appends AuditLog rows for imports, allocations, plan changes.
WHY: Audit is a side channel. A failure to record one must never abort the
     operation being audited, so writes run inside a savepoint and errors are
     logged and reported to Sentry instead of raised.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import AuditLog
from ..telemetry.sentry import capture_exception

logger = logging.getLogger(__name__)


class AuditService:
    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        business_id,
        entity_type: str,
        action: str,
        entity_id: Any = None,
        user_id=None,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """Record one audit entry in the caller's transaction.

        Returns the entry, or None when it could not be written.
        """
        entry = AuditLog(
            business_id=business_id,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            action=action,
            before=before,
            after=after,
        )
        try:
            with self.db.begin_nested():
                self.db.add(entry)
        except SQLAlchemyError as e:
            logger.error(f"[AUDIT] Failed to record {entity_type}.{action} for business {business_id}: {e}")
            capture_exception(e, extra={"entity_type": entity_type, "action": action})
            return None
        return entry
