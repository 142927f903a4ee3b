"""
Audit logging service.
Append-only audit log with integrity hashing.

Entries are flushed, not committed: they belong to the caller's transaction
so a rolled-back posting leaves no audit row behind.
"""
import hashlib
import json
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session

from ..models.models import AuditLog
from ..config import settings
from .time_rules import utc_now


def _integrity_hash(canonical_data: Dict[str, Any], secret: str) -> str:
    canonical_data = {k: v for k, v in canonical_data.items() if v is not None}
    canonical_json = json.dumps(canonical_data, sort_keys=True, default=str)
    return hashlib.sha256(f"{canonical_json}:{secret}".encode()).hexdigest()


def create_audit_log(
    db: Session,
    entity_type: str,
    entity_id,
    action: str,
    actor_id=None,
    actor_role: Optional[str] = None,
    changes_json: Optional[Dict] = None,
    context: Optional[Dict] = None,
    integrity_secret: Optional[str] = None
) -> AuditLog:
    """
    Add an append-only audit log entry to the current transaction.

    Args:
        db: Database session
        entity_type: milestone|material|raw_material_order|vendor|worker_log|lead|project
        entity_id: Entity ID
        action: CREATE|UPDATE|DELETE|PAYMENT|REQUEST_ACK|CLIENT_ACCEPT|CLIENT_REJECT|WITHDRAW_ACK|CONFIRM
        actor_id: User ID who performed the action
        actor_role: Role of the actor
        changes_json: Before/after diff
        context: Additional context (project_id, vendor_id, amounts)
        integrity_secret: Secret for integrity hash (defaults to JWT_SECRET)
    """
    timestamp_utc = utc_now()
    if integrity_secret is None:
        integrity_secret = settings.jwt_secret

    integrity_hash = None
    if integrity_secret:
        integrity_hash = _integrity_hash(
            {
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action,
                "actor_id": str(actor_id) if actor_id else None,
                "actor_role": actor_role,
                "timestamp_utc": timestamp_utc.isoformat(),
                "changes": changes_json,
                "context": context,
            },
            integrity_secret,
        )

    audit_log = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        actor_role=actor_role,
        changes_json=_jsonable(changes_json),
        timestamp_utc=timestamp_utc,
        context=_jsonable(context),
        integrity_hash=integrity_hash,
    )
    db.add(audit_log)
    db.flush()
    return audit_log


def get_audit_logs(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id=None,
    limit: int = 100,
    offset: int = 0
) -> list:
    query = db.query(AuditLog)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)
    query = query.order_by(AuditLog.timestamp_utc.desc())
    return query.limit(limit).offset(offset).all()


def compute_diff(before: Dict, after: Dict) -> Dict:
    """
    Compute a diff between two dictionaries.

    Returns:
        Dict with before/after values for changed fields
    """
    diff = {}
    for key in set(before.keys()) | set(after.keys()):
        before_val = before.get(key)
        after_val = after.get(key)
        if before_val != after_val:
            diff[key] = {"before": before_val, "after": after_val}
    return diff


def _jsonable(data: Optional[Dict]) -> Optional[Dict]:
    # JSON columns reject UUID/date/Enum values
    if data is None:
        return None
    return json.loads(json.dumps(data, default=str))
