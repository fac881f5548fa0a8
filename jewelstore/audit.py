"""
jewelstore/audit.py

Audit trail for admin changes to products, materials and categories.

Each entry records the acting admin (id plus email snapshot), the entity,
the action and JSON before/after snapshots. Entries are only added to the
session; the route commits them together with the change itself.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from flask import has_request_context, request
from flask_login import current_user

from .extensions import db
from .models import AuditLog


def _safe_str(value: Any) -> Optional[str]:
    """Stable string form for JSON/DB storage (Decimal, datetime, ...). None stays None."""
    if value is None:
        return None
    return str(value)


def serialize_model(instance: Any) -> Dict[str, Optional[str]]:
    """
    Snapshot of a model's scalar columns (relationships are not included).

    Products also get their composition lines, since those drive the price.
    """
    data: Dict[str, Any] = {}
    for column in instance.__table__.columns:
        data[column.name] = _safe_str(getattr(instance, column.name))

    to_dict = getattr(instance, "to_dict", None)
    if instance.__class__.__name__ == "Product" and callable(to_dict):
        full = to_dict()
        for key in ("metalComposition", "gemstoneComposition", "additionalCharges"):
            data[key] = full[key]
    return data


def log_action(
    entity: Any,
    action: str,
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Add an AuditLog entry to the current db session.

    Parameters:
        entity: SQLAlchemy model instance with .id (flush first on create)
        action: CREATE / UPDATE / DELETE / PRICE_UPDATE
        before: dict snapshot (optional)
        after: dict snapshot (optional)
    """
    entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError("log_action entity must have an 'id' attribute (after flush).")

    authenticated = has_request_context() and current_user.is_authenticated

    entry = AuditLog(
        admin_id=current_user.id if authenticated else None,
        email_snapshot=current_user.email if authenticated else None,
        entity_type=entity.__class__.__name__,
        entity_id=int(entity_id),
        action=str(action),
        before_data=json.dumps(before, ensure_ascii=False, default=str) if before else None,
        after_data=json.dumps(after, ensure_ascii=False, default=str) if after else None,
        ip_address=request.remote_addr if has_request_context() else None,
    )
    db.session.add(entry)
