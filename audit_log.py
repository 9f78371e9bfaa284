"""
Admin audit trail
Every privileged change (role edits, password resets, cohort reassignment) is
recorded in the admin_actions table with the actor's identity copied in.
"""

import logging
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


def actor_details(actor):
    """Snapshot of who performed the action, stored alongside the details"""
    return {
        'actor_email': getattr(actor, 'email', None),
        'actor_name': getattr(actor, 'name', None),
        'actor_roles': list(getattr(actor, 'roles', None) or []),
    }


def log_audit_action(db, AdminAction, actor, action_type, target_type,
                     target_id=None, details=None, reason=None):
    """
    Persist one audit entry.

    A failed write is logged and rolled back but never fails the request that
    triggered it; returns the entry or None.
    """
    payload = actor_details(actor)
    payload.update(details or {})

    try:
        entry = AdminAction(
            admin_id=actor.id,
            action_type=action_type,
            target_type=target_type,
            target_id=str(target_id) if target_id is not None else None,
            details=payload,
            reason=reason,
        )
        db.session.add(entry)
        db.session.commit()
        logger.info(f"audit_write action={action_type} admin_id={actor.id} target={target_type}:{target_id}")
        return entry
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Audit log write failed: action={action_type} error={e}")
        return None


def list_audit_actions(AdminAction, limit=50, action_type=None):
    query = AdminAction.query
    if action_type:
        query = query.filter_by(action_type=action_type)
    return query.order_by(AdminAction.created_at.desc(), AdminAction.id.desc()).limit(limit).all()
