import json
import logging

from models import db
from models.admin_audit import AdminAudit

logger = logging.getLogger(__name__)

ADMIN_ACTIONS = {
    "PROMOTE_USER",
    "DEMOTE_USER",
    "DEACTIVATE_USER",
    "REACTIVATE_USER",
    "DELETE_EMPTY_FAMILY",
    "DELETE_BOOK",
}


def log_admin_action(action: str, actor_user_id: int, target_user_id=None,
                     target_family_id=None, target_book_id=None, metadata=None):
    if action not in ADMIN_ACTIONS:
        raise ValueError(f"Unknown admin action {action!r}")

    row = AdminAudit(
        actor_user_id=actor_user_id,
        action=action,
        target_user_id=target_user_id,
        target_family_id=target_family_id,
        target_book_id=target_book_id,
        metadata_json=json.dumps(metadata) if metadata else None,
    )
    db.session.add(row)
    db.session.commit()
    logger.info("Admin %s performed %s", actor_user_id, action)
    return row
