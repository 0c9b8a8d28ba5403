from datetime import datetime
from models.db import db

class AdminAudit(db.Model):
    __tablename__ = "admin_audits"

    id = db.Column(db.Integer, primary_key=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    action = db.Column(db.String(40), nullable=False)  # e.g. PROMOTE_USER, DELETE_BOOK

    # plain ids: targets may be deleted by the audited action itself
    target_user_id = db.Column(db.Integer, nullable=True)
    target_family_id = db.Column(db.Integer, nullable=True)
    target_book_id = db.Column(db.Integer, nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    actor = db.relationship("User")
