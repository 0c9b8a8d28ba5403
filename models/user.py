from datetime import datetime
from models.db import db

# role values: MEMBER, ADMIN
ROLES = ("MEMBER", "ADMIN")


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    password_hash = db.Column(db.String(255), nullable=True)

    role = db.Column(db.String(20), nullable=False, default="MEMBER")
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    family_id = db.Column(db.Integer, db.ForeignKey("families.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    family = db.relationship("Family", back_populates="users")
    borrowings = db.relationship("Borrowing", back_populates="borrower", lazy=True)

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"

    def to_public(self) -> dict:
        """Identity fields safe to hand to any authenticated caller."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
            "family_id": self.family_id,
        }
