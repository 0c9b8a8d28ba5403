from datetime import datetime
from models.db import db


class Book(db.Model):
    __tablename__ = "books"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    author = db.Column(db.String(255), nullable=False)

    # canonical ISBN-13 when the input validated, otherwise the raw input
    isbn = db.Column(db.String(32), nullable=True, index=True)

    language = db.Column(db.String(16), nullable=True)
    description = db.Column(db.Text, nullable=True)
    cover_image = db.Column(db.String(255), nullable=True)
    condition = db.Column(db.String(20), nullable=False, default="GOOD")

    is_available = db.Column(db.Boolean, default=True, nullable=False)
    family_id = db.Column(db.Integer, db.ForeignKey("families.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    family = db.relationship("Family", back_populates="books")
    borrowings = db.relationship("Borrowing", back_populates="book", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "language": self.language,
            "description": self.description,
            "cover_image": self.cover_image,
            "condition": self.condition,
            "is_available": self.is_available,
            "family_id": self.family_id,
            "family": self.family.to_summary() if self.family else None,
            "created_at": self.created_at.isoformat(),
        }
