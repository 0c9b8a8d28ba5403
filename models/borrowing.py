from datetime import datetime
from models.db import db

# status values, in workflow order
BORROWING_STATUSES = ("REQUESTED", "APPROVED", "PICKED_UP", "RETURNED")
ACTIVE_STATUSES = ("REQUESTED", "APPROVED", "PICKED_UP")


class Borrowing(db.Model):
    __tablename__ = "borrowings"

    id = db.Column(db.Integer, primary_key=True)

    book_id = db.Column(db.Integer, db.ForeignKey("books.id"), nullable=False, index=True)
    borrower_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default="REQUESTED")

    requested_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    due_date = db.Column(db.DateTime, nullable=False)
    returned_at = db.Column(db.DateTime, nullable=True)

    book = db.relationship("Book", back_populates="borrowings")
    borrower = db.relationship("User", back_populates="borrowings")

    def to_dict(self, include_book: bool = True) -> dict:
        out = {
            "id": self.id,
            "book_id": self.book_id,
            "borrower_id": self.borrower_id,
            "status": self.status,
            "requested_at": self.requested_at.isoformat(),
            "due_date": self.due_date.isoformat(),
            "returned_at": self.returned_at.isoformat() if self.returned_at else None,
            "borrower": {
                "id": self.borrower.id,
                "name": self.borrower.name,
                "email": self.borrower.email,
            } if self.borrower else None,
        }
        if include_book:
            out["book"] = self.book.to_dict() if self.book else None
        return out
