from datetime import datetime
from typing import Optional

from models.session import Session
from models.user import User


class SqlAlchemySessionStore:
    """
    Session persistence on top of the Flask-SQLAlchemy handle.
    Every write commits on its own unless the caller asks to fold it into
    a larger transaction.
    """

    def __init__(self, db):
        self.db = db

    def add(self, user_id: int, token_hash: str, expires_at: datetime) -> None:
        row = Session(user_id=user_id, token_hash=token_hash, expires_at=expires_at)
        self.db.session.add(row)
        self.db.session.commit()

    def find_user(self, token_hash: str, now: datetime) -> Optional[User]:
        return (
            User.query
            .join(Session, Session.user_id == User.id)
            .filter(Session.token_hash == token_hash, Session.expires_at > now)
            .first()
        )

    def delete_by_hash(self, token_hash: str) -> int:
        count = Session.query.filter_by(token_hash=token_hash).delete(synchronize_session=False)
        self.db.session.commit()
        return count

    def delete_for_user(self, user_id: int, commit: bool = True) -> int:
        count = Session.query.filter_by(user_id=user_id).delete(synchronize_session=False)
        if commit:
            self.db.session.commit()
        return count

    def delete_expired(self, now: datetime) -> int:
        count = Session.query.filter(Session.expires_at <= now).delete(synchronize_session=False)
        self.db.session.commit()
        return count
