from flask import Blueprint, request, jsonify

from models import db
from models.user import User
from models.borrowing import Borrowing, ACTIVE_STATUSES
from utils.auth_context import login_required
from utils.parsing import as_int

users_bp = Blueprint("users", __name__, url_prefix="/users")


@users_bp.get("")
@login_required
def get_user():
    user_id = as_int(request.args.get("id"))
    email = (request.args.get("email") or "").strip().lower()

    if not user_id and not email:
        return jsonify(error="User id or email is required"), 400

    user = db.session.get(User, user_id) if user_id else User.query.filter_by(email=email).first()
    if not user:
        return jsonify(error="User not found"), 404

    borrowings = (
        Borrowing.query
        .filter_by(borrower_id=user.id)
        .order_by(Borrowing.requested_at.desc())
        .all()
    )
    return jsonify(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        family=user.family.to_contact() if user.family else None,
        borrowings=[
            {
                "id": b.id,
                "status": b.status,
                "requested_at": b.requested_at.isoformat(),
                "due_date": b.due_date.isoformat(),
                "book": {
                    "id": b.book.id,
                    "title": b.book.title,
                    "author": b.book.author,
                    "cover_image": b.book.cover_image,
                },
            }
            for b in borrowings
        ],
        active_borrowing_count=sum(1 for b in borrowings if b.status in ACTIVE_STATUSES),
    ), 200
