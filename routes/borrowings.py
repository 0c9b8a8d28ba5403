import logging
from datetime import datetime

from flask import Blueprint, request, jsonify, g

from models import db
from models.book import Book
from models.borrowing import Borrowing, BORROWING_STATUSES, ACTIVE_STATUSES
from security.rbac import can_manage_family
from utils.auth_context import login_required
from utils.pagination import page_args, paginate
from utils.parsing import as_int, parse_iso

logger = logging.getLogger(__name__)

borrowings_bp = Blueprint("borrowings", __name__, url_prefix="/borrowings")

# status -> the only status it may move to
NEXT_STATUS = {
    "REQUESTED": "APPROVED",
    "APPROVED": "PICKED_UP",
    "PICKED_UP": "RETURNED",
}


class TransitionConflict(Exception):
    pass


def apply_transition(borrowing: Borrowing, new_status: str) -> None:
    """
    Moves a borrowing one step along the workflow and updates the book's
    availability in the same transaction. Both rows are written with a
    conditional UPDATE so a concurrent request that got there first makes
    this one fail instead of silently overwriting it.
    """
    current = borrowing.status
    if NEXT_STATUS.get(current) != new_status:
        raise TransitionConflict(f"Cannot move borrowing from {current} to {new_status}")

    now = datetime.utcnow()
    values = {"status": new_status}
    if new_status == "RETURNED":
        values["returned_at"] = now

    try:
        moved = (
            Borrowing.query
            .filter_by(id=borrowing.id, status=current)
            .update(values, synchronize_session=False)
        )
        if moved != 1:
            raise TransitionConflict("Borrowing was updated by another request")

        book_q = Book.query.filter_by(id=borrowing.book_id)
        if new_status == "APPROVED":
            # claim the book: only one approval can win
            claimed = book_q.filter_by(is_available=True).update(
                {"is_available": False}, synchronize_session=False
            )
            if claimed != 1:
                raise TransitionConflict("Book is already lent out")
        elif new_status == "RETURNED":
            book_q.update({"is_available": True}, synchronize_session=False)

        db.session.commit()
    except TransitionConflict:
        db.session.rollback()
        raise


@borrowings_bp.get("")
@login_required
def list_borrowings():
    book_id = as_int(request.args.get("book_id"))
    borrower_id = as_int(request.args.get("borrower_id"))
    status = (request.args.get("status") or "").strip().upper()
    page, limit = page_args()

    q = Borrowing.query
    if book_id:
        q = q.filter(Borrowing.book_id == book_id)
    if borrower_id:
        q = q.filter(Borrowing.borrower_id == borrower_id)
    if status:
        q = q.filter(Borrowing.status == status)

    rows, meta = paginate(q.order_by(Borrowing.requested_at.desc(), Borrowing.id.desc()), page, limit)
    return jsonify(borrowings=[b.to_dict() for b in rows], pagination=meta), 200


@borrowings_bp.get("/<int:borrowing_id>")
@login_required
def get_borrowing(borrowing_id: int):
    borrowing = db.session.get(Borrowing, borrowing_id)
    if not borrowing:
        return jsonify(error="Borrowing not found"), 404

    out = borrowing.to_dict()
    out["book"]["family"] = borrowing.book.family.to_contact()
    out["borrower"]["family"] = borrowing.borrower.family.to_summary()
    return jsonify(out), 200


@borrowings_bp.post("")
@login_required
def create_borrowing():
    data = request.get_json(silent=True) or {}
    book_id = as_int(data.get("book_id"))
    due_date = parse_iso(data.get("due_date"))

    if not book_id or not data.get("due_date"):
        return jsonify(error="book_id and due_date are required"), 400
    if due_date is None:
        return jsonify(error="Invalid due_date. Use ISO e.g. 2026-01-20"), 400

    book = db.session.get(Book, book_id)
    if not book or not book.is_available:
        return jsonify(error="Book is not available for borrowing"), 400

    if book.family_id == g.user.family_id:
        return jsonify(error="You cannot borrow a book your family owns"), 400

    existing = Borrowing.query.filter(
        Borrowing.book_id == book.id,
        Borrowing.borrower_id == g.user.id,
        Borrowing.status.in_(ACTIVE_STATUSES),
    ).first()
    if existing:
        return jsonify(error="You already have an active borrowing request for this book"), 400

    borrowing = Borrowing(book_id=book.id, borrower_id=g.user.id, due_date=due_date)
    db.session.add(borrowing)
    db.session.commit()

    logger.info("User %s requested book %s", g.user.id, book.id)
    return jsonify(borrowing.to_dict()), 201


@borrowings_bp.put("/<int:borrowing_id>")
@login_required
def update_borrowing(borrowing_id: int):
    data = request.get_json(silent=True) or {}
    status = (data.get("status") or "").strip().upper() if isinstance(data.get("status"), str) else ""

    if status not in BORROWING_STATUSES:
        return jsonify(error="Valid status is required"), 400

    borrowing = db.session.get(Borrowing, borrowing_id)
    if not borrowing:
        return jsonify(error="Borrowing not found"), 404

    if not can_manage_family(borrowing.book.family_id):
        return jsonify(error="Forbidden"), 403

    try:
        apply_transition(borrowing, status)
    except TransitionConflict as exc:
        logger.info("Borrowing %s transition to %s refused: %s", borrowing_id, status, exc)
        return jsonify(error=str(exc)), 409

    borrowing = db.session.get(Borrowing, borrowing_id)
    return jsonify(borrowing.to_dict()), 200
