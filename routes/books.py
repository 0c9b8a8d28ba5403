import logging

from flask import Blueprint, request, jsonify, g
from sqlalchemy import or_

from models import db
from models.book import Book
from models.borrowing import Borrowing, ACTIVE_STATUSES
from security.rbac import can_manage_family
from utils.auth_context import login_required
from utils.isbn import normalize_isbn
from utils.pagination import page_args, paginate
from utils.parsing import as_int, as_text, parse_bool

logger = logging.getLogger(__name__)

books_bp = Blueprint("books", __name__, url_prefix="/books")

CONDITIONS = ("NEW", "GOOD", "FAIR", "POOR")
# width of the books.isbn column
ISBN_MAX_LEN = 32
ISBN_TOO_LONG = f"isbn must be at most {ISBN_MAX_LEN} characters"


def _store_isbn(raw):
    """ISBN-13 when it validates, otherwise the raw string as typed."""
    if raw is None:
        return None
    if not isinstance(raw, str):
        raw = str(raw)
    raw = raw.strip()
    if not raw:
        return None
    normalized = normalize_isbn(raw)
    if normalized is None:
        logger.info("Storing unnormalized ISBN %r", raw)
        return raw
    return normalized


@books_bp.get("")
def list_books():
    search = (request.args.get("search") or "").strip()
    family_id = as_int(request.args.get("family_id"))
    available = parse_bool(request.args.get("available"))
    page, limit = page_args()

    q = Book.query
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(
            Book.title.ilike(pattern),
            Book.author.ilike(pattern),
            Book.description.ilike(pattern),
        ))
    if family_id:
        q = q.filter(Book.family_id == family_id)
    if available is not None:
        q = q.filter(Book.is_available.is_(available))

    rows, meta = paginate(q.order_by(Book.created_at.desc(), Book.id.desc()), page, limit)
    return jsonify(books=[b.to_dict() for b in rows], pagination=meta), 200


@books_bp.get("/<int:book_id>")
def get_book(book_id: int):
    book = db.session.get(Book, book_id)
    if not book:
        return jsonify(error="Book not found"), 404

    active = (
        Borrowing.query
        .filter(Borrowing.book_id == book.id, Borrowing.status.in_(ACTIVE_STATUSES))
        .order_by(Borrowing.requested_at.desc())
        .all()
    )
    out = book.to_dict()
    out["family"] = book.family.to_contact()
    out["borrowings"] = [b.to_dict(include_book=False) for b in active]
    return jsonify(out), 200


@books_bp.post("")
@login_required
def create_book():
    data = request.get_json(silent=True) or {}
    title = as_text(data.get("title"))
    author = as_text(data.get("author"))
    condition = as_text(data.get("condition") or "GOOD").upper()

    if not title or not author:
        return jsonify(error="Title and author are required"), 400
    if condition not in CONDITIONS:
        return jsonify(error=f"condition must be one of {', '.join(CONDITIONS)}"), 400

    isbn = _store_isbn(data.get("isbn"))
    if isbn and len(isbn) > ISBN_MAX_LEN:
        return jsonify(error=ISBN_TOO_LONG), 400

    book = Book(
        title=title,
        author=author,
        isbn=isbn,
        language=data.get("language"),
        description=data.get("description"),
        cover_image=data.get("cover_image"),
        condition=condition,
        family_id=g.user.family_id,
    )
    db.session.add(book)
    db.session.commit()
    return jsonify(book.to_dict()), 201


@books_bp.put("/<int:book_id>")
@login_required
def update_book(book_id: int):
    book = db.session.get(Book, book_id)
    if not book:
        return jsonify(error="Book not found"), 404
    if not can_manage_family(book.family_id):
        return jsonify(error="Forbidden"), 403

    data = request.get_json(silent=True) or {}

    for field in ("title", "author"):
        value = data.get(field)
        if value is not None:
            if not isinstance(value, str) or not value.strip():
                return jsonify(error=f"Invalid {field}"), 400
            setattr(book, field, value.strip())

    if "condition" in data:
        condition = str(data.get("condition") or "").strip().upper()
        if condition not in CONDITIONS:
            return jsonify(error=f"condition must be one of {', '.join(CONDITIONS)}"), 400
        book.condition = condition

    if "isbn" in data:
        isbn = _store_isbn(data.get("isbn"))
        if isbn and len(isbn) > ISBN_MAX_LEN:
            return jsonify(error=ISBN_TOO_LONG), 400
        book.isbn = isbn
    for field in ("language", "description", "cover_image"):
        if field in data:
            setattr(book, field, data.get(field))

    # availability follows the borrowing workflow; owners may only toggle an unlent book
    if "is_available" in data:
        if not isinstance(data["is_available"], bool):
            return jsonify(error="Invalid is_available value"), 400
        lent = Borrowing.query.filter(
            Borrowing.book_id == book.id,
            Borrowing.status.in_(("APPROVED", "PICKED_UP")),
        ).first()
        if lent and data["is_available"]:
            return jsonify(error="Book is currently lent out"), 409
        book.is_available = data["is_available"]

    db.session.commit()
    return jsonify(book.to_dict()), 200


@books_bp.delete("/<int:book_id>")
@login_required
def delete_book(book_id: int):
    book = db.session.get(Book, book_id)
    if not book:
        return jsonify(error="Book not found"), 404
    if not can_manage_family(book.family_id):
        return jsonify(error="Forbidden"), 403

    Borrowing.query.filter_by(book_id=book.id).delete(synchronize_session=False)
    db.session.delete(book)
    db.session.commit()
    return jsonify(message="Book deleted successfully"), 200
