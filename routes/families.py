from flask import Blueprint, request, jsonify
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from models import db
from models.family import Family
from models.user import User
from models.book import Book
from models.borrowing import Borrowing, ACTIVE_STATUSES
from utils.auth_context import login_required
from utils.pagination import page_args, paginate
from utils.parsing import as_text

families_bp = Blueprint("families", __name__, url_prefix="/families")


def _counts(family_ids):
    if not family_ids:
        return {}, {}
    members = dict(
        db.session.query(User.family_id, func.count(User.id))
        .filter(User.family_id.in_(family_ids))
        .group_by(User.family_id)
        .all()
    )
    available = dict(
        db.session.query(Book.family_id, func.count(Book.id))
        .filter(Book.family_id.in_(family_ids), Book.is_available.is_(True))
        .group_by(Book.family_id)
        .all()
    )
    return members, available


@families_bp.get("")
def list_families():
    search = (request.args.get("search") or "").strip()
    page, limit = page_args()

    q = Family.query
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(Family.name.ilike(pattern), Family.address.ilike(pattern)))

    rows, meta = paginate(q.order_by(Family.created_at.desc(), Family.id.desc()), page, limit)
    members, available = _counts([f.id for f in rows])

    return jsonify(
        families=[
            {
                **f.to_contact(),
                "latitude": f.latitude,
                "longitude": f.longitude,
                "created_at": f.created_at.isoformat(),
                "member_count": members.get(f.id, 0),
                "available_book_count": available.get(f.id, 0),
            }
            for f in rows
        ],
        pagination=meta,
    ), 200


@families_bp.get("/<int:family_id>")
def get_family(family_id: int):
    family = db.session.get(Family, family_id)
    if not family:
        return jsonify(error="Family not found"), 404

    users = User.query.filter_by(family_id=family.id).order_by(User.created_at.asc()).all()
    books = Book.query.filter_by(family_id=family.id).order_by(Book.created_at.desc()).all()

    active = {}
    if books:
        rows = Borrowing.query.filter(
            Borrowing.book_id.in_([b.id for b in books]),
            Borrowing.status.in_(ACTIVE_STATUSES),
        ).all()
        for r in rows:
            active.setdefault(r.book_id, []).append(r.to_dict(include_book=False))

    return jsonify(
        **family.to_contact(),
        latitude=family.latitude,
        longitude=family.longitude,
        users=[
            {
                "id": u.id,
                "name": u.name,
                "email": u.email,
                "role": u.role,
                "created_at": u.created_at.isoformat(),
            }
            for u in users
        ],
        books=[{**b.to_dict(), "borrowings": active.get(b.id, [])} for b in books],
        member_count=len(users),
        available_book_count=sum(1 for b in books if b.is_available),
    ), 200


@families_bp.post("")
@login_required
def create_family():
    data = request.get_json(silent=True) or {}
    name = as_text(data.get("name"))
    address = as_text(data.get("address"))

    if not name or not address:
        return jsonify(error="Name and address are required"), 400

    family = Family(
        name=name,
        address=address,
        latitude=data.get("latitude"),
        longitude=data.get("longitude"),
        phone=data.get("phone"),
        email=data.get("email"),
    )
    db.session.add(family)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Family name already exists"), 400

    return jsonify(family.to_contact()), 201
