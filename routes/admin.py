import json
from datetime import datetime, timedelta

from flask import Blueprint, jsonify, g, request
from sqlalchemy import func, or_

from models import db
from models.admin_audit import AdminAudit
from models.book import Book
from models.borrowing import Borrowing
from models.family import Family
from models.user import User, ROLES
from security.rbac import require_admin
from utils.audit import log_admin_action
from utils.parsing import parse_bool

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


@admin_bp.get("/users")
@require_admin
def list_users():
    search = (request.args.get("search") or "").strip()
    role = (request.args.get("role") or "").strip().upper()
    is_active = parse_bool(request.args.get("is_active"))

    q = User.query
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    if role in ROLES:
        q = q.filter(User.role == role)
    if is_active is not None:
        q = q.filter(User.is_active.is_(is_active))

    users = q.order_by(User.created_at.desc(), User.id.desc()).all()
    return jsonify(users=[
        {
            "id": u.id,
            "name": u.name,
            "email": u.email,
            "role": u.role,
            "is_active": u.is_active,
            "created_at": u.created_at.isoformat(),
            "family": {"id": u.family.id, "name": u.family.name} if u.family else None,
        }
        for u in users
    ]), 200


@admin_bp.patch("/users/<int:user_id>")
@require_admin
def update_user(user_id: int):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify(error="Invalid payload"), 400

    role = data.get("role")
    is_active = data.get("is_active")

    if role is not None and role not in ROLES:
        return jsonify(error="Invalid role"), 400
    if is_active is not None and not isinstance(is_active, bool):
        return jsonify(error="Invalid is_active value"), 400

    user = db.session.get(User, user_id)
    if not user:
        return jsonify(error="User not found"), 404

    if user.id == g.user.id and (role == "MEMBER" or is_active is False):
        return jsonify(error="Cannot demote or deactivate yourself"), 403

    old_role, old_active = user.role, user.is_active
    if role is not None:
        user.role = role
    if is_active is not None:
        user.is_active = is_active
    db.session.commit()

    if role is not None and role != old_role:
        log_admin_action(
            "PROMOTE_USER" if role == "ADMIN" else "DEMOTE_USER",
            actor_user_id=g.user.id,
            target_user_id=user.id,
            metadata={"from": old_role, "to": role},
        )
    if is_active is not None and is_active != old_active:
        log_admin_action(
            "REACTIVATE_USER" if is_active else "DEACTIVATE_USER",
            actor_user_id=g.user.id,
            target_user_id=user.id,
            metadata={"from": old_active, "to": is_active},
        )

    return jsonify(user={
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "is_active": user.is_active,
    }), 200


@admin_bp.get("/books")
@require_admin
def list_books():
    search = (request.args.get("search") or "").strip()
    q = Book.query
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(Book.title.ilike(pattern), Book.author.ilike(pattern)))

    books = q.order_by(Book.created_at.desc(), Book.id.desc()).all()
    return jsonify(books=[
        {
            "id": b.id,
            "title": b.title,
            "author": b.author,
            "is_available": b.is_available,
            "created_at": b.created_at.isoformat(),
            "family": {"id": b.family.id, "name": b.family.name},
        }
        for b in books
    ]), 200


@admin_bp.delete("/books/<int:book_id>")
@require_admin
def delete_book(book_id: int):
    book = db.session.get(Book, book_id)
    if not book:
        return jsonify(error="Book not found"), 404

    title, family_id = book.title, book.family_id
    Borrowing.query.filter_by(book_id=book.id).delete(synchronize_session=False)
    db.session.delete(book)
    db.session.commit()

    log_admin_action(
        "DELETE_BOOK",
        actor_user_id=g.user.id,
        target_book_id=book_id,
        metadata={"title": title, "family_id": family_id},
    )
    return jsonify(status="ok"), 200


@admin_bp.get("/families")
@require_admin
def list_families():
    search = (request.args.get("search") or "").strip()
    empty_only = request.args.get("empty") == "true"

    q = Family.query
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(Family.name.ilike(pattern), Family.address.ilike(pattern)))
    if empty_only:
        q = q.filter(~Family.users.any())

    families = q.order_by(Family.created_at.desc(), Family.id.desc()).all()
    ids = [f.id for f in families]
    members, books = {}, {}
    if ids:
        members = dict(
            db.session.query(User.family_id, func.count(User.id))
            .filter(User.family_id.in_(ids)).group_by(User.family_id).all()
        )
        books = dict(
            db.session.query(Book.family_id, func.count(Book.id))
            .filter(Book.family_id.in_(ids)).group_by(Book.family_id).all()
        )

    return jsonify(families=[
        {
            **f.to_contact(),
            "created_at": f.created_at.isoformat(),
            "user_count": members.get(f.id, 0),
            "book_count": books.get(f.id, 0),
        }
        for f in families
    ]), 200


@admin_bp.delete("/families/<int:family_id>")
@require_admin
def delete_family(family_id: int):
    family = db.session.get(Family, family_id)
    if not family:
        return jsonify(error="Family not found"), 404

    if User.query.filter_by(family_id=family.id).count() > 0:
        return jsonify(error="Family has members"), 400

    name = family.name
    book_ids = [b.id for b in Book.query.filter_by(family_id=family.id).all()]
    if book_ids:
        Borrowing.query.filter(Borrowing.book_id.in_(book_ids)).delete(synchronize_session=False)
    Book.query.filter_by(family_id=family.id).delete(synchronize_session=False)
    Family.query.filter_by(id=family.id).delete(synchronize_session=False)
    db.session.commit()

    log_admin_action(
        "DELETE_EMPTY_FAMILY",
        actor_user_id=g.user.id,
        target_family_id=family_id,
        metadata={"name": name},
    )
    return jsonify(status="ok"), 200


@admin_bp.get("/audit")
@require_admin
def list_audits():
    limit = request.args.get("limit", 25, type=int) or 25
    limit = min(max(limit, 1), 100)

    rows = (
        AdminAudit.query
        .order_by(AdminAudit.created_at.desc(), AdminAudit.id.desc())
        .limit(limit)
        .all()
    )
    return jsonify(audits=[
        {
            "id": a.id,
            "action": a.action,
            "target_user_id": a.target_user_id,
            "target_family_id": a.target_family_id,
            "target_book_id": a.target_book_id,
            "metadata": json.loads(a.metadata_json) if a.metadata_json else None,
            "created_at": a.created_at.isoformat(),
            "actor": {"id": a.actor.id, "name": a.actor.name, "email": a.actor.email},
        }
        for a in rows
    ]), 200


@admin_bp.get("/health")
@require_admin
def health_stats():
    last24h = datetime.utcnow() - timedelta(hours=24)
    return jsonify(
        stats={
            "users": User.query.count(),
            "families": Family.query.count(),
            "books": Book.query.count(),
            "new_users_last_24h": User.query.filter(User.created_at >= last24h).count(),
        },
    ), 200
