import pytest

from models import db
from models.book import Book
from models.borrowing import Borrowing
from routes.borrowings import TransitionConflict, apply_transition

DUE = "2026-12-01"


@pytest.fixture()
def owner(register_member):
    return register_member("lender@example.com", "Lenders")


@pytest.fixture()
def borrower(register_member):
    return register_member("reader@example.com", "Readers")


@pytest.fixture()
def book(owner):
    resp = owner.post("/books", json={"title": "Middlemarch", "author": "George Eliot"})
    return resp.get_json()


def _request(client, book_id):
    resp = client.post("/borrowings", json={"book_id": book_id, "due_date": DUE})
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def _book_available(book_id):
    db.session.expire_all()
    return db.session.get(Book, book_id).is_available


def test_full_workflow(owner, borrower, book):
    borrowing = _request(borrower, book["id"])
    assert borrowing["status"] == "REQUESTED"
    assert borrowing["borrower_id"] == borrower.user["id"]
    assert _book_available(book["id"])

    approved = owner.put(f"/borrowings/{borrowing['id']}", json={"status": "APPROVED"})
    assert approved.status_code == 200
    assert approved.get_json()["status"] == "APPROVED"
    assert not _book_available(book["id"])

    picked = owner.put(f"/borrowings/{borrowing['id']}", json={"status": "PICKED_UP"})
    assert picked.get_json()["status"] == "PICKED_UP"
    assert not _book_available(book["id"])

    returned = owner.put(f"/borrowings/{borrowing['id']}", json={"status": "RETURNED"})
    assert returned.status_code == 200
    assert returned.get_json()["returned_at"] is not None
    assert _book_available(book["id"])


def test_workflow_cannot_skip_or_go_back(owner, borrower, book):
    borrowing = _request(borrower, book["id"])
    skip = owner.put(f"/borrowings/{borrowing['id']}", json={"status": "RETURNED"})
    assert skip.status_code == 409

    owner.put(f"/borrowings/{borrowing['id']}", json={"status": "APPROVED"})
    back = owner.put(f"/borrowings/{borrowing['id']}", json={"status": "REQUESTED"})
    assert back.status_code == 409

    assert owner.put(f"/borrowings/{borrowing['id']}", json={"status": "LOST"}).status_code == 400
    assert owner.put("/borrowings/9999", json={"status": "APPROVED"}).status_code == 404


def test_only_owner_family_moves_workflow(borrower, book):
    borrowing = _request(borrower, book["id"])
    resp = borrower.put(f"/borrowings/{borrowing['id']}", json={"status": "APPROVED"})
    assert resp.status_code == 403


def test_second_approval_for_same_book_conflicts(owner, borrower, register_member, book):
    other = register_member("other@example.com", "Others")
    first = _request(borrower, book["id"])
    second = _request(other, book["id"])

    assert owner.put(f"/borrowings/{first['id']}", json={"status": "APPROVED"}).status_code == 200
    resp = owner.put(f"/borrowings/{second['id']}", json={"status": "APPROVED"})
    assert resp.status_code == 409

    db.session.expire_all()
    assert db.session.get(Borrowing, second["id"]).status == "REQUESTED"
    assert db.session.get(Borrowing, first["id"]).status == "APPROVED"


def test_conflict_rolls_back_status_change(app, borrower, book):
    borrowing = _request(borrower, book["id"])
    # book lent out behind the workflow's back
    Book.query.filter_by(id=book["id"]).update({"is_available": False})
    db.session.commit()

    row = db.session.get(Borrowing, borrowing["id"])
    with pytest.raises(TransitionConflict):
        apply_transition(row, "APPROVED")

    db.session.expire_all()
    assert db.session.get(Borrowing, borrowing["id"]).status == "REQUESTED"


def test_stale_status_is_refused(borrower, book):
    borrowing = _request(borrower, book["id"])
    row = db.session.get(Borrowing, borrowing["id"])
    # another request already approved it
    Borrowing.query.filter_by(id=row.id).update({"status": "APPROVED"}, synchronize_session=False)
    db.session.commit()
    stale = Borrowing(id=row.id, book_id=row.book_id, borrower_id=row.borrower_id, status="REQUESTED")
    with pytest.raises(TransitionConflict):
        apply_transition(stale, "APPROVED")


def test_request_rules(owner, borrower, book):
    assert owner.post("/borrowings", json={"book_id": book["id"], "due_date": DUE}).status_code == 400

    _request(borrower, book["id"])
    dup = borrower.post("/borrowings", json={"book_id": book["id"], "due_date": DUE})
    assert dup.status_code == 400

    assert borrower.post("/borrowings", json={"book_id": book["id"]}).status_code == 400
    assert borrower.post("/borrowings", json={"book_id": book["id"], "due_date": "soon"}).status_code == 400
    assert borrower.post("/borrowings", json={"book_id": 9999, "due_date": DUE}).status_code == 400


def test_unavailable_book_cannot_be_requested(owner, borrower, register_member, book):
    first = _request(borrower, book["id"])
    owner.put(f"/borrowings/{first['id']}", json={"status": "APPROVED"})

    late = register_member("late@example.com", "Latecomers")
    resp = late.post("/borrowings", json={"book_id": book["id"], "due_date": DUE})
    assert resp.status_code == 400


def test_owner_cannot_mark_lent_book_available(owner, borrower, book):
    first = _request(borrower, book["id"])
    owner.put(f"/borrowings/{first['id']}", json={"status": "APPROVED"})
    resp = owner.put(f"/books/{book['id']}", json={"is_available": True})
    assert resp.status_code == 409


def test_listing_and_detail(client, owner, borrower, book):
    borrowing = _request(borrower, book["id"])
    assert client.get("/borrowings").status_code == 401

    listing = owner.get(f"/borrowings?book_id={book['id']}&status=requested").get_json()
    assert [b["id"] for b in listing["borrowings"]] == [borrowing["id"]]
    assert owner.get("/borrowings?status=RETURNED").get_json()["pagination"]["total"] == 0

    detail = borrower.get(f"/borrowings/{borrowing['id']}").get_json()
    assert detail["book"]["family"]["name"] == "Lenders"
    assert detail["borrower"]["family"]["name"] == "Readers"
    assert borrower.get("/borrowings/9999").status_code == 404

    book_detail = owner.get(f"/books/{book['id']}").get_json()
    assert [b["id"] for b in book_detail["borrowings"]] == [borrowing["id"]]
