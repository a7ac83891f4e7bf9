import pytest

from app.routers import reviews as reviews_router
from conftest import register


@pytest.mark.parametrize("rating", [0, 6, -1])
def test_rating_outside_range_is_rejected(client, user_headers, book, rating):
    response = client.post("/reviews", json={"book_id": book["id"], "rating": rating}, headers=user_headers)
    assert response.status_code == 400


def test_rating_is_required(client, user_headers, book):
    response = client.post("/reviews", json={"book_id": book["id"], "comment": "nice"}, headers=user_headers)
    assert response.status_code == 400


def test_resubmitting_replaces_review(client, user_headers, book):
    first = client.post(
        "/reviews", json={"book_id": book["id"], "rating": 2, "comment": "meh"}, headers=user_headers
    )
    assert first.status_code == 201

    second = client.post(
        "/reviews", json={"book_id": book["id"], "rating": 5, "comment": "grew on me"}, headers=user_headers
    )
    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]

    reviews = client.get("/reviews", params={"book_id": book["id"]}).json()
    assert len(reviews) == 1
    assert reviews[0]["rating"] == 5
    assert reviews[0]["comment"] == "grew on me"


def test_list_includes_username_and_book_title_newest_first(client, user_headers, book):
    other = register(client, "bob")
    client.post("/reviews", json={"book_id": book["id"], "rating": 4}, headers=user_headers)
    client.post("/reviews", json={"book_id": book["id"], "rating": 3}, headers=other)

    reviews = client.get("/reviews").json()
    assert [r["username"] for r in reviews] == ["bob", "alice"]
    assert {r["book_title"] for r in reviews} == {book["title"]}


def test_review_unknown_book_is_404(client, user_headers):
    assert client.post("/reviews", json={"book_id": 999, "rating": 3}, headers=user_headers).status_code == 404


def test_review_requires_authentication(client, book):
    assert client.post("/reviews", json={"book_id": book["id"], "rating": 3}).status_code == 401


def test_delete_review_permissions(client, admin_headers, user_headers, book):
    review = client.post("/reviews", json={"book_id": book["id"], "rating": 3}, headers=user_headers).json()
    other = register(client, "bob")

    assert client.delete(f"/reviews/{review['id']}", headers=other).status_code == 403
    assert client.delete(f"/reviews/{review['id']}", headers=user_headers).status_code == 200
    assert client.delete(f"/reviews/{review['id']}", headers=admin_headers).status_code == 404
    assert client.get("/reviews").json() == []


def test_concurrent_first_submission_turns_into_update(client, user_headers, book, monkeypatch):
    first = client.post("/reviews", json={"book_id": book["id"], "rating": 2}, headers=user_headers)
    assert first.status_code == 201

    lookups = []
    find_review = reviews_router.find_review

    # The first lookup misses the row, as if another request inserted it in the meantime
    async def stale_lookup(db, user_id, book_id):
        lookups.append(book_id)
        if len(lookups) == 1:
            return None
        return await find_review(db, user_id, book_id)

    monkeypatch.setattr(reviews_router, "find_review", stale_lookup)

    second = client.post(
        "/reviews", json={"book_id": book["id"], "rating": 4, "comment": "better"}, headers=user_headers
    )
    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]
    assert len(lookups) == 2

    reviews = client.get("/reviews", params={"book_id": book["id"]}).json()
    assert [(r["rating"], r["comment"]) for r in reviews] == [(4, "better")]
