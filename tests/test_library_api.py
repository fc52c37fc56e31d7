from __future__ import annotations

import pytest

from app.errors import NotFoundError
from app.services import storage
from models.store import get_store


class FakeS3:
    def __init__(self) -> None:
        self.calls: list[dict] = []

    def generate_presigned_url(self, operation, Params, ExpiresIn):
        self.calls.append({"operation": operation, **Params, "expires": ExpiresIn})
        return f"https://signed.example.com/{Params['Bucket']}/{Params['Key']}"


@pytest.fixture()
def library(app):
    store = get_store()
    return {
        "free": store.insert(
            "documents",
            {
                "title": "Grade 10 Biology Notes",
                "description": "Cells and genetics",
                "subject": "Biology",
                "grade": 10,
                "author": "Ministry of Education",
                "file_url": "s3://smartstudy-docs/biology/g10.pdf",
                "tags": ["notes"],
            },
        ),
        "premium": store.insert(
            "documents",
            {
                "title": "Biology Past Papers",
                "subject": "Biology",
                "grade": 12,
                "is_premium": True,
                "file_url": "https://cdn.example.com/papers.pdf",
                "downloads": 7,
            },
        ),
        "video": store.insert(
            "videos",
            {"title": "Biology: Mitosis", "subject": "Biology", "grade": 10, "instructor": "Ato Bekele"},
        ),
    }


def test_s3_locations_get_presigned_urls():
    fake = FakeS3()

    url = storage.download_url("s3://bucket/path/file.pdf", s3_client=fake)

    assert url == "https://signed.example.com/bucket/path/file.pdf"
    assert fake.calls == [{"operation": "get_object", "Bucket": "bucket", "Key": "path/file.pdf", "expires": 900}]
    assert storage.download_url("https://cdn.example.com/a.pdf") == "https://cdn.example.com/a.pdf"
    assert storage.download_url(None) is None


@pytest.mark.parametrize("location", ["s3://bucket", "s3://bucket/", "s3:///key.pdf"])
def test_malformed_s3_location_is_not_found(location):
    fake = FakeS3()

    with pytest.raises(NotFoundError):
        storage.download_url(location, s3_client=fake)

    assert fake.calls == []


def test_download_with_malformed_location_returns_404(client, make_user, auth_headers):
    document = get_store().insert("documents", {"title": "Broken Link", "file_url": "s3://smartstudy-docs"})

    response = client.get(f"/api/documents/{document['id']}/download", headers=auth_headers(make_user()))

    assert response.status_code == 404
    assert get_store().get_by_id("documents", document["id"])["downloads"] == 0


def test_document_listing_filters_and_paginates(client, library):
    payload = client.get("/api/documents?subject=Biology&limit=1&sort=popular").get_json()["data"]

    assert payload["total"] == 2
    assert payload["pages"] == 2
    assert payload["items"][0]["title"] == "Biology Past Papers"

    tagged = client.get("/api/documents?tag=notes").get_json()["data"]
    assert [item["title"] for item in tagged["items"]] == ["Grade 10 Biology Notes"]
    assert client.get("/api/documents?sort=random").status_code == 400


def test_premium_download_requires_premium(client, library, make_user, auth_headers, monkeypatch):
    monkeypatch.setattr(storage, "make_boto_client", lambda service: FakeS3())
    student = make_user()
    premium_id = library["premium"]["id"]

    denied = client.get(f"/api/documents/{premium_id}/download", headers=auth_headers(student))
    assert denied.status_code == 403

    member = make_user(is_premium=True)
    allowed = client.get(f"/api/documents/{premium_id}/download", headers=auth_headers(member))
    assert allowed.status_code == 200
    assert allowed.get_json()["data"] == {"download_url": "https://cdn.example.com/papers.pdf", "downloads": 8}

    free = client.get(f"/api/documents/{library['free']['id']}/download", headers=auth_headers(student))
    assert free.get_json()["data"]["download_url"] == "https://signed.example.com/smartstudy-docs/biology/g10.pdf"


@pytest.mark.integration
def test_video_like_complete_and_view(client, library, make_user, auth_headers):
    headers = auth_headers(make_user())
    video_id = library["video"]["id"]

    liked = client.post(f"/api/videos/{video_id}/like", json={"liked": True}, headers=headers)
    assert liked.get_json()["data"] == {"likes": 1, "user_has_liked": True}
    assert liked.get_json()["message"] == "Video liked"

    completed = client.post(f"/api/videos/{video_id}/complete", json={}, headers=headers)
    assert completed.get_json()["data"]["xp_gained"] == 100

    viewed = client.post(f"/api/videos/{video_id}/view", headers=headers)
    assert viewed.get_json()["data"] == {"views": 1}

    detail = client.get(f"/api/videos/{video_id}", headers=headers).get_json()["data"]
    assert detail["user_has_liked"] is True
    assert detail["user_has_completed"] is True
    assert detail["is_bookmarked"] is False

    assert client.post("/api/videos/missing/view", headers=headers).status_code == 404
    assert client.post(f"/api/videos/{video_id}/like", json={"liked": "yes"}, headers=headers).status_code == 400


def test_search_hides_premium_from_free_users(client, library, make_user, auth_headers):
    anonymous = client.get("/api/search?q=biology").get_json()["data"]
    assert [doc["title"] for doc in anonymous["documents"]] == ["Grade 10 Biology Notes"]
    assert [video["title"] for video in anonymous["videos"]] == ["Biology: Mitosis"]
    assert anonymous["total"] == 2

    member = auth_headers(make_user(is_premium=True))
    premium = client.get("/api/search?q=biology&type=documents", headers=member).get_json()["data"]
    assert len(premium["documents"]) == 2
    assert premium["videos"] == []


def test_search_validates_term_and_type(client):
    assert client.get("/api/search?q=a").status_code == 400
    assert client.get("/api/search?q=cells&type=careers").status_code == 400


def test_bookmarks_and_dashboard(client, library, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)
    document_id = library["free"]["id"]

    first = client.post("/api/users/bookmarks", json={"item_id": document_id, "item_type": "document"},
                        headers=headers)
    again = client.post("/api/users/bookmarks", json={"item_id": document_id, "item_type": "document"},
                        headers=headers)
    assert first.status_code == 201
    assert again.status_code == 200
    assert again.get_json()["message"] == "Item already bookmarked"

    bookmarks = client.get("/api/users/bookmarks", headers=headers).get_json()["data"]
    assert len(bookmarks) == 1
    assert bookmarks[0]["item"]["title"] == "Grade 10 Biology Notes"

    assert client.get(f"/api/documents/{document_id}", headers=headers).get_json()["data"]["is_bookmarked"] is True

    dashboard = client.get("/api/dashboard?date=2025-03-10", headers=headers).get_json()["data"]
    assert dashboard["user"]["level"] == 1
    assert dashboard["today"] == {"date": "2025-03-10", "events": [], "completed": 0, "total": 0, "progress": 0}
    assert len(dashboard["recent_bookmarks"]) == 1

    removed = client.delete(f"/api/users/bookmarks/document/{document_id}", headers=headers)
    assert removed.status_code == 200
    assert client.delete(f"/api/users/bookmarks/document/{document_id}", headers=headers).status_code == 404


def test_advanced_search_filters_by_grade_and_type(client, library, make_user, auth_headers):
    author = make_user(name="Selam")
    get_store().insert(
        "forum_posts",
        {"title": "Biology mock exam tips", "content": "Which chapters?", "author_id": author["id"],
         "subject": "Biology", "grade": 12},
    )
    member = auth_headers(make_user(is_premium=True))

    payload = client.post(
        "/api/search/advanced",
        json={"query": "biology", "grades": [12], "subjects": ["Biology"], "sortBy": "title"},
        headers=member,
    ).get_json()["data"]

    assert [row["title"] for row in payload["results"]] == ["Biology mock exam tips", "Biology Past Papers"]
    assert [row["type"] for row in payload["results"]] == ["post", "document"]
    assert payload["results"][0]["author"] == "Selam"
    assert payload["breakdown"] == {"documents": 1, "videos": 0, "forum": 1}
    assert payload["has_more"] is False

    documents_only = client.post(
        "/api/search/advanced", json={"query": "biology", "types": ["documents"], "limit": 1}
    ).get_json()["data"]
    assert [row["title"] for row in documents_only["results"]] == ["Grade 10 Biology Notes"]


def test_advanced_search_validates_body(client):
    assert client.post("/api/search/advanced", json={"query": "b"}).status_code == 400
    assert client.post("/api/search/advanced", json={"query": "bio", "types": ["careers"]}).status_code == 400
    assert client.post("/api/search/advanced", json={"query": "bio", "grades": ["ten"]}).status_code == 400
    assert client.post("/api/search/advanced", json={"query": "bio", "offset": -1}).status_code == 400


def test_suggest_returns_unique_title_prefixes(client, library):
    get_store().insert("videos", {"title": "Grade 10 Biology Notes"})

    payload = client.get("/api/search/suggest?q=grade").get_json()["data"]

    assert payload == {"suggestions": ["Grade 10 Biology Notes"], "count": 1}
    assert client.get("/api/search/suggest").get_json()["data"] == {"suggestions": [], "count": 0}
    capped = client.get("/api/search/suggest?q=bio&limit=50").get_json()["data"]
    assert capped["suggestions"] == ["Biology Past Papers", "Biology: Mitosis"]
