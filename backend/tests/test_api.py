"""
End-to-end tests for the HTTP API.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from app.core.config import settings
from app.services.access_gate import AccessGate

from factories import auth_header, create_test_art, make_png
from fakes import FrozenClock

API = "/api/v1"


def png_file(name: str = "logo.png", width: int = 64, height: int = 48):
    return {"file": (name, make_png(width, height), "image/png")}


@pytest.fixture
async def art_version(db_session, blob_store, project, test_user):
    return await create_test_art(db_session, blob_store, project, test_user)


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "Cache-Control" not in response.headers
    assert response.headers["X-Content-Type-Options"] == "nosniff"


class TestAuth:
    @pytest.mark.asyncio
    async def test_register_and_login(self, client: AsyncClient):
        response = await client.post(
            f"{API}/auth/register",
            json={"username": "designer", "email": "designer@example.com", "password": "s3cret-pass", "full_name": "Dee"},
        )
        assert response.status_code == 201
        assert response.json()["username"] == "designer"

        response = await client.post(f"{API}/auth/login", json={"username": "designer", "password": "s3cret-pass"})
        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["user"]["role"] == "user"
        assert data["expires_in"] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60

        response = await client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
        assert response.status_code == 200
        assert response.json()["email"] == "designer@example.com"

    @pytest.mark.asyncio
    async def test_register_duplicate(self, client: AsyncClient, test_user):
        response = await client.post(
            f"{API}/auth/register",
            json={"username": "testuser", "email": "other@example.com", "password": "password123"},
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_login_invalid_credentials(self, client: AsyncClient, test_user):
        response = await client.post(f"{API}/auth/login", json={"username": "testuser", "password": "wrongpassword"})

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client: AsyncClient):
        assert (await client.get(f"{API}/auth/me")).status_code == 401
        assert (await client.post(f"{API}/projects", json={"name": "X"})).status_code == 401

        response = await client.get(f"{API}/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


@pytest.mark.asyncio
async def test_project_art_and_versions(client: AsyncClient, auth_headers, blob_store):
    """Create a project, upload an art and a second version, then read them back."""
    response = await client.post(f"{API}/projects", json={"name": "Spring Campaign"}, headers=auth_headers)
    assert response.status_code == 201
    project_id = response.json()["id"]

    response = await client.post(
        f"{API}/arts",
        data={"project_id": project_id, "name": "Hero logo", "kind": "LOGO"},
        files=png_file(),
        headers=auth_headers,
    )
    assert response.status_code == 201
    created = response.json()
    art_id = created["art"]["id"]
    assert created["art"]["current_version_number"] == 1
    assert created["art"]["current_status"] == "DRAFT"
    assert created["version"]["source_file_ref"] == f"{art_id}/v1/source.png"
    assert {f["kind"] for f in created["version"]["files"]} == {"SOURCE", "PREVIEW"}

    response = await client.post(
        f"{API}/arts/{art_id}/versions",
        data={"review_required": "false"},
        files=png_file("logo-v2.png"),
        headers=auth_headers,
    )
    assert response.status_code == 201
    assert response.json()["version_number"] == 2
    assert response.json()["status"] == "PENDING_REVIEW"

    response = await client.get(f"{API}/arts/{art_id}/versions", headers=auth_headers)
    assert [v["version_number"] for v in response.json()] == [1, 2]

    response = await client.get(f"{API}/arts/{art_id}", headers=auth_headers)
    assert response.json()["current_version_number"] == 2

    response = await client.get(f"{API}/arts/{art_id}/versions/7", headers=auth_headers)
    assert response.status_code == 404

    assert blob_store.paths_under(f"{art_id}/v2/") == [f"{art_id}/v2/preview.jpg", f"{art_id}/v2/source.png"]


@pytest.mark.asyncio
async def test_upload_storage_failure(client: AsyncClient, auth_headers, blob_store, project):
    """Storage failures surface as 502 with the compensation result."""
    blob_store.fail_on_put.add("preview.jpg")

    response = await client.post(
        f"{API}/arts",
        data={"project_id": str(project.id), "name": "Broken"},
        files=png_file(),
        headers=auth_headers,
    )

    assert response.status_code == 502
    assert response.json()["cleanup_complete"] is True
    assert blob_store.blobs == {}


@pytest.mark.asyncio
async def test_attachments(client: AsyncClient, auth_headers, art_version):
    art, _ = art_version

    response = await client.post(
        f"{API}/arts/{art.id}/attachments",
        files=[
            ("files", ("notes.pdf", b"%PDF-1.4\n", "application/pdf")),
            ("files", ("palette.txt", b"#ff0000", "text/plain")),
        ],
        headers=auth_headers,
    )

    assert response.status_code == 201
    assert [f["kind"] for f in response.json()] == ["ATTACHMENT", "ATTACHMENT"]


@pytest.mark.asyncio
async def test_submit_twice_conflicts(client: AsyncClient, auth_headers, art_version):
    art, _ = art_version

    response = await client.post(f"{API}/arts/{art.id}/versions/1/submit", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "PENDING_REVIEW"

    response = await client.post(f"{API}/arts/{art.id}/versions/1/submit", headers=auth_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_approval_flow(client: AsyncClient, auth_headers, art_version, approver_a, approver_b):
    """Open a request for two approvers; one approval then one rejection rejects the version."""
    art, _ = art_version

    response = await client.post(
        f"{API}/arts/{art.id}/approval-requests",
        json={"rule": "ALL", "approver_ids": [str(approver_a.id), str(approver_b.id)]},
        headers=auth_headers,
    )
    assert response.status_code == 201
    request_id = response.json()["id"]

    response = await client.patch(
        f"{API}/approval-requests/{request_id}/decisions",
        json={"decision": "APPROVED"},
        headers=auth_header(approver_a),
    )
    assert response.status_code == 200
    assert response.json()["outcome"] == "PENDING"

    response = await client.patch(
        f"{API}/approval-requests/{request_id}/decisions",
        json={"decision": "REJECTED", "comment": "Too busy"},
        headers=auth_header(approver_b),
    )
    assert response.status_code == 200
    assert response.json()["outcome"] == "REJECTED"
    assert response.json()["closed_at"] is not None

    response = await client.get(f"{API}/arts/{art.id}/versions/1/approvals", headers=auth_headers)
    breakdown = response.json()
    assert breakdown["version_status"] == "REJECTED"
    assert {d["decision"] for d in breakdown["request"]["decisions"]} == {"APPROVED", "REJECTED"}

    response = await client.patch(
        f"{API}/approval-requests/{request_id}/decisions",
        json={"decision": "APPROVED"},
        headers=auth_header(approver_a),
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_decision_errors(client: AsyncClient, auth_headers, art_version, approver_a, approver_b):
    art, _ = art_version
    response = await client.post(
        f"{API}/arts/{art.id}/approval-requests",
        json={"rule": "ANY", "approver_ids": [str(approver_a.id)]},
        headers=auth_headers,
    )
    request_id = response.json()["id"]
    url = f"{API}/approval-requests/{request_id}/decisions"

    response = await client.patch(url, json={"decision": "APPROVED"}, headers=auth_header(approver_b))
    assert response.status_code == 403

    response = await client.patch(
        url, json={"decision": "APPROVED", "approver_ref": str(approver_b.id)}, headers=auth_header(approver_a)
    )
    assert response.status_code == 403

    response = await client.patch(url, json={"decision": "APPROVED"})
    assert response.status_code == 401

    response = await client.patch(url, json={"decision": "MAYBE"}, headers=auth_header(approver_a))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_override_permissions(client: AsyncClient, auth_headers, art_version, approver_a, admin_user):
    """Only the project owner or an admin can override."""
    art, _ = art_version
    await client.post(
        f"{API}/arts/{art.id}/approval-requests",
        json={"approver_ids": [str(approver_a.id)]},
        headers=auth_headers,
    )
    url = f"{API}/arts/{art.id}/versions/1/override"

    response = await client.post(url, json={"reason": "Please"}, headers=auth_header(approver_a))
    assert response.status_code == 403

    response = await client.post(url, json={"reason": "Signed off in meeting"}, headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["version_status"] == "APPROVED"
    assert data["override"]["previous_status"] == "IN_REVIEW"
    assert data["request"]["closed_at"] is not None

    response = await client.post(url, headers=auth_header(admin_user))
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_guest_feedback_through_link(client: AsyncClient, auth_headers, art_version):
    """A guest posts twice with one email and is one author; reads need the token."""
    art, version = art_version
    response = await client.post(f"{API}/arts/{art.id}/links", json={"expires_in_hours": 48}, headers=auth_headers)
    assert response.status_code == 201
    token = response.json()["token"]

    payload = {
        "version_id": str(version.id),
        "content": "Can the tagline be larger?",
        "token": token,
        "email": "g@x.com",
        "position": {"rel_x": 0.5, "rel_y": 1.2, "abs_x": 32, "abs_y": 58},
    }
    first = await client.post(f"{API}/feedback", json=payload)
    assert first.status_code == 201
    assert first.json()["author_kind"] == "GUEST"
    assert first.json()["position"]["rel_y"] == 1.0

    second = await client.post(f"{API}/feedback", json={**payload, "email": "G@X.COM", "position": None})
    assert second.status_code == 201
    assert second.json()["author_ref"] == first.json()["author_ref"]

    response = await client.get(f"{API}/arts/{art.id}/feedback", params={"token": token})
    assert response.status_code == 200
    versions = response.json()["versions"]
    assert [v["version_number"] for v in versions] == [1]
    assert len(versions[0]["items"]) == 2

    assert (await client.get(f"{API}/arts/{art.id}/feedback")).status_code == 401

    feedback_id = first.json()["id"]
    response = await client.post(
        f"{API}/feedback/{feedback_id}/replies",
        json={"content": "Yes, will do", "status_after": "IN_REVIEW"},
        headers=auth_headers,
    )
    assert response.status_code == 201
    assert response.json()["author_kind"] == "INTERNAL"

    response = await client.patch(
        f"{API}/feedback/{feedback_id}/status",
        json={"status": "RESOLVED", "token": token, "email": "g@x.com"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "RESOLVED"


@pytest.mark.asyncio
async def test_feedback_validation(client: AsyncClient, auth_headers, art_version):
    art, version = art_version

    response = await client.post(
        f"{API}/feedback",
        json={"version_id": str(version.id), "content": "Hm", "position": {"rel_x": 0.5, "rel_y": 0.5}},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["field"] == "position"

    link = await client.post(f"{API}/arts/{art.id}/links", json={}, headers=auth_headers)
    response = await client.post(
        f"{API}/feedback", json={"version_id": str(version.id), "content": "Hi", "token": link.json()["token"]}
    )
    assert response.status_code == 400
    assert response.json()["field"] == "email"


@pytest.mark.asyncio
async def test_read_only_guest_cannot_comment(client: AsyncClient, auth_headers, art_version):
    art, version = art_version
    link = await client.post(f"{API}/arts/{art.id}/links", json={"read_only": True}, headers=auth_headers)

    response = await client.post(
        f"{API}/feedback",
        json={"version_id": str(version.id), "content": "Hi", "token": link.json()["token"], "email": "v@x.com"},
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_audio_feedback_upload(client: AsyncClient, auth_headers, art_version, blob_store):
    art, version = art_version

    response = await client.post(
        f"{API}/feedback/audio",
        data={"version_id": str(version.id), "content": "Voice note"},
        files={"file": ("note.webm", b"\x1aE\xdf\xa3 webm", "audio/webm")},
        headers=auth_headers,
    )

    assert response.status_code == 201
    assert response.json()["kind"] == "AUDIO"
    assert response.json()["audio_ref"] in blob_store.blobs


@pytest.mark.asyncio
async def test_shared_view(client: AsyncClient, auth_headers, art_version):
    art, _ = art_version
    link = await client.post(f"{API}/arts/{art.id}/links", json={"can_download": True}, headers=auth_headers)

    response = await client.get(f"{API}/shared/{link.json()['token']}")

    assert response.status_code == 200
    data = response.json()
    assert data["art"]["id"] == str(art.id)
    assert data["version"]["version_number"] == 1
    assert data["capability"]["can_download"] is True
    assert data["preview_url"].startswith(f"memory://{art.id}/v1/preview.jpg")
    assert data["download_url"].startswith(f"memory://{art.id}/v1/source.png")
    assert response.headers["Cache-Control"] == "no-store"
    assert response.headers["Referrer-Policy"] == "no-referrer"


@pytest.mark.asyncio
async def test_unknown_and_expired_links_look_identical(client: AsyncClient, db_session, art_version):
    """Callers cannot tell an expired link from one that never existed."""
    art, version = art_version
    past = FrozenClock(datetime.now(timezone.utc) - timedelta(days=2))
    expired = await AccessGate(clock=past).create_link(db_session, art.id, expires_in=timedelta(hours=1))

    unknown_response = await client.get(f"{API}/shared/definitely-not-a-token")
    expired_response = await client.get(f"{API}/shared/{expired.token}")

    assert unknown_response.status_code == expired_response.status_code == 404
    assert unknown_response.json() == expired_response.json()
    assert expired_response.json()["detail"] == "Link unavailable"

    response = await client.post(
        f"{API}/feedback",
        json={"version_id": str(version.id), "content": "Hi", "token": expired.token, "email": "g@x.com"},
    )
    assert response.status_code == 404
    assert response.json() == unknown_response.json()


@pytest.mark.asyncio
async def test_revoke_link(client: AsyncClient, auth_headers, art_version):
    art, _ = art_version
    link = (await client.post(f"{API}/arts/{art.id}/links", json={}, headers=auth_headers)).json()

    response = await client.get(f"{API}/arts/{art.id}/links", headers=auth_headers)
    assert [item["id"] for item in response.json()] == [link["id"]]

    response = await client.delete(f"{API}/links/{link['id']}", headers=auth_headers)
    assert response.status_code == 204

    assert (await client.get(f"{API}/shared/{link['token']}")).status_code == 404
    assert (await client.delete(f"{API}/links/{link['id']}", headers=auth_headers)).status_code == 404


@pytest.mark.asyncio
async def test_link_management_needs_project_owner(
    client: AsyncClient, auth_headers, art_version, approver_a, admin_user
):
    art, _ = art_version
    link = (await client.post(f"{API}/arts/{art.id}/links", json={}, headers=auth_headers)).json()
    stranger = auth_header(approver_a)

    response = await client.post(f"{API}/arts/{art.id}/links", json={}, headers=stranger)
    assert response.status_code == 403
    response = await client.get(f"{API}/arts/{art.id}/links", headers=stranger)
    assert response.status_code == 403
    response = await client.delete(f"{API}/links/{link['id']}", headers=stranger)
    assert response.status_code == 403

    response = await client.get(f"{API}/arts/{art.id}/links", headers=auth_headers)
    assert [item["id"] for item in response.json()] == [link["id"]]

    response = await client.get(f"{API}/arts/{art.id}/links", headers=auth_header(admin_user))
    assert response.status_code == 200
