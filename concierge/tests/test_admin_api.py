import io
import json
import os
from datetime import datetime, timedelta, timezone

from PIL import Image
from sqlalchemy.exc import SQLAlchemyError

from concierge.licensing import generate_keypair
from concierge.models import AuditLog, Media, Profile, db

from .conftest import (
    ADMIN_EMAIL,
    ADMIN_PASSWORD,
    USER_PASSWORD,
    auth_headers,
    bearer,
    build_test_app,
    create_user,
    login,
)


def png_bytes(size=(4, 4)):
    buffer = io.BytesIO()
    Image.new("RGB", size, (26, 77, 46)).save(buffer, format="PNG")
    buffer.seek(0)
    return buffer


def test_login_me_and_logout(app):
    client = app.test_client()
    data = login(client)
    assert data["csrfToken"]
    assert data["user"]["role"] == "admin"
    assert "users:write" in data["permissions"]

    headers = bearer(data["token"])
    me = client.get("/api/admin/me", headers=headers)
    assert me.status_code == 200
    assert me.get_json()["user"]["email"] == ADMIN_EMAIL
    assert len(me.get_json()["permissions"]) == 13

    assert client.post("/api/admin/logout", headers=headers).status_code == 200
    assert client.get("/api/admin/me", headers=headers).status_code == 401

    with app.app_context():
        actions = [entry.action for entry in AuditLog.query.order_by(AuditLog.id).all()]
    assert actions == ["auth.login", "auth.logout"]


def test_login_rejects_bad_credentials(client):
    response = client.post("/api/admin/login", json={"email": ADMIN_EMAIL, "password": "wrong-password"})
    assert response.status_code == 401
    assert response.get_json() == {"error": "Invalid email or password."}

    response = client.post("/api/admin/login", json={"email": "nobody@example.com", "password": ADMIN_PASSWORD})
    assert response.status_code == 401
    assert client.post("/api/admin/login", json={"email": ADMIN_EMAIL}).status_code == 400


def test_login_rate_limit_blocks_after_threshold(tmp_path):
    app = build_test_app(tmp_path, {"ADMIN_LOGIN_LIMIT": 2})
    client = app.test_client()
    for _ in range(2):
        response = client.post("/api/admin/login", json={"email": ADMIN_EMAIL, "password": "wrong-password"})
        assert response.status_code == 401

    blocked = client.post("/api/admin/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert blocked.status_code == 429
    assert int(blocked.headers["Retry-After"]) >= 1


def test_cookie_session_requires_csrf_header_for_writes(app):
    client = app.test_client()
    data = login(client)

    assert client.get("/api/admin/me").status_code == 200

    body = {"slug": "cookie-banner", "message": "Set through the cookie session."}
    assert client.post("/api/admin/banners", json=body).status_code == 401
    response = client.post("/api/admin/banners", json=body, headers={"X-CSRF-Token": data["csrfToken"]})
    assert response.status_code == 200


def test_expired_sessions_are_rejected(tmp_path):
    app = build_test_app(tmp_path, {"ADMIN_SESSION_TTL_SECONDS": -1})
    token = login(app.test_client())["token"]
    assert app.test_client().get("/api/admin/me", headers=bearer(token)).status_code == 401


def test_admin_api_responses_are_not_cached(client, admin_headers):
    response = client.get("/api/admin/services", headers=admin_headers)
    assert response.headers["Cache-Control"] == "no-store"
    assert response.headers["X-Robots-Tag"] == "noindex, nofollow, noarchive"


def test_dashboard_counts(client, admin_headers):
    client.post("/api/contact", json={"name": "Lead", "email": "lead@example.com", "message": "Interested."})
    client.post("/api/chat/sessions", json={"visitorId": "visitor-dashboard-1"})
    response = client.get("/api/admin/dashboard", headers=admin_headers)
    assert response.status_code == 200
    data = response.get_json()
    assert data["content"]["services"] == 0
    assert data["newRequests"] == 1
    assert data["activeChats"] == 1
    assert data["unreadMessages"] == 0


def test_user_management_and_demotion(app, client, admin_headers):
    response = client.post(
        "/api/admin/users",
        json={"email": "second.admin@example.com", "password": USER_PASSWORD, "fullName": "Second Admin", "role": "admin"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    users = response.get_json()["users"]
    second = next(user for user in users if user["email"] == "second.admin@example.com")
    assert second["role"] == "admin"

    second_headers = auth_headers(app, "second.admin@example.com", USER_PASSWORD)
    allowed = client.post(
        "/api/admin/users",
        json={"email": "viewer.one@example.com", "password": USER_PASSWORD},
        headers=second_headers,
    )
    assert allowed.status_code == 200

    demoted = client.put(f"/api/admin/users/{second['id']}/role", json={"role": "editor"}, headers=admin_headers)
    assert demoted.status_code == 200
    assert next(u for u in demoted.get_json()["users"] if u["id"] == second["id"])["role"] == "editor"

    blocked = client.post(
        "/api/admin/users",
        json={"email": "viewer.two@example.com", "password": USER_PASSWORD},
        headers=second_headers,
    )
    assert blocked.status_code == 403
    assert blocked.get_json() == {"error": "Forbidden"}

    with app.app_context():
        actions = [entry.action for entry in AuditLog.query.order_by(AuditLog.id).all()]
        role_update = AuditLog.query.filter_by(action="user.role.update").one()
        assert role_update.details == {"id": second["id"], "role": "editor"}
        assert role_update.resource == "profiles"
    assert actions.count("user.create") == 2


def test_user_creation_validation(client, admin_headers):
    weak = client.post("/api/admin/users", json={"email": "weak@example.com", "password": "short"}, headers=admin_headers)
    assert weak.status_code == 400
    assert weak.get_json()["error"].startswith("password:")

    duplicate = client.post(
        "/api/admin/users",
        json={"email": ADMIN_EMAIL, "password": USER_PASSWORD},
        headers=admin_headers,
    )
    assert duplicate.status_code == 400

    bad_role = client.post(
        "/api/admin/users",
        json={"email": "owner@example.com", "password": USER_PASSWORD, "role": "owner"},
        headers=admin_headers,
    )
    assert bad_role.status_code == 400


def test_last_admin_cannot_be_demoted(app, client, admin_headers):
    with app.app_context():
        admin_id = Profile.query.filter_by(email=ADMIN_EMAIL).one().id
    response = client.put(f"/api/admin/users/{admin_id}/role", json={"role": "viewer"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.get_json() == {"error": "Cannot remove the last admin."}

    assert client.put(f"/api/admin/users/{admin_id}/role", json={"role": "root"}, headers=admin_headers).status_code == 400
    assert client.put("/api/admin/users/9999/role", json={"role": "viewer"}, headers=admin_headers).status_code == 404


def test_unknown_stored_role_is_treated_as_viewer(app, client):
    user_id = create_user(app, "legacy@example.com", "viewer")
    with app.app_context():
        db.session.get(Profile, user_id).role = "superuser"
        db.session.commit()
    headers = auth_headers(app, "legacy@example.com", USER_PASSWORD)
    assert client.get("/api/admin/me", headers=headers).get_json()["user"]["role"] == "viewer"
    assert client.get("/api/admin/users", headers=headers).status_code == 403


def test_theme_tokens_read_through_defaults(app, client, admin_headers, editor_headers):
    response = client.get("/api/admin/themes?tenantId=sewa", headers=admin_headers)
    assert response.status_code == 200
    assert response.get_json()["tokens"]["colors"]["primary"] == "#1a4d2e"

    updated = client.put(
        "/api/admin/themes",
        json={"tenantId": "sewa", "tokens": {"colors": {"primary": "#000000"}}},
        headers=admin_headers,
    )
    assert updated.status_code == 200
    assert updated.get_json() == {"tenantId": "sewa", "tokens": {"colors": {"primary": "#000000"}}}

    merged = client.get("/api/theme?tenantId=sewa").get_json()["tokens"]
    assert merged["colors"]["primary"] == "#000000"
    assert merged["colors"]["secondary"] == "#cba36d"
    assert client.get("/api/theme").get_json()["tenantId"] == "default"

    assert client.put("/api/admin/themes", json={"tokens": {}}, headers=admin_headers).status_code == 400
    assert client.get("/api/admin/themes", headers=editor_headers).status_code == 403

    with app.app_context():
        entry = AuditLog.query.filter_by(action="theme.update").one()
        assert entry.details == {"tenantId": "sewa"}


def test_license_not_configured(client, admin_headers):
    response = client.get("/api/admin/license", headers=admin_headers)
    assert response.status_code == 200
    assert response.get_json() == {"tenantId": "default", "valid": False, "reason": "License is not configured."}

    issued = client.post("/api/admin/license", json={"plan": "enterprise"}, headers=admin_headers)
    assert issued.status_code == 400


def test_license_issue_and_verify(tmp_path):
    private_pem, public_pem = generate_keypair()
    app = build_test_app(tmp_path, {"LICENSE_PRIVATE_KEY": private_pem, "LICENSE_PUBLIC_KEY": public_pem})
    client = app.test_client()
    headers = auth_headers(app)

    expires = (datetime.now(timezone.utc) + timedelta(days=365)).isoformat()
    issued = client.post(
        "/api/admin/license",
        json={"tenantId": "sewa", "plan": "enterprise", "features": ["chat", "backups"], "expiresAt": expires},
        headers=headers,
    )
    assert issued.status_code == 200
    data = issued.get_json()
    assert data["valid"] is True
    assert data["payload"]["plan"] == "enterprise"
    assert data["licenseKey"].count(".") == 1

    status = client.get("/api/admin/license?tenantId=sewa", headers=headers).get_json()
    assert status["valid"] is True
    assert status["payload"]["features"] == ["chat", "backups"]

    with app.app_context():
        assert AuditLog.query.filter_by(action="license.issue").count() == 1


def test_extensions_and_payments(tmp_path):
    app = build_test_app(
        tmp_path,
        {"EXTENSION_FLAGS": json.dumps({"seo": False}), "STRIPE_SECRET_KEY": "sk_live_x", "STRIPE_MODE": "live"},
    )
    client = app.test_client()
    headers = auth_headers(app)

    extensions = client.get("/api/admin/extensions", headers=headers).get_json()
    by_id = {item["id"]: item for item in extensions["extensions"]}
    assert set(by_id) == {"core", "content", "media", "backups", "seo"}
    assert by_id["seo"]["enabled"] is False
    assert by_id["content"]["enabled"] is True
    assert extensions["flags"] == {"seo": False}

    gateways = {item["id"]: item for item in client.get("/api/admin/payments", headers=headers).get_json()["gateways"]}
    assert gateways["stripe"]["status"] == "enabled"
    assert gateways["stripe"]["mode"] == "live"
    assert gateways["razorpay"]["status"] == "disabled"
    assert gateways["razorpay"]["mode"] == "test"


def test_admin_only_endpoints_forbid_editors(client, editor_headers):
    for path in ("/api/admin/users", "/api/admin/backups", "/api/admin/license", "/api/admin/extensions", "/api/admin/payments"):
        assert client.get(path, headers=editor_headers).status_code == 403, path


def test_concierge_requests_are_paginated(client, admin_headers):
    for index in range(3):
        response = client.post(
            "/api/contact",
            json={"name": f"Guest {index}", "email": f"guest{index}@example.com", "message": "Please call me."},
        )
        assert response.status_code == 201

    page = client.get("/api/admin/concierge-requests?limit=2&offset=0", headers=admin_headers).get_json()
    assert page["total"] == 3
    assert page["limit"] == 2
    assert len(page["requests"]) == 2
    assert page["requests"][0]["name"] == "Guest 2"

    clamped = client.get("/api/admin/concierge-requests?limit=500&offset=-4", headers=admin_headers).get_json()
    assert clamped["limit"] == 200
    assert clamped["offset"] == 0
    assert len(clamped["requests"]) == 3


def test_backup_export(client, admin_headers):
    client.post(
        "/api/admin/services",
        json={"slug": "travel", "title": "Travel", "description": "Luxury travel arrangements.", "items": ["Jets"]},
        headers=admin_headers,
    )
    response = client.get("/api/admin/backups", headers=admin_headers)
    assert response.status_code == 200
    disposition = response.headers["Content-Disposition"]
    assert disposition.startswith('attachment; filename="sewa-backup-')
    assert disposition.endswith('.json"')

    backup = json.loads(response.get_data(as_text=True))
    assert backup["tables"]["content_services"][0]["items"] == ["Jets"]
    audit_rows = backup["tables"]["audit_logs"]
    assert [row["action"] for row in audit_rows] == ["auth.login", "content.create"]
    assert audit_rows[0]["metadata"] == {"email": "admin@sewa-hospitality.com"}
    assert audit_rows[1]["metadata"] == {"slug": "travel"}
    assert all(error is None for error in backup["errors"].values())
    assert "license_key" not in json.dumps(backup["tables"]["licenses"])


def test_media_upload_list_and_delete(app, client, admin_headers, viewer_headers):
    response = client.post(
        "/api/admin/media",
        data={"file": (png_bytes(), "hotel.png", "image/png"), "altText": "Hotel lobby"},
        content_type="multipart/form-data",
        headers=admin_headers,
    )
    assert response.status_code == 200, response.get_json()
    items = response.get_json()["media"]
    assert len(items) == 1
    assert items[0]["filename"] == "hotel.png"
    assert items[0]["altText"] == "Hotel lobby"

    served = client.get(items[0]["url"])
    assert served.status_code == 200
    served.close()

    assert client.get("/api/admin/media", headers=viewer_headers).status_code == 200
    assert client.delete(f"/api/admin/media/{items[0]['id']}", headers=viewer_headers).status_code == 403

    deleted = client.delete(f"/api/admin/media/{items[0]['id']}", headers=admin_headers)
    assert deleted.status_code == 200
    assert deleted.get_json() == {"media": []}
    assert client.get(items[0]["url"]).status_code == 404
    assert client.delete(f"/api/admin/media/{items[0]['id']}", headers=admin_headers).status_code == 404

    with app.app_context():
        assert Media.query.count() == 0
        assert AuditLog.query.filter_by(resource="media").count() == 2


def test_media_upload_rejects_disguised_files(client, admin_headers):
    fake_png = client.post(
        "/api/admin/media",
        data={"file": (io.BytesIO(b"not really an image"), "photo.png", "image/png")},
        content_type="multipart/form-data",
        headers=admin_headers,
    )
    assert fake_png.status_code == 400

    script = client.post(
        "/api/admin/media",
        data={"file": (io.BytesIO(b"<script>alert(1)</script>"), "page.html", "text/html")},
        content_type="multipart/form-data",
        headers=admin_headers,
    )
    assert script.status_code == 400

    mismatched = client.post(
        "/api/admin/media",
        data={"file": (png_bytes(), "photo.pdf", "application/pdf")},
        content_type="multipart/form-data",
        headers=admin_headers,
    )
    assert mismatched.status_code == 400

    missing = client.post("/api/admin/media", data={}, content_type="multipart/form-data", headers=admin_headers)
    assert missing.status_code == 400


def submit_lead(client, name="Guest"):
    response = client.post(
        "/api/contact",
        json={"name": name, "email": "guest@example.com", "message": "Please call me."},
    )
    assert response.status_code == 201
    return response.get_json()["requestId"]


def test_concierge_request_status_and_notes(app, client, editor_headers):
    request_id = submit_lead(client)

    response = client.put(
        f"/api/admin/concierge-requests/{request_id}",
        json={"status": "contacted", "adminNotes": "Called back, prefers email."},
        headers=editor_headers,
    )
    assert response.status_code == 200
    lead = response.get_json()["requests"][0]
    assert lead["status"] == "contacted"
    assert lead["adminNotes"] == "Called back, prefers email."
    assert lead["repliedAt"] is not None
    replied_at = lead["repliedAt"]

    later = client.put(
        f"/api/admin/concierge-requests/{request_id}",
        json={"status": "completed"},
        headers=editor_headers,
    ).get_json()["requests"][0]
    assert later["status"] == "completed"
    assert later["adminNotes"] == "Called back, prefers email."
    assert later["repliedAt"] == replied_at

    cleared = client.put(
        f"/api/admin/concierge-requests/{request_id}",
        json={"adminNotes": ""},
        headers=editor_headers,
    ).get_json()["requests"][0]
    assert cleared["adminNotes"] is None
    assert cleared["status"] == "completed"

    with app.app_context():
        entries = AuditLog.query.filter_by(resource="concierge_requests").order_by(AuditLog.id).all()
        assert [entry.action for entry in entries] == ["content.update"] * 3
        assert entries[0].details == {"id": request_id, "status": "contacted"}


def test_concierge_request_update_validation(client, editor_headers):
    request_id = submit_lead(client)
    path = f"/api/admin/concierge-requests/{request_id}"

    unknown_status = client.put(path, json={"status": "archived"}, headers=editor_headers)
    assert unknown_status.status_code == 400
    assert unknown_status.get_json()["error"].startswith("status:")

    assert client.put(path, json={}, headers=editor_headers).get_json() == {"error": "Nothing to update"}
    assert client.put("/api/admin/concierge-requests/9999", json={"status": "spam"}, headers=editor_headers).status_code == 404


def test_concierge_request_delete(app, client, admin_headers):
    keep_id = submit_lead(client, "Keep Me")
    drop_id = submit_lead(client, "Drop Me")

    response = client.delete(f"/api/admin/concierge-requests/{drop_id}", headers=admin_headers)
    assert response.status_code == 200
    page = response.get_json()
    assert page["total"] == 1
    assert [lead["id"] for lead in page["requests"]] == [keep_id]

    assert client.delete(f"/api/admin/concierge-requests/{drop_id}", headers=admin_headers).status_code == 404
    with app.app_context():
        entry = AuditLog.query.filter_by(resource="concierge_requests", action="content.delete").one()
        assert entry.details == {"id": drop_id}


def test_failed_media_commit_leaves_no_orphan_file(app, client, admin_headers, monkeypatch):
    def failing_commit():
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(db.session, "commit", failing_commit)
    response = client.post(
        "/api/admin/media",
        data={"file": (png_bytes(), "hotel.png", "image/png")},
        content_type="multipart/form-data",
        headers=admin_headers,
    )
    monkeypatch.undo()

    assert response.status_code == 500
    assert os.listdir(app.config["UPLOAD_FOLDER"]) == []
    with app.app_context():
        assert Media.query.count() == 0


def test_failed_media_delete_keeps_the_file(app, client, admin_headers, monkeypatch):
    uploaded = client.post(
        "/api/admin/media",
        data={"file": (png_bytes(), "hotel.png", "image/png")},
        content_type="multipart/form-data",
        headers=admin_headers,
    ).get_json()["media"][0]

    def failing_commit():
        raise SQLAlchemyError("database is locked")

    monkeypatch.setattr(db.session, "commit", failing_commit)
    response = client.delete(f"/api/admin/media/{uploaded['id']}", headers=admin_headers)
    monkeypatch.undo()

    assert response.status_code == 500
    assert os.listdir(app.config["UPLOAD_FOLDER"]) == [uploaded["path"]]
    with app.app_context():
        assert Media.query.count() == 1
