import pytest

from concierge import audit
from concierge.auth import ActorContext
from concierge.models import AuditLog, Service, db


def test_audit_failure_does_not_fail_the_mutation(app, client, admin_headers, monkeypatch):
    def broken_persist(*args, **kwargs):
        raise RuntimeError("audit store offline")

    monkeypatch.setattr(audit, "_persist_entry", broken_persist)
    response = client.post(
        "/api/admin/services",
        json={
            "slug": "wellness",
            "title": "Wellness Retreats",
            "description": "Ayurvedic programmes and private yoga instruction.",
            "items": ["Ayurveda"],
        },
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert [item["slug"] for item in response.get_json()["services"]] == ["wellness"]

    with app.app_context():
        assert Service.query.filter_by(slug="wellness").count() == 1
        assert AuditLog.query.filter_by(action="content.create").count() == 0


def test_log_audit_rejects_unknown_actions(app):
    actor = ActorContext(user_id=1, email="admin@sewa-hospitality.com", role="admin")
    with app.app_context():
        with pytest.raises(ValueError):
            audit.log_audit(actor, "content.publish", "content_services")


def test_log_audit_records_request_origin(app):
    actor = ActorContext(user_id=7, email="editor@example.com", role="editor")
    with app.test_request_context(
        "/api/admin/services",
        headers={"User-Agent": "pytest-agent"},
        environ_base={"REMOTE_ADDR": "203.0.113.9"},
    ):
        entry = audit.log_audit(actor, "content.update", "content_services", {"id": 3})
        assert entry is not None
        data = entry.to_dict()
        assert data["actor_id"] == 7
        assert data["actor_email"] == "editor@example.com"
        assert data["ip_address"] == "203.0.113.9"
        assert data["user_agent"] == "pytest-agent"
        assert data["metadata"] == {"id": 3}


def test_audit_rows_are_append_only(app):
    actor = ActorContext(user_id=1, email="admin@sewa-hospitality.com", role="admin")
    with app.app_context():
        entry = audit.log_audit(actor, "theme.update", "theme_configs", {"tenantId": "default"})
        entry.action = "content.delete"
        with pytest.raises(ValueError):
            db.session.commit()
        db.session.rollback()

        entry = db.session.get(AuditLog, entry.id)
        db.session.delete(entry)
        with pytest.raises(ValueError):
            db.session.commit()
        db.session.rollback()
        assert db.session.get(AuditLog, entry.id).action == "theme.update"


def test_audit_log_endpoint_lists_newest_first(client, admin_headers, viewer_headers):
    for slug in ("first-banner", "second-banner"):
        client.post(
            "/api/admin/banners",
            json={"slug": slug, "message": "A banner message."},
            headers=admin_headers,
        )

    response = client.get("/api/admin/audit-logs", headers=admin_headers)
    assert response.status_code == 200
    logs = response.get_json()["logs"]
    creates = [entry for entry in logs if entry["action"] == "content.create"]
    assert [entry["metadata"]["slug"] for entry in creates] == ["second-banner", "first-banner"]

    assert client.get("/api/admin/audit-logs", headers=viewer_headers).status_code == 403
