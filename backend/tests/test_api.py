"""Integration tests for the HTTP routes."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from ncs_research import ledger
from ncs_research.cleanup import purge_stale_sessions
from ncs_research.models import AuthSession, AuthUser, ContactMessage, TokenAccount
from ncs_research.settings import settings


class TestAuth:
    """Registration and login."""

    def test_register_grants_welcome_bonus(self, client, auth_headers):
        resp = client.get("/user/tokens", headers=auth_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["account"]["balance"] == settings.welcome_bonus_tokens
        assert body["transactions"][0]["source"] == "welcome-bonus"

    def test_me(self, client, auth_headers):
        assert client.get("/auth/me", headers=auth_headers).json() == {"username": "alice"}

    def test_password_mismatch(self, client):
        resp = client.post("/auth/register", json={
            "username": "carol", "password": "a-password", "confirm_password": "other",
            "email": "c@example.org", "agree_terms": True,
        })
        assert resp.status_code == 400
        assert resp.json()["field"] == "confirm_password"

    def test_terms_required(self, client):
        resp = client.post("/auth/register", json={
            "username": "carol", "password": "a-password", "confirm_password": "a-password",
            "email": "c@example.org",
        })
        assert resp.status_code == 400

    def test_duplicate_username(self, client, auth_headers):
        resp = client.post("/auth/register", json={
            "username": "alice", "password": "x-password", "confirm_password": "x-password",
            "email": "a2@example.org", "agree_terms": True,
        })
        assert resp.status_code == 409

    def test_failed_bonus_leaves_no_user(self, client, db_session, monkeypatch):
        def broken_credit(*args, **kwargs):
            raise OperationalError("INSERT INTO ledger_entries", {}, Exception("disk I/O error"))

        monkeypatch.setattr(ledger, "_credit", broken_credit)
        with pytest.raises(OperationalError):
            client.post("/auth/register", json={
                "username": "dave", "password": "d-password", "confirm_password": "d-password",
                "email": "d@example.org", "agree_terms": True,
            })

        db_session.expire_all()
        assert db_session.get(AuthUser, "dave") is None
        assert db_session.get(TokenAccount, "dave") is None

    def test_bad_credentials(self, client, auth_headers):
        resp = client.post("/auth/token", data={"username": "alice", "password": "wrong"})
        assert resp.status_code == 401

    def test_protected_route_requires_token(self, client):
        assert client.get("/user/tokens").status_code == 401


class TestWallet:
    """Tasks, spending and referrals over HTTP."""

    def test_tasks_listing_marks_completed(self, client, auth_headers):
        tasks = client.get("/tasks", headers=auth_headers).json()
        assert {t["id"] for t in tasks} >= {"complete-profile", "data-analysis"}
        assert not any(t["completed"] for t in tasks)

        client.post("/tasks/complete-profile/complete", headers=auth_headers)
        tasks = {t["id"]: t for t in client.get("/tasks", headers=auth_headers).json()}
        assert tasks["complete-profile"]["completed"] is True
        assert tasks["complete-profile"]["requirements"]["fields"]

    def test_duplicate_completion_is_a_no_op(self, client, auth_headers):
        first = client.post("/tasks/complete-profile/complete", headers=auth_headers)
        second = client.post("/tasks/complete-profile/complete", headers=auth_headers)

        assert first.status_code == 200
        assert first.json()["already_completed"] is False
        assert second.status_code == 200
        assert second.json()["already_completed"] is True
        expected = settings.welcome_bonus_tokens + 50
        assert second.json()["account"]["balance"] == expected

    def test_unknown_task(self, client, auth_headers):
        assert client.post("/tasks/nope/complete", headers=auth_headers).status_code == 404

    def test_spend(self, client, auth_headers):
        resp = client.post("/wallet/spend", json={"amount": 60, "description": "Template"}, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["balance"] == settings.welcome_bonus_tokens - 60

    def test_overspend(self, client, auth_headers):
        resp = client.post("/wallet/spend", json={"amount": 10_000}, headers=auth_headers)
        assert resp.status_code == 409
        assert resp.json()["balance"] == settings.welcome_bonus_tokens

    def test_spend_rejects_non_positive(self, client, auth_headers):
        resp = client.post("/wallet/spend", json={"amount": 0}, headers=auth_headers)
        assert resp.status_code == 422

    def test_referral(self, client, auth_headers):
        resp = client.post(
            "/referral/send",
            json={"referred_name": "Bob", "referred_email": "bob@example.org"},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["referral_count"] == 1

    def test_referral_missing_email(self, client, auth_headers):
        resp = client.post("/referral/send", json={"referred_name": "Bob", "referred_email": " "}, headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json()["field"] == "referred_email"
        account = client.get("/user/tokens", headers=auth_headers).json()["account"]
        assert account["referral_count"] == 0

    def test_accounts_are_isolated(self, client, auth_headers, login):
        bob = login("bob")
        client.post("/tasks/data-analysis/complete", headers=bob)
        alice = client.get("/user/tokens", headers=auth_headers).json()["account"]
        assert alice["balance"] == settings.welcome_bonus_tokens


class TestLevels:
    """Level table and evaluation."""

    def test_level_info(self, client):
        levels = client.get("/user/level-info").json()["levels"]
        assert levels[0]["name"] == "Researcher"
        assert levels[1]["min_tokens"] == 1000
        assert levels[1]["benefits"]

    def test_user_level(self, client, auth_headers):
        body = client.get("/user/level", headers=auth_headers).json()
        assert body["progress"]["current"]["name"] == "Researcher"
        assert body["progress"]["next"]["name"] == "Scholar"
        assert body["progress"]["combined"] == 0


class TestProposal:
    """Proposal generation and export."""

    def test_generate(self, client, auth_headers):
        resp = client.post("/proposal/generate", json={"title": "Study"}, headers=auth_headers)
        assert resp.status_code == 200
        assert "## Title\n\nStudy\n" in resp.json()["proposal"]

    def test_export_html(self, client, auth_headers):
        resp = client.post("/proposal/export?format=html", json={}, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/html")
        assert 'filename="research_proposal.html"' in resp.headers["content-disposition"]

    def test_export_pdf(self, client, auth_headers):
        resp = client.post("/proposal/export?format=pdf", json={"abstract": "A"}, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.content.startswith(b"%PDF")

    def test_export_unknown_format(self, client, auth_headers):
        resp = client.post("/proposal/export?format=odt", json={}, headers=auth_headers)
        assert resp.status_code == 400


class TestContact:
    """Contact form."""

    def test_submit(self, client, db_session):
        resp = client.post("/contact", json={
            "name": "Lan", "email": "lan@example.org", "subject": "Hi",
            "message": "Question about tokens", "category": "billing",
        })
        assert resp.status_code == 201
        db_session.expire_all()
        row = db_session.get(ContactMessage, resp.json()["id"])
        assert row.category == "billing"

    def test_missing_message(self, client):
        resp = client.post("/contact", json={"name": "Lan", "email": "lan@example.org", "subject": "Hi"})
        assert resp.status_code == 400
        assert resp.json()["field"] == "message"

    def test_unknown_category(self, client):
        resp = client.post("/contact", json={
            "name": "Lan", "email": "lan@example.org", "subject": "Hi", "message": "m", "category": "spam",
        })
        assert resp.status_code == 400


class TestPreferences:
    """Per-user display preferences."""

    def test_defaults(self, client, auth_headers):
        body = client.get("/preferences", headers=auth_headers).json()
        assert body == {"theme": settings.default_theme, "language": settings.default_language}

    def test_update_persists(self, client, auth_headers):
        resp = client.put("/preferences", json={"theme": "dark"}, headers=auth_headers)
        assert resp.json()["theme"] == "dark"
        client.put("/preferences", json={"language": "vi"}, headers=auth_headers)
        assert client.get("/preferences", headers=auth_headers).json() == {"theme": "dark", "language": "vi"}

    def test_invalid_theme(self, client, auth_headers):
        assert client.put("/preferences", json={"theme": "neon"}, headers=auth_headers).status_code == 400


class TestAnalysisStub:
    """The analysis endpoint is a labeled stub."""

    def test_descriptive_stats(self, client, auth_headers):
        resp = client.post("/analysis", json={
            "analysis_type": "descriptive-stats",
            "data": {"data": [{"age": 20, "score": 3}, {"age": 31, "score": 4}]},
        }, headers=auth_headers)
        body = resp.json()
        assert body["stub"] is True
        assert [r["variable"] for r in body["results"]] == ["age", "score"]
        assert body["results"][0]["count"] == 2

    def test_regression_coefficients(self, client, auth_headers):
        resp = client.post("/analysis", json={
            "analysis_type": "regression", "data": {"independent_vars": ["PU", "PEOU"]},
        }, headers=auth_headers)
        assert set(resp.json()["results"]["coefficients"]) == {"intercept", "PU", "PEOU"}

    def test_malformed_rows_give_empty_results(self, client, auth_headers):
        resp = client.post("/analysis", json={
            "analysis_type": "descriptive-stats", "data": {"data": {"a": 1}},
        }, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["results"] == []

    @pytest.mark.parametrize("analysis_type,data,expected", [
        ("cronbach-alpha", {"constructs": 5}, set()),
        ("cronbach-alpha", {"constructs": {"PU": ["q1", "q2"]}}, {"PU"}),
        ("vif", {"variables": 7}, {"var1", "var2", "var3"}),
        ("vif", {"variables": [{"x": 1}]}, {"var1", "var2", "var3"}),
        ("regression", {"independent_vars": "PU"}, {"intercept"}),
        ("descriptive-stats", {"data": "rows"}, set()),
    ])
    def test_malformed_fields_fall_back(self, client, auth_headers, analysis_type, data, expected):
        resp = client.post("/analysis", json={"analysis_type": analysis_type, "data": data}, headers=auth_headers)
        assert resp.status_code == 200
        results = resp.json()["results"]
        if analysis_type == "vif":
            results = results["vif_scores"]
        elif analysis_type == "regression":
            results = results["coefficients"]
        elif analysis_type == "descriptive-stats":
            results = {r["variable"] for r in results}
        assert set(results) == expected

    def test_unknown_type(self, client, auth_headers):
        resp = client.post("/analysis", json={"analysis_type": "sem"}, headers=auth_headers)
        assert resp.json()["results"]["status"] == "completed"


def test_info(client):
    assert client.get("/info").json() == {"status": "ok"}


def test_stale_sessions_purged(client, auth_headers, db_session):
    now = datetime.utcnow() + timedelta(days=settings.session_retention_days + 1)
    assert purge_stale_sessions(db_session, now=now) == 1
    assert db_session.query(AuthSession).count() == 0
    assert client.get("/auth/me", headers=auth_headers).status_code == 401


def test_cleanup_task_lifecycle(engine, session_factory, monkeypatch):
    from fastapi.testclient import TestClient

    from ncs_research import main

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    monkeypatch.setattr(main, "engine", engine)
    monkeypatch.setattr(main, "get_db", _get_db)

    with TestClient(main.app) as client:
        task = main.app.state.cleanup_task
        assert task is not None
        assert not task.done()
        assert client.get("/info").status_code == 200

    assert task.cancelled()
    assert main.app.state.cleanup_task is None
