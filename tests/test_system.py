import logging

from caelex.core import version
from caelex.core.logging import RequestIdFilter, configure_logging, request_id_var
from caelex.core.security import log_security_warnings


def test_health_reports_database(db_session, client_for):
    response = client_for().get("/system/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["database"] == "ok"
    assert body["timestamp"]


def test_version_reports_build_metadata(db_session, client_for, monkeypatch):
    monkeypatch.setenv("GIT_SHA", "abc123")
    version.get_version_info.cache_clear()
    try:
        response = client_for().get("/system/version")
    finally:
        version.get_version_info.cache_clear()

    assert response.status_code == 200
    body = response.json()
    assert body["gitSha"] == "abc123"
    assert body["service"] == "caelex-compliance-api"
    assert body["version"]
    assert body["env"]


def test_request_id_is_echoed_or_generated(db_session, client_for):
    client = client_for()

    echoed = client.get("/system/health", headers={"X-Request-ID": "req-123"})
    correlated = client.get("/system/health", headers={"X-Correlation-ID": "corr-9"})
    generated = client.get("/system/health")

    assert echoed.headers["X-Request-ID"] == "req-123"
    assert correlated.headers["X-Request-ID"] == "corr-9"
    assert generated.headers["X-Request-ID"]


def test_security_headers(db_session, create_user, client_for):
    client = client_for(create_user())

    health = client.get("/system/health")
    private = client.get("/deadlines")

    assert health.headers["X-Content-Type-Options"] == "nosniff"
    assert health.headers["X-Frame-Options"] == "DENY"
    assert "Cache-Control" not in health.headers
    assert private.headers["Cache-Control"] == "no-store"
    assert "default-src 'none'" in private.headers["Content-Security-Policy"]


def test_unknown_route_uses_error_envelope(db_session, client_for):
    response = client_for().get("/does-not-exist")

    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


def test_log_records_carry_request_id():
    record = logging.LogRecord("caelex", logging.INFO, __file__, 1, "hello", None, None)
    token = request_id_var.set("req-42")
    try:
        RequestIdFilter().filter(record)
    finally:
        request_id_var.reset(token)

    assert record.request_id == "req-42"


def test_configure_logging_sets_root_level():
    configure_logging("WARNING")
    try:
        assert logging.getLogger().level == logging.WARNING
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    finally:
        configure_logging("INFO")


def test_security_warnings_outside_development(caplog):
    with caplog.at_level(logging.WARNING, logger="caelex.core.security"):
        log_security_warnings("dev-secret-please-change", "development", ["*"], "sqlite:///x.db")
        assert caplog.records == []

        log_security_warnings("dev-secret-please-change", "production", ["*"], "sqlite:///x.db")

    messages = [record.getMessage() for record in caplog.records]
    assert len(messages) == 3
    assert any("JWT secret" in message for message in messages)
