"""Tests for cron endpoints."""

from unittest.mock import AsyncMock, patch

import pytest

from backoffice.api.deps import get_email_client, get_sms_carrier
from backoffice.domain.services.invoice_reminder_service import InvoiceReminderSummary
from backoffice.domain.services.sms_reconciliation_service import ReconciliationSummary
from backoffice.main import app
from backoffice.settings import settings

AUTH = {"Authorization": "Bearer cron-test-secret"}


@pytest.fixture(autouse=True)
def cron_secret(monkeypatch):
    monkeypatch.setattr(settings, "cron_secret", "cron-test-secret")


@pytest.fixture
def with_carrier(carrier):
    app.dependency_overrides[get_sms_carrier] = lambda: carrier
    yield carrier
    app.dependency_overrides.pop(get_sms_carrier, None)


def test_reconcile_requires_secret(client):
    response = client.get("/api/cron/reconcile-sms")

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_reconcile_rejects_wrong_secret(client):
    response = client.get("/api/cron/reconcile-sms", headers={"x-cron-secret": "wrong"})

    assert response.status_code == 401


def test_reconcile_without_twilio_config(client):
    app.dependency_overrides[get_sms_carrier] = lambda: None

    response = client.get("/api/cron/reconcile-sms", headers=AUTH)

    assert response.status_code == 503
    assert response.json() == {"success": False, "error": "Twilio configuration missing"}


def test_reconcile_returns_summary(client, with_carrier):
    summary = ReconciliationSummary(checked=3, updated=2, errors=1)
    with patch(
        "backoffice.workers.sms_reconciliation_worker.SmsReconciliationService.reconcile",
        AsyncMock(return_value=summary),
    ):
        response = client.get("/api/cron/reconcile-sms", headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert (body["checked"], body["updated"], body["errors"]) == (3, 2, 1)
    assert "timestamp" in body


def test_reconcile_unexpected_failure_returns_500(client, with_carrier):
    with patch(
        "backoffice.workers.sms_reconciliation_worker.SmsReconciliationService.reconcile",
        AsyncMock(side_effect=RuntimeError("boom")),
    ):
        response = client.get("/api/cron/reconcile-sms", headers=AUTH)

    assert response.status_code == 500
    assert response.json()["success"] is False


def test_invoice_reminders_requires_secret(client):
    response = client.get("/api/cron/invoice-reminders")

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_invoice_reminders_returns_results(client):
    app.dependency_overrides[get_email_client] = lambda: None
    summary = InvoiceReminderSummary(processed=2, reminders_sent=1, internal_notifications=1)
    with patch(
        "backoffice.workers.invoice_reminder_worker.InvoiceReminderService.run",
        AsyncMock(return_value=summary),
    ):
        response = client.get("/api/cron/invoice-reminders", headers={"x-cron-secret": "cron-test-secret"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["results"]["processed"] == 2
    assert body["results"]["errors"] == []


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
    assert response.headers["X-Request-ID"]
