from datetime import date, datetime
from decimal import Decimal
from unittest.mock import patch

from conftest import auth_headers, make_client, make_invoice, make_user

from contabil.db import models
from contabil.notifications import scheduler


def _note(db, user, message, read=False):
    note = models.AppNotification(user_id=user.id, message=message, link="/cobranca", read=read)
    db.add(note)
    db.commit()
    return note


def test_list_and_mark_notifications(api, db_session):
    user = make_user(db_session, "maria", role=models.ROLE_CLIENT)
    other = make_user(db_session, "joao", role=models.ROLE_CLIENT)
    first = _note(db_session, user, "Primeira")
    _note(db_session, user, "Segunda")
    foreign = _note(db_session, other, "De outro usuario")

    res = api.get("/api/notificacoes", headers=auth_headers(user))
    assert res.status_code == 200
    assert res.json()["nao_lidas"] == 2
    assert len(res.json()["notificacoes"]) == 2

    res = api.post(f"/api/notificacoes/{first.id}/lida", headers=auth_headers(user))
    assert res.json()["read"] is True
    assert api.post(f"/api/notificacoes/{foreign.id}/lida", headers=auth_headers(user)).status_code == 404

    res = api.get("/api/notificacoes?unread_only=true", headers=auth_headers(user))
    assert [n["message"] for n in res.json()["notificacoes"]] == ["Segunda"]

    res = api.post("/api/notificacoes/lidas", headers=auth_headers(user))
    assert res.json()["atualizadas"] == 1


def test_manual_reminder_sweep_requires_settings_capability(api, db_session):
    client = make_client(db_session)
    owner = make_user(db_session, "maria", role=models.ROLE_CLIENT, clients=[client])
    admin = make_user(db_session, "admin", role=models.ROLE_ADMIN_GERAL)
    make_invoice(db_session, client)

    assert api.post("/api/notificacoes/lembretes/executar", headers=auth_headers(owner)).status_code == 403

    res = api.post("/api/notificacoes/lembretes/executar", headers=auth_headers(admin))
    assert res.status_code == 200
    assert res.json()["created"] == 1
    assert db_session.query(models.AppNotification).filter_by(user_id=owner.id).count() == 1


def test_settings_read_and_update(api, db_session):
    admin = make_user(db_session, "admin", role=models.ROLE_ADMIN_GERAL)
    owner = make_user(db_session, "maria", role=models.ROLE_CLIENT)

    res = api.get("/api/configuracoes", headers=auth_headers(owner))
    assert res.status_code == 200
    assert res.json()["firm_name"] == "JZF Contabilidade"

    payload = {"pix_key": "pix@jzf.com.br", "payment_link": " "}
    assert api.put("/api/configuracoes", json=payload, headers=auth_headers(owner)).status_code == 403
    res = api.put("/api/configuracoes", json=payload, headers=auth_headers(admin))
    assert res.json()["pix_key"] == "pix@jzf.com.br"
    assert res.json()["payment_link"] is None


def test_dashboard_summary_is_scoped(api, db_session):
    padaria = make_client(db_session, company="Padaria Sol")
    oficina = make_client(db_session, company="Oficina Lua")
    owner = make_user(db_session, "maria", role=models.ROLE_CLIENT, clients=[padaria])
    admin = make_user(db_session, "admin", role=models.ROLE_ADMIN_GERAL)
    make_invoice(db_session, padaria, amount=Decimal("100.00"))
    make_invoice(db_session, oficina, amount=Decimal("300.00"))
    overdue = make_invoice(db_session, padaria, amount=Decimal("50.00"), due_date=date(2026, 9, 1))
    overdue.status = models.INVOICE_OVERDUE
    paid = make_invoice(db_session, padaria, amount=Decimal("75.00"))
    paid.status = models.INVOICE_PAID
    paid.paid_at = datetime.utcnow()
    db_session.commit()

    body = api.get("/api/dashboard/resumo", headers=auth_headers(owner)).json()
    assert body["clientes_ativos"] == 1
    assert body["faturas_pendentes"] == {"quantidade": 1, "valor": 100.0}
    assert body["faturas_atrasadas"] == {"quantidade": 1, "valor": 50.0}
    assert body["recebido_no_mes"] == 75.0

    body = api.get("/api/dashboard/resumo", headers=auth_headers(admin)).json()
    assert body["clientes_ativos"] == 2
    assert body["faturas_pendentes"]["valor"] == 400.0


def test_dashboard_requires_capability_for_admins(api, db_session):
    admin = make_user(db_session, "financeiro", role=models.ROLE_ADMIN, capabilities=["billing"])

    assert api.get("/api/dashboard/resumo", headers=auth_headers(admin)).status_code == 403


@patch("contabil.api.v1.doctor.scheduler_running", return_value=True)
@patch("contabil.api.v1.doctor.is_configured", return_value=False)
def test_doctor_reports_warn_without_ai_key(_configured, _running, api):
    res = api.get("/api/doctor")

    assert res.status_code == 200
    assert res.json()["status"] == "WARN"
    assert res.json()["ai"] == "ERROR"
    assert res.json()["scheduler"] == "OK"


@patch("contabil.notifications.scheduler.run_reminder_sweep", side_effect=RuntimeError("db offline"))
@patch("contabil.notifications.scheduler.SessionLocal")
def test_scheduled_job_logs_and_survives_failures(mock_session_local, _sweep):
    scheduler.reminder_job()

    mock_session_local.return_value.close.assert_called_once()
