from datetime import timedelta
from unittest.mock import patch

from conftest import auth_headers, make_client, make_user

from contabil.core.security import get_password_hash
from contabil.db import models
from contabil.db.init_db import backfill_home_clients
from contabil.services.cnpj_lookup import CnpjData, CnpjLookupError


def _client_payload(**overrides):
    payload = {
        "name": "Maria Souza",
        "company": "Padaria Sol",
        "cnpj": "12.345.678/0001-95",
        "email": "maria@padariasol.com.br",
        "tax_regime": "SimplesNacional",
        "cnaes": ["1091-1/02", " "],
        "keywords": ["panificacao"],
        "username": "padariasol",
        "password": "segredo1",
    }
    payload.update(overrides)
    return payload


def test_login_returns_token(api, db_session):
    user = make_user(db_session, "admin", role=models.ROLE_ADMIN_GERAL)
    user.password_hash = get_password_hash("123456")
    db_session.commit()

    res = api.post("/api/auth/login", json={"username": "ADMIN", "password": "123456"})
    assert res.status_code == 200
    assert res.json()["role"] == "AdminGeral"

    res = api.post("/api/auth/login", json={"username": "admin", "password": "errada"})
    assert res.status_code == 401


def test_create_client_creates_client_user_with_access(api, db_session):
    admin = make_user(db_session, "admin", role=models.ROLE_ADMIN, capabilities=["clients"])
    other = make_client(db_session, company="Oficina Lua")
    template_set = models.TaskTemplateSet(name="Simples mensal")
    template_set.items = [
        models.TaskTemplateItem(description="Apurar DAS", recurrence="Mensal", due_day=20),
        models.TaskTemplateItem(description="Enviar extratos", recurrence="Mensal", due_day=5),
    ]
    db_session.add(template_set)
    db_session.commit()

    res = api.post(
        "/api/clientes",
        json=_client_payload(client_ids=[other.id], task_template_set_id=template_set.id),
        headers=auth_headers(admin),
    )

    assert res.status_code == 201
    body = res.json()
    assert body["cnpj"] == "12345678000195"
    assert body["status"] == "Ativo"
    assert body["cnaes"] == ["1091-1/02"]
    assert body["user"]["username"] == "padariasol"
    assert sorted(body["user"]["client_ids"]) == sorted([body["id"], other.id])
    user = db_session.query(models.User).filter_by(username="padariasol").one()
    assert user.role == models.ROLE_CLIENT
    tasks = db_session.query(models.Task).filter_by(client_id=body["id"]).all()
    assert sorted(t.description for t in tasks) == ["Apurar DAS", "Enviar extratos"]
    assert all(t.due_date is not None for t in tasks)


def test_create_client_requires_capability(api, db_session):
    admin = make_user(db_session, "financeiro", role=models.ROLE_ADMIN, capabilities=["billing"])

    res = api.post("/api/clientes", json=_client_payload(), headers=auth_headers(admin))

    assert res.status_code == 403


def test_create_client_rejects_duplicate_username_and_cnpj(api, db_session):
    admin = make_user(db_session, "admin", role=models.ROLE_ADMIN_GERAL)
    make_client(db_session, company="Outra", cnpj="12345678000195")

    res = api.post("/api/clientes", json=_client_payload(), headers=auth_headers(admin))
    assert res.status_code == 409

    res = api.post(
        "/api/clientes",
        json=_client_payload(cnpj=None, username="ADMIN"),
        headers=auth_headers(admin),
    )
    assert res.status_code == 409


def test_client_user_lists_only_accessible_clients(api, db_session):
    padaria = make_client(db_session, company="Padaria Sol")
    make_client(db_session, company="Oficina Lua")
    user = make_user(db_session, "maria", role=models.ROLE_CLIENT, clients=[padaria])

    res = api.get("/api/clientes", headers=auth_headers(user))

    assert res.status_code == 200
    assert [c["company"] for c in res.json()["clientes"]] == ["Padaria Sol"]


def test_client_user_cannot_open_other_client(api, db_session):
    padaria = make_client(db_session, company="Padaria Sol")
    oficina = make_client(db_session, company="Oficina Lua")
    user = make_user(db_session, "maria", role=models.ROLE_CLIENT, clients=[padaria])

    assert api.get(f"/api/clientes/{padaria.id}", headers=auth_headers(user)).status_code == 200
    assert api.get(f"/api/clientes/{oficina.id}", headers=auth_headers(user)).status_code == 403


def test_update_access_set_always_keeps_own_client(api, db_session):
    admin = make_user(db_session, "admin", role=models.ROLE_ADMIN_GERAL)
    res = api.post("/api/clientes", json=_client_payload(), headers=auth_headers(admin))
    client_id = res.json()["id"]
    inactive = make_client(db_session, company="Antiga", status=models.CLIENT_INACTIVE)
    oficina = make_client(db_session, company="Oficina Lua")

    res = api.patch(
        f"/api/clientes/{client_id}",
        json={"client_ids": [oficina.id, inactive.id], "phone": "11999990000"},
        headers=auth_headers(admin),
    )

    assert res.status_code == 200
    body = res.json()
    assert body["phone"] == "11999990000"
    assert sorted(body["user"]["client_ids"]) == sorted([client_id, oficina.id])


def test_editing_client_keeps_login_of_user_with_extra_access(api, db_session):
    admin = make_user(db_session, "admin", role=models.ROLE_ADMIN_GERAL)
    padaria = api.post("/api/clientes", json=_client_payload(), headers=auth_headers(admin)).json()
    oficina = api.post(
        "/api/clientes",
        json=_client_payload(
            company="Oficina Lua", cnpj=None, username="oficinalua", password="senha-oficina"
        ),
        headers=auth_headers(admin),
    ).json()
    api.patch(
        f"/api/clientes/{padaria['id']}",
        json={"client_ids": [oficina["id"]]},
        headers=auth_headers(admin),
    )

    res = api.patch(
        f"/api/clientes/{oficina['id']}",
        json={"client_ids": [], "password": "nova-senha"},
        headers=auth_headers(admin),
    )

    assert res.status_code == 200
    assert res.json()["user"]["username"] == "oficinalua"
    assert res.json()["user"]["client_ids"] == [oficina["id"]]
    padaria_user = db_session.query(models.User).filter_by(username="padariasol").one()
    assert sorted(c.id for c in padaria_user.clients) == sorted([padaria["id"], oficina["id"]])
    login = api.post("/api/auth/login", json={"username": "padariasol", "password": "segredo1"})
    assert login.status_code == 200
    login = api.post("/api/auth/login", json={"username": "oficinalua", "password": "nova-senha"})
    assert login.status_code == 200


def test_client_without_own_login_shows_no_user(api, db_session):
    padaria = make_client(db_session, company="Padaria Sol")
    make_user(db_session, "convidado", role=models.ROLE_CLIENT, clients=[padaria])
    admin = make_user(db_session, "admin", role=models.ROLE_ADMIN_GERAL)

    res = api.patch(
        f"/api/clientes/{padaria.id}",
        json={"password": "trocada", "client_ids": []},
        headers=auth_headers(admin),
    )

    assert res.status_code == 200
    assert res.json()["user"] is None
    guest = db_session.query(models.User).filter_by(username="convidado").one()
    assert guest.password_hash == "x"


def test_backfill_links_only_unambiguous_client_logins(db_session):
    padaria = make_client(db_session, company="Padaria Sol")
    oficina = make_client(db_session, company="Oficina Lua")
    owner = make_user(db_session, "padariasol", role=models.ROLE_CLIENT, clients=[padaria])
    shared = make_user(db_session, "contador", role=models.ROLE_CLIENT, clients=[padaria, oficina])
    guest = make_user(db_session, "convidado", role=models.ROLE_CLIENT, clients=[padaria])
    guest.created_at = owner.created_at + timedelta(seconds=1)
    db_session.commit()

    assert backfill_home_clients(db_session) == 1

    assert owner.home_client_id == padaria.id
    assert shared.home_client_id is None
    assert guest.home_client_id is None


def test_inactivate_and_reactivate(api, db_session):
    admin = make_user(db_session, "admin", role=models.ROLE_ADMIN_GERAL)
    client = make_client(db_session)

    res = api.post(f"/api/clientes/{client.id}/inativar", headers=auth_headers(admin))
    assert res.json()["status"] == "Inativo"
    res = api.get("/api/clientes?status=Ativo", headers=auth_headers(admin))
    assert res.json()["clientes"] == []

    res = api.post(f"/api/clientes/{client.id}/reativar", headers=auth_headers(admin))
    assert res.json()["status"] == "Ativo"


def test_delete_client_removes_its_only_user(api, db_session):
    admin = make_user(db_session, "admin", role=models.ROLE_ADMIN_GERAL)
    res = api.post("/api/clientes", json=_client_payload(), headers=auth_headers(admin))
    client_id = res.json()["id"]

    res = api.delete(f"/api/clientes/{client_id}", headers=auth_headers(admin))

    assert res.status_code == 204
    assert db_session.query(models.Client).filter_by(id=client_id).first() is None
    assert db_session.query(models.User).filter_by(username="padariasol").first() is None


@patch("contabil.api.v1.clients.lookup_cnpj")
def test_cnpj_lookup_endpoint(mock_lookup, api, db_session):
    admin = make_user(db_session, "admin", role=models.ROLE_ADMIN_GERAL)
    mock_lookup.return_value = CnpjData(
        cnpj="12345678000195",
        company="PADARIA SOL LTDA",
        trade_name="Padaria Sol",
        name="MARIA SOUZA",
        email=None,
        phone=None,
        cnaes=["1091-1/02"],
    )

    res = api.get("/api/cnpj/12345678000195", headers=auth_headers(admin))
    assert res.status_code == 200
    assert res.json()["company"] == "PADARIA SOL LTDA"

    mock_lookup.side_effect = CnpjLookupError("timeout")
    res = api.get("/api/cnpj/12345678000195", headers=auth_headers(admin))
    assert res.status_code == 502


def test_cnpj_lookup_rejects_short_value(api, db_session):
    admin = make_user(db_session, "admin", role=models.ROLE_ADMIN_GERAL)

    res = api.get("/api/cnpj/123", headers=auth_headers(admin))

    assert res.status_code == 422
