import unittest

import pytest
from fastapi import HTTPException

from conftest import make_client, make_user

from contabil.core.authorization import (
    accessible_client_ids,
    apply_client_scope,
    ensure_client_access,
    has_capability,
    user_capabilities,
)
from contabil.db import models


class CapabilityTests(unittest.TestCase):
    def _user(self, role, **flags):
        return models.User(username="u", password_hash="x", name="U", role=role, **flags)

    def test_admin_geral_has_every_capability(self):
        user = self._user(models.ROLE_ADMIN_GERAL)
        self.assertTrue(has_capability(user, "billing"))
        self.assertTrue(has_capability(user, "admins"))

    def test_admin_is_gated_by_flags(self):
        user = self._user(models.ROLE_ADMIN, can_manage_billing=True, can_view_reports=False)
        self.assertTrue(has_capability(user, "billing"))
        self.assertFalse(has_capability(user, "reports"))
        self.assertEqual(user_capabilities(user), ["billing"])

    def test_client_role_never_has_capabilities(self):
        user = self._user(models.ROLE_CLIENT, can_manage_billing=True)
        self.assertFalse(has_capability(user, "billing"))
        self.assertEqual(user_capabilities(user), [])

    def test_unknown_capability_is_rejected(self):
        user = self._user(models.ROLE_ADMIN_GERAL)
        with self.assertRaises(ValueError):
            has_capability(user, "unknown")


def test_client_user_sees_only_access_set(db_session):
    padaria = make_client(db_session, company="Padaria Sol")
    oficina = make_client(db_session, company="Oficina Lua")
    make_client(db_session, company="Mercado Azul")
    user = make_user(db_session, "maria", role=models.ROLE_CLIENT, clients=[padaria, oficina])

    assert accessible_client_ids(user) == {padaria.id, oficina.id}
    visible = apply_client_scope(db_session.query(models.Client), user, models.Client.id).all()
    assert sorted(c.company for c in visible) == ["Oficina Lua", "Padaria Sol"]


def test_admin_scope_is_unrestricted(db_session):
    make_client(db_session, company="Padaria Sol")
    make_client(db_session, company="Oficina Lua")
    admin = make_user(db_session, "admin", role=models.ROLE_ADMIN)

    assert accessible_client_ids(admin) is None
    assert apply_client_scope(db_session.query(models.Client), admin, models.Client.id).count() == 2


def test_client_user_without_clients_sees_nothing(db_session):
    make_client(db_session)
    user = make_user(db_session, "orfao", role=models.ROLE_CLIENT)

    assert apply_client_scope(db_session.query(models.Client), user, models.Client.id).all() == []


def test_ensure_client_access_rejects_other_clients(db_session):
    padaria = make_client(db_session, company="Padaria Sol")
    oficina = make_client(db_session, company="Oficina Lua")
    user = make_user(db_session, "maria", role=models.ROLE_CLIENT, clients=[padaria])

    ensure_client_access(user, padaria.id)
    with pytest.raises(HTTPException) as exc:
        ensure_client_access(user, oficina.id)
    assert exc.value.status_code == 403
