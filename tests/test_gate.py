import logging

import pytest

from crm.features.permissions.dependencies import GateState, RequestGate
from crm.features.permissions.errors import Forbidden, Unauthenticated
from crm.features.permissions.evaluator import Outcome
from crm.features.permissions.principal import Principal, ResourceRef
from crm.features.permissions.roles import Role
from crm.features.permissions.tokens import Action, Entity, Scope

from tests.doubles import SpyEvaluator, StaticClaimsResolver, make_request


USER = Principal("u1", "orgA", Role.USER, frozenset({"acc1"}))
ADMIN = Principal("a1", "orgA", Role.ADMIN)
ROOT = Principal("s1", "orgZ", Role.SUPER_ADMIN)


@pytest.fixture
def evaluator(table):
    return SpyEvaluator(table)


def gate_for(principal, evaluator):
    resolver = StaticClaimsResolver(principal)
    return RequestGate(make_request("/accounts"), resolver, evaluator), resolver


async def test_no_session_is_unauthenticated_and_never_evaluates(evaluator):
    gate, resolver = gate_for(None, evaluator)

    with pytest.raises(Unauthenticated):
        await gate.require_authenticated()
    with pytest.raises(Unauthenticated):
        await gate.require_permission("account:read:all")

    assert gate.state is GateState.UNAUTHENTICATED
    assert evaluator.evaluated == []
    assert resolver.calls == 1


async def test_principal_resolved_once_per_gate(evaluator):
    gate, resolver = gate_for(ADMIN, evaluator)

    assert gate.state is GateState.UNRESOLVED
    assert await gate.require_authenticated() == ADMIN
    assert gate.state is GateState.AUTHENTICATED
    await gate.require_permission("account:read:all", ResourceRef(organization_id="orgA"))
    await gate.require_permission("deal:update", ResourceRef(organization_id="orgA"))

    assert gate.state is GateState.AUTHORIZED
    assert resolver.calls == 1
    assert evaluator.evaluated == ["account:read:all", "deal:update"]


async def test_denial_is_terminal(evaluator):
    gate, _ = gate_for(USER, evaluator)

    with pytest.raises(Forbidden) as exc_info:
        await gate.require_permission("account:delete:all")

    assert exc_info.value.decision.outcome is Outcome.DENIED
    assert gate.state is GateState.FORBIDDEN
    with pytest.raises(Forbidden):
        await gate.require_authenticated()
    with pytest.raises(Forbidden):
        await gate.require_permission("account:read:own", ResourceRef(organization_id="orgA", owner_ref="acc1"))
    assert evaluator.evaluated == ["account:delete:all"]


async def test_scope_proof_through_gate(evaluator):
    gate, _ = gate_for(USER, evaluator)
    principal = await gate.require_permission("account:read:own", ResourceRef(organization_id="orgA", owner_ref="acc1"))
    assert principal == USER

    gate, _ = gate_for(USER, evaluator)
    with pytest.raises(Forbidden):
        await gate.require_permission("account:read:own", ResourceRef(organization_id="orgA", owner_ref="acc3"))


async def test_normal_denial_logged_at_info(evaluator, caplog):
    gate, _ = gate_for(USER, evaluator)
    with caplog.at_level(logging.INFO, logger="crm.features.permissions.dependencies"):
        with pytest.raises(Forbidden):
            await gate.require_permission("account:delete:all")

    denials = [r for r in caplog.records if r.name == "crm.features.permissions.dependencies"]
    assert denials and all(r.levelno == logging.INFO for r in denials)


async def test_unknown_permission_logged_at_error(evaluator, caplog):
    gate, _ = gate_for(ADMIN, evaluator)
    with caplog.at_level(logging.INFO, logger="crm.features.permissions.dependencies"):
        with pytest.raises(Forbidden) as exc_info:
            await gate.require_permission("invoice:read")

    assert exc_info.value.decision.outcome is Outcome.UNKNOWN_PERMISSION
    assert any(
        r.levelno == logging.ERROR and r.name == "crm.features.permissions.dependencies"
        for r in caplog.records
    )


async def test_require_organization(evaluator):
    gate, _ = gate_for(ADMIN, evaluator)
    assert await gate.require_organization("orgA") == ADMIN
    assert gate.state is GateState.AUTHORIZED

    gate, _ = gate_for(ADMIN, evaluator)
    with pytest.raises(Forbidden):
        await gate.require_organization("orgB")
    assert gate.state is GateState.FORBIDDEN


async def test_super_admin_passes_any_organization(evaluator):
    gate, _ = gate_for(ROOT, evaluator)
    await gate.require_organization("orgA")
    await gate.require_permission("account:delete:all", ResourceRef(organization_id="orgB"))
    assert gate.state is GateState.AUTHORIZED


async def test_require_visibility(evaluator):
    gate, _ = gate_for(USER, evaluator)
    assert await gate.require_visibility(Entity.ACCOUNT) == (USER, Scope.OWN)

    gate, _ = gate_for(ADMIN, evaluator)
    assert await gate.require_visibility(Entity.DEAL) == (ADMIN, Scope.ALL)


async def test_require_visibility_without_grant(evaluator):
    gate, _ = gate_for(USER, evaluator)
    with pytest.raises(Forbidden):
        await gate.require_visibility(Entity.ACTIVITY, Action.DELETE)
