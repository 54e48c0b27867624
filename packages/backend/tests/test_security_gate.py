"""Security gate tests — route policy, 401 vs 403, ownership.

Learn: The gate is installed app-wide in create_app(), so any router added
to the app is protected without extra wiring. These tests build a fresh
app, mount a few stand-in business routes on it (browse, create, admin,
owner-only edit), and drive them with real tokens.
"""

import uuid

import pytest
import pytest_asyncio
from fastapi import APIRouter, Depends
from httpx import ASGITransport, AsyncClient

from promptdex.auth.dependencies import (
    extract_bearer_token,
    get_current_principal,
    get_optional_principal,
    require_owner,
    require_role,
)
from promptdex.auth.errors import AccessDenied
from promptdex.auth.policy import AccessDecision, RoutePolicy, RouteRule
from promptdex.auth.principal import Principal, Provider
from promptdex.db.engine import get_db
from promptdex.main import create_app

from conftest import bearer, create_user


def _principal(*roles: str) -> Principal:
    return Principal(
        id=uuid.uuid4(),
        username="p",
        email="p@example.com",
        provider=Provider.LOCAL,
        roles=frozenset(roles or ("USER",)),
    )


# ═══════════════════════════════════════════════════════════
# Route policy (pure)
# ═══════════════════════════════════════════════════════════


@pytest.mark.parametrize(
    "method,path",
    [
        ("POST", "/auth/login"),
        ("POST", "/auth/register"),
        ("GET", "/oauth2/authorize/github"),
        ("GET", "/login/oauth2/code/google"),
        ("GET", "/health"),
        ("GET", "/api/prompts"),
        ("GET", "/api/prompts/"),
        ("GET", "/api/prompts/42/versions"),
        ("GET", "/api/tags"),
        ("GET", "/api/users/alice/profile"),
        ("OPTIONS", "/api/admin/users"),
    ],
)
def test_open_routes_allow_anonymous(method, path):
    assert RoutePolicy().decide(method, path, None) is AccessDecision.ALLOW


@pytest.mark.parametrize(
    "method,path",
    [
        ("POST", "/api/prompts"),
        ("DELETE", "/api/prompts/42"),
        ("GET", "/auth/me"),
        ("GET", "/api/users/alice/settings"),
        ("GET", "/api/users/alice/profile/extra"),
        ("GET", "/oauth2/authorize/github/extra"),
    ],
)
def test_everything_else_needs_authentication(method, path):
    policy = RoutePolicy()
    assert policy.decide(method, path, None) is AccessDecision.UNAUTHENTICATED
    assert policy.decide(method, path, _principal()) is AccessDecision.ALLOW


def test_admin_prefix_needs_admin_role():
    policy = RoutePolicy()
    assert policy.decide("GET", "/api/admin", None) is AccessDecision.UNAUTHENTICATED
    assert policy.decide("GET", "/api/admin/users", _principal()) is (
        AccessDecision.FORBIDDEN
    )
    assert policy.decide("GET", "/api/admin/users", _principal("USER", "ADMIN")) is (
        AccessDecision.ALLOW
    )
    # Prefix means path segments, not string prefix.
    assert policy.decide("GET", "/api/administrators", _principal()) is (
        AccessDecision.ALLOW
    )


def test_rule_single_star_stays_in_one_segment():
    rule = RouteRule("GET", "/api/users/*/profile")
    assert rule.matches("GET", "/api/users/bob/profile")
    assert not rule.matches("GET", "/api/users/a/b/profile")
    assert not rule.matches("POST", "/api/users/bob/profile")


def test_extract_bearer_token():
    assert extract_bearer_token("Bearer abc.def") == "abc.def"
    assert extract_bearer_token("Basic dXNlcjpwdw==") is None
    assert extract_bearer_token("Bearer ") is None
    assert extract_bearer_token(None) is None


def test_require_owner():
    p = _principal()
    require_owner(p, p.id)
    require_owner(p, str(p.id))
    with pytest.raises(AccessDenied):
        require_owner(p, uuid.uuid4())


# ═══════════════════════════════════════════════════════════
# Gate in front of real routes
# ═══════════════════════════════════════════════════════════


@pytest_asyncio.fixture()
async def gated_client(db_session):
    app = create_app()
    owner_of = {}

    router = APIRouter(prefix="/api")

    @router.get("/prompts")
    async def list_prompts(principal=Depends(get_optional_principal)):
        return {"viewer": principal.username if principal else None}

    @router.post("/prompts", status_code=201)
    async def create_prompt(principal: Principal = Depends(get_current_principal)):
        prompt_id = str(uuid.uuid4())
        owner_of[prompt_id] = principal.id
        return {"id": prompt_id}

    @router.put("/prompts/{prompt_id}")
    async def edit_prompt(
        prompt_id: str, principal: Principal = Depends(get_current_principal)
    ):
        require_owner(principal, owner_of[prompt_id])
        return {"id": prompt_id, "edited": True}

    @router.get("/admin/stats")
    async def admin_stats(principal: Principal = Depends(require_role("ADMIN"))):
        return {"admin": principal.username}

    @router.get("/boom")
    async def boom():
        raise RuntimeError("database password is hunter2")

    app.include_router(router)

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_browse_is_anonymous_but_sees_the_viewer(gated_client, db_session):
    r = await gated_client.get("/api/prompts")
    assert r.status_code == 200
    assert r.json() == {"viewer": None}

    user = await create_user(db_session, "alice")
    r = await gated_client.get("/api/prompts", headers=bearer(user))
    assert r.json() == {"viewer": "alice"}


@pytest.mark.asyncio
async def test_invalid_token_on_browse_route_is_anonymous(gated_client):
    r = await gated_client.get(
        "/api/prompts", headers={"Authorization": "Bearer not-a-token"}
    )
    assert r.status_code == 200
    assert r.json() == {"viewer": None}


@pytest.mark.asyncio
async def test_create_requires_authentication(gated_client, db_session):
    r = await gated_client.post("/api/prompts")
    assert r.status_code == 401
    assert r.json() == {"detail": "Authentication required"}

    user = await create_user(db_session, "alice")
    r = await gated_client.post("/api/prompts", headers=bearer(user))
    assert r.status_code == 201


@pytest.mark.asyncio
async def test_only_owner_may_edit(gated_client, db_session):
    alice = await create_user(db_session, "alice")
    bob = await create_user(db_session, "bob")
    prompt_id = (await gated_client.post("/api/prompts", headers=bearer(alice))).json()["id"]

    r = await gated_client.put(f"/api/prompts/{prompt_id}", headers=bearer(bob))
    assert r.status_code == 403

    r = await gated_client.put(f"/api/prompts/{prompt_id}", headers=bearer(alice))
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_admin_routes(gated_client, db_session):
    user = await create_user(db_session, "alice")
    admin = await create_user(db_session, "root", roles=["USER", "ADMIN"])

    assert (await gated_client.get("/api/admin/stats")).status_code == 401
    r = await gated_client.get("/api/admin/stats", headers=bearer(user))
    assert r.status_code == 403
    assert r.json() == {"detail": "Access denied"}
    r = await gated_client.get("/api/admin/stats", headers=bearer(admin))
    assert r.status_code == 200
    assert r.json() == {"admin": "root"}


@pytest.mark.asyncio
async def test_role_change_applies_to_existing_token(gated_client, db_session):
    """Roles are read from the store per request, not baked into the token."""
    user = await create_user(db_session, "alice")
    headers = bearer(user)
    assert (await gated_client.get("/api/admin/stats", headers=headers)).status_code == 403

    user.roles = ["USER", "ADMIN"]
    await db_session.commit()
    assert (await gated_client.get("/api/admin/stats", headers=headers)).status_code == 200


@pytest.mark.asyncio
async def test_preflight_passes_without_token(gated_client):
    r = await gated_client.options(
        "/api/admin/stats",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "GET",
        },
    )
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_unexpected_error_is_generic_500(gated_client, db_session):
    user = await create_user(db_session, "alice")
    r = await gated_client.get("/api/boom", headers=bearer(user))
    assert r.status_code == 500
    assert r.json() == {"detail": "An internal server error occurred"}
    assert "hunter2" not in r.text
