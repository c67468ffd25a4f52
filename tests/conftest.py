"""Shared fixtures: in-memory ports, signing keys and auth settings.

The in-memory stores implement the same read and write methods as the
SQL repositories, so routers, resolvers and the scope engine run against
them unchanged.
"""

from __future__ import annotations

import json
import time
from dataclasses import replace
from typing import Any
from uuid import UUID, uuid4

import jwt as pyjwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from tripgate.domain.access.models import RoleGrant
from tripgate.domain.tenancy.models import Organization, Partnership
from tripgate.foundation.domain.exceptions import ConflictError, NotFoundError
from tripgate.foundation.domain.org_value_objects import OrgType, RoleType, UserStatus
from tripgate.foundation.domain.user_value_objects import UserRecord
from tripgate.infra.auth.settings import AuthSettings

SESSION_SECRET = "test-session-secret-0123456789abcdef"
OIDC_ISSUER = "https://id.example.com"


# ---------------------------------------------------------------------------
# In-memory ports
# ---------------------------------------------------------------------------


class InMemoryUserDirectory:
    """Dict-backed user directory keyed by id."""

    def __init__(self) -> None:
        self.users: dict[UUID, UserRecord] = {}
        self.upsert_calls = 0

    def add(self, email: str, display_name: str = "", **fields: Any) -> UserRecord:
        user = UserRecord(id=uuid4(), email=email, display_name=display_name or email, **fields)
        self.users[user.id] = user
        return user

    def get_by_id(self, user_id: UUID) -> UserRecord | None:
        return self.users.get(user_id)

    def get_by_email(self, email: str) -> UserRecord | None:
        return next((u for u in self.users.values() if u.email == email), None)

    def get_by_legacy_id(self, legacy_user_id: str) -> UserRecord | None:
        return next(
            (u for u in self.users.values() if u.legacy_user_id == legacy_user_id), None
        )

    def upsert_by_email(self, email: str, display_name: str, role: str) -> UserRecord:
        self.upsert_calls += 1
        existing = self.get_by_email(email)
        if existing is None:
            return self.add(email, display_name, role=role)
        updated = replace(existing, display_name=display_name)
        self.users[updated.id] = updated
        return updated

    def create_pending(
        self, email: str, display_name: str, password_hash: str, role: str
    ) -> UserRecord:
        if self.get_by_email(email) is not None:
            raise ConflictError("Email already exists", email=email)
        return self.add(
            email,
            display_name,
            role=role,
            status=UserStatus.PENDING,
            password_hash=password_hash,
        )

    def list_by_status(self, status: UserStatus) -> list[UserRecord]:
        return [u for u in self.users.values() if u.status is status]

    def set_status(self, user_id: UUID, status: UserStatus) -> UserRecord | None:
        existing = self.users.get(user_id)
        if existing is None:
            return None
        updated = replace(existing, status=status)
        self.users[user_id] = updated
        return updated


class InMemoryOrganizations:
    """Organizations and partnerships of every tenant."""

    def __init__(self) -> None:
        self.orgs: dict[UUID, Organization] = {}
        self.partnerships: list[Partnership] = []

    def add(
        self,
        tenant_id: UUID,
        type: OrgType,
        *,
        name: str = "",
        parent_id: UUID | None = None,
    ) -> Organization:
        org = Organization(
            id=uuid4(),
            tenant_id=tenant_id,
            name=name or f"{type.value.lower()}-{len(self.orgs)}",
            type=type,
            parent_id=parent_id,
        )
        self.orgs[org.id] = org
        return org

    def link(self, bus_company: Organization, school: Organization, active: bool = True) -> None:
        self.partnerships.append(
            Partnership(
                id=uuid4(),
                tenant_id=bus_company.tenant_id,
                bus_company_id=bus_company.id,
                school_id=school.id,
                active=active,
            )
        )

    def get(self, tenant_id: UUID, org_id: UUID) -> Organization | None:
        org = self.orgs.get(org_id)
        return org if org is not None and org.tenant_id == tenant_id else None

    def get_any(self, org_id: UUID) -> Organization | None:
        return self.orgs.get(org_id)

    def get_many(self, org_ids: list[UUID]) -> dict[UUID, Organization]:
        return {i: self.orgs[i] for i in org_ids if i in self.orgs}

    def list_for_tenant(self, tenant_id: UUID) -> list[Organization]:
        return [o for o in self.orgs.values() if o.tenant_id == tenant_id]

    def org_type(self, tenant_id: UUID, org_id: UUID) -> OrgType | None:
        org = self.get(tenant_id, org_id)
        return org.type if org is not None else None

    def child_school_ids(self, tenant_id: UUID, parent_org_id: UUID) -> set[UUID]:
        return {
            o.id
            for o in self.list_for_tenant(tenant_id)
            if o.parent_id == parent_org_id and o.type is OrgType.SCHOOL
        }

    def partner_school_ids(self, tenant_id: UUID, bus_company_id: UUID) -> set[UUID]:
        return {
            p.school_id
            for p in self.partnerships
            if p.tenant_id == tenant_id
            and p.bus_company_id == bus_company_id
            and p.active
            and self.org_type(tenant_id, p.school_id) is OrgType.SCHOOL
        }


class InMemoryRoleGrants:
    """Role grants and scope rows, with the tenant lookup the admin gate needs."""

    def __init__(self, organizations: InMemoryOrganizations) -> None:
        self._organizations = organizations
        self.grants: dict[tuple[UUID, UUID, RoleType], bool] = {}
        self.scopes: dict[tuple[UUID, UUID, RoleType], list[UUID]] = {}

    def grant(
        self, user_id: UUID, org_id: UUID, role: RoleType, *, is_default: bool = False
    ) -> RoleGrant:
        key = (user_id, org_id, role)
        if is_default:
            for other in list(self.grants):
                if other[0] == user_id:
                    self.grants[other] = False
        self.grants[key] = self.grants.get(key, False) or is_default
        return RoleGrant(user_id, org_id, role, self.grants[key])

    def revoke(self, user_id: UUID, org_id: UUID, role: RoleType) -> None:
        key = (user_id, org_id, role)
        if key not in self.grants:
            raise NotFoundError("Role grant", f"{user_id}/{org_id}/{role}")
        del self.grants[key]
        self.scopes.pop(key, None)

    def restrict(self, user_id: UUID, org_id: UUID, role: RoleType, school_ids: list[UUID]) -> None:
        self.scopes[(user_id, org_id, role)] = list(school_ids)

    def replace_scopes(
        self, user_id: UUID, org_id: UUID, role: RoleType, school_ids: list[UUID]
    ) -> list[UUID]:
        key = (user_id, org_id, role)
        if key not in self.grants:
            raise NotFoundError("Role grant", f"{user_id}/{org_id}/{role}")
        self.scopes[key] = sorted(set(school_ids), key=str)
        return self.scopes[key]

    def list_scopes(self, user_id: UUID, org_id: UUID, role: RoleType) -> list[UUID]:
        return list(self.scopes.get((user_id, org_id, role), []))

    def grants_for_user(self, user_id: UUID) -> list[RoleGrant]:
        return [
            RoleGrant(u, o, r, d, tuple(self.scopes.get((u, o, r), ())))
            for (u, o, r), d in self.grants.items()
            if u == user_id
        ]

    def is_tenant_admin(self, user_id: UUID, tenant_id: UUID) -> bool:
        for u, o, r in self.grants:
            org = self._organizations.get_any(o)
            if u == user_id and r is RoleType.ADMIN and org and org.tenant_id == tenant_id:
                return True
        return False

    def roles_on_org(self, user_id: UUID, org_id: UUID) -> set[RoleType]:
        return {r for (u, o, r) in self.grants if u == user_id and o == org_id}

    def scoped_school_ids(self, user_id: UUID, org_id: UUID, roles: Any) -> list[UUID]:
        ids: list[UUID] = []
        for role in roles:
            ids.extend(self.scopes.get((user_id, org_id, role), []))
        return ids


@pytest.fixture()
def directory() -> InMemoryUserDirectory:
    return InMemoryUserDirectory()


@pytest.fixture()
def organizations() -> InMemoryOrganizations:
    return InMemoryOrganizations()


@pytest.fixture()
def grants(organizations: InMemoryOrganizations) -> InMemoryRoleGrants:
    return InMemoryRoleGrants(organizations)


@pytest.fixture()
def tenant_id() -> UUID:
    return uuid4()


# ---------------------------------------------------------------------------
# Keys and tokens
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_jwk(rsa_private_key: rsa.RSAPrivateKey) -> dict[str, Any]:
    """Public half of the test key as a JWK with ``kid`` ``test-key``."""
    jwk = json.loads(RSAAlgorithm.to_jwk(rsa_private_key.public_key()))
    return {**jwk, "kid": "test-key", "use": "sig", "alg": "RS256"}


@pytest.fixture()
def sign_rs256(rsa_private_key: rsa.RSAPrivateKey) -> Any:
    """Return a signer producing RS256 tokens with sensible default claims."""

    def _sign(kid: str | None = "test-key", **claims: Any) -> str:
        now = int(time.time())
        payload = {"iss": OIDC_ISSUER, "sub": "ext-1", "iat": now, "exp": now + 300, **claims}
        headers = {"kid": kid} if kid else None
        return pyjwt.encode(payload, rsa_private_key, algorithm="RS256", headers=headers)

    return _sign


@pytest.fixture()
def auth_settings() -> AuthSettings:
    return AuthSettings(
        _env_file=None,
        session_secret=SESSION_SECRET,
        oidc_issuer=OIDC_ISSUER,
        oidc_jwks_uri=f"{OIDC_ISSUER}/jwks",
    )
