"""
Test configuration and fixtures.

Provides:
- An in-memory stand-in for the Supabase client (tables + auth)
- An app built by create_app with that client injected
- Helpers to create signed-in users and to call /trpc procedures
"""
import copy
import itertools
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from postgrest.exceptions import APIError

from autocrm.config import Settings
from autocrm.database.supabase_client import SupabaseClients
from autocrm.main import create_app
from autocrm.modules.auth.schemas import AuthUser
from autocrm.schema.tables import PUBLIC_TABLES


# =============================================================================
# In-memory Supabase
# =============================================================================

_clock = itertools.count()
_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _timestamp() -> str:
    """Strictly increasing timestamps so created_at ordering is deterministic"""
    return (_EPOCH + timedelta(seconds=next(_clock))).isoformat()


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.action = "select"
        self.columns = "*"
        self.payload: Any = None
        self.filters = []
        self.ordering = []
        self.max_rows: Optional[int] = None

    def select(self, columns: str = "*"):
        self.action = "select"
        self.columns = columns
        return self

    def insert(self, payload):
        self.action = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.action = "update"
        self.payload = payload
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def is_(self, column, value):
        assert value == "null"
        self.filters.append(lambda row: row.get(column) is None)
        return self

    def order(self, column, desc=False):
        self.ordering.append((column, desc))
        return self

    def limit(self, count):
        self.max_rows = count
        return self

    def _matches(self, row):
        return all(f(row) for f in self.filters)

    def _project(self, row):
        if self.columns.strip() == "*":
            return copy.deepcopy(row)
        names = [c.strip() for c in self.columns.split(",")]
        return {name: copy.deepcopy(row.get(name)) for name in names}

    def execute(self):
        if self.table in self.db.failing_tables and self.action != "select":
            raise APIError({"message": f"{self.action} on {self.table} failed", "code": "23505"})
        rows = self.db.tables.setdefault(self.table, [])
        if self.action == "insert":
            payloads = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = [self.db.with_defaults(self.table, p) for p in payloads]
            rows.extend(inserted)
            return SimpleNamespace(data=copy.deepcopy(inserted))
        if self.action == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self.payload))
                    updated.append(copy.deepcopy(row))
            return SimpleNamespace(data=updated)
        found = [row for row in rows if self._matches(row)]
        for column, desc in reversed(self.ordering):
            found.sort(key=lambda r: (r.get(column) is None, r.get(column) or ""), reverse=desc)
        if self.max_rows is not None:
            found = found[:self.max_rows]
        return SimpleNamespace(data=[self._project(r) for r in found])


class FakeAuth:
    def __init__(self):
        self.users_by_token: Dict[str, SimpleNamespace] = {}
        self.signed_out = 0

    def add_user(self, user_id: str, email: str, token: str):
        user = SimpleNamespace(id=user_id, email=email, role="authenticated", user_metadata={}, app_metadata={})
        self.users_by_token[token] = user
        return user

    def get_user(self, jwt: str):
        user = self.users_by_token.get(jwt)
        if user is None:
            raise Exception("invalid JWT: unable to parse or verify signature")
        return SimpleNamespace(user=user)

    def sign_up(self, credentials):
        user = SimpleNamespace(id=str(uuid.uuid4()), email=credentials["email"])
        return SimpleNamespace(user=user, session=None)

    def sign_in_with_password(self, credentials):
        for token, user in self.users_by_token.items():
            if user.email == credentials["email"]:
                return SimpleNamespace(user=user, session=SimpleNamespace(access_token=token))
        raise Exception("Invalid login credentials")

    def sign_out(self):
        self.signed_out += 1


class FakeSupabase:
    """The subset of supabase.Client the services use, backed by dicts"""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.auth = FakeAuth()
        self.failing_tables = set()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def with_defaults(self, table_name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        table = PUBLIC_TABLES[table_name]
        row = {}
        for column in table.columns:
            if column.name in payload:
                row[column.name] = copy.deepcopy(payload[column.name])
            elif column.name == "id":
                row["id"] = str(uuid.uuid4())
            elif column.name in ("created_at", "updated_at"):
                row[column.name] = _timestamp()
            else:
                row[column.name] = column.default
        return row

    def seed(self, table_name: str, **values) -> Dict[str, Any]:
        row = self.with_defaults(table_name, values)
        self.tables.setdefault(table_name, []).append(row)
        return copy.deepcopy(row)

    def rows(self, table_name: str) -> List[Dict[str, Any]]:
        return self.tables.get(table_name, [])


# =============================================================================
# Users
# =============================================================================

@dataclass
class FakeUser:
    id: str
    email: str
    token: str
    organizations: Dict[str, str] = field(default_factory=dict)

    def auth_user(self, db: FakeSupabase) -> AuthUser:
        """AuthUser with memberships as currently stored"""
        memberships = {
            m["organization_id"]: m["role"]
            for m in db.rows("profile_organization_members")
            if m["profile_id"] == self.id and m["deleted_at"] is None
        }
        return AuthUser(id=self.id, email=self.email, organizations=memberships)

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


@pytest.fixture
def db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def make_user(db):
    def _make_user(name: str = "user", with_profile: bool = True) -> FakeUser:
        user_id = str(uuid.uuid4())
        email = f"{name}@example.com"
        token = f"token-{name}-{user_id[:8]}"
        db.auth.add_user(user_id, email, token)
        if with_profile:
            db.seed("profiles", id=user_id, full_name=name.title())
        return FakeUser(id=user_id, email=email, token=token)
    return _make_user


@pytest.fixture
def make_org(db):
    def _make_org(name: str = "Acme", members: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Organization plus memberships given as {profile_id: role}"""
        org = db.seed("organizations", name=name)
        for profile_id, role in (members or {}).items():
            db.seed("profile_organization_members", organization_id=org["id"], profile_id=profile_id, role=role)
        return org
    return _make_org


# =============================================================================
# Application
# =============================================================================

@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="http://supabase.test",
        supabase_key="anon-key",
        environment="test",
        rate_limit="1000/minute",
        api_url="http://testserver/trpc",
    )


@pytest.fixture
def app(settings, db):
    return create_app(settings, SupabaseClients(settings, client=db, service_client=db))


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def rpc(client):
    """Call one procedure the way the RPC client would; returns the HTTP response"""
    def _call(name: str, input: Any = None, user: Optional[FakeUser] = None, kind: str = "mutation"):
        headers = user.headers if user else {"Authorization": ""}
        if kind == "query":
            params = {"input": json.dumps(input)} if input is not None else None
            return client.get(f"/trpc/{name}", params=params, headers=headers)
        return client.post(f"/trpc/{name}", json=input, headers=headers)
    return _call
