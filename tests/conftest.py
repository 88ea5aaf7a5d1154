"""
Shared fixtures for the TaxEngine API tests.

FakeSupabase is an in-memory stand-in for the supabase-py query builder,
covering the subset the app uses: select (with count), insert, update, upsert,
eq, in_, order, limit and execute.
"""

import copy
import os
import itertools

import pytest

# Set test environment before the app is imported
os.environ["ENVIRONMENT"] = "test"
os.environ["SUPABASE_URL"] = "https://test.supabase.co"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
os.environ.pop("SUPABASE_JWT_SECRET", None)
os.environ.pop("COMPANIES_HOUSE_API_KEY", None)

from taxengine import supabase_client
from taxengine.auth_permissions import (
    AuthContext, DEFAULT_ROLE_PERMISSIONS, clear_permission_cache, get_auth_context,
)
from taxengine.client_cache import get_client_cache
from taxengine.main import app
from taxengine.models import UserRole


# =============================================================================
# FAKE SUPABASE
# =============================================================================

class FakeResult:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    def __init__(self, db, table_name):
        self.db = db
        self.table_name = table_name
        self.operation = "select"
        self.payload = None
        self.filters = []
        self.ordering = []
        self.row_limit = None
        self.want_count = False
        self.conflict_column = None

    # --- operations ---
    def select(self, columns="*", count=None):
        self.operation = "select"
        self.want_count = count == "exact"
        return self

    def insert(self, rows):
        self.operation = "insert"
        self.payload = rows
        return self

    def update(self, values):
        self.operation = "update"
        self.payload = values
        return self

    def upsert(self, rows, on_conflict="id"):
        self.operation = "upsert"
        self.payload = rows
        self.conflict_column = on_conflict
        return self

    # --- modifiers ---
    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def order(self, column, desc=False):
        self.ordering.append((column, desc))
        return self

    def limit(self, n):
        self.row_limit = n
        return self

    # --- execution ---
    def _matching(self):
        rows = self.db.tables.setdefault(self.table_name, [])
        return [row for row in rows if all(f(row) for f in self.filters)]

    def execute(self):
        self.db.check_failure(self.table_name, self.operation)
        self.db.calls.append((self.table_name, self.operation))

        if self.operation == "insert":
            rows = self.payload if isinstance(self.payload, list) else [self.payload]
            stored = []
            for row in rows:
                row = copy.deepcopy(row)
                row.setdefault("id", next(self.db.ids))
                self.db.tables.setdefault(self.table_name, []).append(row)
                stored.append(copy.deepcopy(row))
            return FakeResult(stored)

        if self.operation == "upsert":
            rows = self.payload if isinstance(self.payload, list) else [self.payload]
            table = self.db.tables.setdefault(self.table_name, [])
            stored = []
            for row in rows:
                match = next((r for r in table if r.get(self.conflict_column) == row.get(self.conflict_column)), None)
                if match is None:
                    match = {"id": next(self.db.ids)}
                    table.append(match)
                match.update(copy.deepcopy(row))
                stored.append(copy.deepcopy(match))
            return FakeResult(stored)

        if self.operation == "update":
            updated = []
            for row in self._matching():
                row.update(copy.deepcopy(self.payload))
                updated.append(copy.deepcopy(row))
            return FakeResult(updated)

        rows = self._matching()
        for column, desc in reversed(self.ordering):
            rows = sorted(rows, key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        total = len(rows)
        if self.row_limit is not None:
            rows = rows[:self.row_limit]
        return FakeResult(copy.deepcopy(rows), total if self.want_count else None)


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.ids = itertools.count(1)
        self.failures = set()
        self.calls = []

    def table(self, name):
        return FakeQuery(self, name)

    def fail(self, table_name, operation):
        """Make every `operation` on `table_name` raise."""
        self.failures.add((table_name, operation))

    def check_failure(self, table_name, operation):
        if (table_name, operation) in self.failures:
            raise RuntimeError(f"simulated {operation} failure on {table_name}")

    def rows(self, table_name):
        return self.tables.get(table_name, [])

    def seed(self, table_name, *rows):
        stored = []
        for row in rows:
            row = dict(row)
            row.setdefault("id", next(self.ids))
            self.tables.setdefault(table_name, []).append(row)
            stored.append(row)
        return stored[0] if len(stored) == 1 else stored


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def fake_db(monkeypatch):
    """Route every get_supabase() call to a fresh in-memory database."""
    db = FakeSupabase()
    monkeypatch.setattr(supabase_client, "_client", db)
    clear_permission_cache()
    get_client_cache().invalidate()
    yield db
    clear_permission_cache()
    get_client_cache().invalidate()


def make_auth_context(role: UserRole, profile_id: int = 1) -> AuthContext:
    return AuthContext(
        user_id=f"{role.value.lower()}-uuid",
        email=f"{role.value.lower()}@taxengine.test",
        profile_id=profile_id,
        role=role,
        permissions=DEFAULT_ROLE_PERMISSIONS[role],
        request_id="test",
    )


@pytest.fixture
def as_admin():
    """Authenticate every request as an administrator."""
    app.dependency_overrides[get_auth_context] = lambda: make_auth_context(UserRole.ADMINISTRATOR)
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def as_processor():
    """Authenticate every request as a claim processor."""
    app.dependency_overrides[get_auth_context] = lambda: make_auth_context(UserRole.CLAIM_PROCESSOR, profile_id=2)
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def company(fake_db):
    """A stored client company with a 31 March year-end."""
    return fake_db.seed("ClientCompanies", {
        "uuid": "company-1",
        "companyName": "Acme Widgets Ltd",
        "companyNumber": "01234567",
        "utr": "1234567890",
        "email": "finance@acme.test",
        "phone": "020 7946 0000",
        "isActive": True,
        "companyYearEndMonth": 3,
        "companyYearEndDay": 31,
        "createdAt": "2024-01-01T00:00:00+00:00",
    })


@pytest.fixture
def period(fake_db, company):
    return fake_db.seed("AccountingPeriods", {
        "uuid": "period-1",
        "clientCompanyId": company["id"],
        "clientCompanyUuid": company["uuid"],
        "startDate": "2023-04-01",
        "endDate": "2024-03-31",
        "status": "NOT_STARTED",
    })
