"""
Shared fixtures. Services are built on a fresh MemoryStore per test and
wired into the FastAPI app through dependency overrides.
"""

import itertools
import os

import pytest

os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("AUTO_TICK", "0")

from deps.services import get_accounts, get_admin, get_game
from deps.store import MemoryStore
from services.accounts import AccountService
from services.admin import AdminService
from services.engine import EngineConfig
from services.game import GameService

# Never orphans and always Normal: progress walks 0.2 per tick to a completed block.
SAFE = EngineConfig(
    normal_mode_chance=1.0,
    orphan_base_chance=0.0,
    orphan_max_chance=0.0,
    difficulty_range=(0.0, 0.0),
)

# Always Normal at difficulty 3.0: forced orphan once progress reaches 25%.
DOOMED = EngineConfig(
    normal_mode_chance=1.0,
    orphan_base_chance=0.0,
    orphan_max_chance=0.0,
    difficulty_range=(3.0, 3.0),
)


@pytest.fixture
def safe_config():
    return SAFE


@pytest.fixture
def doomed_config():
    return DOOMED


@pytest.fixture
def seeds():
    """Deterministic seed source: seed-0, seed-1, ..."""
    counter = itertools.count()
    return lambda: f"seed-{next(counter)}"


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def accounts(store):
    return AccountService(store, starting_balance=1000.0)


@pytest.fixture
def admin(store):
    return AdminService(store)


@pytest.fixture
def game(store, seeds):
    return GameService(store, SAFE, recovery_balance=100.0, history_limit=50, seed_source=seeds)


@pytest.fixture
def owner(accounts):
    return accounts.register("owner", "hunter22", "hunter22")


@pytest.fixture
def player(accounts, owner):
    return accounts.register("alice", "secret99", "secret99")


@pytest.fixture
def client(accounts, admin, game):
    from fastapi.testclient import TestClient
    from main import app

    app.dependency_overrides[get_accounts] = lambda: accounts
    app.dependency_overrides[get_admin] = lambda: admin
    app.dependency_overrides[get_game] = lambda: game
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    """Log in over HTTP and return the bearer headers."""
    def _login(username, password):
        r = client.post("/auth/login", json={"username": username, "password": password})
        assert r.status_code == 200, r.text
        return {"Authorization": f"Bearer {r.json()['token']}"}
    return _login
