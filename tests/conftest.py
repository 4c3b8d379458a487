"""
tests/conftest.py -- Fixtures shared by the Vaultroom test modules.

  make_test_stores()  UserStore + VaultStore over one private in-memory DB
  make_actor()        a user row plus an hour-long session token
  _patch_lifespan()   swaps the app's startup for one that uses test stores
  api_env             per-module ApiEnv: client, stores, hub, four users

The database is a named shared-memory SQLite URI
(file:<name>?mode=memory&cache=shared&uri=true). A plain :memory: database
exists per connection, but the two stores hold separate engines and
TestClient runs sync routes on worker threads; all of them must see the
same tables.

DEBUG is forced on before the app is imported so Settings generates a
throwaway SECRET_KEY.

Requests authenticate with Actor.headers (Bearer). Logging in through the
client stores an access_token cookie, which takes precedence over the
header, so tests that log in clear client.cookies afterwards.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

# Must run before core.config is imported anywhere.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from asgi import app
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from realtime.hub import RealtimeHub
from storage.files import LocalFileStorage
from vaults.models import Source
from vaults.store import VaultStore

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_test_stores(db_suffix: str) -> tuple[UserStore, VaultStore]:
    """Create a UserStore and VaultStore over one named shared-memory SQLite DB.

    Args:
        db_suffix: Unique string appended to the DB name so test modules don't
                   share state.
    """
    url = f"sqlite:///file:test_vaultroom_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=url), VaultStore(db_url=url)


@dataclass
class Actor:
    """A test user plus a session token for it."""

    id: str
    email: str
    name: str
    password: str
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


def make_actor(store: UserStore, email: str, name: str, password: str = "password123") -> Actor:
    uid = store.create_user(User(email=email, name=name, hashed_password=hash_password(password)))
    token = create_access_token(user_id=uid, email=email, name=name, expire_seconds=3600)
    return Actor(id=uid, email=email, name=name, password=password, token=token)


def _patch_lifespan(user_store: UserStore, vault_store: VaultStore, storage: LocalFileStorage):
    """Build a lifespan that installs the given stores on app.state.

    Each TestClient start gets its own hub, so socket rooms do not carry over
    from one test module to the next.
    """

    @asynccontextmanager
    async def lifespan_with_test_stores(app):
        app.state.user_store = user_store
        app.state.vault_store = vault_store
        app.state.hub = RealtimeHub(vault_store)
        app.state.storage = storage
        yield

    return lifespan_with_test_stores


# ---------------------------------------------------------------------------
# Per-module environment
# ---------------------------------------------------------------------------


@dataclass
class ApiEnv:
    client: TestClient
    user_store: UserStore
    vault_store: VaultStore
    owner: Actor
    contributor: Actor
    viewer: Actor
    outsider: Actor

    @property
    def hub(self) -> RealtimeHub:
        return self.client.app.state.hub

    def new_vault(self, name: str = "Research Papers", contributor: bool = True, viewer: bool = True) -> str:
        """Create a vault owned by `owner`, optionally with contributor/viewer members."""
        vault = self.vault_store.create_vault(name, owner_id=self.owner.id, actor_name=self.owner.name)
        if contributor:
            self.vault_store.add_member(self.contributor.id, vault.id, "contributor")
        if viewer:
            self.vault_store.add_member(self.viewer.id, vault.id, "viewer")
        return vault.id

    def new_actor(self, label: str = "newcomer") -> Actor:
        """Create a user with no memberships. Each call gets a fresh email address."""
        n = len(self.user_store.list_users())
        return make_actor(self.user_store, f"{label}{n}@example.com", f"{label.title()} {n}")

    def new_source(self, vault_id: str, title: str = "Paper", created_by: Optional[Actor] = None) -> str:
        actor = created_by or self.owner
        source = self.vault_store.create_source(
            Source(vault_id=vault_id, title=title, created_by=actor.id), actor_name=actor.name
        )
        return source.id


@pytest.fixture(scope="module")
def api_env(request, tmp_path_factory) -> Generator[ApiEnv, None, None]:
    """Yield an ApiEnv for API integration tests.

    Four users exist: owner, contributor, viewer and outsider. Roles are per
    vault, so the names only describe how ApiEnv.new_vault() enrolls them.
    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use isolated in-memory stores.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store, vault_store = make_test_stores(suffix)
    storage = LocalFileStorage(tmp_path_factory.mktemp(f"uploads_{suffix}"), "/uploads")

    owner = make_actor(user_store, "owner@example.com", "Olivia Owner")
    contributor = make_actor(user_store, "contrib@example.com", "Carl Contributor")
    viewer = make_actor(user_store, "viewer@example.com", "Vera Viewer")
    outsider = make_actor(user_store, "outsider@example.com", "Oscar Outsider")

    app.router.lifespan_context = _patch_lifespan(user_store, vault_store, storage)
    # Rate limit counters are process-wide; start every module from zero.
    limiter.reset()

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiEnv(
            client=client,
            user_store=user_store,
            vault_store=vault_store,
            owner=owner,
            contributor=contributor,
            viewer=viewer,
            outsider=outsider,
        )

    vault_store.close()
    user_store.close()
