from __future__ import annotations

import os
from pathlib import Path

import pytest

T0 = 1_700_000_000_000


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    """Load repo .env for local runs (PyCharm/CLI).

    In CI, we *don't* auto-load `.env` by default so a developer's REDIS_URL or
    dev-admin list can't leak into the run. Opt-in with LABFORGE_LOAD_DOTENV_FOR_TESTS=1.
    """

    if os.environ.get("CI") and os.environ.get("LABFORGE_LOAD_DOTENV_FOR_TESTS") != "1":
        return

    env_path = Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)


@pytest.fixture(scope="session", autouse=True)
def _init_catalog_from_test_fixtures() -> None:
    """Initialize the catalog from `tests/catalog` and forbid the built-in fallback.

    This keeps tests hermetic and prevents coupling to the production catalog.
    """

    os.environ["LABFORGE_STRICT_CATALOG"] = "1"

    from labforge.catalog.singleton import init_catalog, reset_catalog_for_tests

    reset_catalog_for_tests()

    # Point the loader at a fake project root: tests/ contains a catalog/ dir.
    test_root = Path(__file__).resolve().parent
    init_catalog(project_root=test_root)


@pytest.fixture()
def r():
    import fakeredis

    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def player(r):
    """A fresh technical-founder player `p1` created at T0."""

    from labforge.game_config import FounderType
    from labforge.players import create_player

    return create_player(r=r, player_id="p1", lab_name="Test Lab", founder_type=FounderType.technical, now=T0)


@pytest.fixture()
def edit_ledger(r):
    """Overwrite fields of a stored ledger, e.g. `edit_ledger("p1", cash=100)`."""

    from labforge import store

    def _edit(player_id: str, **changes):
        ledger = store.require_ledger(r=r, player_id=player_id)
        for name, value in changes.items():
            setattr(ledger, name, value)
        r.set(store.ledger_key(player_id), ledger.model_dump_json())
        return ledger

    return _edit


@pytest.fixture()
def interfere_once(r, monkeypatch: pytest.MonkeyPatch):
    """Run `action` against Redis between the next transaction's WATCH and EXEC.

    Returns a list that grows by one per attempt of that transaction.
    """

    def _arm(action):
        attempts: list[int] = []
        original = r.transaction

        def transaction(fn, *watches, **kwargs):
            # Only the first transaction after arming is wrapped.
            monkeypatch.setattr(r, "transaction", original)

            def wrapped(pipe):
                attempts.append(len(attempts) + 1)
                if len(attempts) == 1:
                    action()
                return fn(pipe)

            return original(wrapped, *watches, **kwargs)

        monkeypatch.setattr(r, "transaction", transaction)
        return attempts

    return _arm


class FakeClock:
    def __init__(self, t: int) -> None:
        self.t = t

    def __call__(self) -> int:
        return self.t

    def advance(self, ms: int) -> None:
        self.t += ms


@pytest.fixture()
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Freeze the wall clock at T0 everywhere the API and resolver read it."""

    import labforge.api.routes as routes
    import labforge.clock as clock_mod
    import labforge.resolver as resolver_mod

    fake = FakeClock(T0)
    monkeypatch.setattr(clock_mod, "now_ms", fake)
    monkeypatch.setattr(routes, "now_ms", fake)
    monkeypatch.setattr(resolver_mod, "now_ms", fake)
    return fake


@pytest.fixture()
def client_and_redis():
    """FastAPI TestClient wired to a fakeredis instance."""

    from collections.abc import Generator

    import fakeredis
    from fastapi.testclient import TestClient

    from labforge.api.deps import get_redis
    from labforge.main import app

    r = fakeredis.FakeRedis(decode_responses=True)

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    app.dependency_overrides[get_redis] = _override
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
