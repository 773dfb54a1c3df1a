import pytest

from finwf.domain.services import ServiceRegistry


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent unit tests from accidentally using developer machine env vars.

    If a test needs an env var, it should set it explicitly via monkeypatch.
    """
    monkeypatch.delenv("FINWF_API_TOKEN", raising=False)


@pytest.fixture(autouse=True)
def _restore_service_registry():
    """Restore the service registry after each test so fake services don't leak."""
    snapshot = {kind: dict(services) for kind, services in ServiceRegistry._registry.items()}

    yield

    for kind, services in ServiceRegistry._registry.items():
        services.clear()
        services.update(snapshot[kind])
