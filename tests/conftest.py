import pytest

from fakes import SingleSessionFactory
from vaultproxy.tools.executor import ToolExecutor
from vaultproxy.tools.registry import ToolRegistry
from vaultproxy.vault.client import VaultClient, VaultContext
from vaultproxy.vault.pool import SessionPool

VAULT_ADDR = "http://vault.test:8200"
TOKEN = "s.test-token"


@pytest.fixture
def routes() -> dict:
    return {}


@pytest.fixture
def factory(routes) -> SingleSessionFactory:
    return SingleSessionFactory(routes)


@pytest.fixture
def pool(factory) -> SessionPool:
    return SessionPool(factory=factory)


@pytest.fixture
def executor(pool) -> ToolExecutor:
    return ToolExecutor(VaultClient(pool, VaultContext(vault_addr=VAULT_ADDR, vault_token=TOKEN)))


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry()


@pytest.fixture
def vault_calls(factory):
    """All calls made against the fake store, across every pooled session."""

    def _calls():
        return [c for s in factory.created for c in s.calls]

    return _calls
