import pytest

from cotizador import service

from fakes import FakePool, FakeStore, InMemoryRepository


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def pool(store):
    return FakePool(store)


@pytest.fixture
def repo(monkeypatch):
    fake = InMemoryRepository()
    monkeypatch.setattr(service, "repository", fake)
    return fake


@pytest.fixture
def catalog(store):
    """Cliente Acme con dos items (100.00 y 50.00)."""
    software = store.add_item_type("Software")
    hardware = store.add_item_type("Hardware")
    return {
        "cliente": store.add_client("Acme", email="compras@acme.mx"),
        "licencia": store.add_item("Licencia", "100.00", software),
        "cable": store.add_item("Cable", "50.00", hardware),
        "software": software,
        "hardware": hardware,
    }
