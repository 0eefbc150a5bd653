import pytest

from battery_logger import app
from sheet_store import MemoryStore


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def make_client(store):
    """Flask test client wired to the in-memory store for a given schema."""
    saved = dict(app.config)

    def _make(schema="uuid", factory=None):
        app.config['BATTERY'] = dict(saved['BATTERY'], schema=schema, backend='memory')
        app.config['STORE_FACTORY'] = factory or (lambda create=True: store)
        app.config['TESTING'] = True
        return app.test_client()

    yield _make
    app.config.clear()
    app.config.update(saved)
