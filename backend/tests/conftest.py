"""
Pytest fixtures for storekeeper backend tests.

Every test using the `app` fixture runs once per storage backend (sql and
memory), so both implementations are held to the same behavior.
"""

from datetime import datetime

import pytest

from storekeeper import create_app
from storekeeper.extensions import db
from storekeeper.services import inventory_service, sales_service


# Fixed business clock for tests that depend on day boundaries.
AS_OF = datetime(2026, 10, 18, 12, 0, 0)


def make_app(backend: str, tmp_path, **overrides):
    config = {
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STORAGE_BACKEND': backend,
        'BACKUP_DIR': str(tmp_path / 'backups'),
        'LOG_LEVEL': 'WARNING',
    }
    config.update(overrides)
    return create_app(config)


@pytest.fixture(params=['sql', 'memory'])
def app(request, tmp_path):
    """Application with a fresh, empty store for each test and backend."""
    app = make_app(request.param, tmp_path)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def runner(app):
    return app.test_cli_runner()


@pytest.fixture(scope='function')
def make_item(app):
    """Factory for items; opening stock goes through the ledger."""
    counter = {'n': 0}

    def _make(**fields):
        counter['n'] += 1
        defaults = {
            'sku': f"SKU-{counter['n']:03d}",
            'name': f"Item {counter['n']}",
            'price_cents': 1000,
            'cost_cents': 600,
            'opening_stock': 10,
        }
        defaults.update(fields)
        return inventory_service.create_item(**defaults)

    return _make


@pytest.fixture(scope='function')
def sell(app):
    """Record a single-line sale."""

    def _sell(item, quantity, created_at=None, **kwargs):
        return sales_service.record_sale(
            [{'item_id': item.id, 'quantity': quantity}],
            created_at=created_at or AS_OF,
            **kwargs,
        )

    return _sell
