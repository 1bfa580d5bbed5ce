"""
Shared fixtures: a fully wired studio ledger on in-memory storage
"""

import pytest

from studio_ledger.config import StudioConfig
from studio_ledger.storage import InMemoryStorage
from studio_ledger.api.dependencies import StudioSystem


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def system(storage):
    """Studio system on in-memory storage with default settings"""
    return StudioSystem(storage=storage, config=StudioConfig(database_url="memory://"))


@pytest.fixture
def customer(system):
    return system.customer_manager.create_customer(
        full_name="Layla Haddad",
        phone_number="0791234567",
        city="Amman"
    )


@pytest.fixture
def supplier(system):
    return system.supplier_manager.create_supplier(
        name="Frame & Print Co",
        phone_number="0780000001"
    )
