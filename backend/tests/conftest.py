# backend/tests/conftest.py

import copy
import sys
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from unit_registry import default_catalog  # noqa: E402
from property_metadata import StaticPropertyMetadataResolver  # noqa: E402


class MockCursor:
    """Mock Motor cursor"""
    def __init__(self, docs):
        self.docs = docs

    async def to_list(self, length):
        return copy.deepcopy(self.docs[:length])


class MockCollection:
    """
    Mock MongoDB collection.

    Only top-level equality conditions are applied; operator keys ($and, $or)
    are recorded in `queries` but not evaluated.
    """
    def __init__(self, docs=None):
        self.docs = list(docs or [])
        self.queries = []
        self.updates = []
        self.find_calls = 0

    @staticmethod
    def _matches(doc, query):
        return all(
            doc.get(k) == v
            for k, v in (query or {}).items()
            if not k.startswith("$")
        )

    async def find_one(self, query, projection=None):
        for doc in self.docs:
            if self._matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find(self, query=None, projection=None):
        self.find_calls += 1
        self.queries.append(query)
        return MockCursor([d for d in self.docs if self._matches(d, query)])

    async def update_one(self, query, update):
        self.updates.append((query, update))
        for doc in self.docs:
            if self._matches(doc, query):
                doc.update(update.get("$set", {}))
                break


class MockDB:
    """Mock MongoDB database"""
    def __init__(self):
        self.units_of_measure = MockCollection()
        self.property_definitions = MockCollection()
        self.products = MockCollection()


@pytest.fixture
def mock_db():
    return MockDB()


@pytest.fixture
def catalog_docs():
    """Seeded units_of_measure documents"""
    docs = []
    for i, record in enumerate(default_catalog()):
        doc = record.model_dump(mode="json")
        doc["id"] = f"UOM_{i}"
        docs.append(doc)
    return docs


@pytest.fixture
def static_resolver():
    return StaticPropertyMetadataResolver({
        "width": ("length", "in"),
        "height": ("length", "in"),
        "pipe_diameter": {"measurement_type": "length", "unit": "inches", "data_type": "fraction"},
        "max_temperature": ("temperature", "f"),
        "coverage_area": ("area", "sq_ft"),
        "color": ("other", None),
        "material": ("other", None),
    })
