import itertools
import os
import sys

import pytest

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from dashboard.store import EditSessionStore


@pytest.fixture
def id_factory():
    """Predictable widget ids: w1, w2, w3, ..."""
    counter = itertools.count(1)
    return lambda: f"w{next(counter)}"


@pytest.fixture
def store(id_factory):
    return EditSessionStore(id_factory=id_factory)
