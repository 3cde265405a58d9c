"""
Shared pytest fixtures.

Every test runs against a fresh in-memory store, so no MongoDB server is
needed.
"""

import copy

import pytest

from generations.storage.memory import InMemoryStore
from generations.version.collection import GenerationCollection

USER = {
    "username": "JoannisO",
    "password": "henk",
    "age": 20,
    "male": True,
    "contact": {
        "email": "joannis@orlandos.nl",
        "phone": "+00 000 000 00",
        "social": {
            "skype": "joanniso",
        },
    },
}


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def collection(store):
    return GenerationCollection(store)


@pytest.fixture
def user():
    """A fresh copy of the sample user document."""
    return copy.deepcopy(USER)
