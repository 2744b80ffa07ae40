"""Shared fixtures for expense tracker tests."""

import fnmatch
import json
import os
import sys

import pytest

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from shared.exceptions import CacheError
from shared.response import DecimalEncoder


class InMemoryCache:
    """Stand-in for CacheClient that keeps serialized JSON in a dict."""

    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.fail_reads = False
        self.fail_writes = False

    def get_json(self, key):
        if self.fail_reads:
            raise CacheError("Redis unavailable")
        payload = self.store.get(key)
        return json.loads(payload) if payload else None

    def set_json(self, key, value, ttl_seconds=None):
        if self.fail_writes:
            raise CacheError("Redis unavailable")
        self.store[key] = json.dumps(value, cls=DecimalEncoder)
        self.ttls[key] = ttl_seconds

    def delete_pattern(self, pattern):
        if self.fail_writes:
            raise CacheError("Redis unavailable")
        matched = [key for key in self.store if fnmatch.fnmatchcase(key, pattern)]
        for key in matched:
            del self.store[key]
            self.ttls.pop(key, None)
        return len(matched)

    def keys(self, pattern='*'):
        return sorted(key for key in self.store if fnmatch.fnmatchcase(key, pattern))

    def health_check(self):
        return {'status': 'disconnected' if self.fail_reads else 'connected'}


@pytest.fixture
def fake_cache():
    """In-memory cache double."""
    return InMemoryCache()


@pytest.fixture
def user_id():
    return '7c9e6679-7425-40de-944b-e07fc1f90ae7'


@pytest.fixture
def other_user_id():
    return '16fd2706-8baf-433b-82eb-8c7fada847da'
