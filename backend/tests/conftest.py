import pytest
import sys
import os

from git import Repo

# Add the parent directory to Python path so we can import backend modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Test configuration (config.py requires an origin outside the test environment)
os.environ.setdefault("WIKI_ENV", "test")

from storage import ContentStore, Repository


def open_store(path, origin, push_enabled=False):
    """Open (or create) a working copy cloned from origin and wrap it in a store."""
    repository = Repository.open_or_create(str(path), origin, "Test", "test@test.com")
    return ContentStore(repository, push_enabled=push_enabled)


@pytest.fixture
def origin(tmp_path):
    """Empty bare repository acting as the master repository."""
    path = tmp_path / "origin.git"
    Repo.init(path, bare=True)
    return str(path)


@pytest.fixture
def store(tmp_path, origin):
    """Content store on a fresh working copy of origin."""
    return open_store(tmp_path / "data", origin)


@pytest.fixture
def other_store(tmp_path, origin):
    """A second working copy of the same origin, standing in for another wiki instance."""
    return open_store(tmp_path / "other", origin)
