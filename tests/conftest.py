import os
from datetime import datetime, timedelta, timezone

import pytest

from linknest import config as config_module
from linknest.models import Folder, Link, Snapshot
from linknest.storage import MemoryStorage
from linknest.store import LinkStore

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def reset_config():
    """Drop the cached global configuration between tests."""
    config_module._config = None
    yield
    config_module._config = None


@pytest.fixture
def clean_linknest_env(monkeypatch, tmp_path):
    """
    Fixture to create a clean LinkNest environment without affecting real config.

    Removes LINKNEST_ environment variables and sets HOME to a temp directory.
    """
    for key in list(os.environ.keys()):
        if key.startswith("LINKNEST_"):
            monkeypatch.delenv(key, raising=False)

    mock_home = tmp_path / "home"
    mock_home.mkdir()
    monkeypatch.setenv("HOME", str(mock_home))
    monkeypatch.chdir(tmp_path)

    return tmp_path


@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest.fixture
def store(memory_storage):
    """Empty store backed by in-memory storage."""
    return LinkStore(memory_storage)


def make_link(link_id, title, url=None, description="", tags=(), folder_id=None, minutes=0):
    """Build a Link with a created_at offset from a fixed base time."""
    return Link(
        id=link_id,
        url=url or f"https://example.com/{link_id}",
        title=title,
        description=description,
        tags=tuple(tags),
        folder_id=folder_id,
        created_at=BASE_TIME + timedelta(minutes=minutes),
    )


@pytest.fixture
def link_factory():
    """Factory for Link values: link_factory(id, title, ..., minutes=offset)."""
    return make_link


@pytest.fixture
def sample_snapshot():
    """A small collection with two folders, filed and unfiled links."""
    folders = (
        Folder(id="f-dev", name="Development", created_at=BASE_TIME),
        Folder(id="f-food", name="Recipes", created_at=BASE_TIME + timedelta(minutes=1)),
    )
    links = (
        make_link("l-react", "React Docs", url="https://react.dev",
                  description="The library for web and native user interfaces",
                  tags=["react", "javascript"], folder_id="f-dev", minutes=30),
        make_link("l-cook", "Cooking Tips", url="https://cooking.example.com",
                  description="Weeknight dinners", tags=["food"], folder_id="f-food", minutes=20),
        make_link("l-python", "Python Tutorial", url="https://docs.python.org/3/tutorial",
                  description="Official tutorial", tags=["python", "docs"], folder_id="f-dev", minutes=10),
        make_link("l-news", "Hacker News", url="https://news.ycombinator.com",
                  tags=["news"], minutes=0),
    )
    return Snapshot(links=links, folders=folders)


@pytest.fixture
def populated_store(sample_snapshot):
    """Store seeded with sample_snapshot through its storage."""
    from linknest.codec import state_to_dict

    return LinkStore(MemoryStorage(state_to_dict(sample_snapshot)))


@pytest.fixture
def sample_document():
    """A valid export document as decoded JSON."""
    return {
        "version": 1,
        "folders": [
            {"id": "f1", "name": "Reading", "createdAt": "2024-05-01T12:00:00.000Z"},
        ],
        "links": [
            {
                "id": "l1",
                "url": "https://example.com",
                "title": "Example",
                "description": "An example",
                "tags": ["demo", "web"],
                "folderId": "f1",
                "createdAt": "2024-05-01T12:30:00.000Z",
            },
            {
                "id": "l2",
                "url": "https://example.org",
                "title": "Unfiled",
                "tags": [],
                "folderId": None,
                "createdAt": "2024-05-01T13:00:00.000Z",
            },
        ],
    }
