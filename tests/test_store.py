"""
Tests for linknest/store.py

Tests the entity store including:
- Link and folder CRUD
- Referential integrity between links and folders
- Atomic replacement and version tracking
- Persistence through the storage collaborator
"""
from unittest.mock import Mock

import pytest

from linknest.codec import state_to_dict
from linknest.errors import AdapterError, NotFoundError
from linknest.models import LinkData, LinkUpdate, Snapshot
from linknest.storage import MemoryStorage
from linknest.store import LinkStore, open_store


class TestLinkOperations:
    """Test link create, update and delete."""

    def test_add_link_assigns_id_and_timestamp(self, store):
        link = store.add_link(LinkData(url="https://a.com", title="A", tags="x, y"))

        assert link.id
        assert link.created_at.tzinfo is not None
        assert link.tags == ("x", "y")
        assert store.get_link(link.id) == link

    def test_add_link_prepends(self, store):
        """Newest link comes first."""
        first = store.add_link(LinkData(url="https://a.com", title="A"))
        second = store.add_link(LinkData(url="https://b.com", title="B"))

        assert [link.id for link in store.links] == [second.id, first.id]

    def test_add_link_ids_are_unique(self, store):
        ids = {store.add_link(LinkData(url="https://a.com", title="A")).id for _ in range(20)}
        assert len(ids) == 20

    def test_add_link_unknown_folder_is_unfiled(self, store):
        link = store.add_link(LinkData(url="https://a.com", title="A", folder_id="missing"))
        assert link.folder_id is None

    def test_update_link_fields(self, populated_store):
        updated = populated_store.update_link("l-react", LinkUpdate(title="React", tags=["ui"]))

        assert updated.title == "React"
        assert updated.tags == ("ui",)
        assert updated.url == "https://react.dev"
        assert populated_store.get_link("l-react") == updated

    def test_update_link_keyword_changes(self, populated_store):
        updated = populated_store.update_link("l-react", description="Docs")
        assert updated.description == "Docs"

    def test_update_link_rejects_both_forms(self, populated_store):
        with pytest.raises(TypeError):
            populated_store.update_link("l-react", LinkUpdate(title="X"), title="Y")

    def test_update_keeps_id_created_at_and_position(self, populated_store):
        before = populated_store.get_link("l-cook")
        position = [link.id for link in populated_store.links].index("l-cook")

        updated = populated_store.update_link("l-cook", title="Dinner")

        assert updated.created_at == before.created_at
        assert [link.id for link in populated_store.links].index("l-cook") == position

    def test_update_unknown_link_is_noop(self, populated_store):
        version = populated_store.version
        assert populated_store.update_link("missing", title="X") is None
        assert populated_store.version == version

    def test_update_without_changes_does_not_commit(self, populated_store):
        version = populated_store.version
        current = populated_store.get_link("l-react")

        assert populated_store.update_link("l-react", LinkUpdate()) == current
        assert populated_store.update_link("l-react", title="React Docs") == current
        assert populated_store.version == version

    def test_update_unfile_link(self, populated_store):
        updated = populated_store.update_link("l-react", folder_id=None)
        assert updated.folder_id is None

    def test_update_to_unknown_folder_unfiles(self, populated_store):
        updated = populated_store.update_link("l-react", folder_id="missing")
        assert updated.folder_id is None

    def test_delete_link(self, populated_store):
        assert populated_store.delete_link("l-news") is True
        assert populated_store.get_link("l-news") is None
        assert len(populated_store.links) == 3

    def test_delete_unknown_link_is_noop(self, populated_store):
        version = populated_store.version
        assert populated_store.delete_link("missing") is False
        assert populated_store.version == version
        assert len(populated_store.links) == 4

    def test_delete_link_twice(self, populated_store):
        """The second delete of the same id finds nothing and changes nothing."""
        storage = populated_store.storage
        version = populated_store.version

        assert populated_store.delete_link("l-news") is True
        after_first = populated_store.snapshot()
        saves = storage.save_count
        assert populated_store.version == version + 1

        assert populated_store.delete_link("l-news") is False
        assert populated_store.snapshot() == after_first
        assert populated_store.version == version + 1
        assert storage.save_count == saves


class TestFolderOperations:
    """Test folder create, rename and delete."""

    def test_add_folder_appends(self, store):
        first = store.add_folder("A")
        second = store.add_folder("B")
        assert [folder.id for folder in store.folders] == [first.id, second.id]

    def test_update_folder_renames(self, populated_store):
        renamed = populated_store.update_folder("f-dev", "Dev")
        assert renamed.name == "Dev"
        assert populated_store.get_folder("f-dev").name == "Dev"

    def test_update_unknown_folder(self, populated_store):
        assert populated_store.update_folder("missing", "X") is None

    def test_delete_folder_unfiles_links(self, populated_store):
        """Links in a deleted folder are kept, not deleted."""
        assert populated_store.delete_folder("f-dev") is True

        assert populated_store.get_folder("f-dev") is None
        assert len(populated_store.links) == 4
        assert populated_store.get_link("l-react").folder_id is None
        assert populated_store.get_link("l-python").folder_id is None
        assert populated_store.get_link("l-cook").folder_id == "f-food"

    def test_delete_folder_is_single_step(self, populated_store):
        """Folder removal and unfiling are one version bump and one save."""
        storage = populated_store.storage
        version = populated_store.version
        saves = storage.save_count

        populated_store.delete_folder("f-dev")

        assert populated_store.version == version + 1
        assert storage.save_count == saves + 1
        assert all(link["folderId"] != "f-dev" for link in storage.state["links"])

    def test_delete_unknown_folder(self, populated_store):
        assert populated_store.delete_folder("missing") is False

    def test_delete_folder_twice(self, populated_store):
        populated_store.delete_folder("f-dev")
        after_first = populated_store.snapshot()
        version = populated_store.version

        assert populated_store.delete_folder("f-dev") is False
        assert populated_store.snapshot() == after_first
        assert populated_store.version == version

    def test_no_dangling_references_after_mixed_operations(self, store):
        folder = store.add_folder("Temp")
        for i in range(3):
            store.add_link(LinkData(url=f"https://{i}.com", title=str(i), folder_id=folder.id))
        store.delete_folder(folder.id)
        store.add_link(LinkData(url="https://x.com", title="x", folder_id=folder.id))

        folder_ids = {f.id for f in store.folders}
        assert all(link.folder_id is None or link.folder_id in folder_ids for link in store.links)


class TestQueries:
    """Test read helpers."""

    def test_require_link_raises(self, populated_store):
        with pytest.raises(NotFoundError, match="Link not found: missing"):
            populated_store.require_link("missing")

    def test_require_folder_raises(self, populated_store):
        with pytest.raises(NotFoundError):
            populated_store.require_folder("missing")

    def test_find_folder_by_name(self, populated_store):
        assert populated_store.find_folder("development").id == "f-dev"
        assert populated_store.find_folder("f-food").name == "Recipes"
        assert populated_store.find_folder("nothing") is None

    def test_all_tags_sorted(self, populated_store):
        assert populated_store.all_tags() == ["docs", "food", "javascript", "news", "python", "react"]

    def test_unfiled_links(self, populated_store):
        assert [link.id for link in populated_store.unfiled_links()] == ["l-news"]


class TestReplaceAll:
    """Test wholesale replacement."""

    def test_replace_all(self, populated_store, sample_snapshot):
        replacement = Snapshot.of(sample_snapshot.links[:1], sample_snapshot.folders[:1])
        populated_store.replace_all(replacement)

        assert populated_store.snapshot() == replacement

    def test_replace_with_empty(self, populated_store):
        populated_store.replace_all(Snapshot())
        assert populated_store.links == ()
        assert populated_store.folders == ()


class TestPersistence:
    """Test storage integration."""

    def test_seeded_from_storage(self, sample_snapshot):
        store = LinkStore(MemoryStorage(state_to_dict(sample_snapshot)))
        assert store.snapshot() == sample_snapshot
        assert store.version == 0

    def test_every_mutation_is_saved(self, store, memory_storage):
        link = store.add_link(LinkData(url="https://a.com", title="A"))
        folder = store.add_folder("F")
        store.update_link(link.id, folder_id=folder.id)

        assert memory_storage.save_count == 3
        reopened = LinkStore(memory_storage)
        assert reopened.snapshot() == store.snapshot()

    def test_corrupt_storage_starts_empty(self):
        store = LinkStore(MemoryStorage({"links": "nope", "folders": []}))
        assert store.links == ()

    def test_unreadable_storage_starts_empty(self):
        storage = Mock()
        storage.load.side_effect = OSError("disk gone")
        store = LinkStore(storage)
        assert store.links == ()

    def test_save_failure_keeps_mutation(self, caplog):
        """A failed save is logged and reported, never rolled back."""
        storage = Mock()
        storage.load.return_value = None
        storage.save.side_effect = OSError("disk full")
        store = LinkStore(storage)

        link = store.add_link(LinkData(url="https://a.com", title="A"))

        assert store.get_link(link.id) == link
        assert isinstance(store.persist_error, AdapterError)
        assert "disk full" in caplog.text

    def test_successful_save_clears_error(self):
        storage = Mock()
        storage.load.return_value = None
        storage.save.side_effect = [OSError("disk full"), None]
        store = LinkStore(storage)

        store.add_folder("A")
        assert store.persist_error is not None
        store.add_folder("B")
        assert store.persist_error is None

    def test_without_storage(self):
        store = LinkStore()
        store.add_folder("A")
        assert store.persist_error is None
        assert len(store.folders) == 1

    def test_open_store_uses_config(self, clean_linknest_env):
        from linknest.config import LinkNestConfig

        config = LinkNestConfig(storage_backend="memory")
        store = open_store(config)
        assert isinstance(store.storage, MemoryStorage)
