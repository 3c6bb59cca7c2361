"""
Entity store for LinkNest.

LinkStore is the authoritative in-memory holder of links and folders. It
guarantees that a link never points at a folder that does not exist, and
applies every mutation as a single swap of its collections so no caller
can observe a half-applied change.

Every state-changing mutation is written to the injected storage
collaborator. Storage failures are logged and kept in persist_error; they
never undo or fail the in-memory mutation.
"""
import logging
from typing import List, Optional, Tuple

from linknest.codec import state_from_dict, state_to_dict
from linknest.config import LinkNestConfig
from linknest.errors import AdapterError, NotFoundError, ValidationError
from linknest.models import Folder, Link, LinkData, LinkUpdate, Snapshot
from linknest.storage import Storage, build_storage
from linknest.utils import generate_id, utcnow

logger = logging.getLogger(__name__)


class LinkStore:
    """
    Holds links and folders and enforces referential integrity.

    Example:
        >>> from linknest.storage import MemoryStorage
        >>> store = LinkStore(MemoryStorage())
        >>> folder = store.add_folder("Reading")
        >>> link = store.add_link(LinkData(url="https://example.com", title="Example",
        ...                                folder_id=folder.id))
        >>> store.delete_folder(folder.id)
        True
        >>> store.get_link(link.id).folder_id is None
        True
    """

    def __init__(self, storage: Optional[Storage] = None):
        """
        Create a store, seeding it from storage.

        Args:
            storage: Durable storage collaborator. None keeps everything in memory.
        """
        self.storage = storage
        self.version = 0
        self.persist_error: Optional[AdapterError] = None
        self._links: Tuple[Link, ...] = ()
        self._folders: Tuple[Folder, ...] = ()
        self._load()

    def _load(self):
        """Seed from storage. Absent or corrupt storage means an empty store."""
        if self.storage is None:
            return
        try:
            data = self.storage.load()
        except Exception as e:
            logger.warning(f"Could not read storage, starting empty: {e}")
            return
        if data is None:
            return
        try:
            snapshot = state_from_dict(data)
        except ValidationError as e:
            logger.warning(f"Ignoring corrupt stored state, starting empty: {e}")
            return
        self._links = snapshot.links
        self._folders = snapshot.folders
        logger.debug(f"Loaded {len(self._links)} links and {len(self._folders)} folders")

    def _commit(self, links: Tuple[Link, ...], folders: Tuple[Folder, ...]):
        """Install new collections in one step, then persist."""
        self._links = links
        self._folders = folders
        self.version += 1
        self._persist()

    def _persist(self):
        if self.storage is None:
            return
        try:
            self.storage.save(state_to_dict(self.snapshot()))
        except Exception as e:
            logger.error(f"Failed to persist store state: {e}")
            self.persist_error = AdapterError(f"Failed to persist store state: {e}")
        else:
            self.persist_error = None

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def links(self) -> Tuple[Link, ...]:
        return self._links

    @property
    def folders(self) -> Tuple[Folder, ...]:
        return self._folders

    def snapshot(self) -> Snapshot:
        return Snapshot(links=self._links, folders=self._folders)

    def get_link(self, link_id: str) -> Optional[Link]:
        for link in self._links:
            if link.id == link_id:
                return link
        return None

    def get_folder(self, folder_id: str) -> Optional[Folder]:
        for folder in self._folders:
            if folder.id == folder_id:
                return folder
        return None

    def require_link(self, link_id: str) -> Link:
        """Like get_link, but raises NotFoundError for an unknown id."""
        link = self.get_link(link_id)
        if link is None:
            raise NotFoundError("link", link_id)
        return link

    def require_folder(self, folder_id: str) -> Folder:
        """Like get_folder, but raises NotFoundError for an unknown id."""
        folder = self.get_folder(folder_id)
        if folder is None:
            raise NotFoundError("folder", folder_id)
        return folder

    def find_folder(self, ref: str) -> Optional[Folder]:
        """Find a folder by id, falling back to a case-insensitive name match."""
        folder = self.get_folder(ref)
        if folder is not None:
            return folder
        wanted = ref.casefold()
        for folder in self._folders:
            if folder.name.casefold() == wanted:
                return folder
        return None

    def all_tags(self) -> List[str]:
        """Every distinct tag in use, sorted."""
        return sorted({tag for link in self._links for tag in link.tags})

    def unfiled_links(self) -> List[Link]:
        return [link for link in self._links if link.folder_id is None]

    def _checked_folder_id(self, folder_id: Optional[str]) -> Optional[str]:
        if folder_id is None or self.get_folder(folder_id) is not None:
            return folder_id
        logger.warning(f"Unknown folder {folder_id}, storing link as unfiled")
        return None

    # ------------------------------------------------------------------
    # Link mutations
    # ------------------------------------------------------------------

    def add_link(self, data: LinkData) -> Link:
        """
        Add a link at the front of the collection.

        Args:
            data: Caller-supplied fields

        Returns:
            The new link, with a fresh id and created_at
        """
        link = Link(
            id=generate_id(),
            url=data.url,
            title=data.title,
            description=data.description,
            tags=data.tags,
            folder_id=self._checked_folder_id(data.folder_id),
            created_at=utcnow(),
        )
        self._commit((link,) + self._links, self._folders)
        logger.debug(f"Added link {link.id}")
        return link

    def update_link(self, link_id: str, update: Optional[LinkUpdate] = None, **changes) -> Optional[Link]:
        """
        Overwrite the given fields of a link.

        Args:
            link_id: Link to update
            update: The fields to change
            **changes: Alternative to update, e.g. title="New"

        Returns:
            The updated link, or None if link_id is unknown
        """
        if update is None:
            update = LinkUpdate(**changes)
        elif changes:
            raise TypeError("Pass either an update or keyword changes, not both")

        current = self.get_link(link_id)
        if current is None:
            logger.debug(f"update_link: no link {link_id}")
            return None

        updated = update.apply(current)
        if "folder_id" in update.changes():
            updated = LinkUpdate(folder_id=self._checked_folder_id(updated.folder_id)).apply(updated)
        if updated == current:
            return current

        links = tuple(updated if link.id == link_id else link for link in self._links)
        self._commit(links, self._folders)
        return updated

    def delete_link(self, link_id: str) -> bool:
        """
        Remove a link. Deleting an unknown id is a no-op.

        Returns:
            True if a link was removed
        """
        links = tuple(link for link in self._links if link.id != link_id)
        if len(links) == len(self._links):
            return False
        self._commit(links, self._folders)
        logger.debug(f"Deleted link {link_id}")
        return True

    # ------------------------------------------------------------------
    # Folder mutations
    # ------------------------------------------------------------------

    def add_folder(self, name: str) -> Folder:
        """Append a new folder."""
        folder = Folder(id=generate_id(), name=name, created_at=utcnow())
        self._commit(self._links, self._folders + (folder,))
        logger.debug(f"Added folder {folder.id}")
        return folder

    def update_folder(self, folder_id: str, name: str) -> Optional[Folder]:
        """
        Rename a folder.

        Returns:
            The renamed folder, or None if folder_id is unknown
        """
        current = self.get_folder(folder_id)
        if current is None:
            return None
        if current.name == name:
            return current

        renamed = current.renamed(name)
        folders = tuple(renamed if folder.id == folder_id else folder for folder in self._folders)
        self._commit(self._links, folders)
        return renamed

    def delete_folder(self, folder_id: str) -> bool:
        """
        Remove a folder and unfile every link in it, as one step.

        Links are kept; only their folder_id is cleared.

        Returns:
            True if a folder was removed
        """
        folders = tuple(folder for folder in self._folders if folder.id != folder_id)
        if len(folders) == len(self._folders):
            return False

        links = tuple(
            LinkUpdate(folder_id=None).apply(link) if link.folder_id == folder_id else link
            for link in self._links
        )
        self._commit(links, folders)
        logger.debug(f"Deleted folder {folder_id}")
        return True

    # ------------------------------------------------------------------
    # Wholesale replacement
    # ------------------------------------------------------------------

    def replace_all(self, snapshot: Snapshot):
        """
        Discard all links and folders and install the snapshot's.

        The snapshot is taken verbatim; validate it with
        linknest.codec.parse_snapshot() first.
        """
        self._commit(tuple(snapshot.links), tuple(snapshot.folders))
        logger.info(f"Replaced store with {len(snapshot.links)} links and {len(snapshot.folders)} folders")


def open_store(config: Optional[LinkNestConfig] = None) -> LinkStore:
    """Open a store backed by the storage the configuration selects."""
    return LinkStore(build_storage(config))
