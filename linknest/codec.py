"""
Snapshot codec for LinkNest.

Serializes the whole store to a portable JSON document and validates
documents before they are allowed anywhere near a store:

    {"links": [...], "folders": [...], "version": 1}

Entity keys are camelCase (folderId, createdAt) so backups written by
earlier LinkNest versions import unchanged.

Import is two-phase: parse_snapshot() validates and returns a Snapshot,
and the caller applies it with LinkStore.replace_all() once confirmed.
"""
import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from linknest.errors import ValidationError
from linknest.models import Folder, Link, Snapshot
from linknest.utils import format_timestamp, parse_timestamp, utcnow

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


def link_to_dict(link: Link) -> Dict[str, Any]:
    return {
        "id": link.id,
        "url": link.url,
        "title": link.title,
        "description": link.description,
        "tags": list(link.tags),
        "folderId": link.folder_id,
        "createdAt": format_timestamp(link.created_at),
    }


def folder_to_dict(folder: Folder) -> Dict[str, Any]:
    return {
        "id": folder.id,
        "name": folder.name,
        "createdAt": format_timestamp(folder.created_at),
    }


def _as_snapshot(source) -> Snapshot:
    # Accept a store (anything with snapshot()) or a Snapshot
    if isinstance(source, Snapshot):
        return source
    return source.snapshot()


def state_to_dict(source) -> Dict[str, Any]:
    """Storage form of a snapshot: {links, folders} without a version."""
    snapshot = _as_snapshot(source)
    return {
        "links": [link_to_dict(link) for link in snapshot.links],
        "folders": [folder_to_dict(folder) for folder in snapshot.folders],
    }


def export_snapshot(source) -> Dict[str, Any]:
    """
    Build the versioned export document.

    Args:
        source: A LinkStore or a Snapshot

    Returns:
        Dict with links, folders and version keys
    """
    data = state_to_dict(source)
    data["version"] = SNAPSHOT_VERSION
    return data


def dumps(source, pretty: bool = True) -> str:
    """Export to a JSON string."""
    return json.dumps(export_snapshot(source), indent=2 if pretty else None, ensure_ascii=False)


def backup_filename(day: Optional[date] = None) -> str:
    """Default backup file name, e.g. linknest-backup-2024-05-01.json."""
    day = day or utcnow().date()
    return f"linknest-backup-{day.isoformat()}.json"


def export_file(source, path: Union[str, Path], pretty: bool = True) -> Path:
    """
    Write an export document to a file.

    Args:
        source: A LinkStore or a Snapshot
        path: Output file path (parent directories are created)
        pretty: Indent the JSON

    Returns:
        The path written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        f.write(dumps(source, pretty=pretty))

    logger.debug(f"Exported snapshot to {path}")
    return path


class _EntityParser:
    """Collects validation problems while converting raw dicts to entities."""

    def __init__(self):
        self.errors: List[str] = []

    def _string(self, item: Dict[str, Any], key: str, where: str, required: bool = True,
                default: str = "") -> Optional[str]:
        value = item.get(key)
        if value is None:
            if required:
                self.errors.append(f"{where}: missing '{key}'")
                return None
            return default
        if not isinstance(value, str):
            self.errors.append(f"{where}: '{key}' must be a string")
            return None
        return value

    def _timestamp(self, item: Dict[str, Any], where: str):
        value = item.get("createdAt")
        if value is None:
            self.errors.append(f"{where}: missing 'createdAt'")
            return None
        try:
            return parse_timestamp(value)
        except ValueError:
            self.errors.append(f"{where}: invalid 'createdAt' timestamp {value!r}")
            return None

    def folder(self, item: Any, index: int) -> Optional[Folder]:
        where = f"folders[{index}]"
        if not isinstance(item, dict):
            self.errors.append(f"{where}: expected an object")
            return None

        before = len(self.errors)
        folder_id = self._string(item, "id", where)
        name = self._string(item, "name", where)
        created_at = self._timestamp(item, where)
        if len(self.errors) > before:
            return None
        return Folder(id=folder_id, name=name, created_at=created_at)

    def link(self, item: Any, index: int) -> Optional[Link]:
        where = f"links[{index}]"
        if not isinstance(item, dict):
            self.errors.append(f"{where}: expected an object")
            return None

        before = len(self.errors)
        link_id = self._string(item, "id", where)
        url = self._string(item, "url", where)
        title = self._string(item, "title", where)
        description = self._string(item, "description", where, required=False)
        created_at = self._timestamp(item, where)

        tags = item.get("tags", [])
        if tags is None:
            tags = []
        if not isinstance(tags, list) or not all(isinstance(t, str) and t for t in tags):
            self.errors.append(f"{where}: 'tags' must be a list of non-empty strings")

        folder_id = item.get("folderId")
        if folder_id is not None and not isinstance(folder_id, str):
            self.errors.append(f"{where}: 'folderId' must be a string or null")

        if len(self.errors) > before:
            return None
        return Link(
            id=link_id,
            url=url,
            title=title,
            description=description,
            tags=tuple(tags),
            folder_id=folder_id,
            created_at=created_at,
        )


def _parse_collections(data: Dict[str, Any]) -> Tuple[Snapshot, List[str]]:
    parser = _EntityParser()

    raw_links = data.get("links")
    raw_folders = data.get("folders")
    if not isinstance(raw_links, list):
        parser.errors.append("'links' must be a list")
        raw_links = []
    if not isinstance(raw_folders, list):
        parser.errors.append("'folders' must be a list")
        raw_folders = []

    folders = [parser.folder(item, i) for i, item in enumerate(raw_folders)]
    links = [parser.link(item, i) for i, item in enumerate(raw_links)]
    folders = [f for f in folders if f is not None]
    links = [link for link in links if link is not None]

    folder_ids = set()
    for folder in folders:
        if folder.id in folder_ids:
            parser.errors.append(f"duplicate folder id {folder.id!r}")
        folder_ids.add(folder.id)

    link_ids = set()
    for link in links:
        if link.id in link_ids:
            parser.errors.append(f"duplicate link id {link.id!r}")
        link_ids.add(link.id)
        if link.folder_id is not None and link.folder_id not in folder_ids:
            parser.errors.append(f"link {link.id!r} references unknown folder {link.folder_id!r}")

    return Snapshot.of(links, folders), parser.errors


def _decode(document: Union[str, bytes, Dict[str, Any]]) -> Any:
    if isinstance(document, (str, bytes, bytearray)):
        try:
            return json.loads(document)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationError(f"Error parsing JSON: {e}") from e
    return document


def parse_snapshot(document: Union[str, bytes, Dict[str, Any]]) -> Snapshot:
    """
    Validate an export document and return the candidate snapshot.

    The document must be a JSON object with non-null links and folders and
    a truthy version. A version of 0 is rejected like a missing one.

    Args:
        document: JSON text, bytes, or already-decoded data

    Returns:
        The validated Snapshot (not yet applied to any store)

    Raises:
        ValidationError: On any structural problem
    """
    data = _decode(document)

    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON format for LinkNest backup", ["expected a JSON object"])
    if data.get("links") is None or data.get("folders") is None or not data.get("version"):
        raise ValidationError(
            "Invalid JSON format for LinkNest backup",
            ["document needs non-null 'links', 'folders' and a 'version'"]
        )

    snapshot, errors = _parse_collections(data)
    if errors:
        raise ValidationError("Invalid LinkNest backup", errors)

    logger.debug(f"Parsed snapshot with {len(snapshot.links)} links, {len(snapshot.folders)} folders")
    return snapshot


def read_file(path: Union[str, Path]) -> Snapshot:
    """
    Read and validate an export file.

    Raises:
        ValidationError: If the file cannot be read or is invalid
    """
    path = Path(path)
    try:
        with open(path, "rb") as f:
            content = f.read()
    except OSError as e:
        raise ValidationError(f"Could not read file {path}: {e}") from e
    return parse_snapshot(content)


def state_from_dict(data: Any) -> Snapshot:
    """
    Convert a storage-form dict back into a Snapshot.

    No version is required here.

    Raises:
        ValidationError: If the stored state is corrupt
    """
    if not isinstance(data, dict):
        raise ValidationError("Stored state is not an object")
    snapshot, errors = _parse_collections(data)
    if errors:
        raise ValidationError("Stored state is corrupt", errors)
    return snapshot
