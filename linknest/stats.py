"""
Collection statistics for LinkNest.
"""
from collections import Counter
from typing import Any, Dict, List, Sequence, Tuple

from linknest.models import Folder, Link

TOP_TAGS = 5


def tag_counts(links: Sequence[Link]) -> Counter:
    """
    Occurrences of each tag across links.

    A tag repeated on one link counts once per repetition.
    """
    counts = Counter()
    for link in links:
        counts.update(link.tags)
    return counts


def top_tags(links: Sequence[Link], limit: int = TOP_TAGS) -> List[Tuple[str, int]]:
    """
    Most used tags, highest count first.

    Equal counts are ordered by tag name.
    """
    counts = tag_counts(links)
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]


def collection_stats(links: Sequence[Link], folders: Sequence[Folder]) -> Dict[str, Any]:
    """
    Summary statistics for a collection.

    Returns:
        Dictionary with totals, top tags and per-folder link counts
    """
    counts = tag_counts(links)
    per_folder = Counter(link.folder_id for link in links if link.folder_id is not None)

    return {
        "total_links": len(links),
        "total_folders": len(folders),
        "unfiled_links": sum(1 for link in links if link.folder_id is None),
        "unique_tags": len(counts),
        "top_tags": [{"name": name, "count": count} for name, count in top_tags(links)],
        "folders": [
            {"id": folder.id, "name": folder.name, "links": per_folder.get(folder.id, 0)}
            for folder in folders
        ],
    }
