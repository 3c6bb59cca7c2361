"""
Query engine for LinkNest.

Answers "which links are shown, in what order" for a folder filter, a tag
filter, free-text search and a sort mode. Three stages run in order:

1. Structural filter on folder and tag
2. Relevance scoring when a search is active; links scoring 0 are dropped
3. Sorting by the selected mode

Scoring is a deterministic heuristic. Substring matches on the whole
query weigh most (title 50, tag 40, description 15, URL 5), each
significant query token found in the title or tags adds 10, and typo
tolerant matches against title words and tags add 15 and 12.

run_query() is the pure function. QueryEngine wraps it with the
selection state, including the rule that starting a search switches to
relevance order and clearing it switches back to newest first.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from rapidfuzz.distance import Levenshtein

from linknest.models import Link
from linknest.utils import format_timestamp

logger = logging.getLogger(__name__)

# Relevance weights
TITLE_MATCH = 50
TAG_MATCH = 40
DESCRIPTION_MATCH = 15
URL_MATCH = 5
TOKEN_MATCH = 10
FUZZY_TITLE_MATCH = 15
FUZZY_TAG_MATCH = 12

MIN_TOKEN_LENGTH = 3
MAX_LENGTH_DIFFERENCE = 3


class SortMode(str, Enum):
    """Result orderings."""
    RELEVANCE = "relevance"
    DATE_DESC = "date-desc"
    DATE_ASC = "date-asc"
    TITLE_ASC = "title-asc"
    TITLE_DESC = "title-desc"
    URL_ASC = "url-asc"
    URL_DESC = "url-desc"

    @classmethod
    def parse(cls, value) -> "SortMode":
        """Accept a SortMode or its string value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(mode.value for mode in cls)
            raise ValueError(f"Unknown sort mode: {value} (expected one of: {valid})") from None


DEFAULT_SORT = SortMode.DATE_DESC


@dataclass(frozen=True)
class ScoredLink:
    """A link in a result list, with its relevance score when a search is active."""
    link: Link
    score: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.link.id,
            'url': self.link.url,
            'title': self.link.title,
            'description': self.link.description,
            'tags': list(self.link.tags),
            'folder_id': self.link.folder_id,
            'created_at': format_timestamp(self.link.created_at),
            'score': self.score,
        }


def levenshtein(a: str, b: str) -> int:
    """
    Edit distance between two strings.

    Unit cost insertion, deletion and substitution; transpositions count
    as two edits.
    """
    return Levenshtein.distance(a, b)


def significant_tokens(text: str) -> List[str]:
    """Whitespace-separated pieces of text longer than two characters, in order."""
    return [token for token in text.split() if len(token) >= MIN_TOKEN_LENGTH]


def _unique(items: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(items))


def fuzzy_threshold(token: str) -> int:
    """Edits tolerated for a query token: 2 for tokens over 6 characters, else 1."""
    return 2 if len(token) > 6 else 1


def is_fuzzy_match(query_token: str, candidate: str) -> bool:
    if abs(len(query_token) - len(candidate)) >= MAX_LENGTH_DIFFERENCE:
        return False
    return levenshtein(query_token, candidate) <= fuzzy_threshold(query_token)


def score_link(link: Link, query: str) -> int:
    """
    Relevance of a link for a search query.

    Args:
        link: Link to score
        query: Raw search text (trimmed and lower-cased here)

    Returns:
        Non-negative score; 0 means the link does not match
    """
    search = query.strip().lower()
    if not search:
        return 0

    tokens = significant_tokens(search)
    title = link.title.lower()
    description = link.description.lower()
    url = link.url.lower()
    tags = [tag.lower() for tag in link.tags]

    score = 0
    if search in title:
        score += TITLE_MATCH
    if any(search in tag for tag in tags):
        score += TAG_MATCH
    if search in description:
        score += DESCRIPTION_MATCH
    if search in url:
        score += URL_MATCH

    content = f"{title} {' '.join(tags)}"
    for token in tokens:
        if token in content:
            score += TOKEN_MATCH

    if tokens:
        title_tokens = _unique(significant_tokens(title))
        tag_candidates = _unique(tag for tag in tags if len(tag) >= MIN_TOKEN_LENGTH)

        for token in tokens:
            for candidate in title_tokens:
                if is_fuzzy_match(token, candidate):
                    score += FUZZY_TITLE_MATCH
            for candidate in tag_candidates:
                if is_fuzzy_match(token, candidate):
                    score += FUZZY_TAG_MATCH

    return score


def filter_links(links: Iterable[Link], folder_id: Optional[str] = None,
                 tag: Optional[str] = None) -> List[Link]:
    """Keep links in folder_id (when given) that carry tag (when given)."""
    return [
        link for link in links
        if (folder_id is None or link.folder_id == folder_id)
        and (tag is None or tag in link.tags)
    ]


def search_links(links: Iterable[Link], query: str) -> List[ScoredLink]:
    """Score links against query and drop those that do not match."""
    scored = (ScoredLink(link, score_link(link, query)) for link in links)
    return [item for item in scored if item.score > 0]


def _text_key(value: str) -> Tuple[str, str]:
    # Case-insensitive collation first, raw string to break ties
    return (value.casefold(), value)


def _newest_first(item: ScoredLink) -> Tuple[float, str]:
    return (-item.link.created_at.timestamp(), item.link.id)


def sort_links(items: Sequence[ScoredLink], mode=DEFAULT_SORT) -> List[ScoredLink]:
    """
    Order results by mode.

    Ties are always broken deterministically: date modes by id, every other
    mode by newest first and then id.
    """
    mode = SortMode.parse(mode)
    items = list(items)

    if mode == SortMode.DATE_DESC:
        # Stable two-pass sort: id ascending inside equal timestamps
        items.sort(key=lambda item: item.link.id)
        items.sort(key=lambda item: item.link.created_at, reverse=True)
        return items
    if mode == SortMode.DATE_ASC:
        return sorted(items, key=lambda item: (item.link.created_at, item.link.id))

    # Tie-break order first, primary key second (sorts are stable)
    items.sort(key=_newest_first)
    if mode == SortMode.RELEVANCE:
        items.sort(key=lambda item: item.score or 0, reverse=True)
    elif mode == SortMode.TITLE_ASC:
        items.sort(key=lambda item: _text_key(item.link.title))
    elif mode == SortMode.TITLE_DESC:
        items.sort(key=lambda item: _text_key(item.link.title), reverse=True)
    elif mode == SortMode.URL_ASC:
        items.sort(key=lambda item: _text_key(item.link.url))
    elif mode == SortMode.URL_DESC:
        items.sort(key=lambda item: _text_key(item.link.url), reverse=True)
    return items


def run_query(links: Iterable[Link], folder_id: Optional[str] = None, tag: Optional[str] = None,
              query: str = "", sort=DEFAULT_SORT) -> List[ScoredLink]:
    """
    Filter, score and sort links.

    Args:
        links: All links
        folder_id: Only links in this folder (None for all)
        tag: Only links carrying this tag (None for all)
        query: Free-text search; blank means no search
        sort: SortMode or its string value

    Returns:
        Ordered results. score is None when query is blank.
    """
    filtered = filter_links(links, folder_id, tag)
    if query.strip():
        items = search_links(filtered, query)
    else:
        items = [ScoredLink(link) for link in filtered]
    return sort_links(items, sort)


class QueryEngine:
    """
    Holds the current filter selection over a store and produces results.

    The search text and the sort mode are coupled: when a search starts the
    sort switches to relevance, and when it is cleared the sort switches
    back to newest first. In between, the user's choice is kept.

    Results are recomputed only when the store version or one of the
    selection inputs changed.
    """

    def __init__(self, store, folder_id: Optional[str] = None, tag: Optional[str] = None,
                 query: str = "", sort=DEFAULT_SORT):
        self.store = store
        self.folder_id = folder_id
        self.tag = tag
        self.query = ""
        self.sort = DEFAULT_SORT
        self._cache_key = None
        self._cache: List[ScoredLink] = []

        self.set_query(query)
        if SortMode.parse(sort) != DEFAULT_SORT:
            self.set_sort(sort)

    @property
    def search_active(self) -> bool:
        return bool(self.query.strip())

    def set_query(self, query: str) -> SortMode:
        """
        Change the search text, applying the sort mode transition.

        Returns:
            The sort mode in effect afterwards
        """
        query = query or ""
        was_active = self.search_active
        self.query = query
        now_active = self.search_active

        if now_active and not was_active:
            self.sort = SortMode.RELEVANCE
        elif was_active and not now_active:
            self.sort = DEFAULT_SORT
        return self.sort

    def set_sort(self, sort) -> SortMode:
        """
        Choose a sort mode.

        Raises:
            ValueError: For an unknown mode, or relevance without an active search
        """
        mode = SortMode.parse(sort)
        if mode == SortMode.RELEVANCE and not self.search_active:
            raise ValueError("Relevance sort is only available while searching")
        self.sort = mode
        return mode

    def set_folder(self, folder_id: Optional[str]):
        self.folder_id = folder_id

    def set_tag(self, tag: Optional[str]):
        self.tag = tag

    def available_sort_modes(self) -> List[SortMode]:
        if self.search_active:
            return list(SortMode)
        return [mode for mode in SortMode if mode != SortMode.RELEVANCE]

    def results(self) -> List[ScoredLink]:
        """Current results for the selection."""
        # A deleted folder can no longer be selected
        if self.folder_id is not None and self.store.get_folder(self.folder_id) is None:
            logger.info(f"Folder {self.folder_id} no longer exists, clearing folder filter")
            self.folder_id = None

        key = (self.store.version, self.folder_id, self.tag, self.query, self.sort)
        if key != self._cache_key:
            self._cache = run_query(self.store.links, self.folder_id, self.tag, self.query, self.sort)
            self._cache_key = key
        return list(self._cache)
