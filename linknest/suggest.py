"""
AI suggestions for LinkNest.

Uses a Large Language Model through any OpenAI-compatible API (OpenAI,
Ollama, LocalAI, vLLM, LM Studio, ...) to:

- suggest a title, description and tags for a URL
- suggest a folder for each unfiled link

Suggestions are optional enrichment. Every failure degrades to "no
suggestion" and never touches the store. Each request carries a
SuggestionToken; once the token is cancelled, results obtained with it are
discarded instead of applied.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import requests

from linknest.config import LinkNestConfig, get_config
from linknest.errors import AdapterError
from linknest.models import Folder, Link, LinkData
from linknest.utils import parse_tags

logger = logging.getLogger(__name__)


@dataclass
class LLMConfig:
    """Configuration for the LLM provider."""
    base_url: str = "http://localhost:11434/v1"
    api_key: Optional[str] = None
    model: Optional[str] = None  # No default model - must be specified
    temperature: float = 0.2
    max_tokens: Optional[int] = None
    timeout: float = 30.0

    @classmethod
    def from_config(cls, config: Optional[LinkNestConfig] = None) -> "LLMConfig":
        """Build from the llm_* fields of the LinkNest configuration."""
        config = config or get_config()
        return cls(
            base_url=config.llm_base_url,
            api_key=config.llm_api_key,
            model=config.llm_model,
            temperature=config.llm_temperature,
            timeout=config.llm_timeout,
        )


class HTTPLLMProvider:
    """
    HTTP LLM provider speaking the OpenAI chat completions API.

    All failures are raised as AdapterError.
    """

    def __init__(self, config: Optional[LLMConfig] = None):
        self.config = config or LLMConfig.from_config()
        self.session = requests.Session()

        if self.config.api_key:
            self.session.headers["Authorization"] = f"Bearer {self.config.api_key}"
        self.session.headers["Content-Type"] = "application/json"

    def complete(self, prompt: str) -> str:
        """
        Get a completion for prompt.

        Raises:
            AdapterError: If no model is configured, the request fails, or
                the response has an unexpected shape
        """
        if not self.config.model:
            raise AdapterError("No model specified in LLM configuration (set llm_model)")

        data = {
            "model": self.config.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.config.temperature,
        }
        if self.config.max_tokens:
            data["max_tokens"] = self.config.max_tokens

        try:
            response = self.session.post(
                f"{self.config.base_url.rstrip('/')}/chat/completions",
                json=data,
                timeout=self.config.timeout
            )
            response.raise_for_status()
            result = response.json()
            return result["choices"][0]["message"]["content"]
        except requests.exceptions.Timeout as e:
            raise AdapterError(f"LLM request timed out after {self.config.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise AdapterError(f"LLM request failed: {e}") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise AdapterError(f"Unexpected LLM response format: {e}") from e

    def complete_json(self, prompt: str, schema: Optional[Dict] = None) -> Any:
        """
        Get a JSON completion for prompt.

        Code fences and surrounding chatter are stripped before parsing.

        Raises:
            AdapterError: If the request fails or no JSON can be parsed
        """
        json_prompt = f"{prompt}\n\nIMPORTANT: Respond with valid JSON only, no additional text."
        if schema:
            json_prompt += f"\n\nFollow this exact schema:\n{json.dumps(schema, indent=2)}"

        response = self.complete(json_prompt)
        return parse_json_response(response)


def parse_json_response(text: str) -> Any:
    """
    Parse JSON out of an LLM reply.

    Raises:
        AdapterError: If no JSON value can be found
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]

    json_match = re.search(r'[\{\[].*[\}\]]', cleaned, re.DOTALL)
    candidate = json_match.group() if json_match else cleaned
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        raise AdapterError(f"LLM reply is not valid JSON: {e}") from e


class SuggestionToken:
    """
    Liveness token for a suggestion request.

    The caller cancels it when the request is abandoned; any result
    obtained with a cancelled token must not be applied.
    """

    def __init__(self):
        self.cancelled = False

    @property
    def alive(self) -> bool:
        return not self.cancelled

    def cancel(self):
        self.cancelled = True


@dataclass
class LinkSuggestion:
    """Suggested metadata for a URL."""
    title: str = ""
    description: str = ""
    tags: List[str] = field(default_factory=list)
    token: Optional[SuggestionToken] = field(default=None, repr=False, compare=False)

    def fill(self, data: LinkData) -> LinkData:
        """
        Fill the blank fields of data from this suggestion.

        Fields the user already provided are kept.
        """
        return LinkData(
            url=data.url,
            title=data.title or self.title or data.url,
            description=data.description or self.description,
            tags=data.tags or tuple(self.tags),
            folder_id=data.folder_id,
        )


@dataclass(frozen=True)
class FolderSuggestion:
    """Suggested folder for a link; None means no folder fits."""
    link_id: str
    suggested_folder_id: Optional[str]


DETAILS_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "description": {"type": "string"},
        "tags": {"type": "string"},
    },
    "required": ["title", "description", "tags"],
}

FOLDERS_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "linkId": {"type": "string"},
            "suggestedFolderId": {"type": ["string", "null"]},
        },
        "required": ["linkId", "suggestedFolderId"],
    },
}


class SuggestionAdapter:
    """
    Asks the LLM for link metadata and folder assignments.

    Public methods never raise on provider failure: they return None or
    an empty list and keep the error in last_error for the UI.
    """

    def __init__(self, provider: Optional[HTTPLLMProvider] = None):
        self.provider = provider or HTTPLLMProvider()
        self.last_error: Optional[AdapterError] = None

    def suggest_details(self, url: str, token: Optional[SuggestionToken] = None) -> Optional[LinkSuggestion]:
        """
        Suggest a title, description and tags for url.

        Returns:
            The suggestion, or None on failure or when the token was cancelled
        """
        token = token or SuggestionToken()
        if not url:
            self.last_error = AdapterError("A URL is needed to get suggestions")
            return None

        prompt = (
            f"Based on the content of the URL: {url}, suggest a concise title (max 10 words), "
            f"a brief description (max 30 words), and up to 5 relevant tags (comma-separated)."
        )

        try:
            result = self.provider.complete_json(prompt, DETAILS_SCHEMA)
            if not isinstance(result, dict):
                raise AdapterError(f"Unexpected LLM response format: {result!r}")
        except AdapterError as e:
            logger.error(f"Error fetching suggestions: {e}")
            self.last_error = e
            return None

        self.last_error = None
        if not token.alive:
            logger.info(f"Discarding details suggestion for {url}: request was cancelled")
            return None

        title = result.get("title")
        description = result.get("description")
        tags = result.get("tags")
        if isinstance(tags, list):
            tags = [tag for tag in tags if isinstance(tag, str)]
        elif not isinstance(tags, str):
            tags = None

        return LinkSuggestion(
            title=title.strip() if isinstance(title, str) else "",
            description=description.strip() if isinstance(description, str) else "",
            tags=parse_tags(tags)[:5],
            token=token,
        )

    def suggest_folders(self, links: Sequence[Link], folders: Sequence[Folder],
                        token: Optional[SuggestionToken] = None) -> List[FolderSuggestion]:
        """
        Suggest a folder for each of links from folders.

        Returns:
            Suggestions for known links only; empty on failure, when there
            is nothing to organize, or when the token was cancelled
        """
        token = token or SuggestionToken()
        if not links or not folders:
            return []

        links_payload = [
            {"id": link.id, "title": link.title, "url": link.url, "description": link.description}
            for link in links
        ]
        folders_payload = [{"id": folder.id, "name": folder.name} for folder in folders]

        prompt = (
            "Analyze the following list of links and suggest an appropriate folder for each "
            "from the provided list of folders.\n\n"
            f"Folders: {json.dumps(folders_payload)}\n"
            f"Links: {json.dumps(links_payload)}\n\n"
            'Respond with a JSON array of objects. Each object must have a "linkId" and a '
            '"suggestedFolderId". If no folder is a good fit, set "suggestedFolderId" to null.'
        )

        try:
            result = self.provider.complete_json(prompt, FOLDERS_SCHEMA)
            if not isinstance(result, list):
                raise AdapterError(f"Unexpected LLM response format: {result!r}")
        except AdapterError as e:
            logger.error(f"Error fetching folder suggestions: {e}")
            self.last_error = e
            return []

        self.last_error = None
        if not token.alive:
            logger.info("Discarding folder suggestions: request was cancelled")
            return []

        known_links = {link.id for link in links}
        known_folders = {folder.id for folder in folders}
        suggestions = []
        for item in result:
            if not isinstance(item, dict):
                continue
            link_id = item.get("linkId")
            if not isinstance(link_id, str) or link_id not in known_links:
                continue
            folder_id = item.get("suggestedFolderId")
            if not isinstance(folder_id, str) or folder_id not in known_folders:
                folder_id = None
            suggestions.append(FolderSuggestion(link_id=link_id, suggested_folder_id=folder_id))
        return suggestions


def apply_folder_suggestions(store, suggestions: Sequence[FolderSuggestion],
                             token: SuggestionToken) -> int:
    """
    File links into their suggested folders.

    Nothing is applied when the token has been cancelled. A suggestion is
    skipped when its link is gone or already filed, when it suggests no
    folder, or when the folder no longer exists.

    Returns:
        Number of links moved
    """
    if not token.alive:
        logger.info(f"Discarding {len(suggestions)} folder suggestions: request was cancelled")
        return 0

    applied = 0
    for suggestion in suggestions:
        if suggestion.suggested_folder_id is None:
            continue
        link = store.get_link(suggestion.link_id)
        if link is None or link.folder_id is not None:
            logger.debug(f"Skipping stale suggestion for link {suggestion.link_id}")
            continue
        if store.get_folder(suggestion.suggested_folder_id) is None:
            logger.debug(f"Skipping suggestion to missing folder {suggestion.suggested_folder_id}")
            continue
        store.update_link(link.id, folder_id=suggestion.suggested_folder_id)
        applied += 1
    return applied
