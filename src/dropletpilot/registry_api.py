"""HTTP access to the container registry management API."""
import json
import re
from dataclasses import dataclass, field
from typing import List, Optional

import requests

from .errors import RegistryApiError, ResponseDecodeError

DEFAULT_PER_PAGE = 100
DEFAULT_TIMEOUT = 30

_TAG_PATTERN = re.compile(r'"tag"\s*:\s*"([^"]*)"')
_NEXT_PATTERN = re.compile(r'"next"\s*:\s*"([^"]*)"')


@dataclass
class TagPage:
    """One page of a tag listing."""
    tags: List[str] = field(default_factory=list)
    next_cursor: Optional[str] = None
    fallback_used: bool = False

    @property
    def has_next(self) -> bool:
        return bool(self.next_cursor) and self.next_cursor != "null"


def decode_tag_page_json(body: str) -> TagPage:
    """Decode a tag listing strictly as JSON.

    The cursor is read from a top-level ``next`` key or from ``links.pages.next``.

    Raises:
        ResponseDecodeError: the body is not JSON or does not have the
            expected shape.
    """
    try:
        data = json.loads(body)
    except (TypeError, ValueError) as e:
        raise ResponseDecodeError(f"Invalid JSON in registry response: {e}") from e

    if not isinstance(data, dict):
        raise ResponseDecodeError(f"Unexpected registry response type: {type(data).__name__}")

    entries = data.get("tags") or []
    if not isinstance(entries, list):
        raise ResponseDecodeError(f"Unexpected 'tags' type: {type(entries).__name__}")

    tags = []
    for entry in entries:
        name = entry.get("tag") if isinstance(entry, dict) else entry
        if isinstance(name, str) and name and name != "null":
            tags.append(name)

    next_cursor = data.get("next")
    if not next_cursor:
        links = data.get("links") or {}
        if not isinstance(links, dict):
            raise ResponseDecodeError(f"Unexpected 'links' type: {type(links).__name__}")
        pages = links.get("pages") or {}
        if not isinstance(pages, dict):
            raise ResponseDecodeError(f"Unexpected 'links.pages' type: {type(pages).__name__}")
        next_cursor = pages.get("next")

    if next_cursor is not None and not isinstance(next_cursor, str):
        raise ResponseDecodeError(f"Unexpected cursor type: {type(next_cursor).__name__}")
    return TagPage(tags=tags, next_cursor=next_cursor or None)


def decode_tag_page_text(body: str) -> TagPage:
    """Pull ``tag`` values and the ``next`` cursor out of a body that is not valid JSON."""
    body = body or ""
    tags = [tag for tag in _TAG_PATTERN.findall(body) if tag and tag != "null"]
    match = _NEXT_PATTERN.search(body)
    next_cursor = match.group(1) if match else None
    return TagPage(tags=tags, next_cursor=next_cursor or None, fallback_used=True)


def decode_tag_page(body: str) -> TagPage:
    """Decode a tag listing, falling back to pattern matching on malformed JSON."""
    try:
        return decode_tag_page_json(body)
    except ResponseDecodeError:
        return decode_tag_page_text(body)


class RegistryApi:
    """Thin client for the registry management endpoints.

    Every request carries ``Authorization: Bearer <token>``.
    """

    def __init__(self, base_url: str, registry: str, token: str,
                 registry_host: str, timeout: int = DEFAULT_TIMEOUT, session: requests.Session = None):
        self.base_url = base_url.rstrip("/")
        self.registry = registry
        self.registry_host = registry_host
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        })

    def tags_url(self, repository: str, tag: str = None) -> str:
        url = f"{self.base_url}/{self.registry}/repositories/{repository}/tags"
        if tag:
            url += f"/{tag}"
        return url

    def ping_registry(self) -> bool:
        """Return True when the registry endpoint answers at all.

        A 401 from ``/v2/`` is the normal answer without credentials, so only
        server errors count as unreachable.
        """
        try:
            response = self.session.get(f"https://{self.registry_host}/v2/", timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise RegistryApiError(f"Registry {self.registry_host} unreachable: {e}") from e
        if response.status_code >= 500:
            raise RegistryApiError(
                f"Registry {self.registry_host} answered with HTTP {response.status_code}"
            )
        return True

    def list_tags_page(self, repository: str, page: int, per_page: int = DEFAULT_PER_PAGE) -> TagPage:
        """Fetch and decode one page of tags."""
        try:
            response = self.session.get(
                self.tags_url(repository),
                params={"page": page, "per_page": per_page},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise RegistryApiError(f"Failed to fetch registry tags (page {page}): {e}") from e

        if response.status_code >= 400:
            raise RegistryApiError(
                f"Failed to fetch registry tags (page {page}): HTTP {response.status_code} {response.text}"
            )
        return decode_tag_page(response.text)

    def delete_tag(self, repository: str, tag: str) -> None:
        """Delete one tag; raises RegistryApiError on any failure."""
        try:
            response = self.session.delete(self.tags_url(repository, tag), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise RegistryApiError(f"Failed to delete tag {tag}: {e}") from e

        if response.status_code >= 400:
            raise RegistryApiError(
                f"Failed to delete tag {tag}: HTTP {response.status_code} {response.text}"
            )
