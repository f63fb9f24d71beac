"""Trello REST API client for board lists and cards."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from cachetools import TTLCache
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

TRELLO_API_URL = "https://api.trello.com/1"

# Module-level cache for API responses (60-second TTL)
# Keys include base_url and credentials to support multiple boards/accounts
_response_cache: TTLCache[tuple[str, str, str, str], list[Any]] = TTLCache(
    maxsize=100, ttl=60
)


class TrelloError(Exception):
    """Raised when a Trello API call fails or returns undecodable data."""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


# --- Data Models ---


class BoardList(BaseModel):
    id: str
    name: str


class Card(BaseModel):
    """A Trello card; the title is Trello's ``name`` field."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    title: str = Field(alias="name")


_lists_adapter = TypeAdapter(list[BoardList])
_cards_adapter = TypeAdapter(list[Card])


# --- Trello Client ---


class TrelloClient:
    """Synchronous client for the parts of the Trello API we need.

    Credentials are passed as query parameters on every request, as the
    Trello API expects.
    """

    def __init__(
        self,
        api_key: str,
        api_token: str,
        base_url: str = TRELLO_API_URL,
        **kwargs: Any,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.api_token = api_token
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={"Accept": "application/json"},
            timeout=30.0,
            **kwargs,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> TrelloClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _get_json(self, path: str) -> list[Any]:
        """GET a JSON array, with TTL caching.

        Wraps httpx transport errors, error statuses, and non-JSON bodies
        as TrelloError so callers only need to catch one exception type.
        """
        cache_key = (self.base_url, self.api_key, self.api_token, path)
        if cache_key in _response_cache:
            return _response_cache[cache_key]

        logger.debug("GET %s%s", self.base_url, path)
        try:
            resp = self._client.get(
                path, params={"key": self.api_key, "token": self.api_token}
            )
        except httpx.RequestError as exc:
            raise TrelloError(f"Connection error: {exc}") from exc

        if resp.status_code >= 400:
            raise TrelloError(
                f"Trello API error {resp.status_code}: {resp.text.strip()}",
                status=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise TrelloError(f"Invalid JSON from Trello API: {exc}") from exc
        if not isinstance(data, list):
            raise TrelloError(
                f"Unexpected response from Trello API: expected a list, "
                f"got {type(data).__name__}"
            )

        _response_cache[cache_key] = data
        return data

    def fetch_lists(self, board_id: str) -> list[BoardList]:
        """Get all lists of a board."""
        data = self._get_json(f"/boards/{board_id}/lists")
        try:
            return _lists_adapter.validate_python(data)
        except ValidationError as exc:
            raise TrelloError(f"Unexpected list data from Trello API: {exc}") from exc

    def fetch_cards(self, list_id: str) -> list[Card]:
        """Get all cards of a list."""
        data = self._get_json(f"/lists/{list_id}/cards")
        try:
            return _cards_adapter.validate_python(data)
        except ValidationError as exc:
            raise TrelloError(f"Unexpected card data from Trello API: {exc}") from exc
