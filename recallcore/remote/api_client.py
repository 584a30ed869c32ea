import logging
from typing import Any, Dict, List, Optional

import httpx

from ..exceptions import MarshallingError, RemoteApiError, SessionNotReadyError
from ..models import Card, Pack, ReviewResult, SourceType
from ..storage.marshalling import card_from_api, pack_from_api

logger = logging.getLogger(__name__)


class FlashcardApiClient:
    """
    Thin async client for the per-session flashcard REST API.

    Every method raises RemoteApiError on transport failures, non-2xx
    responses and malformed bodies. The underlying httpx.AsyncClient is
    created lazily and reused.
    """

    def __init__(
        self,
        base_url: str,
        session_id: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session_id = session_id
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "FlashcardApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def _session_path(self, suffix: str) -> str:
        if not self.session_id:
            raise SessionNotReadyError("No session id; the session is not ready.")
        return f"/{self.session_id}{suffix}"

    async def _request(
        self, method: str, suffix: str, json: Optional[Dict[str, Any]] = None
    ) -> Any:
        path = self._session_path(suffix)
        try:
            resp = await self._get_client().request(method, path, json=json)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = _error_detail(e.response)
            logger.error(f"{method} {path} failed with {status}: {detail}")
            raise RemoteApiError(
                f"{method} {path} failed with status {status}: {detail}",
                status_code=status,
                original_exception=e,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise RemoteApiError(
                f"{method} {path} failed: {e}", original_exception=e
            ) from e

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteApiError(
                f"{method} {path} returned invalid JSON",
                status_code=resp.status_code,
                original_exception=e,
            ) from e

    # --- Cards ---

    async def list_cards(self) -> List[Card]:
        body = await self._request("GET", "/flashcards")
        return [_as_card(item) for item in _data_list(body)]

    async def add_card(
        self,
        source_type: SourceType,
        source_id: str,
        pack_ids: Optional[List[str]] = None,
    ) -> Card:
        payload: Dict[str, Any] = {
            "sourceType": SourceType(source_type).value,
            "sourceId": source_id,
        }
        if pack_ids:
            payload["packIds"] = list(pack_ids)
        return _as_card(await self._request("POST", "/flashcards", payload))

    async def remove_card(self, card_id: str) -> None:
        await self._request("DELETE", f"/flashcards/{card_id}")

    async def review_card(self, card_id: str, quality: int) -> ReviewResult:
        body = await self._request(
            "POST", f"/flashcards/{card_id}/review", {"quality": quality}
        )
        try:
            return ReviewResult.model_validate(body)
        except ValueError as e:
            raise RemoteApiError(
                f"Invalid review response for card {card_id}: {e}",
                original_exception=e,
            ) from e

    async def update_card_packs(self, card_id: str, pack_ids: List[str]) -> Card:
        body = await self._request(
            "PUT", f"/flashcards/{card_id}/packs", {"packIds": list(pack_ids)}
        )
        return _as_card(body)

    # --- Packs ---

    async def list_packs(self) -> List[Pack]:
        body = await self._request("GET", "/packs")
        return [_as_pack(item) for item in _data_list(body)]

    async def create_pack(
        self,
        name: str,
        description: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Pack:
        payload: Dict[str, Any] = {"name": name}
        if description is not None:
            payload["description"] = description
        if color is not None:
            payload["color"] = color
        return _as_pack(await self._request("POST", "/packs", payload))

    async def update_pack(self, pack_id: str, **fields: Any) -> Pack:
        """Update pack fields, e.g. update_pack(pack_id, name="New name")."""
        return _as_pack(await self._request("PUT", f"/packs/{pack_id}", fields))

    async def delete_pack(self, pack_id: str) -> None:
        await self._request("DELETE", f"/packs/{pack_id}")


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)


def _data_list(body: Any) -> List[Any]:
    if isinstance(body, dict) and isinstance(body.get("data"), list):
        return body["data"]
    raise RemoteApiError("Expected a {'data': [...]} response body")


def _as_card(body: Any) -> Card:
    try:
        return card_from_api(body)
    except MarshallingError as e:
        raise RemoteApiError(str(e), original_exception=e) from e


def _as_pack(body: Any) -> Pack:
    try:
        return pack_from_api(body)
    except MarshallingError as e:
        raise RemoteApiError(str(e), original_exception=e) from e
