from typing import Any, Dict, List, Optional

import httpx

from collab_messaging.utils.errors import StorageError, error_from_payload


class MessagingApiClient:
    """Durable half of the client: every send and fetch goes through here."""

    def __init__(self, base_url: str, token: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise StorageError() from exc
        if response.is_error:
            try:
                payload = response.json()
            except ValueError:
                payload = {}
            raise error_from_payload(payload if isinstance(payload, dict) else {}, response.status_code)
        return response.json()

    async def send_message(self, recipient_id: str, text: str) -> Dict[str, Any]:
        return await self._request("POST", "/api/messages/send", json={"recipient_id": recipient_id, "text": text})

    async def get_conversation(self, other_user_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/api/messages/conversation/{other_user_id}")

    async def list_conversations(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/api/messages/conversations")

    async def list_candidates(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/messages/users")
