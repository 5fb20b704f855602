"""HTTP client for the internal notes REST API (`/api/v2/...`).

Tool executors reach notes, folders and classeurs only through this client,
authenticated with the caller's own bearer token.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .config import get_config

logger = logging.getLogger(__name__)


class NotesApiError(Exception):
    """Raised when the notes API answers non-2xx or cannot be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotesApiClient:
    """Thin async client over the notes/folders/classeurs endpoints."""

    def __init__(
        self,
        user_token: str,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
    ) -> None:
        self.user_token = user_token
        self.base_url = (base_url or get_config().notes_api_base_url).rstrip("/")
        self.timeout = timeout

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}/api/v2{endpoint}"
        headers = {
            "Authorization": f"Bearer {self.user_token}",
            "Content-Type": "application/json",
            "X-Client-Type": "agent",
        }
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        logger.debug(f"Notes API {method} {url}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method, url, headers=headers, json=json_body, params=params or None
                )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            try:
                message = e.response.json().get("error") or f"HTTP {status}"
            except ValueError:
                message = f"HTTP {status}"
            logger.warning(f"Notes API {method} {url} failed: {status} {message}")
            raise NotesApiError(message, status_code=status) from e
        except httpx.TimeoutException as e:
            raise NotesApiError(f"Notes API timeout on {endpoint}") from e
        except httpx.HTTPError as e:
            raise NotesApiError(f"Notes API unreachable: {e}") from e

    # Notes

    async def create_note(self, payload: Dict[str, Any]) -> Any:
        return await self._request("POST", "/note/create", json_body=payload)

    async def get_note(self, ref: str, fields: Optional[str] = None) -> Any:
        return await self._request("GET", f"/note/{ref}", params={"fields": fields})

    async def update_note(self, ref: str, payload: Dict[str, Any]) -> Any:
        return await self._request("PUT", f"/note/{ref}/update", json_body=payload)

    async def move_note(self, ref: str, payload: Dict[str, Any]) -> Any:
        return await self._request("POST", f"/note/{ref}/move", json_body=payload)

    async def insert_note_content(self, ref: str, payload: Dict[str, Any]) -> Any:
        return await self._request("POST", f"/note/{ref}/insert-content", json_body=payload)

    async def delete_note(self, ref: str) -> Any:
        return await self._request("DELETE", f"/delete/note/{ref}")

    # Folders

    async def create_folder(self, payload: Dict[str, Any]) -> Any:
        return await self._request("POST", "/folder/create", json_body=payload)

    async def get_folder_tree(self, ref: str) -> Any:
        return await self._request("GET", f"/folder/{ref}/tree")

    async def move_folder(self, ref: str, payload: Dict[str, Any]) -> Any:
        return await self._request("POST", f"/folder/{ref}/move", json_body=payload)

    # Classeurs

    async def create_classeur(self, payload: Dict[str, Any]) -> Any:
        return await self._request("POST", "/classeur/create", json_body=payload)

    async def list_classeurs(self) -> Any:
        return await self._request("GET", "/classeurs")

    async def get_classeur_tree(self, ref: str) -> Any:
        return await self._request("GET", f"/classeur/{ref}/tree")

    # Search

    async def search_content(
        self,
        q: str,
        type: Optional[str] = None,
        classeur_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Any:
        return await self._request(
            "GET",
            "/search",
            params={"q": q, "type": type, "classeur_id": classeur_id, "limit": limit},
        )


__all__ = ["NotesApiClient", "NotesApiError"]
