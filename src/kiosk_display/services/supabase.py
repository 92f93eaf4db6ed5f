"""Thin httpx wrapper around the Supabase REST and storage endpoints."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from ..config import Settings

logger = logging.getLogger(__name__)


class SupabaseError(Exception):
    """Wrap transport or API failures when communicating with Supabase."""

    def __init__(
        self,
        status_code: int,
        detail: Any,
        *,
        code: str | None = None,
    ):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail
        self.code = code


def _decode_error(response: httpx.Response) -> SupabaseError:
    """Build a `SupabaseError` from a PostgREST or storage error body."""

    code: str | None = None
    detail: Any = response.text or response.reason_phrase
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        raw_code = payload.get("code") or payload.get("error")
        if raw_code is not None:
            code = str(raw_code)
        detail = payload.get("message") or payload.get("error") or detail
    return SupabaseError(response.status_code, detail, code=code)


class SupabaseClient:
    """Authenticated async client for one Supabase project."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = settings.supabase_base_url
        if settings.supabase_key is None:
            raise RuntimeError(
                "SUPABASE_KEY is not configured. Set it or choose another backend."
            )
        self._api_key = settings.supabase_key.get_secret_value()
        self._timeout = httpx.Timeout(settings.request_timeout, connect=10.0)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
        }

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        json: Any = None,
        content: bytes | None = None,
    ) -> httpx.Response:
        """Send a request and raise `SupabaseError` for any failure."""

        client = self._get_http_client()
        try:
            response = await client.request(
                method,
                path,
                params=params,
                headers=headers,
                json=json,
                content=content,
            )
        except httpx.HTTPError as exc:
            logger.debug("Supabase %s %s failed: %s", method, path, exc)
            raise SupabaseError(0, str(exc) or exc.__class__.__name__) from exc

        if response.is_error:
            raise _decode_error(response)
        return response

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = ["SupabaseClient", "SupabaseError"]
