"""
KPT Connect backend API client.

Thin async wrapper over the notifications and dashboard-stats endpoints.
The backend is authoritative; every response arrives wrapped in an envelope:

    {"success": true, "data": {...}, "message": "..."}

Anything that is not a successful envelope (transport error, timeout,
non-2xx status, ``success: false``, undecodable payload) raises NetworkError.
"""
from typing import Any, Optional, TypeVar

import httpx
import structlog
from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from kpt_sync.core.config import settings
from kpt_sync.core.exceptions import NetworkError
from kpt_sync.schemas.dashboard import DashboardStats, StatsQuery
from kpt_sync.schemas.notification import (
    DeleteResult,
    FilterSpec,
    MarkAllReadResult,
    Notification,
    NotificationPage,
    NotificationStats,
)
from kpt_sync.services.notifications.filters import compile_filters

logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=BaseModel)

# Realtime stats must never be served from an intermediate cache
NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
}


class KptApiClient:
    """
    Client for the KPT Connect REST API.

    Usage:
        async with KptApiClient() as api:
            page = await api.list_notifications(FilterSpec(is_read=False))
    """

    API_VERSION_PATH = "/v1"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        """
        Initialize the API client.

        Args:
            base_url: API root supplied by the hosting environment. Defaults to
                settings.api_base_url.
            timeout: Per-request timeout in seconds. Defaults to settings.api_timeout.
            transport: Optional httpx transport (used to inject mock transports).
            headers: Extra headers sent with every request (e.g. auth cookies).
        """
        self.base_url = (base_url or settings.api_base_url).rstrip("/") + self.API_VERSION_PATH
        self.timeout = timeout or settings.api_timeout
        self._transport = transport
        self._extra_headers = headers or {}
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {
                "User-Agent": settings.user_agent,
                "Accept": "application/json",
                "Content-Type": "application/json",
                **self._extra_headers,
            }
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers=headers,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    async def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        """
        Make an HTTP request and unwrap the response envelope.

        Returns:
            The decoded JSON payload

        Raises:
            NetworkError: On transport errors, timeouts, error statuses or
                failed envelopes
        """
        client = await self._get_client()

        try:
            response = await client.request(method, endpoint, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("KPT API timeout", endpoint=endpoint, error=str(e))
            raise NetworkError(f"Request timeout: {str(e)}") from e
        except httpx.RequestError as e:
            logger.error("KPT API network error", endpoint=endpoint, error=str(e))
            raise NetworkError(f"Network error: {str(e)}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            message = None
            if isinstance(payload, dict):
                message = payload.get("error") or payload.get("message")
            logger.error(
                "KPT API error",
                status_code=response.status_code,
                endpoint=endpoint,
                error=(message or response.text)[:200],
            )
            raise NetworkError(
                message or f"HTTP error! status: {response.status_code}",
                status_code=response.status_code,
            )

        if payload is None:
            raise NetworkError("Invalid JSON response", status_code=response.status_code)

        if isinstance(payload, dict) and payload.get("success") is False:
            message = payload.get("error") or payload.get("message") or "Request failed"
            logger.warning("KPT API reported failure", endpoint=endpoint, error=message)
            raise NetworkError(message, status_code=response.status_code)

        return payload

    @staticmethod
    def _parse(model: type[ModelT], payload: Any) -> ModelT:
        data = payload.get("data", payload) if isinstance(payload, dict) else payload
        try:
            return model.model_validate(data)
        except SchemaValidationError as e:
            logger.error("Invalid response payload", model=model.__name__, errors=e.error_count())
            raise NetworkError(f"Invalid {model.__name__} payload") from e

    async def list_notifications(
        self,
        filters: Optional[FilterSpec] = None,
        page: int = 1,
        per_page: Optional[int] = None,
    ) -> NotificationPage:
        """
        Fetch one page of notifications.

        Args:
            filters: Filter to apply (None for all notifications)
            page: 1-based page number
            per_page: Page size (default: settings.per_page)

        Returns:
            The page, its pagination window and the collection-wide summary
        """
        params = {
            **compile_filters(filters),
            "page": str(page),
            "per_page": str(per_page or settings.per_page),
        }
        payload = await self._request("GET", "/notifications", params=params)
        result = self._parse(NotificationPage, payload)

        logger.debug(
            "Fetched notifications",
            page=page,
            count=len(result.notifications),
            total_pages=result.pagination.total_pages,
        )
        return result

    async def get_notification(self, notification_id: str) -> Notification:
        """Fetch a single notification by id."""
        payload = await self._request("GET", f"/notifications/{notification_id}")
        return self._parse(Notification, payload)

    async def get_notification_stats(self, days: Optional[int] = None) -> NotificationStats:
        """
        Fetch notification statistics over the last ``days`` days.

        Args:
            days: Window length; the server default applies when omitted
        """
        params = {"days": str(days)} if days is not None else None
        payload = await self._request("GET", "/notifications/stats", params=params)
        return self._parse(NotificationStats, payload)

    async def mark_as_read(self, notification_id: str) -> Notification:
        """Mark one notification read. Returns the updated notification."""
        payload = await self._request("PUT", f"/notifications/{notification_id}/read")
        return self._parse(Notification, payload)

    async def mark_all_as_read(self) -> MarkAllReadResult:
        """Mark every notification read, returning the authoritative remainder."""
        payload = await self._request("PUT", "/notifications/mark_all_read")
        return self._parse(MarkAllReadResult, payload)

    async def delete_notification(self, notification_id: str) -> DeleteResult:
        """Delete one notification."""
        payload = await self._request("DELETE", f"/notifications/{notification_id}")
        return DeleteResult(
            success=bool(payload.get("success", True)) if isinstance(payload, dict) else True,
            message=payload.get("message", "") if isinstance(payload, dict) else "",
        )

    async def get_stats(self, query: Optional[StatsQuery] = None, realtime: bool = True) -> DashboardStats:
        """
        Fetch a dashboard statistics snapshot.

        Realtime requests carry no-cache headers so no intermediate cache can
        answer with a stale snapshot.
        """
        query = query or StatsQuery()
        headers = NO_CACHE_HEADERS if realtime else None
        payload = await self._request(
            "GET",
            "/dashboard/stats",
            params=query.to_params(realtime=realtime),
            headers=headers,
        )
        return self._parse(DashboardStats, payload)

    async def recalculate_stats(self, period: Optional[str] = None, force: bool = False) -> dict[str, Any]:
        """Ask the server to recompute statistics for a period."""
        params = {}
        if period:
            params["period"] = period
        if force:
            params["force"] = "true"
        payload = await self._request(
            "POST",
            "/dashboard/stats/recalculate",
            params=params,
            json={"action": "recalculate", "period": period, "force": force},
        )
        data = payload.get("data") if isinstance(payload, dict) else None
        return data if isinstance(data, dict) else {}

    async def close(self) -> None:
        """Close HTTP client and cleanup resources."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "KptApiClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit - cleanup resources."""
        await self.close()
