"""HTTP collaborators backed by the host application's REST API."""

import asyncio
from collections.abc import Sequence
from datetime import date
from typing import Any

import httpx
import structlog

from fiscal_obligations.audit import AUDIT_TABLE
from fiscal_obligations.config import get_settings
from fiscal_obligations.errors import (
    BusinessNotFound,
    NotFound,
    PersistenceUnavailable,
    TemplateMalformed,
)
from fiscal_obligations.models import (
    Actor,
    BusinessProfile,
    GenerationWindow,
    Obligation,
    ObligationDraft,
    RecurrenceTemplate,
    TagDuplicateStats,
)
from fiscal_obligations.ports import (
    ActorDirectory,
    AuditLog,
    BusinessDirectory,
    ObligationStore,
    TemplateCatalog,
)

logger = structlog.get_logger(__name__)


class BackendAPIClient(
    BusinessDirectory, TemplateCatalog, ObligationStore, AuditLog, ActorDirectory
):
    """Async client implementing every collaborator interface over HTTP.

    Transport errors are retried with exponential backoff; once retries are
    exhausted, and for any 5xx response, ``PersistenceUnavailable`` is raised.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.backend_api_url).rstrip("/")
        if token is None and settings.backend_api_token is not None:
            token = settings.backend_api_token.get_secret_value()
        self._token = token
        self._timeout = timeout or settings.backend_timeout
        self._max_retries = (
            settings.backend_max_retries if max_retries is None else max_retries
        )
        self._backoff = backoff
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._logger = logger.bind(component="backend_api")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "BackendAPIClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method.
            path: Path relative to the base URL.
            params: Query string parameters.
            json: JSON request body.
            retry_count: Transport retries already spent.

        Returns:
            Decoded JSON body, or an empty dict for an empty body.

        Raises:
            NotFound: On a 404 response.
            PersistenceUnavailable: On other error statuses, a body that is
                not JSON, or once transport retries are exhausted.
        """
        client = await self._get_client()
        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=self._get_headers(),
            )
        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                await asyncio.sleep(self._backoff * 2**retry_count)
                return await self._request(method, path, params, json, retry_count + 1)
            raise PersistenceUnavailable(f"Request failed: {e}") from e

        if response.status_code == 404:
            raise NotFound(f"{method} {path} not found")
        if response.status_code >= 400:
            try:
                detail = response.json() if response.content else {}
            except ValueError:
                detail = {"raw": response.text[:500]}
            raise PersistenceUnavailable(
                f"API error: {response.status_code}",
                status_code=response.status_code,
                details=detail if isinstance(detail, dict) else {"body": detail},
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            self._logger.warning(
                "invalid_response_body",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise PersistenceUnavailable(
                f"Invalid JSON in response to {method} {path}",
                status_code=response.status_code,
                details={"raw": response.text[:500]},
            ) from e

    @staticmethod
    def _extract_items(result: Any) -> list[dict[str, Any]]:
        """Return list of items from a list or paged response."""
        if isinstance(result, list):
            return result
        if isinstance(result, dict):
            items = result.get("items")
            if isinstance(items, list):
                return items
        return []

    # === Business directory ===

    async def get_business_profile(self, business_id: str) -> BusinessProfile:
        try:
            result = await self._request("GET", f"/api/companies/{business_id}")
        except NotFound:
            raise BusinessNotFound(business_id) from None
        return BusinessProfile.from_record(result)

    async def list_active_businesses(self) -> list[BusinessProfile]:
        result = await self._request("GET", "/api/companies", params={"status": "active"})
        return [BusinessProfile.from_record(r) for r in self._extract_items(result)]

    # === Template catalog ===

    async def list_templates(self, category: str | None = None) -> list[RecurrenceTemplate]:
        params = {"categorie_personnes": category} if category else None
        result = await self._request("GET", "/api/fiscal-calendar", params=params)

        templates: list[RecurrenceTemplate] = []
        for record in self._extract_items(result):
            try:
                templates.append(RecurrenceTemplate.from_record(record))
            except TemplateMalformed as e:
                self._logger.warning(
                    "template_skipped", template_id=e.template_id, error=e.message
                )
        return templates

    # === Obligation store ===

    async def count_existing_generated(
        self,
        business_id: str,
        tag: str,
        due_date: date,
        period: str | None = None,
    ) -> int:
        params: dict[str, Any] = {
            "company_id": business_id,
            "obligation_type": tag,
            "due_date": due_date.isoformat(),
        }
        if period:
            params["periode_declaration"] = period
        result = await self._request(
            "GET", "/api/fiscal-obligations/generated/count", params=params
        )
        return int(result.get("count", 0)) if isinstance(result, dict) else 0

    async def insert_obligations(
        self, business_id: str, drafts: Sequence[ObligationDraft]
    ) -> list[Obligation]:
        result = await self._request(
            "POST",
            "/api/fiscal-obligations/batch",
            json={
                "company_id": business_id,
                "on_conflict": "skip_generated",
                "obligations": [d.to_record() for d in drafts],
            },
        )
        return [Obligation.from_record(r) for r in self._extract_items(result)]

    async def delete_generated_obligations(self) -> int:
        result = await self._request("DELETE", "/api/fiscal-obligations/generated")
        return int(result.get("deleted", 0)) if isinstance(result, dict) else 0

    async def summarize(self, business_id: str) -> dict[str, Any]:
        result = await self._request(
            "GET", f"/api/companies/{business_id}/obligations/summary"
        )
        return result if isinstance(result, dict) else {}

    async def has_obligations(self, business_id: str) -> bool:
        result = await self._request(
            "GET", "/api/fiscal-obligations/count", params={"company_id": business_id}
        )
        return isinstance(result, dict) and int(result.get("count", 0)) > 0

    async def duplicate_stats(
        self, business_id: str, window: GenerationWindow
    ) -> list[TagDuplicateStats]:
        """Fetch per-tag counts for tags repeated inside the window.

        Args:
            business_id: Business to inspect.
            window: Inclusive due date range.

        Returns:
            One entry per repeated tag, ordered by tag.
        """
        result = await self._request(
            "GET",
            f"/api/companies/{business_id}/obligations/duplicates",
            params={
                "start_date": window.start.isoformat(),
                "end_date": window.end.isoformat(),
            },
        )
        stats = [TagDuplicateStats.from_record(r) for r in self._extract_items(result)]
        return sorted(stats, key=lambda s: s.tag)

    # === Audit log ===

    async def append_audit_entry(
        self, kind: str, actor: Actor | None, payload: dict[str, Any]
    ) -> None:
        await self._request(
            "POST",
            "/api/audit-logs",
            json={
                "user_id": actor.id if actor else None,
                "action": kind,
                "table_name": AUDIT_TABLE,
                "new_values": payload,
            },
        )

    # === Actor directory ===

    async def resolve(self, identity: str) -> Actor | None:
        try:
            result = await self._request("GET", f"/api/users/{identity}")
        except NotFound:
            return None
        return Actor.from_record(result) if isinstance(result, dict) and result else None

    async def default_system_actor(self) -> Actor | None:
        result = await self._request(
            "GET",
            "/api/users",
            params={"role": "admin", "order": "created_at", "limit": 1},
        )
        items = self._extract_items(result)
        return Actor.from_record(items[0]) if items else None
