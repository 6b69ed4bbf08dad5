"""Tests for the REST API collaborator client."""

import json
from datetime import date
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from fiscal_obligations.errors import (
    BusinessNotFound,
    PersistenceUnavailable,
)
from fiscal_obligations.guard import DuplicateGuard
from fiscal_obligations.models import (
    Actor,
    Frequency,
    GenerationWindow,
    ObligationDraft,
    Priority,
)
from fiscal_obligations.storage import BackendAPIClient


def make_client(handler, **kwargs):
    return BackendAPIClient(
        base_url="http://backend.test/",
        token="token-123",
        max_retries=kwargs.pop("max_retries", 2),
        backoff=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestClientInit:
    def test_strips_trailing_slash(self):
        client = BackendAPIClient(base_url="http://backend.test/", token="t")

        assert client.base_url == "http://backend.test"

    def test_auth_header(self):
        client = BackendAPIClient(base_url="http://backend.test", token="t")

        assert client._get_headers()["Authorization"] == "Bearer t"


class TestBusinessDirectory:
    @pytest.mark.asyncio
    async def test_get_business_profile(self):
        def handler(request):
            assert request.url.path == "/api/companies/b1"
            assert request.headers["Authorization"] == "Bearer token-123"
            return httpx.Response(
                200,
                json={
                    "id": "b1",
                    "name": "Alpha",
                    "categorie_personnes": "Personne Morale",
                    "is_tva_assujetti": True,
                    "regime_tva": "mensuel",
                },
            )

        async with make_client(handler) as client:
            profile = await client.get_business_profile("b1")

        assert profile.name == "Alpha"
        assert profile.subject_to_levy is True
        assert profile.levy_regime is Frequency.MONTHLY

    @pytest.mark.asyncio
    async def test_missing_business(self):
        async with make_client(lambda request: httpx.Response(404)) as client:
            with pytest.raises(BusinessNotFound) as exc_info:
                await client.get_business_profile("b9")

        assert exc_info.value.business_id == "b9"

    @pytest.mark.asyncio
    async def test_list_active_accepts_paged_response(self):
        def handler(request):
            assert request.url.params["status"] == "active"
            return httpx.Response(
                200, json={"items": [{"id": "b1", "name": "A", "category": "X"}]}
            )

        async with make_client(handler) as client:
            businesses = await client.list_active_businesses()

        assert [b.id for b in businesses] == ["b1"]


class TestTemplateCatalog:
    @pytest.mark.asyncio
    async def test_malformed_rows_skipped(self):
        rows = [
            {
                "id": 1,
                "categorie_personnes": "Personne Morale",
                "tag": "CNSS",
                "frequence_declaration": "Mensuel",
                "jours": 10,
            },
            {"id": 2, "categorie_personnes": "Personne Morale", "frequence_declaration": "Mensuel"},
        ]

        async with make_client(lambda request: httpx.Response(200, json=rows)) as client:
            templates = await client.list_templates()

        assert [t.id for t in templates] == ["1"]

    @pytest.mark.asyncio
    async def test_category_filter_sent(self):
        seen = {}

        def handler(request):
            seen.update(request.url.params)
            return httpx.Response(200, json=[])

        async with make_client(handler) as client:
            await client.list_templates("Personne Physique")

        assert seen == {"categorie_personnes": "Personne Physique"}


class TestObligationStore:
    @pytest.mark.asyncio
    async def test_count_existing_generated(self):
        def handler(request):
            assert request.url.path == "/api/fiscal-obligations/generated/count"
            assert request.url.params["due_date"] == "2024-03-20"
            assert request.url.params["periode_declaration"] == "March 2024"
            return httpx.Response(200, json={"count": 1})

        async with make_client(handler) as client:
            count = await client.count_existing_generated(
                "b1", "TVA", date(2024, 3, 20), "March 2024"
            )

        assert count == 1

    @pytest.mark.asyncio
    async def test_insert_obligations(self):
        draft = ObligationDraft(
            business_id="b1",
            title="TVA - Declaration March 2024",
            description="",
            tag="TVA",
            due_date=date(2024, 3, 20),
            priority=Priority.MEDIUM,
            period="March 2024",
            metadata={"generated_from_calendar": True, "calendar_entry_id": "tva-m"},
        )

        def handler(request):
            body = json.loads(request.content)
            assert body["company_id"] == "b1"
            assert body["on_conflict"] == "skip_generated"
            stored = dict(body["obligations"][0], id="o-1")
            return httpx.Response(201, json={"items": [stored]})

        async with make_client(handler) as client:
            persisted = await client.insert_obligations("b1", [draft])

        (obligation,) = persisted
        assert obligation.id == "o-1"
        assert obligation.tag == "TVA"
        assert obligation.is_generated

    @pytest.mark.asyncio
    async def test_delete_generated(self):
        def handler(request):
            assert request.method == "DELETE"
            return httpx.Response(200, json={"deleted": 42})

        async with make_client(handler) as client:
            assert await client.delete_generated_obligations() == 42

    @pytest.mark.asyncio
    async def test_has_obligations(self):
        def handler(request):
            assert request.url.path == "/api/fiscal-obligations/count"
            counts = {"b1": 3, "b2": 0}
            return httpx.Response(
                200, json={"count": counts[request.url.params["company_id"]]}
            )

        async with make_client(handler) as client:
            assert await client.has_obligations("b1") is True
            assert await client.has_obligations("b2") is False

    @pytest.mark.asyncio
    async def test_duplicate_stats(self):
        def handler(request):
            assert request.url.path == "/api/companies/b1/obligations/duplicates"
            assert request.url.params["start_date"] == "2024-01-01"
            assert request.url.params["end_date"] == "2024-12-31"
            return httpx.Response(
                200,
                json=[
                    {"obligation_type": "TVA", "total_count": 3, "generated_count": 2},
                    {"obligation_type": "CNSS", "total_count": "2", "generated_count": "2"},
                ],
            )

        async with make_client(handler) as client:
            stats = await client.duplicate_stats(
                "b1", GenerationWindow(date(2024, 1, 1), date(2024, 12, 31))
            )

        assert [(s.tag, s.total_count, s.generated_count) for s in stats] == [
            ("CNSS", 2, 2),
            ("TVA", 3, 2),
        ]
        assert stats[1].manual_count == 1


class TestAuditAndActors:
    @pytest.mark.asyncio
    async def test_append_audit_entry(self):
        captured = []

        def handler(request):
            captured.append(json.loads(request.content))
            return httpx.Response(201, json={"id": "a-1"})

        actor = Actor(id="u1", email="a@example.com", is_admin=True)
        async with make_client(handler) as client:
            await client.append_audit_entry(
                "AUTOMATED_OBLIGATION_GENERATION_MANUAL", actor, {"success": True}
            )

        assert captured == [
            {
                "user_id": "u1",
                "action": "AUTOMATED_OBLIGATION_GENERATION_MANUAL",
                "table_name": "fiscal_obligations",
                "new_values": {"success": True},
            }
        ]

    @pytest.mark.asyncio
    async def test_resolve_unknown_actor(self):
        async with make_client(lambda request: httpx.Response(404)) as client:
            assert await client.resolve("ghost@example.com") is None

    @pytest.mark.asyncio
    async def test_default_system_actor(self):
        def handler(request):
            assert request.url.params["role"] == "admin"
            return httpx.Response(
                200, json=[{"id": "u1", "email": "root@example.com", "role": "admin"}]
            )

        async with make_client(handler) as client:
            actor = await client.default_system_actor()

        assert actor.id == "u1"
        assert actor.is_admin


class TestErrorHandling:
    @pytest.mark.asyncio
    async def test_server_error_raises_persistence_unavailable(self):
        def handler(request):
            return httpx.Response(503, json={"detail": "maintenance"})

        async with make_client(handler) as client:
            with pytest.raises(PersistenceUnavailable) as exc_info:
                await client.list_active_businesses()

        assert exc_info.value.status_code == 503
        assert exc_info.value.details == {"detail": "maintenance"}

    @pytest.mark.asyncio
    async def test_transport_errors_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"count": 0})

        async with make_client(handler, max_retries=2) as client:
            count = await client.count_existing_generated("b1", "TVA", date(2024, 3, 20))

        assert count == 0
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        client = BackendAPIClient(base_url="http://backend.test", token="t", max_retries=1)

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(side_effect=httpx.ConnectTimeout("timed out"))
            mock_get.return_value = mock_http

            with patch("fiscal_obligations.storage.backend_api.asyncio.sleep") as mock_sleep:
                with pytest.raises(PersistenceUnavailable):
                    await client.delete_generated_obligations()

            assert mock_http.request.await_count == 2
            mock_sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_non_json_success_body_raises_persistence_unavailable(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>gateway</html>")

        async with make_client(handler) as client:
            with pytest.raises(PersistenceUnavailable) as exc_info:
                await client.count_existing_generated("b1", "TVA", date(2024, 3, 20))

        assert exc_info.value.status_code == 200
        assert exc_info.value.details == {"raw": "<html>gateway</html>"}

    @pytest.mark.asyncio
    async def test_non_json_success_body_fails_duplicate_check_open(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>gateway</html>")

        async with make_client(handler) as client:
            guard = DuplicateGuard(client)

            assert await guard.exists("b1", "TVA", date(2024, 3, 20)) is False

        assert guard.lookup_failures == 1
