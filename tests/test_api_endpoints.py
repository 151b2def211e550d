"""HTTP-level tests: routing, status codes, error envelopes and serialisation.

Services are replaced through ``app.dependency_overrides`` so no database
or Redis is needed.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from app.core.database import get_db
from app.core.exceptions import (
    CalculatedColumnNotFoundError,
    DuplicateColumnNameError,
    EvaluationError,
    InvalidFormulaError,
    WebhookNotFoundError,
)
from app.dependencies import (
    get_calculated_column_service,
    get_column_evaluator,
    get_option_store,
    get_webhook_dispatcher,
    get_webhook_service,
)
from app.main import app
from app.services.column_evaluation import EvaluationResult
from app.services.option_store import OptionStore
from app.services.webhook_dispatcher import TriggerResult
from factories import FIXED_NOW, OWNER_ID, make_column, make_delivery, make_webhook

API = "/api/v1"


@pytest.fixture
def column_service():
    service = MagicMock()
    for name in (
        "list_columns",
        "get_column",
        "create_column",
        "update_column",
        "delete_column",
        "clear_column_cache",
        "clear_expired_cache",
        "get_lead_values",
    ):
        setattr(service, name, AsyncMock())
    app.dependency_overrides[get_calculated_column_service] = lambda: service
    return service


@pytest.fixture
def evaluator():
    evaluator = MagicMock()
    evaluator.evaluate_for_lead = AsyncMock()
    evaluator.evaluate_for_leads = AsyncMock()
    app.dependency_overrides[get_column_evaluator] = lambda: evaluator
    return evaluator


@pytest.fixture
def webhook_service():
    service = MagicMock()
    for name in (
        "list_webhooks",
        "get_webhook",
        "create_webhook",
        "update_webhook",
        "delete_webhook",
        "rotate_secret",
        "get_deliveries",
        "get_stats",
    ):
        setattr(service, name, AsyncMock())
    app.dependency_overrides[get_webhook_service] = lambda: service
    return service


@pytest.fixture
def dispatcher():
    dispatcher = MagicMock()
    for name in ("trigger", "send_test", "redeliver", "process_due_retries"):
        setattr(dispatcher, name, AsyncMock())
    app.dependency_overrides[get_webhook_dispatcher] = lambda: dispatcher
    return dispatcher


# ---------------------------------------------------------------------------
# Health and middleware
# ---------------------------------------------------------------------------


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_ok(self, async_client):
        session = AsyncMock()

        async def _db():
            yield session

        app.dependency_overrides[get_db] = _db
        response = await async_client.get(f"{API}/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": "ok"}

    @pytest.mark.asyncio
    async def test_health_degraded_when_database_is_down(self, async_client):
        session = AsyncMock()
        session.execute = AsyncMock(
            side_effect=OperationalError("SELECT 1", {}, Exception("connection refused"))
        )

        async def _db():
            yield session

        app.dependency_overrides[get_db] = _db
        response = await async_client.get(f"{API}/health")

        assert response.status_code == 200
        assert response.json() == {"status": "degraded", "database": "unavailable"}

    @pytest.mark.asyncio
    async def test_cors_headers_present(self, async_client):
        response = await async_client.options(
            f"{API}/formulas/functions",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
            },
        )
        assert "access-control-allow-origin" in response.headers


# ---------------------------------------------------------------------------
# Standalone formula endpoints
# ---------------------------------------------------------------------------


class TestFormulaEndpoints:
    @pytest.mark.asyncio
    async def test_validate_valid(self, async_client):
        response = await async_client.post(
            f"{API}/formulas/validate", json={"formula": 'concat("a", lead.name)'}
        )
        assert response.status_code == 200
        assert response.json()["valid"] is True

    @pytest.mark.asyncio
    async def test_validate_reports_syntax_error(self, async_client):
        response = await async_client.post(f"{API}/formulas/validate", json={"formula": "1 +"})
        body = response.json()
        assert response.status_code == 200
        assert body["valid"] is False
        assert body["error"]

    @pytest.mark.asyncio
    async def test_validate_accepts_accented_field(self, async_client):
        response = await async_client.post(
            f"{API}/formulas/validate", json={"formula": "upper(lead.prénom)"}
        )
        assert response.status_code == 200
        assert response.json()["valid"] is True

    @pytest.mark.asyncio
    async def test_validate_reports_unknown_function(self, async_client):
        response = await async_client.post(
            f"{API}/formulas/validate", json={"formula": "nope(1)"}
        )
        assert response.json()["valid"] is False

    @pytest.mark.asyncio
    async def test_evaluate(self, async_client):
        response = await async_client.post(
            f"{API}/formulas/evaluate",
            json={"formula": "score * 2 > 100 ? \"hot\" : \"cold\"", "context": {"score": 72}},
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "result": "hot"}

    @pytest.mark.asyncio
    async def test_evaluate_error_envelope(self, async_client):
        response = await async_client.post(
            f"{API}/formulas/evaluate", json={"formula": "1 / 0"}
        )
        assert response.status_code == 422
        assert response.json() == {"success": False, "error": "Division by zero"}

    @pytest.mark.asyncio
    async def test_function_catalogue(self, async_client):
        response = await async_client.get(f"{API}/formulas/functions")
        categories = response.json()["categories"]
        names = {fn["name"] for group in categories.values() for fn in group}
        assert {"concat", "if", "round"} <= names


# ---------------------------------------------------------------------------
# Calculated columns
# ---------------------------------------------------------------------------


class TestIdentity:
    @pytest.mark.asyncio
    async def test_missing_user_header_is_rejected(self, async_client, column_service):
        response = await async_client.get(
            f"{API}/calculated-columns", headers={"X-User-Id": ""}
        )
        assert response.status_code == 401
        assert response.json()["type"] == "missing_user_identity"
        column_service.list_columns.assert_not_awaited()


class TestCalculatedColumnEndpoints:
    @pytest.mark.asyncio
    async def test_list(self, async_client, column_service):
        column_service.list_columns.return_value = [make_column()]

        response = await async_client.get(f"{API}/calculated-columns")

        assert response.status_code == 200
        assert response.json()[0]["column_name"] == "full_greeting"
        column_service.list_columns.assert_awaited_once_with(OWNER_ID, active_only=True)

    @pytest.mark.asyncio
    async def test_create(self, async_client, column_service):
        column_service.create_column.return_value = make_column(column_name="score_band")

        response = await async_client.post(
            f"{API}/calculated-columns",
            json={"column_name": "Score Band", "formula": "lead.score > 50"},
        )

        assert response.status_code == 201
        owner, body = column_service.create_column.await_args.args
        assert owner == OWNER_ID
        assert body.column_name == "score_band"

    @pytest.mark.asyncio
    async def test_create_duplicate(self, async_client, column_service):
        column_service.create_column.side_effect = DuplicateColumnNameError()

        response = await async_client.post(
            f"{API}/calculated-columns", json={"column_name": "x", "formula": "1"}
        )

        assert response.status_code == 409
        assert response.json()["type"] == "duplicate_column_name"

    @pytest.mark.asyncio
    async def test_create_invalid_formula(self, async_client, column_service):
        column_service.create_column.side_effect = InvalidFormulaError("Unknown function 'nope'")

        response = await async_client.post(
            f"{API}/calculated-columns", json={"column_name": "x", "formula": "nope()"}
        )

        assert response.status_code == 422
        assert response.json() == {
            "detail": "Unknown function 'nope'",
            "type": "invalid_formula",
        }

    @pytest.mark.asyncio
    async def test_request_validation_envelope(self, async_client, column_service):
        response = await async_client.post(
            f"{API}/calculated-columns", json={"column_name": "x"}
        )

        assert response.status_code == 422
        assert response.json()["type"] == "validation_error"

    @pytest.mark.asyncio
    async def test_get_not_found(self, async_client, column_service):
        column_service.get_column.side_effect = CalculatedColumnNotFoundError()

        response = await async_client.get(f"{API}/calculated-columns/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["type"] == "not_found"

    @pytest.mark.asyncio
    async def test_update(self, async_client, column_service):
        column = make_column()
        column_service.update_column.return_value = column

        response = await async_client.patch(
            f"{API}/calculated-columns/{column.id}", json={"cache_duration": None}
        )

        assert response.status_code == 200
        _, column_id, body = column_service.update_column.await_args.args
        assert column_id == column.id
        assert body.model_dump(exclude_unset=True) == {"cache_duration": None}

    @pytest.mark.asyncio
    async def test_delete(self, async_client, column_service):
        response = await async_client.delete(f"{API}/calculated-columns/{uuid4()}")

        assert response.status_code == 204
        column_service.delete_column.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_evaluate_single_lead(self, async_client, column_service, evaluator):
        column = make_column()
        evaluator.evaluate_for_lead.return_value = EvaluationResult(
            "Hello Ana", False, FIXED_NOW, FIXED_NOW + timedelta(hours=1)
        )

        response = await async_client.post(
            f"{API}/calculated-columns/{column.id}/evaluate",
            json={"leadId": "L-1", "leadData": {"firstName": "Ana"}},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["result"] == "Hello Ana"
        assert body["fromCache"] is False
        assert body["expires_at"] is not None
        column_service.get_column.assert_awaited_once_with(OWNER_ID, column.id)
        evaluator.evaluate_for_lead.assert_awaited_once_with(
            column.id, "L-1", {"firstName": "Ana"}, force_refresh=False
        )

    @pytest.mark.asyncio
    async def test_evaluate_batch(self, async_client, column_service, evaluator):
        evaluator.evaluate_for_leads.return_value = {"L-1": "Hello Ana", "L-2": "Hello Bo"}

        response = await async_client.post(
            f"{API}/calculated-columns/{uuid4()}/evaluate",
            json={
                "leads": [
                    {"leadId": "L-1", "leadData": {"firstName": "Ana"}},
                    {"id": "L-2", "data": {"firstName": "Bo"}},
                ],
                "forceRefresh": True,
            },
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "results": {"L-1": "Hello Ana", "L-2": "Hello Bo"},
        }
        args, kwargs = evaluator.evaluate_for_leads.await_args
        assert args[1] == [("L-1", {"firstName": "Ana"}), ("L-2", {"firstName": "Bo"})]
        assert kwargs == {"force_refresh": True}

    @pytest.mark.asyncio
    async def test_evaluate_requires_lead(self, async_client, column_service, evaluator):
        response = await async_client.post(
            f"{API}/calculated-columns/{uuid4()}/evaluate", json={"leadData": {}}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_evaluate_formula_failure(self, async_client, column_service, evaluator):
        evaluator.evaluate_for_lead.side_effect = EvaluationError("Division by zero")

        response = await async_client.post(
            f"{API}/calculated-columns/{uuid4()}/evaluate",
            json={"leadId": "L-1", "leadData": {}},
        )

        assert response.status_code == 422
        assert response.json() == {"detail": "Division by zero", "type": "formula_error"}

    @pytest.mark.asyncio
    async def test_lead_values(self, async_client, column_service):
        column_service.get_lead_values.return_value = {"full_greeting": "Hello Ana"}

        response = await async_client.get(f"{API}/calculated-columns/leads/L-1/values")

        assert response.json() == {"lead_id": "L-1", "values": {"full_greeting": "Hello Ana"}}

    @pytest.mark.asyncio
    async def test_clear_column_cache(self, async_client, column_service):
        column_service.clear_column_cache.return_value = 7

        response = await async_client.delete(f"{API}/calculated-columns/{uuid4()}/cache")

        assert response.json() == {"success": True, "deleted": 7}

    @pytest.mark.asyncio
    async def test_clear_expired_cache_route_is_not_shadowed(self, async_client, column_service):
        column_service.clear_expired_cache.return_value = 3

        response = await async_client.delete(f"{API}/calculated-columns/cache/expired")

        assert response.status_code == 200
        assert response.json()["deleted"] == 3


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


class TestWebhookEndpoints:
    @pytest.mark.asyncio
    async def test_create_returns_secret_once(self, async_client, webhook_service):
        webhook_service.create_webhook.return_value = make_webhook(secret_key="ab" * 32)

        response = await async_client.post(
            f"{API}/webhooks",
            json={
                "name": "CRM sync",
                "url": "https://hooks.example.com/crm",
                "events": ["lead.created"],
                "secret_key": "client-chosen",
            },
        )

        assert response.status_code == 201
        assert response.json()["secret_key"] == "ab" * 32

    @pytest.mark.asyncio
    async def test_get_hides_secret(self, async_client, webhook_service):
        webhook = make_webhook()
        webhook_service.get_webhook.return_value = webhook

        response = await async_client.get(f"{API}/webhooks/{webhook.id}")

        assert response.status_code == 200
        assert "secret_key" not in response.json()

    @pytest.mark.asyncio
    async def test_not_found(self, async_client, webhook_service):
        webhook_service.get_webhook.side_effect = WebhookNotFoundError()

        response = await async_client.get(f"{API}/webhooks/{uuid4()}")

        assert response.status_code == 404
        assert response.json() == {"detail": "Webhook not found", "type": "not_found"}

    @pytest.mark.asyncio
    async def test_update_rejects_failed_status(self, async_client, webhook_service):
        response = await async_client.patch(
            f"{API}/webhooks/{uuid4()}", json={"status": "failed"}
        )

        assert response.status_code == 422
        webhook_service.update_webhook.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_trigger_is_accepted(self, async_client, dispatcher):
        ids = [uuid4(), uuid4()]
        dispatcher.trigger.return_value = TriggerResult(triggered=2, delivery_ids=ids)

        response = await async_client.post(
            f"{API}/webhooks/trigger",
            json={"eventType": "lead.created", "payload": {"id": "L-1"}},
        )

        assert response.status_code == 202
        assert response.json() == {
            "message": "Triggered 2 webhook(s)",
            "triggered": 2,
            "delivery_ids": [str(i) for i in ids],
        }
        dispatcher.trigger.assert_awaited_once_with(
            "lead.created", {"id": "L-1"}, owner_id=OWNER_ID
        )

    @pytest.mark.asyncio
    async def test_trigger_unknown_event(self, async_client, dispatcher):
        response = await async_client.post(
            f"{API}/webhooks/trigger", json={"event_type": "lead.exploded"}
        )

        assert response.status_code == 422
        dispatcher.trigger.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_send_test(self, async_client, dispatcher):
        delivery_id = uuid4()
        dispatcher.send_test.return_value = {
            "success": True,
            "message": "Webhook test successful",
            "status": 200,
            "response": "ok",
            "error": None,
            "delivery_id": delivery_id,
        }
        webhook_id = uuid4()

        response = await async_client.post(f"{API}/webhooks/{webhook_id}/test")

        assert response.status_code == 200
        assert response.json()["delivery_id"] == str(delivery_id)
        dispatcher.send_test.assert_awaited_once_with(OWNER_ID, webhook_id)

    @pytest.mark.asyncio
    async def test_delivery_history_limit_bounds(self, async_client, webhook_service):
        webhook_service.get_deliveries.return_value = []

        ok = await async_client.get(f"{API}/webhooks/{uuid4()}/deliveries?limit=10")
        too_many = await async_client.get(f"{API}/webhooks/{uuid4()}/deliveries?limit=500")

        assert ok.status_code == 200
        assert too_many.status_code == 422
        assert webhook_service.get_deliveries.await_args.args[2] == 10

    @pytest.mark.asyncio
    async def test_stats(self, async_client, webhook_service):
        webhook_service.get_stats.return_value = {
            "total": 4,
            "successful": 3,
            "failed": 1,
            "pending": 0,
            "success_rate": 75.0,
        }

        response = await async_client.get(f"{API}/webhooks/{uuid4()}/stats")

        assert response.json()["success_rate"] == 75.0

    @pytest.mark.asyncio
    async def test_redeliver(self, async_client, dispatcher):
        webhook = make_webhook()
        delivery = make_delivery(webhook, status="success", retry_count=2, response_status=200)
        dispatcher.redeliver.return_value = delivery

        response = await async_client.post(f"{API}/webhooks/deliveries/{delivery.id}/retry")

        assert response.status_code == 200
        assert response.json()["status"] == "success"
        assert response.json()["retry_count"] == 2

    @pytest.mark.asyncio
    async def test_process_retries(self, async_client, dispatcher):
        dispatcher.process_due_retries.return_value = {"claimed": 5, "queued": 4}

        response = await async_client.post(f"{API}/webhooks/deliveries/process-retries")

        assert response.json() == {"claimed": 5, "queued": 4}


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


class TestOptionEndpoints:
    @pytest.mark.asyncio
    async def test_put_then_get(self, async_client, mock_cache, mock_redis):
        app.dependency_overrides[get_option_store] = lambda: OptionStore(mock_cache)

        put = await async_client.put(
            f"{API}/options/lead_table.columns", json={"value": ["name", "score"]}
        )
        mock_redis.get = AsyncMock(return_value='["name", "score"]')
        got = await async_client.get(f"{API}/options/lead_table.columns")

        assert put.json() == {
            "key": "lead_table.columns",
            "value": ["name", "score"],
            "stored": True,
        }
        assert got.json()["value"] == ["name", "score"]
        assert mock_redis.set.await_args.args[0] == f"options:{OWNER_ID}:lead_table.columns"

    @pytest.mark.asyncio
    async def test_invalid_key(self, async_client, mock_cache):
        app.dependency_overrides[get_option_store] = lambda: OptionStore(mock_cache)

        response = await async_client.get(f"{API}/options/bad!key")

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_delete(self, async_client, mock_cache, mock_redis):
        app.dependency_overrides[get_option_store] = lambda: OptionStore(mock_cache)

        response = await async_client.delete(f"{API}/options/theme")

        assert response.json() == {"key": "theme", "value": None, "stored": False}
        mock_redis.delete.assert_awaited_once_with(f"options:{OWNER_ID}:theme")
