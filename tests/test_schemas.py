import pytest
from pydantic import ValidationError

from app.core.config import settings
from app.schemas.calculated_column import (
    CalculatedColumnCreate,
    CalculatedColumnUpdate,
    ColumnEvaluateRequest,
    normalize_column_name,
)
from app.schemas.webhook import WebhookCreate, WebhookTriggerRequest, WebhookUpdate


class TestColumnNameNormalisation:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Full Greeting", "full_greeting"),
            ("fullGreeting", "full_greeting"),
            ("  budget-band  ", "budget_band"),
            ("2024 Score", "col_2024_score"),
            ("already_snake", "already_snake"),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_column_name(raw) == expected

    def test_name_without_letters_or_digits_is_rejected(self):
        with pytest.raises(ValidationError):
            CalculatedColumnCreate(column_name="!!!", formula="1")


class TestCalculatedColumnSchemas:
    def test_create_defaults(self):
        body = CalculatedColumnCreate(column_name="x", formula="1")
        assert body.formula_type.value == "calculation"
        assert body.result_type.value == "text"
        assert body.is_active is True
        assert body.cache_duration == settings.CALCULATED_COLUMN_DEFAULT_CACHE_SECONDS

    def test_negative_cache_duration_is_rejected(self):
        with pytest.raises(ValidationError):
            CalculatedColumnCreate(column_name="x", formula="1", cache_duration=-1)

    def test_unknown_result_type_is_rejected(self):
        with pytest.raises(ValidationError):
            CalculatedColumnCreate(column_name="x", formula="1", result_type="currency")

    def test_update_allows_null_cache_duration(self):
        body = CalculatedColumnUpdate(cache_duration=None)
        assert body.model_dump(exclude_unset=True) == {"cache_duration": None}

    def test_update_rejects_null_formula(self):
        with pytest.raises(ValidationError, match="formula cannot be null"):
            CalculatedColumnUpdate(formula=None)


class TestColumnEvaluateRequest:
    def test_camel_case_single_lead(self):
        body = ColumnEvaluateRequest.model_validate(
            {"leadId": "L-1", "leadData": {"firstName": "Ana"}, "forceRefresh": True}
        )
        assert body.lead_id == "L-1"
        assert body.lead_data == {"firstName": "Ana"}
        assert body.force_refresh is True
        assert body.leads is None

    def test_batch(self):
        body = ColumnEvaluateRequest.model_validate(
            {"leads": [{"leadId": "a", "leadData": {}}, {"id": "b", "data": {"x": 1}}]}
        )
        assert [lead.lead_id for lead in body.leads] == ["a", "b"]
        assert body.leads[1].lead_data == {"x": 1}

    def test_single_requires_lead_id_and_data(self):
        with pytest.raises(ValidationError):
            ColumnEvaluateRequest.model_validate({"leadId": "L-1"})

    def test_batch_size_is_capped(self):
        leads = [{"leadId": str(i)} for i in range(settings.BATCH_EVALUATION_MAX_LEADS + 1)]
        with pytest.raises(ValidationError):
            ColumnEvaluateRequest.model_validate({"leads": leads})


class TestWebhookSchemas:
    def _valid(self, **overrides):
        data = {
            "name": "CRM sync",
            "url": "https://hooks.example.com/crm",
            "events": ["lead.created"],
        }
        data.update(overrides)
        return data

    def test_defaults(self):
        body = WebhookCreate(**self._valid())
        assert body.retry_enabled is True
        assert body.max_retries == 3
        assert body.retry_delay == 60
        assert body.timeout == 30000

    def test_secret_key_in_body_is_ignored(self):
        body = WebhookCreate(**self._valid(secret_key="attacker-chosen"))
        assert "secret_key" not in body.model_dump()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"url": "ftp://example.com"},
            {"events": []},
            {"events": ["lead.exploded"]},
            {"max_retries": 11},
            {"timeout": 500},
            {"retry_delay": 0},
            {"transform_enabled": True},
        ],
    )
    def test_invalid_bodies(self, overrides):
        with pytest.raises(ValidationError):
            WebhookCreate(**self._valid(**overrides))

    def test_update_cannot_set_failed_status(self):
        with pytest.raises(ValidationError):
            WebhookUpdate(status="failed")

    def test_update_cannot_null_url(self):
        with pytest.raises(ValidationError):
            WebhookUpdate(url=None)

    def test_update_may_clear_description(self):
        assert WebhookUpdate(description=None).model_dump(exclude_unset=True) == {
            "description": None
        }

    def test_trigger_accepts_camel_case(self):
        body = WebhookTriggerRequest.model_validate(
            {"eventType": "lead.updated", "payload": {"id": 1}}
        )
        assert body.event_type.value == "lead.updated"
