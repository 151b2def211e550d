from app.schemas.common import (
    DeliveryStatus,
    FormulaType,
    ResultType,
    WebhookEventType,
    WebhookStatus,
)

FORMULA_TYPE_CHECK_CLAUSE: str = (
    f"formula_type IN ({', '.join(repr(t.value) for t in FormulaType)})"
)
RESULT_TYPE_CHECK_CLAUSE: str = (
    f"result_type IN ({', '.join(repr(t.value) for t in ResultType)})"
)
WEBHOOK_STATUS_CHECK_CLAUSE: str = (
    f"status IN ({', '.join(repr(s.value) for s in WebhookStatus)})"
)
DELIVERY_STATUS_CHECK_CLAUSE: str = (
    f"status IN ({', '.join(repr(s.value) for s in DeliveryStatus)})"
)

# Outbound request headers that static webhook headers can never override
SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_HEADER = "X-Webhook-Event"
DELIVERY_ID_HEADER = "X-Webhook-Delivery-Id"
TEST_HEADER = "X-Webhook-Test"

SECRET_KEY_BYTES: int = 32
MAX_DELIVERY_HISTORY_LIMIT: int = 200
DEFAULT_DELIVERY_HISTORY_LIMIT: int = 50

# Event used for synthetic "send test" deliveries
TEST_EVENT_TYPE: str = WebhookEventType.lead_created.value
