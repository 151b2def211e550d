"""Sample data seeder: a few calculated columns and one webhook for a demo owner."""

import asyncio

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.core.config import settings
from app.formula import validate
from app.models import CalculatedColumn, Webhook
from app.schemas.common import WebhookEventType
from app.services.webhook_signing import generate_secret_key

DEMO_OWNER = "demo-user"

SAMPLE_COLUMNS = [
    {
        "column_name": "full_name",
        "formula": 'concat(first_name, " ", last_name)',
        "result_type": "text",
    },
    {
        "column_name": "budget_band",
        "formula": 'budget >= 1000000 ? "premium" : budget >= 250000 ? "standard" : "entry"',
        "result_type": "text",
    },
    {
        "column_name": "days_since_created",
        "formula": "daysBetween(created_at, now())",
        "result_type": "number",
        "cache_duration": 86400,
    },
    {
        "column_name": "is_hot",
        "formula": "score >= 80 && !isEmpty(phone)",
        "result_type": "boolean",
    },
]


async def seed():
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with session_maker() as session:
        print(f"Seeding sample data for owner {DEMO_OWNER!r}")

        # Re-runnable: remove this owner's rows first (results and deliveries cascade)
        await session.execute(
            delete(CalculatedColumn).where(CalculatedColumn.owner_id == DEMO_OWNER)
        )
        await session.execute(delete(Webhook).where(Webhook.created_by == DEMO_OWNER))

        for sample in SAMPLE_COLUMNS:
            check = validate(sample["formula"])
            if not check.valid:
                raise SystemExit(f"Sample formula {sample['column_name']} is invalid: {check.error}")
            session.add(
                CalculatedColumn(
                    owner_id=DEMO_OWNER,
                    formula_type="calculation",
                    is_active=True,
                    cache_duration=sample.get(
                        "cache_duration", settings.CALCULATED_COLUMN_DEFAULT_CACHE_SECONDS
                    ),
                    **{k: v for k, v in sample.items() if k != "cache_duration"},
                )
            )
        await session.flush()
        print(f"Created {len(SAMPLE_COLUMNS)} calculated columns")

        session.add(
            Webhook(
                name="Local echo",
                url="http://localhost:9000/hooks/crm",
                description="Receives every lead event",
                status="active",
                secret_key=generate_secret_key(),
                events=[
                    WebhookEventType.lead_created.value,
                    WebhookEventType.lead_updated.value,
                    WebhookEventType.lead_status_changed.value,
                ],
                headers={"X-Source": "crm-seed"},
                created_by=DEMO_OWNER,
            )
        )
        await session.commit()
        print("Created 1 webhook")

        col_cnt = len(
            (
                await session.execute(
                    select(CalculatedColumn).where(CalculatedColumn.owner_id == DEMO_OWNER)
                )
            ).scalars().all()
        )
        print("\nValidation:")
        print(f"  Calculated columns: {col_cnt}")
        print("Seeding complete")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
