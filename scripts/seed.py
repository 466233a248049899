#!/usr/bin/env python3
"""
Seed the database with a demo manager, client and Performance Max campaign.

Safe to run more than once: existing rows are reused and the demo metrics
are rewritten.

Run from the repository root:
  python scripts/seed.py
"""

import asyncio
import random
import sys
from datetime import date, timedelta
from pathlib import Path

# Ensure repository root is on path
repo_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(repo_root))

from sqlalchemy import delete, select

from app.core.database import close_db, get_db_context, init_db
from app.core.security import hash_password
from app.models import (
    Alert,
    AlertPriority,
    AlertTypes,
    AssetGroup,
    Campaign,
    CampaignMetric,
    ChatConversation,
    ChatMessage,
    Client,
    Recommendation,
    User,
)

MANAGER_EMAIL = "manager@adsoptimizer.com"
CLIENT_EMAIL = "cliente@empresa.com"
DEFAULT_PASSWORD = "password123"
CAMPAIGN_ID = "PMAX-12345678"


async def get_or_create(db, model, lookup: dict, **values):
    result = await db.execute(select(model).filter_by(**lookup))
    instance = result.scalar_one_or_none()
    if instance is not None:
        return instance, False
    instance = model(**lookup, **values)
    db.add(instance)
    await db.flush()
    return instance, True


def demo_metrics(campaign_id: str, today: date) -> list[CampaignMetric]:
    rows = []
    for offset in range(6, -1, -1):
        impressions = random.randint(8000, 13000)
        clicks = int(impressions * random.uniform(0.02, 0.05))
        cost = round(clicks * random.uniform(0.8, 1.3), 2)
        conversions = float(int(clicks * random.uniform(0.03, 0.08)))
        conversion_value = round(conversions * random.uniform(80, 130), 2)
        rows.append(
            CampaignMetric(
                campaign_id=campaign_id,
                date=today - timedelta(days=offset),
                impressions=impressions,
                clicks=clicks,
                cost=cost,
                conversions=conversions,
                conversion_value=conversion_value,
                **CampaignMetric.calculate_derived_metrics(
                    impressions, clicks, cost, conversions, conversion_value
                ),
            )
        )
    return rows


async def seed():
    async with get_db_context() as db:
        manager, created = await get_or_create(
            db,
            User,
            {"email": MANAGER_EMAIL},
            password_hash=hash_password(DEFAULT_PASSWORD),
            name="João Silva",
            role="manager",
            company="AdsOptimizer Agency",
            phone="(11) 99999-9999",
        )
        if not created:
            manager.password_hash = hash_password(DEFAULT_PASSWORD)
        print(f"Manager: {manager.email}")

        client_user, _ = await get_or_create(
            db,
            User,
            {"email": CLIENT_EMAIL},
            password_hash=hash_password(DEFAULT_PASSWORD),
            name="Maria Santos",
            role="client",
            company="Loja Virtual LTDA",
            phone="(11) 88888-8888",
            manager_id=manager.id,
        )
        print(f"Client user: {client_user.email}")

        client, _ = await get_or_create(
            db,
            Client,
            {"email": CLIENT_EMAIL},
            name="Maria Santos",
            phone="(11) 88888-8888",
            company="Loja Virtual LTDA",
            manager_id=manager.id,
            user_id=client_user.id,
        )
        print(f"Client: {client.company}")

        campaign, _ = await get_or_create(
            db,
            Campaign,
            {"google_campaign_id": CAMPAIGN_ID},
            name="Performance Max - Produtos Gerais",
            status="ENABLED",
            budget_daily=150.0,
            target_roas=4.5,
            bidding_strategy="MAXIMIZE_CONVERSION_VALUE",
            client_id=client.id,
            created_by_id=manager.id,
        )
        print(f"Campaign: {campaign.name}")

        await db.execute(delete(CampaignMetric).where(CampaignMetric.campaign_id == campaign.id))
        db.add_all(demo_metrics(campaign.id, date.today()))
        print("Metrics: 7 days")

        _, created = await get_or_create(
            db,
            AssetGroup,
            {"campaign_id": campaign.id, "name": "Asset Group Principal"},
            google_asset_group_id="AG-123456",
            status="ENABLED",
            final_url="https://loja.exemplo.com",
            ad_strength="GOOD",
            headlines=[
                "Produtos com até 50% OFF",
                "Frete Grátis Brasil Todo",
                "Compre Agora e Economize",
                "Qualidade Garantida",
                "Entrega Rápida",
            ],
            descriptions=[
                "Os melhores produtos com os melhores preços. Confira nossas ofertas!",
                "Compre online com segurança e receba em casa.",
            ],
        )
        if created:
            db.add_all(
                [
                    Alert(
                        campaign_id=campaign.id,
                        user_id=manager.id,
                        alert_type=AlertTypes.ROAS_DROP,
                        priority=AlertPriority.HIGH,
                        title="Queda no ROAS detectada",
                        message="O ROAS caiu 15% nos últimos 3 dias.",
                        metric_name="roas",
                        current_value=3.8,
                        previous_value=4.5,
                        threshold_value=20.0,
                        data={"change_percent": -15},
                    ),
                    Alert(
                        campaign_id=campaign.id,
                        user_id=manager.id,
                        alert_type=AlertTypes.BURN_RATE,
                        priority=AlertPriority.MEDIUM,
                        title="Orçamento próximo do limite",
                        message="A campanha consumiu 90% do orçamento diário às 15h.",
                        metric_name="cost",
                        current_value=135.0,
                        threshold_value=150.0,
                        data={"percent_used": 90},
                    ),
                    Recommendation(
                        campaign_id=campaign.id,
                        type="BUDGET",
                        category="budget",
                        title="Aumentar orçamento da campanha",
                        description=(
                            "A campanha está com bom desempenho e pode escalar. "
                            "Recomendamos aumentar o orçamento em 20%."
                        ),
                        priority=2,
                        impact_score=7,
                        data={
                            "current_budget": 150,
                            "suggested_budget": 180,
                            "expected_impact": "Aumento de 15-20% nas conversões",
                        },
                    ),
                ]
            )
            print("Asset group, alerts and recommendation created")

        conversation, created = await get_or_create(
            db,
            ChatConversation,
            {"manager_id": manager.id, "client_id": client.id},
        )
        if created:
            db.add_all(
                [
                    ChatMessage(
                        conversation_id=conversation.id,
                        sender_id=manager.id,
                        content="Olá! Vi que a campanha está indo bem. Podemos aumentar o orçamento?",
                    ),
                    ChatMessage(
                        conversation_id=conversation.id,
                        sender_id=client_user.id,
                        content="Claro! Qual valor você sugere?",
                    ),
                ]
            )
            print("Chat conversation created")

    print("\nSeed complete.")
    print(f"  Manager: {MANAGER_EMAIL} / {DEFAULT_PASSWORD}")
    print(f"  Client:  {CLIENT_EMAIL} / {DEFAULT_PASSWORD}")


async def main():
    await init_db()
    try:
        await seed()
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
