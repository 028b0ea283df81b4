"""Seed the plan catalogue.

Run with: python -m scripts.seed_plans
"""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv
load_dotenv()

from sqlalchemy import delete, select

from tiffin.core.database import async_session_maker
from tiffin.modules.billing.models import Plan, PlanDuration, PlanTier
from tiffin.modules.billing.repository import PlanRepository


# Prices are for lunch + dinner over one full billing period, in rupees
PLANS_DATA = [
    {
        "name": PlanTier.BASIC.value,
        "duration": PlanDuration.MONTHLY.value,
        "price": Decimal("3000"),
        "description": "Home-style thali, two meals a day",
    },
    {
        "name": PlanTier.BASIC.value,
        "duration": PlanDuration.YEARLY.value,
        "price": Decimal("33000"),
        "description": "Home-style thali, two meals a day, billed yearly",
    },
    {
        "name": PlanTier.PREMIUM.value,
        "duration": PlanDuration.MONTHLY.value,
        "price": Decimal("4500"),
        "description": "Larger portions with a dessert",
    },
    {
        "name": PlanTier.PREMIUM.value,
        "duration": PlanDuration.YEARLY.value,
        "price": Decimal("49500"),
        "description": "Larger portions with a dessert, billed yearly",
    },
    {
        "name": PlanTier.EXOTIC.value,
        "duration": PlanDuration.MONTHLY.value,
        "price": Decimal("6000"),
        "description": "Rotating regional specials",
    },
    {
        "name": PlanTier.EXOTIC.value,
        "duration": PlanDuration.YEARLY.value,
        "price": Decimal("66000"),
        "description": "Rotating regional specials, billed yearly",
    },
]


async def seed_plans(reset: bool = False):
    """Seed plans into database.

    Args:
        reset: If True, delete all existing plans first
    """
    async with async_session_maker() as session:
        if reset:
            print("Deleting existing plans...")
            await session.execute(delete(Plan))
            await session.commit()
            print("Existing plans deleted.")

        repo = PlanRepository(session)
        for plan_data in PLANS_DATA:
            existing = await repo.get_by_name_and_duration(plan_data["name"], plan_data["duration"])

            if existing:
                print(f"Updating plan: {plan_data['name']} ({plan_data['duration']})")
                for key, value in plan_data.items():
                    setattr(existing, key, value)
            else:
                print(f"Creating plan: {plan_data['name']} ({plan_data['duration']})")
                await repo.create(**plan_data)

        await session.commit()
        print("\nPlans seeded successfully!")

        result = await session.execute(select(Plan).order_by(Plan.price))
        plans = result.scalars().all()

        print("\n" + "=" * 60)
        print("PLANS SUMMARY")
        print("=" * 60)
        for plan in plans:
            print(f"\n{plan.name} ({plan.duration})")
            print(f"  Price: Rs {plan.price:.2f}")
            print(f"  {plan.description}")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Seed meal plans")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Delete all existing plans before seeding"
    )
    args = parser.parse_args()

    asyncio.run(seed_plans(reset=args.reset))
