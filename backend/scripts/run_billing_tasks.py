"""Run billing background tasks manually.

Expires Active subscriptions whose period has ended. Schedule it daily
with cron or run it by hand.

Usage:
    cd backend
    python -m scripts.run_billing_tasks
"""

import asyncio
import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv
load_dotenv()

from tiffin.core.config import settings
from tiffin.core.database import async_session_maker
from tiffin.core.logging import setup_logging
from tiffin.modules.billing.service import SubscriptionService
from tiffin.modules.payment_gateway import get_payment_gateway


async def main():
    """Run billing tasks."""
    setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

    print("\n" + "=" * 60)
    print("Running Billing Background Tasks")
    print("=" * 60)

    run_at = datetime.utcnow()
    async with async_session_maker() as session:
        service = SubscriptionService(session, get_payment_gateway())
        expired = await service.expire_lapsed(run_at)

    print(f"\nResults:")
    print(f"  Subscriptions expired: {expired}")
    print(f"  Run at: {run_at.isoformat()}")


if __name__ == "__main__":
    asyncio.run(main())
