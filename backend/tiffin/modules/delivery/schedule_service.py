"""Daily delivery manifest.

Resolves subscriptions, one-off orders and delivery pauses into the list
of deliveries for one day, grouped by service tier. Subscription entries
are one household each; order entries count the persons ordered for.
"""

import logging
import uuid
from datetime import date, datetime, time
from typing import Any, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.core.logging import log_info
from tiffin.core.metrics import MANIFEST_ENTRIES
from tiffin.modules.billing.models import MealType, PlanTier, SubscriptionStatus
from tiffin.modules.billing.repository import SubscriptionRepository
from tiffin.modules.delivery.repository import DeliveryPauseRepository, MenuRepository
from tiffin.modules.order.models import OrderType
from tiffin.modules.order.repository import OrderRepository

logger = logging.getLogger(__name__)

EVENTS = "Events"
BUCKETS = (PlanTier.BASIC.value, PlanTier.PREMIUM.value, PlanTier.EXOTIC.value, EVENTS)

# Which of a user's subscription rows represents them on a transition day
STATUS_PRIORITY = {
    SubscriptionStatus.ACTIVE.value: 4,
    SubscriptionStatus.CANCELLED.value: 3,
    SubscriptionStatus.UPGRADED.value: 2,
    SubscriptionStatus.EXPIRED.value: 1,
}

BUCKET_PRIORITY = {
    EVENTS: 4,
    PlanTier.EXOTIC.value: 3,
    PlanTier.PREMIUM.value: 2,
    PlanTier.BASIC.value: 1,
}

MENU_NOT_SET = "Menu not set"

# Keys of an item's selection detail that describe it rather than name food
_SELECTION_METADATA_KEYS = frozenset(("planType",))


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """First and last instant of ``day``."""
    return datetime.combine(day, time.min), datetime.combine(day, time.max)


def resolve_subscriptions(
    subscriptions: Iterable[Any],
    paused_subscription_ids: set[uuid.UUID],
) -> list[Any]:
    """Pick one subscription per user, dropping paused ones.

    On a transition day a user can have an Upgraded row and its Active
    replacement both covering the day; the higher status priority wins,
    then the most recently updated.
    """
    best: dict[uuid.UUID, Any] = {}
    for sub in subscriptions:
        if sub.id in paused_subscription_ids:
            continue
        current = best.get(sub.user_id)
        if current is None:
            best[sub.user_id] = sub
            continue
        rank = STATUS_PRIORITY.get(sub.status, 0)
        current_rank = STATUS_PRIORITY.get(current.status, 0)
        if rank > current_rank or (rank == current_rank and sub.updated_at > current.updated_at):
            best[sub.user_id] = sub
    return list(best.values())


def extract_item_names(name: Optional[str], selected_items: Any) -> list[str]:
    """Flatten an order item's selection into individual dish names.

    Comma-joined strings are split and nested lists and mappings are
    unwrapped. Falls back to the item name when nothing is selected.
    """
    names: list[str] = []

    def collect(value: Any) -> None:
        if isinstance(value, str):
            names.extend(part.strip() for part in value.split(",") if part.strip())
        elif isinstance(value, (list, tuple)):
            for element in value:
                collect(element)
        elif isinstance(value, dict):
            for key, element in value.items():
                if key not in _SELECTION_METADATA_KEYS:
                    collect(element)

    if selected_items:
        collect(selected_items)
    if names:
        return names
    return [name] if name else []


def item_bucket(order_type: str, item_name: Optional[str], selected_items: Any) -> str:
    """Tier implied by one order item.

    An explicit ``planType`` in the selection wins; only when it is absent
    or Basic is the item name searched for a tier.
    """
    if order_type == OrderType.EVENT.value:
        return EVENTS

    bucket = None
    if isinstance(selected_items, dict):
        bucket = selected_items.get("planType")
    bucket = bucket or PlanTier.BASIC.value

    if bucket == PlanTier.BASIC.value:
        lowered = (item_name or "").lower()
        if "exotic" in lowered:
            bucket = PlanTier.EXOTIC.value
        elif "premium" in lowered:
            bucket = PlanTier.PREMIUM.value
    return bucket


def order_bucket(order_type: str, items: Iterable[Any]) -> str:
    """Highest tier implied by any of the items."""
    bucket = PlanTier.BASIC.value
    for item in items:
        candidate = item_bucket(order_type, item.name, item.selected_items)
        if BUCKET_PRIORITY.get(candidate, 0) > BUCKET_PRIORITY[bucket]:
            bucket = candidate
    return bucket


def menu_items(menu: Optional[Any], meal_type: str) -> list[str]:
    """Dishes a subscription receives from the day's menu."""
    if menu is None:
        return [MENU_NOT_SET]
    lunch = list(menu.lunch_items or [])
    dinner = list(menu.dinner_items or [])
    if meal_type == MealType.BOTH.value:
        return lunch + dinner
    return lunch if meal_type == MealType.LUNCH.value else dinner


def subscription_entry(sub: Any, menu: Optional[Any]) -> dict:
    user = sub.user
    return {
        "id": sub.id,
        "type": "Subscription",
        "customer_name": user.name if user else "Unknown",
        "phone": user.phone if user else None,
        "lunch_address": sub.lunch_address,
        "dinner_address": sub.dinner_address,
        "address": None,
        "meal_type": sub.meal_type,
        "items": menu_items(menu, sub.meal_type),
        "quantity": 1,
    }


def order_entry(order: Any, day_items: list[Any]) -> dict:
    is_event = order.type == OrderType.EVENT.value
    names: list[str] = []
    persons = 0
    for item in day_items:
        names.extend(extract_item_names(item.name, item.selected_items))
        persons += item.quantity or 1

    user = order.user
    return {
        "id": order.id,
        "type": "Event Order" if is_event else "Single Order",
        "customer_name": user.name if user else "Guest",
        "phone": user.phone if user else None,
        "lunch_address": None,
        "dinner_address": None,
        "address": order.delivery_address,
        "meal_type": "event" if is_event else "single",
        "items": names,
        "quantity": persons,
    }


def build_manifest(
    subscriptions: Iterable[Any],
    pauses: Iterable[Any],
    orders: Iterable[Any],
    menus: Iterable[Any],
    start: datetime,
    end: datetime,
) -> dict[str, list[dict]]:
    """Group the day's deliveries by tier.

    Args:
        subscriptions: Subscriptions serving the day, including ones closed on or after it
        pauses: Active pauses touching the day
        orders: Confirmed, paid single/event orders with an item on the day
        menus: Menus dated on the day
        start: First instant of the day
        end: Last instant of the day
    """
    schedule: dict[str, list[dict]] = {bucket: [] for bucket in BUCKETS}

    paused_ids = {pause.subscription_id for pause in pauses}
    menus_by_tier = {menu.plan_type: menu for menu in menus}

    for sub in resolve_subscriptions(subscriptions, paused_ids):
        tier = sub.plan.name if sub.plan is not None else PlanTier.BASIC.value
        bucket = tier if tier in BUCKET_PRIORITY and tier != EVENTS else PlanTier.BASIC.value
        schedule[bucket].append(subscription_entry(sub, menus_by_tier.get(tier)))

    for order in orders:
        day_items = [
            item for item in (order.items or [])
            if item.delivery_date is not None and start <= item.delivery_date <= end
        ]
        if not day_items:
            continue
        schedule[order_bucket(order.type, day_items)].append(order_entry(order, day_items))

    return schedule


class DeliveryScheduleService:
    """Service assembling the dispatch manifest for a day."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.subscription_repo = SubscriptionRepository(session)
        self.pause_repo = DeliveryPauseRepository(session)
        self.order_repo = OrderRepository(session)
        self.menu_repo = MenuRepository(session)

    async def get_schedule(self, day: date) -> dict[str, list[dict]]:
        """Manifest for ``day``: ``{Basic, Premium, Exotic, Events}``."""
        start, end = day_bounds(day)

        subscriptions = await self.subscription_repo.list_serving_between(start, end)
        pauses = await self.pause_repo.list_active_between(start, end)
        orders = await self.order_repo.list_deliverable_between(start, end)
        menus = await self.menu_repo.list_between(start, end)

        schedule = build_manifest(subscriptions, pauses, orders, menus, start, end)

        for bucket, entries in schedule.items():
            MANIFEST_ENTRIES.labels(bucket=bucket).set(len(entries))
        log_info(
            logger,
            "Delivery manifest built",
            day=day.isoformat(),
            paused=len(pauses),
            **{f"{bucket.lower()}_entries": len(entries) for bucket, entries in schedule.items()},
        )
        return schedule
