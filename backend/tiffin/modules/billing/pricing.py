"""Pricing policy.

Plan prices per meal type, order cancellation fees and the ordering
windows for meals and event catering. All amounts are Decimal rupees.
"""

from datetime import datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Optional, Tuple

from tiffin.core.config import settings
from tiffin.core.exceptions import ValidationError
from tiffin.modules.billing.models import MealType
from tiffin.modules.order.models import OrderStatus, OrderType

PAISE = Decimal("0.01")
HUNDRED = Decimal("100")

MEAL_MULTIPLIERS = {
    MealType.BOTH.value: Decimal("1.0"),
    MealType.LUNCH.value: Decimal("0.5"),
    MealType.DINNER.value: Decimal("0.5"),
}

# Audit orders for subscriptions keep their full amount on cancellation
SUBSCRIPTION_ORDER_TYPES = (
    OrderType.SUBSCRIPTION_PURCHASE.value,
    OrderType.SUBSCRIPTION_UPGRADE.value,
)

MEAL_DEADLINES = {
    "Lunch": lambda: time(settings.LUNCH_DEADLINE_HOUR, 0),
    "Dinner": lambda: time(settings.DINNER_DEADLINE_HOUR, 0),
}

DEFAULT_DELIVERY_TIME = time(12, 0)

EVENT_ITEM_NAME = "Event Catering"


def multiplier(meal_type: str) -> Decimal:
    """Price multiplier for a meal type.

    Raises:
        ValidationError: If the meal type is unknown
    """
    try:
        return MEAL_MULTIPLIERS[getattr(meal_type, "value", meal_type)]
    except KeyError:
        raise ValidationError(
            f"Invalid meal type: {meal_type}",
            context={"meal_type": meal_type},
        ) from None


def price_for(plan: Any, meal_type: str) -> Decimal:
    """Price of ``plan`` for one billing period at ``meal_type``."""
    return Decimal(plan.price) * multiplier(meal_type)


def parse_delivery_time(value: Optional[str]) -> Optional[time]:
    """Parse an "HH:MM" delivery time, returning None if unset or malformed."""
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), "%H:%M").time()
    except ValueError:
        return None


def item_delivery_at(delivery_date: datetime, delivery_time: Optional[str]) -> datetime:
    """Moment an order item is delivered; noon when no time was given."""
    at = parse_delivery_time(delivery_time) or DEFAULT_DELIVERY_TIME
    return datetime.combine(delivery_date.date(), at)


def earliest_delivery(order: Any) -> datetime:
    """Earliest delivery moment across the order's dated items.

    Orders without dated items fall back to one day after creation.
    """
    moments = [
        item_delivery_at(item.delivery_date, item.delivery_time)
        for item in (order.items or [])
        if item.delivery_date is not None
    ]
    if moments:
        return min(moments)
    return order.created_at + timedelta(hours=24)


def cancellation_fee(order: Any, now: datetime) -> Tuple[Decimal, Decimal]:
    """Compute the cancellation fee and refund for an order.

    Subscription audit orders keep the full amount. Pending orders are
    refunded in full. Otherwise the fee depends on how long is left before
    the earliest delivery: inside the no-refund window the whole amount is
    kept, outside it a flat percentage.

    Returns:
        Tuple of (fee, refund); fee + refund == total
    """
    total = max(Decimal(order.total_amount or 0), Decimal("0"))

    if order.type in SUBSCRIPTION_ORDER_TYPES:
        fee = total
    elif order.status == OrderStatus.PENDING.value:
        fee = Decimal("0")
    else:
        hours_left = (earliest_delivery(order) - now).total_seconds() / 3600
        flat = total * Decimal(settings.CANCELLATION_FEE_PERCENT) / HUNDRED

        if order.type == OrderType.EVENT.value:
            fee = total if hours_left < settings.EVENT_NO_REFUND_WINDOW_HOURS else flat
        elif order.type == OrderType.SINGLE.value:
            fee = total if hours_left < settings.SINGLE_NO_REFUND_WINDOW_HOURS else flat
        else:
            fee = flat

    fee = min(max(fee.quantize(PAISE, rounding=ROUND_HALF_UP), Decimal("0")), total)
    return fee, total - fee


def order_time_is_valid(delivery_date: datetime, meal_time: str, now: datetime) -> bool:
    """Whether a meal can still be ordered for ``delivery_date``.

    Lunch closes at 12:00 and dinner at 20:00 on the delivery date; the
    order must be placed at least MEAL_ORDER_CUTOFF_HOURS before that.

    Raises:
        ValidationError: If ``meal_time`` is not Lunch or Dinner
    """
    if meal_time not in MEAL_DEADLINES:
        raise ValidationError(f"Invalid meal time: {meal_time}")
    deadline = datetime.combine(delivery_date.date(), MEAL_DEADLINES[meal_time]())
    return deadline - now >= timedelta(hours=settings.MEAL_ORDER_CUTOFF_HOURS)


def event_time_is_valid(delivery_at: datetime, now: datetime) -> bool:
    """Event catering needs EVENT_ORDER_LEAD_HOURS notice."""
    return delivery_at - now >= timedelta(hours=settings.EVENT_ORDER_LEAD_HOURS)


def _selected_name(selected_items: Any) -> str:
    if isinstance(selected_items, dict):
        name = selected_items.get("name")
        if isinstance(name, str):
            return name
    return ""


def is_event_item(name: Optional[str], selected_items: Any = None) -> bool:
    """Whether a line item is event catering."""
    if name == EVENT_ITEM_NAME:
        return True
    return "event" in _selected_name(selected_items).lower()


def infer_meal_time(name: Optional[str], selected_items: Any = None) -> Optional[str]:
    """Derive Lunch/Dinner from an item's name or its selection detail.

    Returns None for items that are not time-gated.
    """
    lowered = (name or "").lower()
    if "lunch" in lowered:
        return "Lunch"
    if "dinner" in lowered:
        return "Dinner"

    selected = _selected_name(selected_items)
    if "Lunch" in selected:
        return "Lunch"
    if "Dinner" in selected:
        return "Dinner"
    return None


def validate_item_windows(items: Iterable[Any], now: datetime) -> None:
    """Check each dated item against its ordering window.

    Raises:
        ValidationError: On the first item whose window has closed
    """
    for item in items:
        if item.delivery_date is None:
            continue

        if is_event_item(item.name, item.selected_items):
            delivery_at = item_delivery_at(item.delivery_date, item.delivery_time)
            if not event_time_is_valid(delivery_at, now):
                raise ValidationError(
                    f"Event catering items must be placed at least "
                    f"{settings.EVENT_ORDER_LEAD_HOURS} hours in advance."
                )
            continue

        meal_time = infer_meal_time(item.name, item.selected_items)
        if meal_time and not order_time_is_valid(item.delivery_date, meal_time, now):
            raise ValidationError(
                f"{meal_time} orders for {item.name} must be placed at least "
                f"{settings.MEAL_ORDER_CUTOFF_HOURS} hours in advance. Deadline passed."
            )
