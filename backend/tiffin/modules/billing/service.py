"""Subscription lifecycle.

Subscribe, upgrade, renew, cancel and meal-type changes. A user has at
most one Active subscription; buying a new one while subscribed moves the
old one to Upgraded and credits its unused days against the new price.

The one-Active rule is enforced by looking up the current subscription
before writing, not by a database constraint, so two concurrent verify
calls for the same user can both succeed.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.core.exceptions import GatewayError, NotFoundError, PolicyViolation, ValidationError
from tiffin.core.logging import log_info, log_warning
from tiffin.core.metrics import SUBSCRIPTION_TRANSITIONS_TOTAL
from tiffin.modules.auth.repository import UserRepository
from tiffin.modules.billing import proration
from tiffin.modules.billing.eligibility import check_upgrade_eligibility
from tiffin.modules.billing.models import MealType, Plan, Subscription, SubscriptionStatus
from tiffin.modules.billing.pricing import price_for
from tiffin.modules.billing.repository import PlanRepository, SubscriptionRepository
from tiffin.modules.order.models import OrderStatus, OrderType, PaymentStatus
from tiffin.modules.order.repository import OrderRepository
from tiffin.modules.payment_gateway.currency import from_minor_units, to_minor_units
from tiffin.modules.payment_gateway.interface import GatewayOrder, PaymentGatewayInterface

logger = logging.getLogger(__name__)

# The gateway cannot collect less than one rupee; smaller balances are rounded up to it
MINIMUM_CHARGE = Decimal("1")

MEAL_TYPE_LABELS = {
    MealType.BOTH.value: "Lunch + Dinner",
    MealType.LUNCH.value: "Lunch",
    MealType.DINNER.value: "Dinner",
}


@dataclass
class Quote:
    """Price of a plan selection after credit from the current subscription."""
    plan: Plan
    meal_type: str
    price: Decimal
    credit: Decimal
    payable: Decimal
    current: Optional[Subscription] = None

    @property
    def is_free(self) -> bool:
        return self.payable == 0

    @property
    def charge(self) -> Decimal:
        """Amount the gateway order is created for."""
        if self.is_free:
            return self.payable
        return max(self.payable, MINIMUM_CHARGE)


@dataclass
class Checkout:
    """Outcome of an init call: either a gateway order or an activation."""
    quote: Quote
    gateway_order: Optional[GatewayOrder] = None
    subscription: Optional[Subscription] = None
    order_id: Optional[uuid.UUID] = None

    @property
    def free_switch(self) -> bool:
        return self.subscription is not None


@dataclass
class Activation:
    subscription: Subscription
    order_id: uuid.UUID


def normalize_addresses(
    meal_type: str,
    lunch_address: Optional[dict],
    dinner_address: Optional[dict],
) -> tuple[dict, dict]:
    """Apply the address rules for a meal type.

    A single-meal subscription delivers to one address, stored in both
    slots. A both-meals subscription fills a missing slot from the other.

    Raises:
        ValidationError: If no address is given at all
    """
    if meal_type == MealType.LUNCH.value:
        address = lunch_address or dinner_address
        lunch_address = dinner_address = address
    elif meal_type == MealType.DINNER.value:
        address = dinner_address or lunch_address
        lunch_address = dinner_address = address
    else:
        lunch_address = lunch_address or dinner_address
        dinner_address = dinner_address or lunch_address

    if not lunch_address or not dinner_address:
        raise ValidationError("A delivery address is required")
    return dict(lunch_address), dict(dinner_address)


class SubscriptionService:
    """Service for the subscription lifecycle."""

    def __init__(self, session: AsyncSession, gateway: PaymentGatewayInterface):
        self.session = session
        self.gateway = gateway
        self.plan_repo = PlanRepository(session)
        self.subscription_repo = SubscriptionRepository(session)
        self.order_repo = OrderRepository(session)
        self.user_repo = UserRepository(session)

    # ==================== Lookups ====================

    async def list_plans(self) -> list[Plan]:
        return await self.plan_repo.get_all()

    async def _get_plan(self, plan_id: uuid.UUID) -> Plan:
        plan = await self.plan_repo.get_by_id(plan_id)
        if plan is None:
            raise NotFoundError("Plan not found", context={"plan_id": str(plan_id)})
        return plan

    async def _get_owned(self, user_id: uuid.UUID, subscription_id: uuid.UUID) -> Subscription:
        subscription = await self.subscription_repo.get_by_id(subscription_id)
        if subscription is None or subscription.user_id != user_id:
            raise NotFoundError(
                "Subscription not found",
                context={"subscription_id": str(subscription_id)},
            )
        return subscription

    async def get_my_subscription(self, user_id: uuid.UUID) -> Subscription:
        """Get the user's Active subscription.

        Raises:
            NotFoundError: If the user has none
        """
        subscription = await self.subscription_repo.get_active_for_user(user_id)
        if subscription is None:
            raise NotFoundError("No active subscription found")
        return subscription

    async def list_all(self) -> list[Subscription]:
        return await self.subscription_repo.list_all()

    # ==================== Quotes ====================

    def build_quote(
        self,
        plan: Plan,
        meal_type: str,
        current: Optional[Subscription],
        now: datetime,
        enforce_eligibility: bool = True,
    ) -> Quote:
        """Price ``plan`` at ``meal_type`` against the current subscription.

        Raises:
            PolicyViolation: If eligibility is enforced and the move is not an upgrade
        """
        meal_type = getattr(meal_type, "value", meal_type)
        if current is not None and enforce_eligibility:
            allowed, reason = check_upgrade_eligibility(
                current.plan, current.meal_type, plan, meal_type
            )
            if not allowed:
                raise PolicyViolation(
                    reason,
                    context={"subscription_id": str(current.id), "plan_id": str(plan.id)},
                )

        price = price_for(plan, meal_type)
        credit = proration.credit(current, now) if current is not None else Decimal("0")
        payable = max(Decimal("0"), price - credit)
        return Quote(plan=plan, meal_type=meal_type, price=price, credit=credit, payable=payable, current=current)

    async def quote(
        self,
        user_id: uuid.UUID,
        plan_id: uuid.UUID,
        meal_type: str,
        now: Optional[datetime] = None,
    ) -> Quote:
        """Quote a subscribe or upgrade for the user."""
        now = now or datetime.utcnow()
        plan = await self._get_plan(plan_id)
        current = await self.subscription_repo.get_active_for_user(user_id)
        return self.build_quote(plan, meal_type, current, now)

    async def credit_preview(self, user_id: uuid.UUID, now: Optional[datetime] = None) -> dict:
        """Credit the Active subscription is worth right now."""
        now = now or datetime.utcnow()
        subscription = await self.get_my_subscription(user_id)
        remaining, total = proration.remaining_days(subscription, now)
        return {
            "subscription_id": subscription.id,
            "credit": proration.credit(subscription, now),
            "remaining_days": remaining,
            "total_days": total,
        }

    async def available_upgrades(
        self,
        user_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> tuple[Optional[Subscription], list[Quote]]:
        """Plans the user may buy, quoted against their current subscription.

        Without an Active subscription every plan is offered at full price
        for both meals.
        """
        now = now or datetime.utcnow()
        plans = await self.plan_repo.get_all()
        current = await self.subscription_repo.get_active_for_user(user_id)

        if current is None:
            return None, [self.build_quote(plan, MealType.BOTH.value, None, now) for plan in plans]

        quotes = []
        for plan in plans:
            if plan.id == current.plan_id:
                candidate = MealType.BOTH.value
            else:
                candidate = current.meal_type
            allowed, _ = check_upgrade_eligibility(current.plan, current.meal_type, plan, candidate)
            if allowed:
                quotes.append(self.build_quote(plan, candidate, current, now, enforce_eligibility=False))
        return current, quotes

    # ==================== Payment flows ====================

    async def _checkout(
        self,
        user_id: uuid.UUID,
        quote: Quote,
        receipt_prefix: str,
        lunch_address: Optional[dict],
        dinner_address: Optional[dict],
        transition: str,
        now: datetime,
    ) -> Checkout:
        if quote.is_free:
            activation = await self.activate(
                user_id=user_id,
                quote=quote,
                payment_id=None,
                amount_paid=Decimal("0"),
                lunch_address=lunch_address,
                dinner_address=dinner_address,
                transition="free_switch",
                now=now,
            )
            return Checkout(quote=quote, subscription=activation.subscription, order_id=activation.order_id)

        # Check addresses before the customer pays
        self._resolve_addresses(quote, lunch_address, dinner_address)

        gateway_order = await self.gateway.create_order(to_minor_units(quote.charge), receipt_prefix)
        log_info(
            logger,
            "Subscription checkout created",
            user_id=str(user_id),
            plan_id=str(quote.plan.id),
            transition=transition,
            payable=str(quote.payable),
            credit=str(quote.credit),
            gateway_order_id=gateway_order.id,
        )
        return Checkout(quote=quote, gateway_order=gateway_order)

    async def init_subscribe(
        self,
        user_id: uuid.UUID,
        plan_id: uuid.UUID,
        meal_type: str,
        lunch_address: Optional[dict] = None,
        dinner_address: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> Checkout:
        """Start a purchase, or an upgrade if the user is already subscribed."""
        now = now or datetime.utcnow()
        quote = await self.quote(user_id, plan_id, meal_type, now)
        transition = "upgrade" if quote.current else "purchase"
        return await self._checkout(
            user_id, quote, "receipt_order", lunch_address, dinner_address, transition, now
        )

    async def init_upgrade(
        self,
        user_id: uuid.UUID,
        plan_id: uuid.UUID,
        meal_type: str,
        lunch_address: Optional[dict] = None,
        dinner_address: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> Checkout:
        """Start an upgrade; the user must have an Active subscription."""
        now = now or datetime.utcnow()
        quote = await self.quote(user_id, plan_id, meal_type, now)
        if quote.current is None:
            raise PolicyViolation("No active subscription found to upgrade")
        return await self._checkout(
            user_id, quote, "receipt_upgrade", lunch_address, dinner_address, "upgrade", now
        )

    async def verify_subscribe(
        self,
        user_id: uuid.UUID,
        plan_id: uuid.UUID,
        meal_type: str,
        gateway_order_id: str,
        payment_id: str,
        signature: str,
        lunch_address: Optional[dict] = None,
        dinner_address: Optional[dict] = None,
        require_current: bool = False,
        now: Optional[datetime] = None,
    ) -> Activation:
        """Verify a subscribe or upgrade payment and activate the subscription.

        Raises:
            GatewayError: If the signature does not match or the gateway order
                cannot be read back
            PolicyViolation: If the payment was already applied, does not cover
                the quote, or the move is no longer an upgrade
        """
        now = now or datetime.utcnow()
        await self._check_payment(gateway_order_id, payment_id, signature)

        quote = await self.quote(user_id, plan_id, meal_type, now)
        if require_current and quote.current is None:
            raise PolicyViolation("No active subscription found to upgrade")

        amount_paid = await self._collected_amount(gateway_order_id, quote)
        return await self.activate(
            user_id=user_id,
            quote=quote,
            payment_id=payment_id,
            amount_paid=amount_paid,
            lunch_address=lunch_address,
            dinner_address=dinner_address,
            transition="upgrade" if quote.current else "purchase",
            now=now,
        )

    async def _renewal_quote(
        self,
        user_id: uuid.UUID,
        subscription_id: uuid.UUID,
        now: datetime,
    ) -> tuple[Subscription, Quote]:
        source = await self._get_owned(user_id, subscription_id)
        plan = source.plan or await self.plan_repo.get_by_id(source.plan_id)
        if plan is None:
            raise NotFoundError(
                "Plan associated with this subscription was not found. Please buy a new subscription."
            )
        current = await self.subscription_repo.get_active_for_user(user_id)
        # Renewing into a different plan or meal type is a plan change and must be an upgrade
        changes_plan = current is not None and (
            current.plan_id != source.plan_id or current.meal_type != source.meal_type
        )
        quote = self.build_quote(plan, source.meal_type, current, now, enforce_eligibility=changes_plan)
        return source, quote

    async def init_renew(
        self,
        user_id: uuid.UUID,
        subscription_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> Checkout:
        """Start renewing a subscription on the same plan and meal type."""
        now = now or datetime.utcnow()
        source, quote = await self._renewal_quote(user_id, subscription_id, now)
        return await self._checkout(
            user_id,
            quote,
            "receipt_renew",
            source.lunch_address,
            source.dinner_address,
            "renew",
            now,
        )

    async def verify_renew(
        self,
        user_id: uuid.UUID,
        subscription_id: uuid.UUID,
        gateway_order_id: str,
        payment_id: str,
        signature: str,
        now: Optional[datetime] = None,
    ) -> Activation:
        """Verify a renewal payment and start the new period."""
        now = now or datetime.utcnow()
        await self._check_payment(gateway_order_id, payment_id, signature)
        source, quote = await self._renewal_quote(user_id, subscription_id, now)
        amount_paid = await self._collected_amount(gateway_order_id, quote)
        return await self.activate(
            user_id=user_id,
            quote=quote,
            payment_id=payment_id,
            amount_paid=amount_paid,
            lunch_address=source.lunch_address,
            dinner_address=source.dinner_address,
            transition="renew",
            now=now,
        )

    async def _check_payment(self, gateway_order_id: str, payment_id: str, signature: str) -> None:
        if not self.gateway.verify_signature(gateway_order_id, payment_id, signature):
            raise GatewayError(
                "Invalid payment signature",
                status_code=400,
                context={"gateway_order_id": gateway_order_id},
            )
        if (
            await self.subscription_repo.get_by_payment_id(payment_id) is not None
            or await self.order_repo.get_by_payment_id(payment_id) is not None
        ):
            raise PolicyViolation(
                "This payment has already been applied",
                context={"payment_id": payment_id},
            )

    async def _collected_amount(self, gateway_order_id: str, quote: Quote) -> Decimal:
        """Amount the paid gateway order was created for.

        Raises:
            GatewayError: If the gateway order cannot be read back
            PolicyViolation: If it does not cover the current quote
        """
        gateway_order = await self.gateway.fetch_order(gateway_order_id)

        collected = from_minor_units(gateway_order.amount)
        if to_minor_units(collected) < to_minor_units(quote.payable):
            log_warning(
                logger,
                "Gateway order does not cover quote",
                gateway_order_id=gateway_order_id,
                collected=str(collected),
                quoted=str(quote.payable),
            )
            raise PolicyViolation(
                "Payment does not cover the selected plan. Please start checkout again.",
                context={"gateway_order_id": gateway_order_id},
            )
        if to_minor_units(collected) != to_minor_units(quote.charge):
            log_warning(
                logger,
                "Collected amount differs from current quote",
                gateway_order_id=gateway_order_id,
                collected=str(collected),
                quoted=str(quote.payable),
            )
        return collected

    # ==================== Activation ====================

    def _resolve_addresses(
        self,
        quote: Quote,
        lunch_address: Optional[dict],
        dinner_address: Optional[dict],
    ) -> tuple[dict, dict]:
        if not lunch_address and not dinner_address and quote.current is not None:
            lunch_address = quote.current.lunch_address
            dinner_address = quote.current.dinner_address
        return normalize_addresses(quote.meal_type, lunch_address, dinner_address)

    async def activate(
        self,
        user_id: uuid.UUID,
        quote: Quote,
        payment_id: Optional[str],
        amount_paid: Decimal,
        lunch_address: Optional[dict],
        dinner_address: Optional[dict],
        transition: str,
        now: datetime,
    ) -> Activation:
        """Replace the current subscription with a new one for ``quote``.

        The prior Active subscription and its orders become Upgraded, the
        new subscription becomes the user's current one and a Confirmed
        audit order records the charge. Everything is committed together.
        """
        lunch_address, dinner_address = self._resolve_addresses(quote, lunch_address, dinner_address)
        plan = quote.plan
        current = quote.current

        if current is not None:
            current.status = SubscriptionStatus.UPGRADED.value
            await self.subscription_repo.save(current)
            await self.order_repo.bulk_update_status_by_subscription(
                current.id, OrderStatus.UPGRADED.value
            )

        subscription = await self.subscription_repo.create(
            user_id=user_id,
            plan_id=plan.id,
            start_date=now,
            end_date=proration.calculate_end_date(now, plan.duration),
            status=SubscriptionStatus.ACTIVE.value,
            meal_type=quote.meal_type,
            amount_paid=amount_paid,
            plan_value=quote.price,
            payment_id=payment_id,
            lunch_address=lunch_address,
            dinner_address=dinner_address,
        )
        subscription.plan = plan
        await self.user_repo.set_current_subscription(user_id, subscription.id)

        label = f"{plan.name} Plan ({plan.duration}) - {MEAL_TYPE_LABELS[quote.meal_type]}"
        if current is not None:
            order_type = OrderType.SUBSCRIPTION_UPGRADE.value
            label = f"Upgrade to {label}"
        else:
            order_type = OrderType.SUBSCRIPTION_PURCHASE.value

        order = await self.order_repo.create(
            user_id=user_id,
            subscription_id=subscription.id,
            type=order_type,
            status=OrderStatus.CONFIRMED.value,
            price=quote.price,
            pro_rata_credit=quote.credit,
            total_amount=amount_paid,
            payment_status=PaymentStatus.PAID.value,
            payment_id=payment_id,
            delivery_address=lunch_address,
            items=[{"name": label, "quantity": 1, "price": quote.price}],
        )
        await self.session.commit()

        SUBSCRIPTION_TRANSITIONS_TOTAL.labels(transition=transition).inc()
        log_info(
            logger,
            "Subscription activated",
            user_id=str(user_id),
            subscription_id=str(subscription.id),
            previous_subscription_id=str(current.id) if current else None,
            transition=transition,
            amount_paid=str(amount_paid),
            credit=str(quote.credit),
        )
        return Activation(subscription=subscription, order_id=order.id)

    # ==================== Changes to the Active subscription ====================

    async def change_meal_type(self, user_id: uuid.UUID, meal_type: str) -> Subscription:
        """Switch the Active subscription's meal type without a refund.

        Dropping to a single meal or switching between lunch and dinner
        applies immediately. Moving to both meals costs more and must go
        through the paid upgrade flow.
        """
        meal_type = getattr(meal_type, "value", meal_type)
        subscription = await self.get_my_subscription(user_id)

        if meal_type == subscription.meal_type:
            raise PolicyViolation(f"Subscription already covers {MEAL_TYPE_LABELS[meal_type].lower()}")
        if meal_type == MealType.BOTH.value:
            raise PolicyViolation(
                "Upgrading to both meals requires an additional payment. Please use the upgrade section."
            )

        previous = subscription.meal_type
        subscription.meal_type = meal_type
        subscription.plan_value = price_for(subscription.plan, meal_type)
        subscription.lunch_address, subscription.dinner_address = normalize_addresses(
            meal_type, subscription.lunch_address, subscription.dinner_address
        )
        await self.subscription_repo.save(subscription)
        await self.session.commit()

        SUBSCRIPTION_TRANSITIONS_TOTAL.labels(transition="meal_change").inc()
        log_info(
            logger,
            "Meal type changed",
            subscription_id=str(subscription.id),
            previous_meal_type=previous,
            meal_type=meal_type,
        )
        return subscription

    async def update_addresses(
        self,
        user_id: uuid.UUID,
        lunch_address: Optional[dict],
        dinner_address: Optional[dict],
    ) -> Subscription:
        """Replace delivery addresses on the Active subscription."""
        if not lunch_address and not dinner_address:
            raise ValidationError("Provide a lunch or dinner address")

        subscription = await self.get_my_subscription(user_id)

        if subscription.meal_type == MealType.BOTH.value:
            lunch = lunch_address or subscription.lunch_address
            dinner = dinner_address or subscription.dinner_address
        else:
            # One delivery address; accept it from either slot
            if subscription.meal_type == MealType.LUNCH.value:
                chosen = lunch_address or dinner_address
            else:
                chosen = dinner_address or lunch_address
            lunch = dinner = chosen

        subscription.lunch_address, subscription.dinner_address = normalize_addresses(
            subscription.meal_type, lunch, dinner
        )
        await self.subscription_repo.save(subscription)
        await self.session.commit()

        log_info(logger, "Subscription addresses updated", subscription_id=str(subscription.id))
        return subscription

    # ==================== Terminal transitions ====================

    async def _close(self, subscription: Subscription, status: str) -> None:
        subscription.status = status
        await self.subscription_repo.save(subscription)
        await self.user_repo.clear_current_subscription_if(subscription.user_id, subscription.id)

    async def cancel(self, user_id: uuid.UUID, subscription_id: uuid.UUID) -> Subscription:
        """Cancel the user's Active subscription. No refund is given."""
        subscription = await self._get_owned(user_id, subscription_id)
        if not subscription.is_active:
            raise PolicyViolation(
                "Subscription is not active",
                context={"subscription_id": str(subscription_id), "status": subscription.status},
            )
        return await self._cancel(subscription)

    async def admin_cancel(self, subscription_id: uuid.UUID) -> Subscription:
        """Cancel any Active subscription by id."""
        subscription = await self.subscription_repo.get_by_id(subscription_id)
        if subscription is None:
            raise NotFoundError("Subscription not found", context={"subscription_id": str(subscription_id)})
        if not subscription.is_active:
            raise PolicyViolation(
                "Subscription is not active",
                context={"subscription_id": str(subscription_id), "status": subscription.status},
            )
        return await self._cancel(subscription)

    async def _cancel(self, subscription: Subscription) -> Subscription:
        await self._close(subscription, SubscriptionStatus.CANCELLED.value)
        updated = await self.order_repo.bulk_update_status_by_subscription(
            subscription.id, OrderStatus.CANCELLED.value
        )
        await self.session.commit()

        SUBSCRIPTION_TRANSITIONS_TOTAL.labels(transition="cancel").inc()
        log_info(
            logger,
            "Subscription cancelled",
            subscription_id=str(subscription.id),
            user_id=str(subscription.user_id),
            orders_cancelled=updated,
        )
        return subscription

    async def expire_lapsed(self, now: Optional[datetime] = None) -> int:
        """Mark Active subscriptions past their end date as Expired.

        Returns:
            Number of subscriptions expired
        """
        now = now or datetime.utcnow()
        lapsed = await self.subscription_repo.list_lapsed(now)
        for subscription in lapsed:
            await self._close(subscription, SubscriptionStatus.EXPIRED.value)
        await self.session.commit()

        if lapsed:
            SUBSCRIPTION_TRANSITIONS_TOTAL.labels(transition="expire").inc(len(lapsed))
        log_info(logger, "Lapsed subscriptions expired", expired_count=len(lapsed))
        return len(lapsed)
