"""Upgrade eligibility rules.

A user may move to a higher tier, to a longer billing period on the same
tier, or from a single meal to both meals on the same plan. Anything else
is a downgrade or a no-op and is refused with a reason.
"""

from typing import Any, Tuple

from tiffin.modules.billing.models import MealType


def check_upgrade_eligibility(
    current_plan: Any,
    current_meal_type: str,
    new_plan: Any,
    new_meal_type: str,
) -> Tuple[bool, str]:
    """Decide whether moving to ``new_plan`` at ``new_meal_type`` is an upgrade.

    Returns:
        Tuple of (allowed, reason). ``reason`` is empty when allowed.
    """
    both = MealType.BOTH.value

    if current_plan.id == new_plan.id:
        if current_meal_type == new_meal_type:
            return False, "You are already subscribed to this plan"
        if current_meal_type != both and new_meal_type == both:
            return True, ""
        if current_meal_type == both:
            return False, "Switching from both meals to a single meal is a downgrade; use change meal type"
        return False, "Switching between lunch and dinner is not an upgrade; use change meal type"

    if new_plan.tier_rank > current_plan.tier_rank:
        return True, ""
    if new_plan.tier_rank < current_plan.tier_rank:
        return False, "Downgrading to a lower tier plan is not allowed"
    if new_plan.duration_rank > current_plan.duration_rank:
        return True, ""
    return False, "Only a longer billing period can be purchased on the same tier"
