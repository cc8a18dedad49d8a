"""
Plan table shared by the checkout, cancel and webhook handlers.

One static mapping from plan name to (tier, profile limit, Paystack plan
code). The plan codes come from configuration; everything else is fixed.
"""

from dataclasses import dataclass
from typing import Optional

from shared.constants import PAID_TIERS, TIER_PROFILE_LIMITS
from shared.errors import ConfigurationError, InvalidPlanError

# Environment variable holding the Paystack plan code for each plan
PLAN_CODE_ENV_VARS = {
    "paid_single": "PAYSTACK_PLAN_SINGLE_CODE",
    "paid_family": "PAYSTACK_PLAN_FAMILY_CODE",
    "paid_ultra": "PAYSTACK_PLAN_ULTRA_CODE",
}


@dataclass(frozen=True)
class Plan:
    """A sellable plan."""

    name: str
    tier: str
    profile_limit: int
    provider_code: Optional[str] = None


class PlanTable:
    """Lookup table over the paid plans.

    Plan names are the tier names; a plan may exist without a configured
    provider code, in which case it can still be resolved from a webhook
    profile-limit hint but cannot be sold.
    """

    def __init__(self, plans: list[Plan]):
        self._by_name = {plan.name: plan for plan in plans}
        self._by_code = {plan.provider_code: plan for plan in plans if plan.provider_code}

    @classmethod
    def from_codes(cls, codes: dict[str, Optional[str]]) -> "PlanTable":
        """Build the table from a {plan name: provider code} mapping.

        Empty strings are treated as unconfigured.
        """
        plans = [
            Plan(
                name=tier,
                tier=tier,
                profile_limit=TIER_PROFILE_LIMITS[tier],
                provider_code=codes.get(tier) or None,
            )
            for tier in PAID_TIERS
        ]
        return cls(plans)

    @property
    def names(self) -> list[str]:
        return list(self._by_name.keys())

    def __iter__(self):
        return iter(self._by_name.values())

    def get(self, name) -> Plan:
        """Return the plan for a plan name or raise InvalidPlanError."""
        plan = self._by_name.get(name) if isinstance(name, str) else None
        if plan is None:
            raise InvalidPlanError(name, supported=self.names)
        return plan

    def for_checkout(self, name) -> Plan:
        """Return a plan that can be sold right now.

        Raises:
            InvalidPlanError: name is not one of the enumerated plans
            ConfigurationError: the plan has no provider code configured
        """
        plan = self.get(name)
        if not plan.provider_code:
            raise ConfigurationError(f"Paystack plan code for '{plan.name}' is not configured")
        return plan

    def resolve_code(self, provider_code) -> Optional[Plan]:
        """Map a Paystack plan code back to a plan, if known."""
        if not provider_code or not isinstance(provider_code, str):
            return None
        return self._by_code.get(provider_code)

    def resolve_profile_limit(self, profile_limit) -> Optional[Plan]:
        """Map a profile-limit hint to the plan granting exactly that limit.

        Accepts ints or digit strings (metadata round-trips through JSON
        and sometimes comes back stringified). Bools, floats and anything
        else leave the hint unresolved. Returns the first paid plan in tier
        order, so a limit of 1 resolves to paid_single.
        """
        if isinstance(profile_limit, bool):
            return None
        if isinstance(profile_limit, int):
            limit = profile_limit
        elif isinstance(profile_limit, str) and profile_limit.strip().isdigit():
            limit = int(profile_limit.strip())
        else:
            return None
        for plan in self._by_name.values():
            if plan.profile_limit == limit:
                return plan
        return None

    def resolve(self, provider_code, profile_limit=None) -> Optional[Plan]:
        """Resolve by plan code first, then by the profile-limit hint."""
        return self.resolve_code(provider_code) or self.resolve_profile_limit(profile_limit)
