"""Account store: subscription state on the per-user account row.

Account rows are created at signup by the identity side of the product.
Everything here is a conditional single-row update on an existing row, so
replaying the same write any number of times converges on the same item.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from botocore.exceptions import ClientError

from shared.aws_clients import get_dynamodb
from shared.constants import STATUS_ACTIVE, STATUS_CANCELLED, TIER_PROFILE_LIMITS
from shared.errors import StoreError
from shared.plans import Plan

logger = logging.getLogger(__name__)

# Sentinel for distinguishing "not provided" from None
UNSET = object()


@dataclass(frozen=True)
class Account:
    id: str
    active_tier: str = "free"
    subscription_id: Optional[str] = None
    subscription_token: Optional[str] = None
    subscription_status: Optional[str] = None
    profile_limit: int = 1

    @classmethod
    def from_item(cls, item: dict) -> "Account":
        return cls(
            id=item["id"],
            active_tier=item.get("active_tier") or "free",
            subscription_id=item.get("subscription_id") or None,
            subscription_token=item.get("subscription_token") or None,
            subscription_status=item.get("subscription_status"),
            profile_limit=int(item.get("profile_limit", 1)),
        )

    @property
    def has_subscription(self) -> bool:
        return bool(self.subscription_id)


class AccountStore:
    """DynamoDB-backed account table, keyed by user id."""

    def __init__(self, table_name: str, table=None):
        self.table_name = table_name
        self._table = table

    @property
    def table(self):
        if self._table is None:
            self._table = get_dynamodb().Table(self.table_name)
        return self._table

    def get(self, user_id: str) -> Optional[Account]:
        """Fetch an account, or None if the row does not exist."""
        try:
            response = self.table.get_item(Key={"id": user_id}, ConsistentRead=True)
        except ClientError as e:
            logger.error(f"Failed to read account {user_id}: {e}")
            raise StoreError("Account lookup failed") from e

        item = response.get("Item")
        return Account.from_item(item) if item else None

    def update_subscription_state(
        self,
        user_id: str,
        *,
        tier: str = UNSET,
        subscription_status: str = UNSET,
        subscription_id: Optional[str] = UNSET,
        subscription_token: Optional[str] = UNSET,
        remove_subscription: bool = False,
        expected_subscription_id: Optional[str] = UNSET,
    ) -> bool:
        """Centralized subscription state writer.

        Args:
            user_id: Account id
            tier: New tier. Also sets profile_limit from TIER_PROFILE_LIMITS.
            subscription_status: "active" or "cancelled"
            subscription_id: Provider subscription code to store
            subscription_token: Provider email token to store
            remove_subscription: REMOVE subscription_id and subscription_token
            expected_subscription_id: Only write if the stored subscription
                id is absent or equal to this value.

        Returns:
            True if the row was written, False if the row does not exist or
            the expected_subscription_id condition did not hold.

        Raises:
            StoreError: any other DynamoDB failure
        """
        set_parts = []
        remove_parts = []
        values = {}

        if tier is not UNSET:
            if tier not in TIER_PROFILE_LIMITS:
                raise ValueError(f"Unknown tier: {tier}")
            set_parts.extend(["active_tier = :tier", "profile_limit = :limit"])
            values[":tier"] = tier
            values[":limit"] = TIER_PROFILE_LIMITS[tier]

        if subscription_status is not UNSET:
            set_parts.append("subscription_status = :status")
            values[":status"] = subscription_status

        if remove_subscription:
            remove_parts.extend(["subscription_id", "subscription_token"])
        else:
            if subscription_id is not UNSET and subscription_id:
                set_parts.append("subscription_id = :sub_id")
                values[":sub_id"] = subscription_id
            if subscription_token is not UNSET and subscription_token:
                set_parts.append("subscription_token = :sub_token")
                values[":sub_token"] = subscription_token

        if not set_parts and not remove_parts:
            return True

        expr_parts = []
        if set_parts:
            expr_parts.append("SET " + ", ".join(set_parts))
        if remove_parts:
            expr_parts.append("REMOVE " + ", ".join(remove_parts))

        condition = "attribute_exists(#id)"
        if expected_subscription_id is not UNSET and expected_subscription_id:
            condition += " AND (attribute_not_exists(subscription_id) OR subscription_id = :expected_sub)"
            values[":expected_sub"] = expected_subscription_id

        update_kwargs = {
            "Key": {"id": user_id},
            "UpdateExpression": " ".join(expr_parts),
            "ConditionExpression": condition,
            "ExpressionAttributeNames": {"#id": "id"},
        }
        if values:
            update_kwargs["ExpressionAttributeValues"] = values

        try:
            self.table.update_item(**update_kwargs)
        except ClientError as e:
            error_code = e.response["Error"]["Code"]
            if error_code == "ConditionalCheckFailedException":
                logger.info(f"Account update for {user_id} skipped: row missing or subscription changed")
                return False
            logger.error(f"Failed to update account {user_id} ({error_code}): {e}")
            raise StoreError("Account update failed") from e

        changed = [p.split(" = ")[0] for p in set_parts] + [f"-{p}" for p in remove_parts]
        logger.info(f"Account {user_id} updated: {', '.join(changed)}")
        return True

    def activate(
        self,
        user_id: str,
        plan: Plan,
        subscription_id: Optional[str] = None,
        subscription_token: Optional[str] = None,
    ) -> bool:
        """Put the account on a paid plan.

        A missing subscription id or token leaves the stored one untouched,
        so a charge event arriving after the subscription event does not
        erase the code needed to cancel.
        """
        return self.update_subscription_state(
            user_id,
            tier=plan.tier,
            subscription_status=STATUS_ACTIVE,
            subscription_id=subscription_id,
            subscription_token=subscription_token,
        )

    def downgrade_to_free(self, user_id: str, expected_subscription_id: Optional[str] = None) -> bool:
        """Move the account back to the free tier and forget the subscription."""
        return self.update_subscription_state(
            user_id,
            tier="free",
            subscription_status=STATUS_CANCELLED,
            remove_subscription=True,
            expected_subscription_id=expected_subscription_id or UNSET,
        )
