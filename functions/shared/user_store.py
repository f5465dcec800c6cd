"""
Authoritative user billing store backed by DynamoDB.

Rows are keyed by ``pk`` (internal user id). Web users are located through the
``email-index`` GSI, Stripe customers through ``stripe-customer-index``; for
mobile users the app account token is the ``pk`` itself.

The store never creates rows: users are created by the signup flow. Writes to a
missing row are skipped and reported as not found. Write failures are logged
and reported, never raised, so the local cache write is unaffected.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional, Union

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from .constants import EMAIL_INDEX, RECORD_DEFAULTS, STRIPE_CUSTOMER_INDEX
from .identity import EmailIdentity, Identity, TokenIdentity
from .types import BillingPatch, UserBillingRecord

logger = logging.getLogger(__name__)


def build_update_expression(patch: dict, set_if_absent: Iterable[str] = ()) -> dict:
    """Build UpdateItem arguments for a partial merge.

    Fields set to None are REMOVEd (GSI key attributes cannot hold NULL).
    Fields listed in ``set_if_absent`` keep an existing value.
    """
    set_if_absent = set(set_if_absent)
    set_parts = []
    remove_parts = []
    names = {}
    values = {}

    for i, (field_name, value) in enumerate(sorted(patch.items())):
        name_ref = f"#f{i}"
        names[name_ref] = field_name
        if value is None:
            remove_parts.append(name_ref)
        elif field_name in set_if_absent:
            set_parts.append(f"{name_ref} = if_not_exists({name_ref}, :v{i})")
            values[f":v{i}"] = value
        else:
            set_parts.append(f"{name_ref} = :v{i}")
            values[f":v{i}"] = value

    names["#updated_at"] = "updated_at"
    set_parts.append("#updated_at = :updated_at")
    values[":updated_at"] = datetime.now(timezone.utc).isoformat()

    expression = "SET " + ", ".join(set_parts)
    if remove_parts:
        expression += " REMOVE " + ", ".join(remove_parts)

    return {
        "UpdateExpression": expression,
        "ExpressionAttributeNames": names,
        "ExpressionAttributeValues": values,
    }


def normalize_record(identity_key: str, item: dict) -> UserBillingRecord:
    """Project a stored row onto the UserBillingRecord shape with defaults."""
    record = {"identity": identity_key}
    for field_name, default in RECORD_DEFAULTS.items():
        value = item.get(field_name, default)
        record[field_name] = value
    record["is_premium"] = bool(record["is_premium"])
    return record


class UserRecordStore:
    """Point lookups and idempotent partial updates against the users table."""

    def __init__(self, table):
        self.table = table

    # -- lookups --

    def _query_index(self, index_name: str, attribute: str, value: str, limit: Optional[int] = None) -> list[dict]:
        kwargs = {
            "IndexName": index_name,
            "KeyConditionExpression": Key(attribute).eq(value),
        }
        if limit:
            kwargs["Limit"] = limit
        try:
            response = self.table.query(**kwargs)
        except ClientError as e:
            logger.error(f"Error querying {index_name}: {e}")
            return []
        return response.get("Items", [])

    def _find_email_row(self, identity: EmailIdentity) -> Optional[dict]:
        items = self._query_index(EMAIL_INDEX, "email", identity.key, limit=1)
        if not items and identity.email.strip() != identity.key:
            items = self._query_index(EMAIL_INDEX, "email", identity.email.strip(), limit=1)
        return items[0] if items else None

    def _find_row_key(self, identity: Identity) -> Optional[str]:
        if isinstance(identity, TokenIdentity):
            return identity.key
        row = self._find_email_row(identity)
        return row["pk"] if row else None

    def get(self, identity: Identity) -> Optional[UserBillingRecord]:
        """Fetch the billing record for an identity, or None if no row exists."""
        if isinstance(identity, TokenIdentity):
            try:
                item = self.table.get_item(Key={"pk": identity.key}).get("Item")
            except ClientError as e:
                logger.error(f"Error reading user {identity}: {e}")
                return None
        else:
            item = self._find_email_row(identity)

        if not item:
            return None
        return normalize_record(identity.key, item)

    def find_by_customer_id(self, customer_id: str) -> Optional[Identity]:
        """Reverse lookup: which identity owns this Stripe customer id."""
        if not customer_id:
            return None
        items = self._query_index(STRIPE_CUSTOMER_INDEX, "stripe_customer_id", customer_id, limit=1)
        if not items:
            return None
        item = items[0]
        if item.get("email"):
            return EmailIdentity(item["email"])
        return TokenIdentity(item["pk"])

    # -- writes --

    def _update_row(self, pk: str, patch: BillingPatch, set_if_absent: Iterable[str], label: str) -> bool:
        try:
            self.table.update_item(
                Key={"pk": pk},
                ConditionExpression="attribute_exists(pk)",
                **build_update_expression(patch, set_if_absent),
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                logger.info(f"No user row for {label}, skipping store update")
            else:
                logger.error(f"Failed to update user {label}: {e}")
            return False
        return True

    def update(
        self,
        target: Union[Identity, str],
        patch: BillingPatch,
        set_if_absent: Iterable[str] = (),
    ) -> bool:
        """
        Apply a partial patch to the row for an identity or Stripe customer id.

        Args:
            target: EmailIdentity, TokenIdentity, or a Stripe customer id string
            patch: Fields to set (None clears)
            set_if_absent: Fields that must not overwrite an existing value

        Returns:
            True if a row was updated, False if not found or the write failed
        """
        if not patch:
            return False

        if isinstance(target, str):
            items = self._query_index(STRIPE_CUSTOMER_INDEX, "stripe_customer_id", target)
            if not items:
                logger.info(f"No user found for Stripe customer {target}, skipping store update")
                return False
            results = [self._update_row(item["pk"], patch, set_if_absent, target) for item in items]
            return any(results)

        pk = self._find_row_key(target)
        if not pk:
            logger.info(f"No user row for {target}; rows are created at signup, skipping store update")
            return False

        updated = self._update_row(pk, patch, set_if_absent, str(target))
        if updated:
            logger.info(f"Store updated for {target}: {', '.join(sorted(patch))}")
        return updated
