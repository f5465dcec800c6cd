"""
Stripe customer provisioning.

Reuses one Stripe customer per identity across repeated checkout attempts.
The check-then-create sequence is not transactional: two concurrent calls for
the same identity can both create a customer.
"""

import logging
import time
from typing import Optional

import stripe

from .constants import METADATA_EMAIL_KEY, METADATA_TOKEN_KEY
from .events import get_field
from .identity import EmailIdentity, Identity, TokenIdentity
from .logging_utils import log_external_call

logger = logging.getLogger(__name__)


def _is_missing(error: stripe.InvalidRequestError) -> bool:
    return getattr(error, "code", None) == "resource_missing" or getattr(error, "http_status", None) == 404


class CustomerProvisioner:
    def __init__(self, stripe_client, store, writer, cache=None):
        self.stripe_client = stripe_client
        self.store = store
        self.writer = writer
        self.cache = cache

    def ensure_customer(self, identity: Identity) -> str:
        """
        Return a live Stripe customer id for an identity, creating one if needed.

        1. A remembered id is verified against Stripe; deleted/missing ids are cleared.
        2. Otherwise Stripe is searched for an existing customer for the identity.
        3. Otherwise a new customer is created.

        Any id found or created is persisted before returning.

        Raises:
            stripe.StripeError: Stripe rejected the search or create call
        """
        remembered = self._remembered_customer_id(identity)

        if remembered:
            if self._is_live(remembered):
                return remembered
            logger.warning(f"Stripe customer {remembered} for {identity} is gone, re-provisioning")
            self.writer.apply(identity, {"stripe_customer_id": None})

        customer_id = self._find_existing(identity)
        if customer_id:
            logger.info(f"Reusing Stripe customer {customer_id} for {identity}")
        else:
            customer_id = self._create(identity)
            logger.info(f"Created Stripe customer {customer_id} for {identity}")

        self.writer.apply(identity, {"stripe_customer_id": customer_id})
        return customer_id

    def _remembered_customer_id(self, identity: Identity) -> Optional[str]:
        record = self.store.get(identity)
        if record and record.get("stripe_customer_id"):
            return record["stripe_customer_id"]
        # Mobile users may only exist in the local cache
        if self.cache is not None:
            cached = self.cache.get(identity.key) or {}
            return cached.get("stripe_customer_id")
        return None

    def _is_live(self, customer_id: str) -> bool:
        start = time.time()
        try:
            customer = self.stripe_client.customers.retrieve(customer_id)
        except stripe.InvalidRequestError as e:
            if _is_missing(e):
                log_external_call(logger, "stripe", "customers.retrieve", False, (time.time() - start) * 1000, str(e))
                return False
            raise
        log_external_call(logger, "stripe", "customers.retrieve", True, (time.time() - start) * 1000)
        return not get_field(customer, "deleted", False)

    def _find_existing(self, identity: Identity) -> Optional[str]:
        start = time.time()
        if isinstance(identity, EmailIdentity):
            result = self.stripe_client.customers.list(params={"email": identity.key, "limit": 1})
            operation = "customers.list"
        else:
            query = f"metadata['{METADATA_TOKEN_KEY}']:'{identity.key}'"
            result = self.stripe_client.customers.search(params={"query": query, "limit": 1})
            operation = "customers.search"
        log_external_call(logger, "stripe", operation, True, (time.time() - start) * 1000)

        customers = get_field(result, "data", []) if result else []
        return get_field(customers[0], "id") if customers else None

    def _create(self, identity: Identity) -> str:
        if isinstance(identity, TokenIdentity):
            params = {"metadata": {METADATA_TOKEN_KEY: identity.key}}
        else:
            params = {"email": identity.key, "metadata": {METADATA_EMAIL_KEY: identity.key}}

        start = time.time()
        customer = self.stripe_client.customers.create(params=params)
        log_external_call(logger, "stripe", "customers.create", True, (time.time() - start) * 1000)
        return get_field(customer, "id")
