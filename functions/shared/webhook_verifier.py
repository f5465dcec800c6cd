"""
Authenticity checks for inbound provider notifications.

Stripe events are verified with the endpoint signing secret over the raw
request bytes. Apple App Store Server Notifications are JWS documents whose
certificate chain is verified against Apple's root certificates, for both the
outer notification and the nested signed transaction.
"""

import logging
from pathlib import Path
from typing import Any, Optional

import stripe
from appstoreserverlibrary.models.Environment import Environment
from appstoreserverlibrary.signed_data_verifier import SignedDataVerifier, VerificationException

from .errors import AuthenticationError

logger = logging.getLogger(__name__)

APPLE_ROOT_CERT_SUFFIXES = (".cer", ".der", ".pem", ".crt")


class StripeWebhookVerifier:
    """Verify Stripe-Signature headers and build the event object."""

    def __init__(self, webhook_secret: str, tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE):
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    def verify(self, payload: bytes, signature: Optional[str]):
        """
        Verify a webhook delivery.

        Args:
            payload: Raw request body exactly as received
            signature: Value of the Stripe-Signature header

        Returns:
            The verified Stripe event

        Raises:
            AuthenticationError: Missing/invalid signature or malformed envelope
        """
        if not signature:
            logger.warning("Missing Stripe signature")
            raise AuthenticationError("Missing Stripe signature", code="missing_signature")

        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret, tolerance=self.tolerance)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Invalid Stripe signature: {e}")
            raise AuthenticationError("Invalid signature") from e
        except Exception as e:
            logger.error(f"Webhook error: {e}")
            raise AuthenticationError("Invalid webhook payload", code="invalid_webhook_payload") from e


def load_apple_root_certificates(directory: Optional[str]) -> list[bytes]:
    """Read Apple root certificates (AppleRootCA-G3.cer etc.) from a directory."""
    if not directory:
        return []
    path = Path(directory)
    if not path.is_dir():
        logger.warning(f"Apple root certificate directory not found: {directory}")
        return []
    return [
        cert_file.read_bytes()
        for cert_file in sorted(path.iterdir())
        if cert_file.suffix.lower() in APPLE_ROOT_CERT_SUFFIXES
    ]


class AppleNotificationVerifier:
    """Verify and decode App Store Server Notifications V2."""

    def __init__(self, signed_data_verifier: SignedDataVerifier):
        self.signed_data_verifier = signed_data_verifier

    @classmethod
    def from_settings(cls, settings) -> Optional["AppleNotificationVerifier"]:
        """Build a verifier, or None when Apple verification is not configured."""
        root_certificates = load_apple_root_certificates(settings.apple_root_certs_dir)
        if not root_certificates or not settings.apple_bundle_id:
            logger.warning("Apple notification verification not configured (root certs / bundle id missing)")
            return None

        try:
            environment = Environment(settings.apple_environment)
            verifier = SignedDataVerifier(
                root_certificates=root_certificates,
                enable_online_checks=settings.apple_enable_online_checks,
                environment=environment,
                bundle_id=settings.apple_bundle_id,
                app_apple_id=settings.apple_app_apple_id,
            )
        except ValueError as e:
            # Production requires APPLE_APP_APPLE_ID; unknown environment names also land here
            logger.error(f"Invalid Apple verifier configuration: {e}")
            return None
        return cls(verifier)

    def verify(self, signed_payload: Any) -> tuple[Any, Optional[Any]]:
        """
        Verify the outer notification and its nested signed transaction.

        Returns:
            (decoded notification, decoded transaction or None)

        Raises:
            AuthenticationError: Payload missing or any signature check failed
        """
        if not signed_payload or not isinstance(signed_payload, str):
            raise AuthenticationError("Missing signedPayload", code="missing_signed_payload")

        try:
            notification = self.signed_data_verifier.verify_and_decode_notification(signed_payload)
        except VerificationException as e:
            logger.warning(f"Apple notification failed verification: {e}")
            raise AuthenticationError("Invalid Apple notification signature") from e

        data = getattr(notification, "data", None)
        signed_transaction = getattr(data, "signedTransactionInfo", None) if data else None
        if not signed_transaction:
            return notification, None

        try:
            transaction = self.signed_data_verifier.verify_and_decode_signed_transaction(signed_transaction)
        except VerificationException as e:
            logger.warning(f"Apple signed transaction failed verification: {e}")
            raise AuthenticationError("Invalid Apple transaction signature") from e

        return notification, transaction
