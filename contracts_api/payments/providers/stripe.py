import logging
from contextlib import contextmanager

import stripe
from django.conf import settings

from contracts.exceptions import PaymentProcessorError, ValidationError
from payments.fees import to_cents
from .base import BasePaymentProvider

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)


def amount_in_cents(amount):
    # Stripe uses the smallest currency unit
    return int(to_cents(amount) * 100)


@contextmanager
def translate_stripe_errors(operation):
    """Turn stripe library errors into the engine's processor errors."""
    try:
        yield
    except TRANSIENT_ERRORS as e:
        logger.warning("Stripe %s failed, retryable: %s", operation, e)
        raise PaymentProcessorError.Transient(f"Stripe {operation} failed temporarily. Please retry.") from e
    except stripe.StripeError as e:
        logger.error("Stripe %s rejected: %s", operation, e)
        message = getattr(e, 'user_message', None) or str(e) or "request rejected"
        raise PaymentProcessorError.Permanent(f"Stripe {operation} failed: {message}") from e


class StripeProvider(BasePaymentProvider):
    """
    Stripe payment provider implementation for the escrow engine.
    Funds are collected with Payment Intents, released with Connect
    transfers and returned with refunds.
    """

    name = 'stripe'

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        stripe.api_key = settings.STRIPE_SECRET_KEY
        self.publishable_key = settings.STRIPE_PUBLISHABLE_KEY
        self.currency = getattr(settings, 'STRIPE_CURRENCY', 'usd')
        self.webhook_secret = getattr(settings, 'STRIPE_WEBHOOK_SECRET', '')

    def create_intent(self, amount, currency, metadata, idempotency_key):
        with translate_stripe_errors("payment intent creation"):
            intent = stripe.PaymentIntent.create(
                amount=amount_in_cents(amount),
                currency=(currency or self.currency).lower(),
                metadata={key: str(value) for key, value in metadata.items()},
                description=f"Escrow funding for milestone {metadata.get('milestone_id')}",
                automatic_payment_methods={'enabled': True},
                idempotency_key=idempotency_key,
            )
        logger.info("Stripe Payment Intent created: %s, amount: %s", intent.id, amount)
        return {'intent_id': intent.id, 'client_secret': intent.client_secret}

    def confirm(self, intent_id):
        with translate_stripe_errors("payment intent lookup"):
            intent = stripe.PaymentIntent.retrieve(intent_id)
        logger.info("Stripe payment intent %s status: %s", intent_id, intent.status)
        return intent.status

    def release(self, account_id, amount, currency, metadata, idempotency_key):
        with translate_stripe_errors("transfer"):
            transfer = stripe.Transfer.create(
                amount=amount_in_cents(amount),
                currency=(currency or self.currency).lower(),
                destination=account_id,
                metadata={key: str(value) for key, value in metadata.items()},
                idempotency_key=idempotency_key,
            )
        logger.info("Stripe transfer created: %s to %s, amount: %s", transfer.id, account_id, amount)
        return transfer.id

    def refund(self, intent_id, reason, idempotency_key):
        with translate_stripe_errors("refund"):
            refund = stripe.Refund.create(
                payment_intent=intent_id,
                metadata={'reason': reason or '', 'escrow_refund': 'true'},
                idempotency_key=idempotency_key,
            )
        logger.info("Stripe refund created: %s for intent %s", refund.id, intent_id)
        return refund.id

    def construct_webhook_event(self, payload, signature):
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError:
            raise ValidationError("Invalid webhook payload.")
        except stripe.SignatureVerificationError:
            raise ValidationError("Invalid webhook signature.")
        return event.to_dict() if hasattr(event, 'to_dict') else dict(event)
