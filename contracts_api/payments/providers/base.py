from abc import ABC, abstractmethod


class BasePaymentProvider(ABC):
    """
    Abstract base class for all payment processors the escrow engine talks to.

    Implementations raise ``PaymentProcessorError.Transient`` when a call may
    be retried safely and ``PaymentProcessorError.Permanent`` otherwise. Every
    money-moving call takes an idempotency key so a retried request can never
    be applied twice by the processor.
    """

    name = None

    def __init__(self, **kwargs):
        """Initialize the payment provider with configuration."""
        self.config = kwargs

    @abstractmethod
    def create_intent(self, amount, currency, metadata, idempotency_key):
        """
        Create a payment intent that the client completes out of band.

        Returns:
            Dict with ``intent_id`` and ``client_secret``.
        """

    @abstractmethod
    def confirm(self, intent_id):
        """
        Look up an intent.

        Returns:
            str: processor status, e.g. ``succeeded``, ``processing``, ``canceled``.
        """

    @abstractmethod
    def release(self, account_id, amount, currency, metadata, idempotency_key):
        """
        Transfer ``amount`` to the connected ``account_id``.

        Returns:
            str: payout/transfer id.
        """

    @abstractmethod
    def refund(self, intent_id, reason, idempotency_key):
        """
        Refund the captured intent in full.

        Returns:
            str: refund id.
        """

    def construct_webhook_event(self, payload, signature):
        """
        Verify and parse a webhook delivery.

        Returns:
            Dict with at least ``id``, ``type`` and ``data.object``.
        """
        raise NotImplementedError(f"{type(self).__name__} does not accept webhooks")
