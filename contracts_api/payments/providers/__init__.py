from django.conf import settings

from .base import BasePaymentProvider
from .stripe import StripeProvider


def get_payment_provider(provider_name=None, **kwargs) -> BasePaymentProvider:
    """
    Factory function to get payment provider instances.

    Args:
        provider_name: Name of the payment provider, defaults to ``PAYMENT_PROVIDER``
        **kwargs: Additional configuration

    Returns:
        BasePaymentProvider: Payment provider instance
    """
    providers = {
        'stripe': StripeProvider,
    }

    name = provider_name or settings.PAYMENT_PROVIDER
    if name not in providers:
        raise ValueError(f"Unknown payment provider: {name}")

    return providers[name](**kwargs)
