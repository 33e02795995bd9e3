"""
tribute_billing – Tribute webhook processing for subscriptions and donations.

Import path convention::

    from tribute_billing.application.billing import TributeEventProcessor, InMemoryBillingStore
    from tribute_billing.application.webhooks import SignatureVerifier
    from tribute_billing.config.settings import load_tribute_settings
    from tribute_billing.kernel.errors import SignatureError
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
