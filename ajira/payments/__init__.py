"""Mobile money payments through AzamPay."""

from .azampay import (
    MNO_PROVIDERS,
    AzamPayClient,
    CheckoutResult,
    MnoProvider,
    get_azampay_client,
)

__all__ = [
    "AzamPayClient",
    "CheckoutResult",
    "MnoProvider",
    "MNO_PROVIDERS",
    "get_azampay_client",
]
