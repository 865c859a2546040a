"""WalletPay connector (timeline-scanned transfers, OAuth2)."""

from paysync.plugins.walletpay.client import WalletPayClient
from paysync.plugins.walletpay.plugin import WalletPayConfig, WalletPayPlugin

__all__ = ["WalletPayClient", "WalletPayConfig", "WalletPayPlugin"]
