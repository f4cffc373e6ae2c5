"""ShopDesk: storefront, appointment booking and Stripe payment backend."""

__version__ = "1.0.0"
