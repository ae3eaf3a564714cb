"""Local HTTP surface for payment links and the merchant dashboard."""
