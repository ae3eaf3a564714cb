"""
Privacy Dash core package.
Provides the local key vault, invoice encryption, payment-request storage and payment execution.
"""

__all__ = ["auth", "cli", "config", "crypto", "db", "errors", "keymanager", "library", "models", "payments", "schemas", "slots", "store"]
