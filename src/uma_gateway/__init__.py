"""Multi-tenant UMA discovery and payment-request gateway."""

__version__ = "0.1.0"
