"""Command-line interface for provisioning tenants and receivers."""
