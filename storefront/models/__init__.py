"""Storefront persistence models and API schemas."""
