"""Celery task definitions package."""

from storefront.tasks import carts  # noqa: F401

__all__ = ["carts"]
