"""Billing domain API package."""

from billing.api.routes import bill_actors_lifespan, bill_router

__all__ = ["bill_router", "bill_actors_lifespan"]
