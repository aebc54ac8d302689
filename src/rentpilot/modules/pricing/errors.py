"""Pricing errors raised for caller mistakes on the live pricing path."""

from __future__ import annotations


class PricingError(ValueError):
    """Base class for pricing input errors."""


class InvalidRentalPeriodError(PricingError):
    """Raised when a rental period does not end strictly after it starts."""


class InvalidQuantityError(PricingError):
    """Raised when a line item quantity is not a positive integer."""
