"""Error taxonomy shared by the core and its adapters."""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for tracking provider failures."""


class TrackingNotFoundError(GatewayError):
    """The provider answered but holds no data for the tracking number."""


class ProviderError(GatewayError):
    """Transport failure or a provider-level rejection."""


class StorageError(Exception):
    """A single store read or write failed."""


class ValidationError(Exception):
    """User-correctable input error; the message is shown to the user."""


class DuplicateShipmentError(Exception):
    """The tracking number is already tracked."""
