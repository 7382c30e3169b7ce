from __future__ import annotations


class ExtractionError(RuntimeError):
    """Base class for failures raised by extraction adapters."""


class ProviderConfigurationError(ExtractionError):
    """The selected provider cannot be used with the current settings."""


class ImageStorageError(RuntimeError):
    """An image could not be stored by any configured backend."""
