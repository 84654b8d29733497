"""
GPI Document Hub - Folder Conversion Errors
"""


class ConversionError(Exception):
    """Base class for folder conversion failures."""


class ResolverError(ConversionError):
    """Folder sharing could not be looked up."""


class ProvisioningError(ConversionError):
    """Library or group creation failed; the whole batch must be retried."""


class MigrationError(ConversionError):
    """File version insert failed; the whole document batch must be retried."""
