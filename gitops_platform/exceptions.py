"""Errors raised while building the provisioning graph."""
import pulumi


class ProvisioningError(pulumi.RunError):
    """Base error. Subclasses pulumi.RunError so the engine reports the
    message without a Python traceback."""

    def __init__(self, message, details=None):
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self):
        if self.details:
            return f'{self.message}\n\nDetails: {self.details}'
        return self.message


class ConfigurationError(ProvisioningError):
    """Invalid or unresolvable configuration, raised before any resource is declared."""


class CapacityBoundsError(ConfigurationError):
    """A capacity pool violates min <= desired <= max."""


class StructuralError(ProvisioningError):
    """A stack was built out of order, e.g. a cluster without a network boundary."""
