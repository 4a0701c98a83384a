class DeployError(Exception):
    """Base class for everything the deploy stages raise."""


class ValidationError(DeployError):
    """Configuration or a record is missing a required field."""


class ExternalCallError(DeployError):
    """A provider call failed. The provider's message is kept verbatim."""

    def __init__(self, message: str, resource: str = None):
        super().__init__(message)
        self.message = message
        self.resource = resource

    def __str__(self):
        if self.resource:
            return f"{self.resource}: {self.message}"
        return self.message


class AmbiguousLookupError(ExternalCallError):
    """A describe call failed for a reason other than the resource being absent."""
