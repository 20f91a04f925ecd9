"""
Incident Desk error taxonomy.

ValidationError     -> caller sent bad input or broke a business rule (400)
ConflictError       -> the record moved under us between read and write (409)
NotFoundError       -> the referenced incident does not exist (404)
InfrastructureError -> storage failed; never shown raw to clients (500)
"""


class IncidentDeskError(Exception):
    """Base class for all domain errors."""
    pass


class ValidationError(IncidentDeskError):
    """Raised when input is malformed or violates a business rule."""
    pass


class ConflictError(ValidationError):
    """Raised when a conditional write finds the incident in another state."""
    pass


class NotFoundError(IncidentDeskError):
    """Raised when an incident does not exist."""

    def __init__(self, incident_id: int):
        self.incident_id = incident_id
        super().__init__(f"Incident {incident_id} not found")


class InfrastructureError(IncidentDeskError):
    """Raised when the persistence gateway fails."""
    pass
