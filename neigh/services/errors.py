# neigh/services/errors.py
"""Domain errors raised by the service layer.

Routes never build error responses themselves: they let these propagate and
the ``errors`` blueprint renders them as JSON with ``status_code``.
"""


class ServiceError(Exception):
    status_code = 400

    def __init__(self, message: str, *, details=None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        data = {"error": self.message}
        if self.details:
            data["details"] = self.details
        return data


class ValidationFailed(ServiceError):
    status_code = 400


class PermissionDenied(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


class InvalidTransition(ServiceError):
    status_code = 409


class Conflict(ServiceError):
    status_code = 409


class GatewayError(ServiceError):
    status_code = 502
