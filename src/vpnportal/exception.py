class PortalError(Exception):
    pass


class TransportError(PortalError):
    """Failed to reach a remote endpoint. The caller may retry."""
    pass


class VerificationError(PortalError):
    pass


class RollbackError(PortalError):
    pass


class MalformedDocumentError(PortalError):
    pass


class StoreError(PortalError):
    pass


class OAuthExchangeError(PortalError):
    pass


class ApiCallError(PortalError):
    pass


class SessionBindingError(PortalError):
    pass


class HttpError(PortalError):
    status_code = 500

    def __init__(self, message, status_code=None, headers=None):
        PortalError.__init__(self, message)
        if status_code:
            self.status_code = status_code
        self.headers = headers or {}


class ValidationError(HttpError):
    status_code = 400


class NotFound(HttpError):
    status_code = 404
