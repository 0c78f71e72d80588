class ApplicationError(Exception):
    """Base class for errors that are reported back to the API server.

    The ``status`` attribute is the HTTP status used when the error escapes a
    view function.
    """

    status = 500


class RequestError(ApplicationError):
    status = 400


class DecodeError(ApplicationError):
    status = 400


class EncodeError(ApplicationError):
    status = 500


class TransportError(ApplicationError):
    """Raised when the server cannot load its TLS material or bind its port."""
