# Exception Handlers
#
# The application loglevel determines the level of detail shown to the user.
# If set to debug, too much sensitive info might be shown !
#
# The exceptions will be caught in http_method_decorator and formatted, for example:
# {
#      "title": "Not Found: ",
#      "detail": "Not Found: (debug logging disabled)",
#      "code": "404"
# }
#
# Errors raised by the data provider carry the operation context
# (resource, record_id, operation) and keep the original store error as __cause__
#
import traceback
from flask import request, has_request_context
from werkzeug.exceptions import NotFound
import sapanel
from sqlalchemy.exc import DontWrapMixin
from http import HTTPStatus
from .config import is_debug

HIDDEN_LOG = "(debug logging disabled)"


class PanelError(Exception, DontWrapMixin):
    """
    Base class of the sapanel errors
    """

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value
    message = ""
    api_code = None
    resource = None
    record_id = None
    operation = None

    def with_context(self, resource=None, record_id=None, operation=None):
        """
        Attach the operation context to the error
        :return: self
        """
        self.resource = resource if resource is not None else self.resource
        self.record_id = record_id if record_id is not None else self.record_id
        self.operation = operation if operation is not None else self.operation
        return self

    def __str__(self):
        return self.message


class NotFoundError(PanelError, NotFound):
    """
    This exception is raised when an item was not found
    """

    status_code = HTTPStatus.NOT_FOUND.value
    message = "Not Found: "

    def __init__(self, message="", status_code=HTTPStatus.NOT_FOUND.value, api_code=None):
        """
        :param message: Message to be returned in the (json) body
        :param status_code: HTTP Status code
        :param api_code: API code
        """
        PanelError.__init__(self)
        self.status_code = status_code
        self.api_code = api_code
        sapanel.log.error("Not found: %s", message)
        if is_debug():
            self.message += message
        else:
            self.message += HIDDEN_LOG


class UnAuthorizedError(PanelError):
    """
    This exception is raised when a resource is not accessible for the requesting channel
    we use FORBIDDEN(403) instead of UNAUTHORIZED(401) (old http status code descriptions were not clear)
    """

    status_code = HTTPStatus.FORBIDDEN.value
    message = "Authorization Error: "

    def __init__(self, message="", status_code=HTTPStatus.FORBIDDEN.value, api_code=None):
        Exception.__init__(self)
        self.status_code = status_code
        self.api_code = api_code
        sapanel.log.error("UnAuthorizedError: %s", message)
        if is_debug():
            self.message += message
        else:
            self.message += HIDDEN_LOG


class GenericError(PanelError):
    """
    This exception is raised when an error has been detected
    """

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value  # 500
    message = "Generic Error: "

    def __init__(self, message, status_code=HTTPStatus.INTERNAL_SERVER_ERROR.value, api_code=None):
        Exception.__init__(self)
        self.status_code = status_code
        self.api_code = api_code
        sapanel.log.error("Generic Error: %s", message)
        if is_debug():
            if has_request_context():
                sapanel.log.info(f"Error in {request.url}")
            sapanel.log.debug(traceback.format_exc(120))
            self.message += str(message)
        else:
            self.message += HIDDEN_LOG


class SystemValidationError(PanelError):
    """
    This exception is raised when an invalid resource declaration has been detected (server side input)
    """

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value
    message = "Configuration Error: "

    def __init__(self, message="", status_code=HTTPStatus.INTERNAL_SERVER_ERROR.value, api_code=None):
        Exception.__init__(self)
        self.status_code = status_code
        self.api_code = api_code
        sapanel.log.error("SystemValidationError: %s", message)
        # configuration errors are raised at registration, the message is always kept
        self.message += message


class ValidationError(PanelError):
    """
    This exception is raised when invalid input has been detected (client side input)
    Always send back the message to the client in the response

    `errors` maps the field keys to a list of messages, e.g. {"password": ["is required"]}
    """

    status_code = HTTPStatus.BAD_REQUEST.value
    message = "Validation Error: "

    def __init__(self, message="", status_code=HTTPStatus.BAD_REQUEST.value, api_code=None, errors=None):
        Exception.__init__(self)
        self.status_code = status_code
        self.api_code = api_code
        self.errors = dict(errors or {})
        if not message and self.errors:
            message = "; ".join(f"{key}: {', '.join(msgs)}" for key, msgs in self.errors.items())
        sapanel.log.warning("ValidationError: %s", message)
        # the message without the "Validation Error: " prefix, used in the field keyed error maps
        self.reason = message
        self.message += message

    @property
    def detail(self):
        return self.errors or self.message


class ConflictError(PanelError):
    """
    This exception is raised when a write conflicts with the stored state:
    uniqueness violations or a failed dependent entity write
    """

    status_code = HTTPStatus.CONFLICT.value
    message = "Conflict: "

    def __init__(self, message="", status_code=HTTPStatus.CONFLICT.value, api_code=None):
        Exception.__init__(self)
        self.status_code = status_code
        self.api_code = api_code
        sapanel.log.error("ConflictError: %s", message)
        if is_debug():
            self.message += str(message)
        else:
            self.message += HIDDEN_LOG


class InconsistentStateError(ConflictError):
    """
    Raised when the compensating delete of a partially created record failed:
    the store holds the primary record without its dependents
    """

    message = "Inconsistent State: "
    inconsistent_state = True


class StoreUnavailableError(PanelError):
    """
    This exception is raised when the store can't be reached, timed out,
    or the request deadline expired / the request was cancelled.
    It is not retried internally.
    """

    status_code = HTTPStatus.SERVICE_UNAVAILABLE.value
    message = "Store Unavailable: "

    def __init__(self, message="", status_code=HTTPStatus.SERVICE_UNAVAILABLE.value, api_code=None):
        Exception.__init__(self)
        self.status_code = status_code
        self.api_code = api_code
        sapanel.log.error("StoreUnavailableError: %s", message)
        if is_debug():
            self.message += str(message)
        else:
            self.message += HIDDEN_LOG
