"""
Request parsing for the panel endpoints:
- header: the api key header marks the request as coming from the external channel
- query args: parsed into a Query with the resource defaults (cfr. query_parser)
- body: json object with the field values
"""

from flask import Request
from werkzeug.exceptions import BadRequest
import sapanel
from .config import get_config
from .context import Channel, RequestContext
from .errors import ValidationError
from .query import Query
from .query_parser import parse_query

WRITE_METHODS = ("POST", "PUT", "PATCH")


# pylint: disable=too-many-ancestors
class PanelRequest(Request):
    """
    Flask request class installed by SAPanel.init_app
    """

    json_content_types = ["application/json", "application/vnd.api+json"]

    @property
    def api_key(self):
        """
        :return: the api key sent by external clients, None for panel requests
        """
        header = get_config("API_KEY_HEADER") or "X-API-Key"
        return self.headers.get(header) or None

    @property
    def channel(self) -> Channel:
        return Channel.EXTERNAL if self.api_key else Channel.INTERNAL

    def request_context(self, channel: Channel = None) -> RequestContext:
        """
        :param channel: channel override, e.g. for the external api routes
        :return: RequestContext with the configured REQUEST_TIMEOUT (seconds) as deadline
        """
        channel = channel or self.channel
        timeout = get_config("REQUEST_TIMEOUT")
        if timeout:
            return RequestContext.with_timeout(float(timeout), channel)
        return RequestContext(channel=channel)

    def query_for(self, metadata) -> Query:
        """
        :param metadata: ResourceMetadata of the requested resource
        :return: the query parsed from the query string, with the resource defaults
        """
        # the raw query string keeps the parameter order, self.args groups the values by key
        return parse_query(self.query_string, metadata.slug, metadata.query_defaults())

    def get_payload(self) -> dict:
        """
        :return: the field values sent in the body
        :raises ValidationError: when the body isn't a json object
        """
        if self.method not in WRITE_METHODS:
            return {}
        content_type = (self.content_type or "").split(";")[0]
        if content_type not in self.json_content_types:
            sapanel.log.warning(f'Invalid Media Type! "{self.content_type}"')
        try:
            result = self.get_json(force=True)
        except BadRequest as exc:
            raise ValidationError("Invalid JSON Payload") from exc
        if not isinstance(result, dict):
            raise ValidationError(f"Invalid JSON Payload : {result}")
        return result
