# flask_restful API for the registered panel resources
from http import HTTPStatus
import logging
import werkzeug
from flask import jsonify, make_response, request
from flask_restful import Api, Resource, abort
from flask.app import Flask
from functools import wraps
from typing import Callable
import sapanel
from .context import Channel, OutputContext, OutputView
from .errors import PanelError, UnAuthorizedError
from .panel_init import SAPanel
from .json_encoder import PanelJSONProvider
from .registry import ResourceRegistry
from .serializer import flatten, serialize, serialize_many

HTTP_METHODS = ["GET", "POST", "PATCH", "DELETE", "PUT"]


def http_method_decorator(fun: Callable) -> Callable:
    """Decorator for the panel HTTP methods (get, post, put, patch, delete)
    - commit the database
    - convert all exceptions to a JSON serializable error

    :param fun:
    :return: wrapped fun
    """

    @wraps(fun)
    def method_wrapper(*args, **kwargs):
        """Wrap the method and perform error handling
        :return: result of the wrapped method
        """
        panel_exception = None
        status_code = 500
        message = ""
        try:
            result = fun(*args, **kwargs)
            sapanel.DB.session.commit()
            return result

        except werkzeug.exceptions.NotFound as exc:
            # this also catches sapanel.errors.NotFoundError
            status_code = 404
            panel_exception = exc
            message = HTTPStatus.NOT_FOUND.description

        except PanelError as exc:
            sapanel.log.debug(f"{exc.__class__.__name__} on {exc.resource} {exc.record_id} ({exc.operation})")
            panel_exception = exc

        except werkzeug.exceptions.HTTPException as exc:
            status_code = exc.code
            message = exc.description
            sapanel.log.error(message)

        except Exception as exc:
            sapanel.log.exception(exc)
            if sapanel.log.getEffectiveLevel() > logging.DEBUG:
                message = "Logging Disabled"
            else:
                message = str(exc)

        status_code = getattr(panel_exception, "status_code", status_code)
        api_code = getattr(panel_exception, "api_code", None) or status_code
        title = getattr(panel_exception, "message", message)
        detail = getattr(panel_exception, "detail", title)

        sapanel.DB.session.rollback()
        error = dict(title=title, detail=detail, code=str(api_code))
        if getattr(panel_exception, "inconsistent_state", False):
            error["inconsistent_state"] = True
        abort(status_code, errors=[error])

    return method_wrapper


class PanelResource(Resource):
    """
    Base of the generic panel endpoints

    :param registry: ResourceRegistry used to resolve the slugs
    :param channel: forced channel (external api routes), the request marker is used when None
    """

    method_decorators = [http_method_decorator]

    def __init__(self, registry: ResourceRegistry, channel: Channel = None) -> None:
        super().__init__()
        self.registry = registry
        self.channel = channel

    def resolve(self, slug: str):
        """
        :return: the registry binding of `slug` and the request context
        """
        ctx = request.request_context(self.channel)
        binding = self.registry.resolve_for_request(slug, ctx.channel)
        return binding, ctx

    def render(self, binding, record, ctx, view: OutputView):
        context = OutputContext(ctx.channel, view)
        result = serialize(record, binding.metadata, context, self.registry)
        if context.is_external:
            return flatten(result, context)
        return result

    @staticmethod
    def authorize(allowed: bool, action: str, slug: str) -> None:
        if not allowed:
            raise UnAuthorizedError(f"{action} {slug}").with_context(resource=slug, operation=action)


class CollectionResource(PanelResource):
    """
    /<slug>: index (GET) and create (POST)
    """

    def get(self, slug):
        binding, ctx = self.resolve(slug)
        self.authorize(binding.metadata.policy.can_view_any(ctx), "index", slug)
        query = request.query_for(binding.metadata)
        result = binding.provider.index(query, ctx)
        context = OutputContext(ctx.channel, OutputView.GRID if query.is_grid else OutputView.INDEX)
        data = serialize_many(result.records, binding.metadata, context, self.registry)
        if context.is_external:
            data = [flatten(item, context) for item in data]
        meta = {"total": result.total, "page": result.page, "per_page": result.per_page, "last_page": result.last_page}
        return make_response(jsonify({"data": data, "meta": meta}), HTTPStatus.OK)

    def post(self, slug):
        binding, ctx = self.resolve(slug)
        self.authorize(binding.metadata.policy.can_create(ctx), "create", slug)
        record = binding.provider.create(request.get_payload(), ctx)
        data = self.render(binding, record, ctx, OutputView.DETAIL)
        return make_response(jsonify({"data": data}), HTTPStatus.CREATED)


class InstanceResource(PanelResource):
    """
    /<slug>/<record_id>: show (GET), update (PUT, PATCH) and delete (DELETE)
    """

    def get(self, slug, record_id):
        binding, ctx = self.resolve(slug)
        record = binding.provider.show(record_id, ctx, query=request.query_for(binding.metadata))
        self.authorize(binding.metadata.policy.can_view(ctx, record), "show", slug)
        data = self.render(binding, record, ctx, OutputView.DETAIL)
        return make_response(jsonify({"data": data}), HTTPStatus.OK)

    def put(self, slug, record_id):
        binding, ctx = self.resolve(slug)
        record = binding.provider.show(record_id, ctx)
        self.authorize(binding.metadata.policy.can_update(ctx, record), "update", slug)
        record = binding.provider.update(record_id, request.get_payload(), ctx)
        data = self.render(binding, record, ctx, OutputView.DETAIL)
        return make_response(jsonify({"data": data}), HTTPStatus.OK)

    # updates replace every field, PATCH is accepted for the panel forms
    patch = put

    def delete(self, slug, record_id):
        binding, ctx = self.resolve(slug)
        self.authorize(binding.metadata.policy.can_delete(ctx, None), "delete", slug)
        binding.provider.delete(record_id, ctx)
        return make_response(jsonify({}), HTTPStatus.NO_CONTENT)


class ResourceListResource(PanelResource):
    """
    /: the resources available on the channel of the request
    """

    def get(self):
        ctx = request.request_context(self.channel)
        bindings = self.registry.bindings_for(ctx.channel)
        data = [{"slug": binding.slug, "title": binding.metadata.title} for binding in bindings]
        return make_response(jsonify({"data": data}), HTTPStatus.OK)


class PanelAPI(Api):
    """
    Flask-RESTful Api exposing the resources of `registry`:

        {internal_prefix}/                    resource list
        {internal_prefix}/<slug>              GET index, POST create
        {internal_prefix}/<slug>/<record_id>  GET show, PUT/PATCH update, DELETE delete

    The same routes are exposed under `external_prefix` for the external channel, with flattened output
    """

    def __init__(
        self,
        app: Flask,
        registry: ResourceRegistry,
        prefix: str = "",
        internal_prefix: str = "/resource",
        external_prefix: str = "/api",
        **kwargs,
    ) -> None:
        app_db = kwargs.pop("app_db", None)
        panel_config = kwargs.pop("config", {})
        SAPanel(app, app_db=app_db, **panel_config)
        self.registry = registry
        super().__init__(app, prefix=prefix, **kwargs)
        app.json = PanelJSONProvider(app)

        for url_prefix, channel, name in ((internal_prefix, None, "panel"), (external_prefix, Channel.EXTERNAL, "panel_api")):
            resource_kwargs = {"registry": registry, "channel": channel}
            self.add_resource(ResourceListResource, f"{url_prefix}/", endpoint=f"{name}_resources", resource_class_kwargs=resource_kwargs)
            self.add_resource(CollectionResource, f"{url_prefix}/<string:slug>", endpoint=f"{name}_collection", resource_class_kwargs=resource_kwargs)
            self.add_resource(
                InstanceResource,
                f"{url_prefix}/<string:slug>/<string:record_id>",
                endpoint=f"{name}_instance",
                resource_class_kwargs=resource_kwargs,
            )
