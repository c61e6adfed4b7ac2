"""HTTP/WebSocket front end: admission control, the GraphQL ASGI app and the uvicorn runner."""

import asyncio
import contextlib
import importlib
from collections.abc import Generator
from dataclasses import dataclass, field
from typing import Any

import uvicorn
from ariadne import graphql
from ariadne.asgi import GraphQL
from ariadne.asgi.handlers import GraphQLTransportWSHandler
from graphql import GraphQLSchema
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from gqlharbor import log
from gqlharbor.config import ServerSettings
from gqlharbor.errors import ErrorCode, format_error
from gqlharbor.shutdown import ResourcePoolHandle, ShutdownController
from gqlharbor.validation import validate_query

# RFC 6455 close code "Service Restart"
SERVICE_RESTART_CLOSE_CODE = 1012
SERVICE_RESTARTING_MESSAGE = "Service is restarting, retry the request"


@dataclass
class ServiceDefinition:
    """What an application module hands to `gqlharbor serve`.

    Attributes:
        bindables: ariadne bindables attaching resolvers to the schema.
        pools: Resource pools drained on shutdown, by name.
    """

    bindables: list[Any] = field(default_factory=list)
    pools: dict[str, ResourcePoolHandle] = field(default_factory=dict)


def load_service(reference: str) -> ServiceDefinition:
    """Import a ServiceDefinition given as "package.module:attribute"."""
    module_name, _, attribute = reference.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Service reference must look like 'package.module:attribute', got '{reference}'")

    module = importlib.import_module(module_name)
    service = getattr(module, attribute)
    if not isinstance(service, ServiceDefinition):
        raise TypeError(f"'{reference}' is a {type(service).__name__}, expected ServiceDefinition")
    return service


class AdmissionMiddleware:
    """Turns new work away while the shutdown controller is draining.

    HTTP requests get a 503 with Retry-After so clients and load balancers can
    retry on another instance. New WebSocket connections are closed with code
    1012. Accepted WebSocket connections are registered with the controller so
    they can be closed when draining starts.
    """

    def __init__(self, app: ASGIApp, controller: ShutdownController, retry_after: int = 5) -> None:
        self.app = app
        self.controller = controller
        self.retry_after = retry_after

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        if self.controller.is_gracefully_closing:
            await self._reject(scope, receive, send)
            return

        if scope["type"] == "websocket":
            await self._serve_websocket(scope, receive, send)
        else:
            await self.app(scope, receive, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "websocket":
            # A close before the handshake completes reaches the client as HTTP 403, not 1012
            message = await receive()
            if message["type"] == "websocket.connect":
                subprotocols = scope.get("subprotocols") or [None]
                await send({"type": "websocket.accept", "subprotocol": subprotocols[0]})
                await send({"type": "websocket.close", "code": SERVICE_RESTART_CLOSE_CODE})
            return

        response = JSONResponse(
            {
                "errors": [
                    {
                        "message": SERVICE_RESTARTING_MESSAGE,
                        "extensions": {"code": ErrorCode.SERVICE_RESTARTING.value},
                    }
                ]
            },
            status_code=503,
            headers={"Retry-After": str(self.retry_after), "Connection": "close"},
        )
        await response(scope, receive, send)

    async def _serve_websocket(self, scope: Scope, receive: Receive, send: Send) -> None:
        closed = False

        async def tracked_send(message: Message) -> None:
            nonlocal closed
            if message["type"] == "websocket.close":
                if closed:
                    return
                closed = True
            await send(message)

        async def close() -> None:
            await tracked_send({"type": "websocket.close", "code": SERVICE_RESTART_CLOSE_CODE})

        unregister = self.controller.register_connection(close)
        try:
            await self.app(scope, receive, tracked_send)
        finally:
            unregister()


def create_app(
    schema: GraphQLSchema,
    controller: ShutdownController,
    settings: ServerSettings | None = None,
) -> AdmissionMiddleware:
    """GraphQL over HTTP and graphql-transport-ws, behind the admission check."""
    settings = settings or ServerSettings()
    graphql_app = GraphQL(
        schema,
        debug=settings.debug,
        error_formatter=format_error,
        query_validator=validate_query,
        websocket_handler=GraphQLTransportWSHandler(),
    )
    return AdmissionMiddleware(graphql_app, controller, retry_after=settings.retry_after)


async def execute_operation(
    schema: GraphQLSchema,
    query: str,
    variables: dict[str, Any] | None = None,
    operation_name: str | None = None,
    context_value: Any = None,
    debug: bool = False,
) -> tuple[bool, dict[str, Any]]:
    """Execute one operation the way the HTTP handler does, returning (success, payload)."""
    data: dict[str, Any] = {"query": query}
    if variables is not None:
        data["variables"] = variables
    if operation_name is not None:
        data["operationName"] = operation_name
    return await graphql(
        schema,
        data,
        context_value=context_value,
        debug=debug,
        error_formatter=format_error,
        query_validator=validate_query,
    )


class HarborServer(uvicorn.Server):
    """uvicorn server that leaves termination signals to the shutdown controller.

    uvicorn's own capture puts the previous handlers back as soon as it stops
    serving, while resource pools may still be draining.
    """

    @contextlib.contextmanager
    def capture_signals(self) -> Generator[None, None, None]:
        yield


class UvicornTransport:
    """TransportHandle over a running HarborServer."""

    def __init__(self, server: uvicorn.Server, task: "asyncio.Task[None]") -> None:
        self.server = server
        self.task = task

    def stop_accepting(self) -> None:
        self.server.should_exit = True

    async def wait_closed(self) -> None:
        await asyncio.shield(self.task)


async def serve(
    schema: GraphQLSchema,
    settings: ServerSettings,
    pools: dict[str, ResourcePoolHandle] | None = None,
    controller: ShutdownController | None = None,
) -> int:
    """
    Serve the schema until a termination signal was handled.

    Termination signals are routed to the controller from start to finish, so
    a second signal while draining is ignored instead of killing the process.

    Returns:
        The process exit status: 0 when draining completed, 1 when it was forced
        by the shutdown timeout or the server stopped on its own.
    """
    controller = controller or ShutdownController(timeout=settings.shutdown_timeout)
    for name, pool in (pools or {}).items():
        controller.register_pool(name, pool)

    app = create_app(schema, controller, settings)
    config = uvicorn.Config(app, host=settings.host, port=settings.port, log_config=None, lifespan="off")
    server = HarborServer(config)

    loop = asyncio.get_running_loop()
    controller.install_signal_handlers(loop)
    try:
        server_task = asyncio.create_task(server.serve())
        controller.register_transport(UvicornTransport(server, server_task))
        log.info(f"Serving GraphQL on http://{settings.host}:{settings.port}/")

        waiter = asyncio.create_task(controller.wait())
        await asyncio.wait({server_task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        if not controller.is_gracefully_closing:
            waiter.cancel()
            log.error("Server stopped before a termination signal was received")
            return 1

        await waiter
        if not server_task.done():
            server_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await server_task
        return controller.exit_code or 0
    finally:
        controller.remove_signal_handlers(loop)


def run_server(schema: GraphQLSchema, settings: ServerSettings, service: ServiceDefinition | None = None) -> int:
    service = service or ServiceDefinition()
    return asyncio.run(serve(schema, settings, service.pools))
