"""
Orderflow HTTP Service

Public routes for the order workflow plus the internal function routes
used when functions invoke each other over HTTP.
"""
import dataclasses
import logging
import random
from contextlib import asynccontextmanager
from functools import partial
from typing import Optional

import orjson
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from tracelet import SpanRecorder, build_tracer, extract_context, get_config

from .config import ServiceSettings
from .dispatch import DispatchError, TaskDispatcher
from .catalog import inventory_simulator
from .inventory import InventoryService
from .invoke import HttpInvoker, LocalInvoker, serve_function
from .metrics import MetricsMiddleware, metrics_endpoint
from .models import HandlerResponse
from .notification import NotificationService, notification_simulator
from .orders import INVENTORY_FUNCTION, NOTIFICATION_FUNCTION, OrderService
from .query import OrderQueryService
from .storage import OrderStore, SQLiteOrderStore
from .timing import LatencyInjector, Sleeper, isoformat, utcnow

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s"
)
logger = logging.getLogger("orderflow")


def _respond(result: HandlerResponse) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.body)


def create_app(
    settings: Optional[ServiceSettings] = None,
    store: Optional[OrderStore] = None,
    rng: Optional[random.Random] = None,
    sleep: Optional[Sleeper] = None,
    recorder: Optional[SpanRecorder] = None,
) -> FastAPI:
    """
    Build the application and wire the functions together.

    Args:
        settings: Service settings (defaults to ServiceSettings.from_env())
        store: Order store (defaults to SQLite at settings.db_path)
        rng: Random source shared by the fault simulators and default ids
        sleep: Coroutine used for simulated latency (defaults to asyncio.sleep)
        recorder: Span recorder to inspect closed spans
    """
    settings = settings or ServiceSettings.from_env()
    logging.getLogger().setLevel(settings.log_level)

    rng = rng if rng is not None else random.Random(settings.seed)
    tracing = dataclasses.replace(get_config(), service_name=settings.service_name)
    recorder = recorder if recorder is not None else SpanRecorder(tracing.recorder_capacity)
    tracer = build_tracer(tracing, recorder=recorder)
    latency = LatencyInjector(sleep=sleep, scale=settings.latency_scale)
    store = store or SQLiteOrderStore(settings.db_path)

    inventory = InventoryService(tracer, inventory_simulator(rng), latency)
    notification = NotificationService(tracer, notification_simulator(rng), latency)

    # Events arriving on /internal/send-notification run here
    events = TaskDispatcher({NOTIFICATION_FUNCTION: notification.handle_event})

    http_invoker: Optional[HttpInvoker] = None
    if settings.invoke_mode == "http":
        http_invoker = HttpInvoker(settings.downstream_url, timeout_ms=settings.invoke_timeout_ms)
        invoker = http_invoker
        dispatcher = TaskDispatcher({
            NOTIFICATION_FUNCTION: partial(http_invoker.send_event, NOTIFICATION_FUNCTION),
        })
    else:
        invoker = LocalInvoker({INVENTORY_FUNCTION: serve_function(inventory.check)})
        dispatcher = events

    orders = OrderService(tracer, invoker, store, dispatcher, rng=rng)
    queries = OrderQueryService(
        tracer,
        store,
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
    )

    # --- Startup / Shutdown ---

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open the store on startup; drain notifications and release connections on shutdown."""
        logger.info(f"{settings.service_name} starting up (invoke_mode={settings.invoke_mode})...")
        await store.initialize()
        logger.info("Order store initialized.")
        yield
        logger.info(f"{settings.service_name} shutting down...")
        await dispatcher.close()
        if events is not dispatcher:
            await events.close()
        if http_invoker is not None:
            await http_invoker.aclose()
        await store.close()
        logger.info("Shutdown complete.")

    app = FastAPI(
        title="Orderflow",
        description="Traced order workflow: create, inventory, notification, query",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(MetricsMiddleware)

    app.state.settings = settings
    app.state.tracer = tracer
    app.state.recorder = recorder
    app.state.store = store
    app.state.dispatcher = dispatcher
    app.state.events = events

    # --- Public endpoints ---

    @app.post("/orders")
    async def create_order(request: Request):
        body = await request.body()
        result = await orders.create(body, parent=extract_context(request.headers))
        return _respond(result)

    @app.get("/orders")
    async def list_orders(request: Request, status: Optional[str] = None, limit: Optional[str] = None):
        result = await queries.list_orders(
            status=status,
            limit=limit,
            parent=extract_context(request.headers),
        )
        return _respond(result)

    @app.get("/orders/{order_id}")
    async def get_order(order_id: str, request: Request):
        result = await queries.get_order(order_id, parent=extract_context(request.headers))
        return _respond(result)

    @app.get("/health")
    def health():
        """Liveness probe."""
        return {
            "status": "healthy",
            "service": settings.service_name,
            "timestamp": isoformat(utcnow()),
        }

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return await metrics_endpoint()

    # --- Internal function endpoints ---

    @app.post("/internal/check-inventory")
    async def internal_check_inventory(request: Request):
        """Synchronous invocation: caller context arrives as a traceparent header."""
        try:
            payload = orjson.loads(await request.body() or b"{}")
        except orjson.JSONDecodeError:
            return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})
        if not isinstance(payload, dict):
            return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})
        result = await inventory.check(payload, parent=extract_context(request.headers))
        return Response(content=orjson.dumps(result), media_type="application/json")

    @app.post("/internal/send-notification", status_code=202)
    async def internal_send_notification(request: Request):
        """Asynchronous invocation: acknowledged immediately, processed in the background."""
        try:
            payload = orjson.loads(await request.body() or b"{}")
        except orjson.JSONDecodeError:
            return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})
        if not isinstance(payload, dict):
            return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})
        try:
            events.dispatch(NOTIFICATION_FUNCTION, payload)
        except DispatchError as e:
            logger.error(f"Rejected notification event: {e}")
            return JSONResponse(status_code=503, content={"error": "Notification service unavailable"})
        return {"status": "accepted"}

    return app


app = create_app()
