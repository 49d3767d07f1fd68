import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Settings, settings as default_settings
from database import engine as default_engine, init_db, make_sessionmaker
from exceptions import PaymentError
from api.applications import router as applications_router
from api.payments import router as payments_router
from services.callback_receiver import CallbackReceiver
from services.daraja import DarajaClient
from services.stk_initiator import StkInitiator
from services.token_manager import TokenManager
from utils.log import setup_logging

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, engine=None, http_client: httpx.AsyncClient | None = None) -> FastAPI:
    if settings is None:
        settings = default_settings
    if engine is None:
        engine = default_engine
    session_factory = make_sessionmaker(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_db(engine)
        client = http_client if http_client is not None else httpx.AsyncClient(
            timeout=settings.mpesa_http_timeout_seconds
        )
        gateway = DarajaClient(settings, client)
        tokens = TokenManager(gateway.fetch_token, safety_margin=settings.mpesa_token_safety_margin)
        app.state.initiator = StkInitiator(settings, gateway, tokens)
        app.state.callback_receiver = CallbackReceiver(session_factory)
        missing = settings.missing_mpesa_settings()
        if missing:
            logger.warning("M-Pesa not configured, payments will fail. Missing: %s", ", ".join(missing))
        try:
            yield
        finally:
            if http_client is None:
                await client.aclose()

    app = FastAPI(
        title=settings.app_name,
        description="Loan application fee payments over M-Pesa STK push",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.session_factory = session_factory

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PaymentError)
    async def payment_error_handler(request: Request, exc: PaymentError):
        if exc.status_code >= 500:
            logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        else:
            logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        if request.url.path.startswith("/api/payments"):
            fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
            return JSONResponse(
                status_code=400,
                content={"success": False, "error": f"Missing or invalid fields: {', '.join(fields)}"},
            )
        return await request_validation_exception_handler(request, exc)

    app.include_router(applications_router)
    app.include_router(payments_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


setup_logging(default_settings.log_level)
app = create_app()
