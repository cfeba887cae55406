import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .api.router import router as api_router
from .config import settings
from .service.generator import DesignGenerator
from .service.store import DesignStore
from .service.websocket import DesignRequestRouter, router as websocket_router
from .utils.llm_client import OpenAIDesignModel
from .utils.redis_client import DesignEventPublisher

logger = logging.getLogger(settings.SERVICE_NAME + ".main")

# --- OpenAPI Metadata ---
API_TITLE = "Design Generator Service"
API_DESCRIPTION = (
    "Turns natural-language UI descriptions into structured design specifications "
    "through a language model, keeps them in an in-memory history and relays them "
    "to browser previews and Figma plugins over WebSocket."
)


def create_app(
    store: Optional[DesignStore] = None,
    model_client=None,
    publisher: Optional[DesignEventPublisher] = None,
) -> FastAPI:
    """
    Factory function to create and configure the FastAPI application.

    The store, model client and publisher can be injected (tests pass fakes); otherwise
    a fresh store, the OpenAI client and, if enabled, the Redis publisher are created.
    """
    app = FastAPI(
        title=API_TITLE,
        version=__version__,
        description=API_DESCRIPTION,
        default_response_class=JSONResponse,
    )

    store = store if store is not None else DesignStore()
    model_client = model_client if model_client is not None else OpenAIDesignModel(config=settings)
    if publisher is None and settings.REDIS_ENABLED:
        publisher = DesignEventPublisher(config=settings)

    app.state.store = store
    app.state.model_client = model_client
    app.state.publisher = publisher
    app.state.design_router = DesignRequestRouter(
        store=store,
        generator=DesignGenerator(model_client, timeout_s=settings.OPENAI_TIMEOUT_S),
        publisher=publisher,
    )

    # --- CORS Middleware ---
    if settings.CORS_ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )
        logger.info(f"CORS middleware enabled for origins: {settings.CORS_ALLOWED_ORIGINS}")

    # --- Error Handling ---
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    # --- Event Handlers ---
    @app.on_event("startup")
    async def startup_event():
        logger.info(f"Starting {API_TITLE} v{__version__}...")
        logger.info(f"Log level set to: {settings.LOG_LEVEL}")

        if (
            not settings.OPENAI_API_KEY
            or not settings.OPENAI_API_KEY.get_secret_value()
            or "your_openai_api_key_here" in settings.OPENAI_API_KEY.get_secret_value()
        ):
            logger.critical("CRITICAL: OPENAI_API_KEY is not configured. Design generation will fail.")
        else:
            logger.info("OpenAI API Key found.")

        if publisher is not None:
            if await publisher.connect():
                logger.info("Design events will be mirrored to Redis.")
            else:
                logger.warning("Redis unavailable; design events go to WebSocket listeners only.")

        logger.info("Design Generator startup complete.")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info(f"Shutting down {API_TITLE}...")
        if publisher is not None:
            await publisher.close()
        close = getattr(model_client, "close", None)
        if close is not None:
            await close()
        logger.info("Design Generator shutdown complete.")

    # --- Include Routers ---
    app.include_router(api_router, tags=["Design Generator REST API"])
    app.include_router(websocket_router, tags=["Design Generator WebSocket"])

    logger.info(
        f"FastAPI application configured. REST under '{settings.API_PREFIX}', "
        f"WebSocket at '{settings.WEBSOCKET_PATH}'."
    )
    return app


# Create the FastAPI app instance using the factory.
# This 'app' instance will be discovered by Uvicorn when running the service.
app = create_app()

if __name__ == "__main__":
    # `uvicorn design_generator.main:app --reload --port 3001`
    import uvicorn

    logger.info("Running Uvicorn directly for development...")
    uvicorn.run(
        "design_generator.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=True,
    )
