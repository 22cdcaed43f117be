import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from collab_messaging.config import get_settings
from collab_messaging.database.connection import close_mongo_connection, connect_to_mongo, get_database
from collab_messaging.logger import setup_logging
from collab_messaging.repositories.message_repository import MessageRepository
from collab_messaging.routers.messages import router as messages_router
from collab_messaging.routers.realtime import router as realtime_router
from collab_messaging.utils.errors import MessagingError, ValidationError
from collab_messaging.utils.websocket_manager import RealtimeHub


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):

    setup_logging(get_settings())
    db = await connect_to_mongo()
    await MessageRepository(db).ensure_indexes()
    try:
        yield
    finally:
        await app.state.hub.drain()
        await close_mongo_connection()


async def messaging_error_handler(request: Request, exc: MessagingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.kind)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = ", ".join(".".join(str(p) for p in err["loc"][1:]) for err in exc.errors()) or "body"
    error = ValidationError(f"Invalid or missing fields: {fields}")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Collab Sphere Messaging", lifespan=lifespan)
    app.state.hub = RealtimeHub()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_exception_handler(MessagingError, messaging_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(messages_router)
    app.include_router(realtime_router)

    @app.get("/health")
    async def health():
        try:
            await get_database().command("ping")
            database = "ok"
        except (RuntimeError, PyMongoError) as exc:
            logger.warning("Health check could not reach MongoDB: %s", exc)
            database = "unavailable"
        return {"status": "ok", "database": database}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("collab_messaging.main:app", host="0.0.0.0", port=5000)
