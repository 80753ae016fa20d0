import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from logging.config import dictConfig
from typing import Optional

from fastapi import Depends, FastAPI, Query, WebSocket, WebSocketDisconnect
from fastapi.exception_handlers import http_exception_handler
from fastapi.requests import HTTPConnection
from fastapi.responses import FileResponse, PlainTextResponse, Response, StreamingResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from models import BroadcastHub
from schemas import EchoResponse, HealthResponse, JsonResponse, PublishRequest, PublishResponse, StatsResponse
from streams import StreamEndpoint
from utilities import Settings, get_settings, now_ts

logger = logging.getLogger(__name__)


class PublicFiles(StaticFiles):
    """Static files at the site root; anything else that falls through is a 404."""

    async def get_response(self, path: str, scope):
        if scope["method"] not in ("GET", "HEAD"):
            raise StarletteHTTPException(status_code=404)
        return await super().get_response(path, scope)


def configure_logging(level: str) -> None:
    dictConfig({
        "version": 1,
        "disable_existing_loggers": False,     # keep uvicorn loggers
        "formatters": {
            "plain": {"format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"},
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "plain"},
        },
        "loggers": {
            "": {"handlers": ["console"], "level": level},
            "uvicorn": {"handlers": ["console"], "level": level, "propagate": False},
            "uvicorn.error": {"handlers": ["console"], "level": level, "propagate": False},
            "uvicorn.access": {"handlers": ["console"], "level": level, "propagate": False},
        },
    })


def get_hub(conn: HTTPConnection) -> BroadcastHub:
    return conn.app.state.hub


def create_app(settings: Optional[Settings] = None, hub: Optional[BroadcastHub] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Listening on port %s", settings.port)
        yield
        logger.info("shutting down with %d open streams", app.state.hub.subscriber_count)

    app = FastAPI(title="Chat Broadcast", lifespan=lifespan)
    # one hub per application, shared by every connection
    app.state.hub = hub or BroadcastHub(queue_size=settings.subscriber_queue_size)

    # -------------- Chat: publish & stream --------------

    @app.get("/chat")
    async def respond_chat(message: str = "", hub: BroadcastHub = Depends(get_hub)):
        """Publish ``message`` to every open stream."""
        logger.info("New chat message: %s", message)
        hub.publish(message)
        return Response()

    @app.post("/chat", response_model=PublishResponse)
    async def rest_publish(req: PublishRequest, hub: BroadcastHub = Depends(get_hub)):
        logger.info("New chat message: %s", req.message)
        return PublishResponse(delivered=hub.publish(req.message))

    @app.get("/sse")
    async def respond_sse(hub: BroadcastHub = Depends(get_hub)):
        """Server-Sent Events stream of every published message."""
        endpoint = StreamEndpoint(hub, heartbeat_interval=settings.heartbeat_interval)
        return StreamingResponse(
            endpoint.events(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
            },
        )

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket, hub: BroadcastHub = Depends(get_hub)):
        endpoint = StreamEndpoint(hub)
        sender_task = None
        try:
            # subscribe before accepting so nothing published after the handshake is missed
            endpoint.open()
            await ws.accept()
            sender_task = asyncio.create_task(endpoint.pump(ws.send_text))
            while True:
                await ws.receive_text()  # inbound frames are ignored, we only wait for close
        except WebSocketDisconnect:
            logger.info("WebSocket disconnected")
        finally:
            if sender_task:
                sender_task.cancel()
                try:
                    await sender_task
                except asyncio.CancelledError:
                    pass
            endpoint.close()

    # -------------- Plain endpoints --------------

    @app.get("/")
    async def chat_app():
        return FileResponse(settings.public_dir / "chat.html")

    @app.get("/text", response_class=PlainTextResponse)
    async def respond_text():
        return "hi"

    @app.get("/json", response_model=JsonResponse)
    async def respond_json():
        return JsonResponse()

    @app.get("/echo", response_model=EchoResponse)
    async def respond_echo(text: str = Query("", alias="input")):
        return EchoResponse.from_input(text)

    @app.get("/health", response_model=HealthResponse)
    async def rest_health(hub: BroadcastHub = Depends(get_hub)):
        uptime_sec = int((datetime.now(timezone.utc) - hub.started_at).total_seconds())
        return HealthResponse(uptime_sec=uptime_sec, subscribers=hub.subscriber_count, ts=now_ts())

    @app.get("/stats", response_model=StatsResponse)
    async def rest_stats(hub: BroadcastHub = Depends(get_hub)):
        return StatsResponse(
            subscribers=hub.subscriber_count,
            messages=hub.messages_published,
            dropped=hub.messages_dropped,
        )

    @app.exception_handler(StarletteHTTPException)
    async def respond_not_found(request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return PlainTextResponse("Not Found", status_code=404)
        return await http_exception_handler(request, exc)

    # static files (chat.js, ...) served from the site root, after every route
    app.mount("/", PublicFiles(directory=settings.public_dir), name="public")

    return app


settings = get_settings()
configure_logging(settings.log_level.upper())
app = create_app(settings)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
