from __future__ import annotations

from typing import Any, Callable, Dict, List

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import uvicorn

from agent.agent import generate_response
from agent.core.errors import ConfigurationError, NotFoundError, UpstreamError
from agent.core.memory import MemoryStore
from agent.core.models import (
    ChatRequest,
    ChatResponse,
    ConversationCreate,
    ConversationRecord,
    ConversationUpdate,
    SettingsRecord,
    SettingsUpdate,
    SynthesizeRequest,
)
from config.settings import get_settings


settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="[%(asctime)s] %(levelname)s - %(message)s",
)
logger = logging.getLogger("sales_assistant")

Responder = Callable[..., str]


def get_store(request: Request) -> MemoryStore:
    return request.app.state.store


def get_responder() -> Responder:
    return generate_response


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected %s %s: %s error(s)", request.method, request.url.path, len(exc.errors()))
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def _relay_failure(request: Request, exc: Exception) -> JSONResponse:
    logger.warning("Chat failed (%s): %s", type(exc).__name__, exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


async def _unexpected_failure(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(store: MemoryStore | None = None) -> FastAPI:
    app = FastAPI(title="AI Voice Sales Assistant", version="1.0.0")
    app.state.store = store if store is not None else MemoryStore()

    # CORS: allow local frontend during development
    if get_settings().is_dev:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(NotFoundError, _not_found)
    app.add_exception_handler(ConfigurationError, _relay_failure)
    app.add_exception_handler(UpstreamError, _relay_failure)
    app.add_exception_handler(Exception, _unexpected_failure)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    # Settings routes

    @app.get("/api/settings", response_model=SettingsRecord)
    def read_settings(store: MemoryStore = Depends(get_store)) -> SettingsRecord:
        return store.get_settings()

    @app.post("/api/settings", response_model=SettingsRecord)
    def save_settings(
        body: SettingsUpdate, store: MemoryStore = Depends(get_store)
    ) -> SettingsRecord:
        saved = store.save_settings(body)
        logger.info(
            "Settings saved: fields=%s key_set=%s",
            sorted(body.model_fields_set),
            bool(saved.gemini_api_key),
        )
        return saved

    # Conversation routes

    @app.get("/api/conversations", response_model=List[ConversationRecord])
    def list_conversations(store: MemoryStore = Depends(get_store)) -> List[ConversationRecord]:
        return store.list_conversations()

    @app.post("/api/conversations", response_model=ConversationRecord)
    def create_conversation(
        body: ConversationCreate, store: MemoryStore = Depends(get_store)
    ) -> ConversationRecord:
        record = store.create_conversation(
            title=body.title,
            sales_prompt=body.sales_prompt,
            messages=body.messages,
            is_active=body.is_active,
        )
        logger.info("Conversation created: id=%s messages=%s", record.id, len(record.messages))
        return record

    @app.get("/api/conversations/{conversation_id}", response_model=ConversationRecord)
    def read_conversation(
        conversation_id: str, store: MemoryStore = Depends(get_store)
    ) -> ConversationRecord:
        record = store.get_conversation(conversation_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        return record

    @app.patch("/api/conversations/{conversation_id}", response_model=ConversationRecord)
    def update_conversation(
        conversation_id: str,
        body: ConversationUpdate,
        store: MemoryStore = Depends(get_store),
    ) -> ConversationRecord:
        record = store.update_conversation(conversation_id, body)
        logger.info(
            "Conversation updated: id=%s fields=%s", conversation_id, sorted(body.model_fields_set)
        )
        return record

    @app.delete("/api/conversations/{conversation_id}", status_code=204)
    def delete_conversation(
        conversation_id: str, store: MemoryStore = Depends(get_store)
    ) -> Response:
        store.delete_conversation(conversation_id)
        return Response(status_code=204)

    @app.get("/api/conversations/{conversation_id}/export")
    def export_conversation(
        conversation_id: str, store: MemoryStore = Depends(get_store)
    ) -> Dict[str, Any]:
        return store.export_conversation(conversation_id)

    # AI conversation route

    @app.post("/api/chat", response_model=ChatResponse)
    def chat(
        req: ChatRequest,
        store: MemoryStore = Depends(get_store),
        responder: Responder = Depends(get_responder),
    ) -> ChatResponse:
        api_key = (req.api_key or "").strip() or store.get_settings().gemini_api_key
        logger.info(
            "Incoming chat: message_len=%s prompt_len=%s key_set=%s",
            len(req.message),
            len(req.sales_prompt),
            bool(api_key),
        )
        try:
            text = responder(req.message, req.sales_prompt, api_key)
        except (ConfigurationError, UpstreamError):
            raise
        except Exception as e:
            logger.exception("Chat processing failed: %s", e)
            raise HTTPException(status_code=500, detail="Failed to generate AI response")
        return ChatResponse(response=text)

    # Voice synthesis route; the browser does the actual synthesis

    @app.post("/api/synthesize")
    def synthesize(req: SynthesizeRequest) -> Dict[str, Any]:
        return {
            "success": True,
            "audioUrl": None,
            "settings": {"voice": req.voice, "speed": req.speed},
        }

    return app


app = create_app()


def run() -> None:
    uvicorn.run("app.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
