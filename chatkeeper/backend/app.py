from __future__ import annotations

"""FastAPI backend for the chatkeeper conversation service.

Run with:
    uvicorn chatkeeper.backend.app:app --reload --port 8080

Env vars required:
    CHATKEEPER_DB_URL
    OPENAI_API_KEY
"""

import secrets
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, Request
from loguru import logger
from pydantic import BaseModel, Field

from chatkeeper.backend.service import ConversationService, ModelClient
from chatkeeper.config import Settings, load_settings
from chatkeeper.llm.model_client import ChatModelClient
from chatkeeper.memory.chat_log import ReadPolicy
from chatkeeper.memory.db import init_store
from chatkeeper.memory.history import build_history
from chatkeeper.memory.models import ChatMessage
from chatkeeper.utils.errors import ModelError, PersistenceUnavailable, StorageError
from chatkeeper.utils.logger import configure_logging
from chatkeeper.utils.openai_client import get_openai_client
from chatkeeper.utils.telemetry import TelemetrySink

# Mirrors the ``result`` codes returned to clients.
RESULT_SUCCESS = 0

# ---------------------------------------------------------------------------
# Pydantic Schemas
# ---------------------------------------------------------------------------


class GeneralAgentRequest(BaseModel):
    prompt: str = Field(min_length=1, max_length=32000)


class AgentReplyData(BaseModel):
    thoughts: str
    answer: str


class GeneralAgentResponse(BaseModel):
    result: int = RESULT_SUCCESS
    data: AgentReplyData


class MessagesResponse(BaseModel):
    policy: ReadPolicy
    messages: List[ChatMessage]


class ResetResponse(BaseModel):
    deleted: int


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_service(request: Request) -> ConversationService:
    return request.app.state.service


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def require_admin(
    settings: Settings = Depends(get_settings),
    admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
) -> None:
    if not settings.admin_token or not admin_token:
        raise HTTPException(status_code=403, detail="Admin access required")
    if not secrets.compare_digest(admin_token, settings.admin_token):
        raise HTTPException(status_code=403, detail="Admin access required")


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Optional[Settings] = None,
    model_client: Optional[ModelClient] = None,
    telemetry: Optional[TelemetrySink] = None,
) -> FastAPI:
    """Build the app.  Storage and the model client are set up in the lifespan.

    Startup fails with ``ConfigError`` or ``PersistenceUnavailable`` when the
    configuration is incomplete or the database cannot be reached.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        cfg = settings or load_settings()
        history = build_history(init_store(cfg), telemetry=telemetry)
        client = model_client or ChatModelClient(
            get_openai_client(cfg.openai_api_key), model=cfg.chat_model
        )
        app.state.settings = cfg
        app.state.history = history
        app.state.service = ConversationService(
            history,
            client,
            context_limit=cfg.recent_message_limit,
            read_policy=ReadPolicy(cfg.read_policy),
        )
        logger.info(
            "chatkeeper started | budget={}MB | target_ratio={} | read_policy={}",
            cfg.max_storage_mb,
            cfg.prune_target_ratio,
            cfg.read_policy,
        )
        try:
            yield
        finally:
            history.close()
            logger.info("chatkeeper terminated")

    app = FastAPI(title="chatkeeper", version="0.1.0", lifespan=lifespan)

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.post("/agent/general", response_model=GeneralAgentResponse)
    def general_agent(
        req: GeneralAgentRequest,
        background_tasks: BackgroundTasks,
        service: ConversationService = Depends(get_service),
        cfg: Settings = Depends(get_settings),
    ) -> GeneralAgentResponse:
        schedule = background_tasks.add_task if cfg.prune_in_background else None
        try:
            reply = service.general_agent(req.prompt, schedule=schedule)
        except ModelError as e:
            raise HTTPException(status_code=502, detail=str(e))
        except PersistenceUnavailable as e:
            logger.error("Chat store unavailable: {}", e)
            raise HTTPException(status_code=503, detail="Chat history store unavailable, retry later")
        except StorageError as e:
            logger.error("Failed to persist conversation turn: {}", e)
            raise HTTPException(status_code=500, detail="Failed to persist conversation turn")
        return GeneralAgentResponse(data=AgentReplyData(thoughts=reply.thoughts, answer=reply.answer))

    @app.get("/agent/messages", response_model=MessagesResponse)
    def list_messages(
        limit: Optional[int] = Query(default=None, ge=1, le=1000),
        policy: ReadPolicy = Query(default=ReadPolicy.MOST_RECENT),
        service: ConversationService = Depends(get_service),
        cfg: Settings = Depends(get_settings),
    ) -> MessagesResponse:
        try:
            messages = service.history.chat_log.read_bounded(limit or cfg.recent_message_limit, policy)
        except StorageError as e:
            status = 503 if isinstance(e, PersistenceUnavailable) else 500
            raise HTTPException(status_code=status, detail=str(e))
        return MessagesResponse(policy=policy, messages=messages)

    @app.delete("/agent/messages", response_model=ResetResponse, dependencies=[Depends(require_admin)])
    def reset_messages(service: ConversationService = Depends(get_service)) -> ResetResponse:
        try:
            deleted = service.history.pruner.reset_all()
        except StorageError as e:
            status = 503 if isinstance(e, PersistenceUnavailable) else 500
            raise HTTPException(status_code=status, detail=str(e))
        logger.warning("Chat history reset by admin | deleted={}", deleted)
        return ResetResponse(deleted=deleted)

    return app


app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(
        "chatkeeper.backend.app:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
    )
