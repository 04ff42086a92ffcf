"""FastAPI endpoints for the consultant API.

POST /api/chat - process a user message through the selected provider
GET /api/chat/history - messages of the caller's current session
GET /health - component health check
"""

import asyncio
import time

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError

from consultant.api.auth import AuthenticatedUser, get_current_user
from consultant.api.schemas import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    HistoryResponse,
    TokenUsageModel,
)
from consultant.core.context_builder import build_conversation
from consultant.core.database import ping
from consultant.core.llm_adapter import LLMError, LLMRateLimitError
from consultant.core.memory import ChatMemoryStore, MemoryStoreError, extract_text_content
from consultant.core.provider_selector import ProviderUnavailableError
from consultant.core.turns import AssistantReply

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/api/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    req: Request,
    background: BackgroundTasks,
    user: AuthenticatedUser = Depends(get_current_user),
):
    """Process a user message: session -> history -> provider -> respond -> persist."""
    start = time.monotonic()
    settings = req.app.state.settings
    memory: ChatMemoryStore = req.app.state.memory
    selector = req.app.state.selector

    equipment = request.equipment_context
    user_message = ChatMessage(role="user", content=request.message)
    logger.info("chat.request", user_id=user.id, provider=request.provider,
                equipment_id=equipment.id if equipment else None)

    # Memory failures degrade to a stateless exchange
    session_id = None
    history: list[ChatMessage] = []
    try:
        session_id = await asyncio.to_thread(
            memory.get_or_create_session, user.id, equipment.id if equipment else None
        )
        history = await asyncio.to_thread(memory.load_recent_history, user.id, settings.history_limit)
    except MemoryStoreError as e:
        logger.error("chat.memory_unavailable", user_id=user.id, error=str(e))

    conversation = build_conversation(history, user_message, settings.history_token_budget)

    try:
        adapter = await selector.resolve(request.provider)
    except ProviderUnavailableError as e:
        raise HTTPException(status_code=503, detail=f"AI-провайдер недоступен ({', '.join(e.tried) or 'нет ключей'})")

    try:
        reply = await adapter.chat(
            conversation.messages,
            adapter.tool_registry.definitions(),
            user.id,
            equipment,
        )
    except LLMRateLimitError as e:
        raise HTTPException(status_code=429, detail=str(e))
    except LLMError as e:
        raise HTTPException(status_code=502, detail=str(e))

    if session_id is not None:
        background.add_task(_persist_exchange, memory, session_id, user.id, user_message, reply)

    latency_ms = int((time.monotonic() - start) * 1000)
    logger.info("chat.response", user_id=user.id, session_id=session_id, provider=reply.provider,
                latency_ms=latency_ms, tools=reply.tools_used, iterations=reply.iterations,
                budget_exhausted=reply.budget_exhausted)

    usage = reply.tokens_used
    return ChatResponse(
        session_id=session_id,
        message=reply.message,
        tools_used=reply.tools_used,
        provider=reply.provider,
        tokens_used=TokenUsageModel(input=usage.input, output=usage.output) if usage else None,
        iterations=reply.iterations,
        budget_exhausted=reply.budget_exhausted,
        latency_ms=latency_ms,
    )


def _persist_exchange(
    memory: ChatMemoryStore,
    session_id: str,
    user_id: str,
    user_message: ChatMessage,
    reply: AssistantReply,
) -> None:
    """Store the exchange and set the session title. Runs after the response is sent."""
    saved = memory.save_messages(session_id, user_id, user_message, reply.message, reply.tools_used)
    if not saved:
        logger.warning("chat.persist_failed", session_id=session_id)
        return
    memory.update_session_title(session_id, extract_text_content(user_message.content))


@router.get("/api/chat/history", response_model=HistoryResponse)
async def history(req: Request, user: AuthenticatedUser = Depends(get_current_user)):
    """Fetch the caller's most recent session."""
    memory: ChatMemoryStore = req.app.state.memory
    try:
        session_id = await asyncio.to_thread(memory.get_latest_session_id, user.id)
        messages = await asyncio.to_thread(memory.get_session_messages, session_id) if session_id else []
    except SQLAlchemyError as e:
        logger.error("history.failed", user_id=user.id, error=str(e))
        raise HTTPException(status_code=503, detail="История недоступна")
    return HistoryResponse(session_id=session_id, messages=messages)


@router.get("/health")
async def health(req: Request):
    """Check health of all backend components."""
    components = {}

    components["database"] = "ok" if await asyncio.to_thread(ping, req.app.state.session_factory) else "error"
    components["action_api"] = "configured" if req.app.state.action_client is not None else "not_configured"

    selector = req.app.state.selector
    available = set(selector.list_available())
    for tag in selector.settings.provider_order:
        components[tag] = "ok" if tag in available else "not_configured"

    errors = [k for k, v in components.items() if v == "error"]
    if not available:
        errors.append("providers")

    if not errors:
        status = "healthy"
    elif "database" in errors and "providers" in errors:
        status = "unhealthy"
    else:
        status = "degraded"

    return {"status": status, "components": components}


@router.get("/")
@router.head("/")
def root_health():
    """Basic root health check for deployment platforms."""
    return {"status": "ok", "service": "equipment-consultant-api"}
