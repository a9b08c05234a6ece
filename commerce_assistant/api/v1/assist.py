"""Assistant session endpoints for the storefront chat widget."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from commerce_assistant.core.config import settings
from commerce_assistant.core.deps import (
    ChatSessionDep,
    GatewayDep,
    RegistryDep,
    SessionRegistry,
    StoreDep,
    StorefrontDep,
    get_storefront,
)
from commerce_assistant.core.logging_config import session_id_var
from commerce_assistant.core.rate_limit import limiter
from commerce_assistant.integrations.storefront.client import StorefrontClient, StorefrontError
from commerce_assistant.schemas.assistant import ConversationHistoryItem, TurnStatus
from commerce_assistant.schemas.chat import (
    AssistResponse,
    FeedbackRequest,
    FeedbackResponse,
    SendMessageRequest,
    SessionMessagesResponse,
    SessionStartResponse,
    SuggestionsResponse,
)
from commerce_assistant.services.chat_service import ChatService
from commerce_assistant.services.gateway_service import GenerationGateway
from commerce_assistant.services.history_service import ConversationStore
from commerce_assistant.services.session import AssistantSession

logger = logging.getLogger(__name__)

router = APIRouter()


# === Helpers ===


async def _open_session(
    request: Request,
    store: ConversationStore,
    gateway: GenerationGateway,
    storefront: StorefrontClient,
    registry: SessionRegistry,
    session_id: str | None = None,
) -> ChatService:
    """Create, start and register a new assistant session."""
    session = AssistantSession(session_id=session_id) if session_id else AssistantSession()
    service = ChatService(store, gateway, storefront, session=session)
    await service.start(user_agent=request.headers.get("User-Agent", ""))
    await registry.add(service)
    logger.info("Opened assistant session %s", service.session_id)
    return service


def _messages_response(service: ChatService) -> SessionMessagesResponse:
    session = service.session
    return SessionMessagesResponse(
        session_id=service.session_id,
        messages=session.messages,
        flow_state=session.flow_state,
        panel_view=session.panel_view,
        checkout_mode=session.checkout_mode,
    )


# === Sessions ===


@router.post(
    "/sessions",
    response_model=SessionStartResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start an assistant session",
)
async def start_session(
    request: Request,
    store: StoreDep,
    gateway: GatewayDep,
    storefront: StorefrontDep,
    registry: RegistryDep,
) -> SessionStartResponse:
    """Start a session: loads saved settings and memory, posts the welcome message."""
    service = await _open_session(request, store, gateway, storefront, registry)
    return SessionStartResponse(session_id=service.session_id, messages=service.session.messages)


@router.post(
    "/send",
    response_model=AssistResponse,
    summary="Send a message to the assistant",
    description="""
    Run one assistant turn.

    A session is created on demand when ``sessionId`` is missing or unknown.
    Only one turn per session may be in flight; a second message sent while
    the first is awaiting its reply is rejected with 409.
    """,
)
@limiter.limit(settings.assist_rate_limit)
async def send_message(
    request: Request,
    body: SendMessageRequest,
    store: StoreDep,
    gateway: GatewayDep,
    storefront: StorefrontDep,
    registry: RegistryDep,
) -> AssistResponse:
    """Send a user message and return the assistant turn."""
    service = registry.get(body.session_id) if body.session_id else None
    if service is None:
        service = await _open_session(
            request, store, gateway, storefront, registry, session_id=body.session_id
        )
    else:
        # Bind the request-scoped Redis client
        service.store = store
    session_id_var.set(service.session_id)

    if service.session.status == TurnStatus.AWAITING_RESPONSE:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A message is already being processed for this session",
        )

    message = await service.send_message(body.message)
    if message is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="The message was not processed",
        )

    turn = service.last_turn
    session = service.session
    return AssistResponse(
        session_id=service.session_id,
        message=message,
        suggested_products=turn.suggested_products if turn else [],
        actions=turn.actions if turn else [],
        tool_calls=turn.tool_calls if turn else [],
        flow_state=session.flow_state,
        panel_view=session.panel_view,
        checkout_mode=session.checkout_mode,
    )


@router.get(
    "/sessions/{session_id}/messages",
    response_model=SessionMessagesResponse,
    summary="Get the message log of a session",
)
async def get_messages(service: ChatSessionDep) -> SessionMessagesResponse:
    return _messages_response(service)


@router.post(
    "/sessions/{session_id}/new",
    response_model=SessionMessagesResponse,
    summary="Start a new conversation in a session",
)
async def new_conversation(service: ChatSessionDep) -> SessionMessagesResponse:
    """Discard the current conversation; pending suggestions are cancelled."""
    await service.start_new_conversation()
    return _messages_response(service)


@router.post(
    "/sessions/{session_id}/checkout/exit",
    response_model=SessionMessagesResponse,
    summary="Leave checkout mode",
)
async def exit_checkout(service: ChatSessionDep) -> SessionMessagesResponse:
    service.exit_checkout_mode()
    return _messages_response(service)


@router.post(
    "/sessions/{session_id}/save",
    response_model=ConversationHistoryItem,
    summary="Save the current conversation",
)
async def save_conversation(service: ChatSessionDep, store: StoreDep) -> ConversationHistoryItem:
    """Save to history. Saving again updates the same history entry."""
    service.store = store
    item = await service.save_conversation()
    if item is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Nothing to save: the conversation has no user messages",
        )
    return item


@router.post(
    "/sessions/{session_id}/load/{conversation_id}",
    response_model=SessionMessagesResponse,
    summary="Continue a saved conversation",
)
async def load_conversation(
    conversation_id: str,
    service: ChatSessionDep,
    store: StoreDep,
) -> SessionMessagesResponse:
    service.store = store
    item = await service.load_conversation(conversation_id)
    if item is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found",
        )
    return _messages_response(service)


@router.delete(
    "/sessions/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Close a session",
)
async def close_session(session_id: str, registry: RegistryDep) -> None:
    """Close a session; every pending timer of the session is cancelled."""
    if not await registry.remove(session_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )


# === Feedback & Suggestions ===


@router.post(
    "/feedback",
    response_model=FeedbackResponse,
    summary="Vote on an assistant message",
)
@limiter.limit(settings.assist_rate_limit)
async def submit_feedback(
    request: Request,  # noqa: ARG001
    body: FeedbackRequest,
) -> FeedbackResponse:
    """Record a vote. Votes are only logged."""
    logger.info(
        "Assistant feedback: session=%s message=%s vote=%s reason=%s",
        body.session_id or "",
        body.message_id,
        body.vote,
        body.reason or "N/A",
    )
    return FeedbackResponse()


@router.get(
    "/suggestions",
    response_model=SuggestionsResponse,
    summary="Prefetch product suggestions",
)
@limiter.limit(settings.assist_rate_limit)
async def get_suggestions(
    request: Request,  # noqa: ARG001
    category: str | None = Query(None, description="Catalog category"),
    budget: float | None = Query(None, ge=0, description="Maximum price"),
    brand: str | None = Query(None, description="Preferred brand"),
    storefront: StorefrontClient = Depends(get_storefront),
) -> SuggestionsResponse:
    """Search the catalog by category, budget and brand."""
    try:
        products = await storefront.search_products(
            category=category,
            max_price=budget,
            brand=brand or None,
            limit=settings.candidate_limit,
        )
    except StorefrontError as e:
        logger.warning("Suggestion prefetch failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to get product suggestions",
        ) from e
    return SuggestionsResponse(products=products)

