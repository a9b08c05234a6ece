"""Saved conversation history endpoints."""

from fastapi import APIRouter, HTTPException, Query, status

from commerce_assistant.core.deps import RegistryDep, StoreDep
from commerce_assistant.schemas.assistant import ConversationHistoryItem
from commerce_assistant.services.chat_service import ChatService

router = APIRouter()

def _live_session(
    registry: RegistryDep, store: StoreDep, session_id: str | None
) -> ChatService | None:
    service = registry.get(session_id) if session_id else None
    if service is not None:
        service.store = store
    return service


@router.get(
    "",
    response_model=list[ConversationHistoryItem],
    summary="List saved conversations",
)
async def list_history(store: StoreDep) -> list[ConversationHistoryItem]:
    """Saved conversations, newest first."""
    return await store.load_history()


@router.get(
    "/{conversation_id}",
    response_model=ConversationHistoryItem,
    summary="Get a saved conversation",
)
async def get_conversation(conversation_id: str, store: StoreDep) -> ConversationHistoryItem:
    item = await store.get_conversation(conversation_id)
    if item is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found",
        )
    return item


@router.delete(
    "/{conversation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a saved conversation",
)
async def delete_conversation(
    conversation_id: str,
    store: StoreDep,
    registry: RegistryDep,
    session_id: str | None = Query(
        None, alias="sessionId", description="Live session whose active conversation is cleared"
    ),
) -> None:
    """Delete a saved conversation.

    When ``sessionId`` names a live session that is continuing this
    conversation, its next save starts a new entry instead of restoring the
    deleted one.
    """
    service = _live_session(registry, store, session_id)
    if service is not None:
        deleted = await service.delete_conversation(conversation_id)
    else:
        deleted = await store.delete_conversation(conversation_id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found",
        )


@router.delete(
    "",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Clear all saved conversations",
)
async def clear_history(
    store: StoreDep,
    registry: RegistryDep,
    session_id: str | None = Query(
        None, alias="sessionId", description="Live session whose active conversation is cleared"
    ),
) -> None:
    service = _live_session(registry, store, session_id)
    if service is not None:
        await service.clear_history()
    else:
        await store.clear_history()
