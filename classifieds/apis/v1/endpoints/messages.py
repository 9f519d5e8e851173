from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from classifieds import crud, schemas, models
from classifieds.database import get_db
from classifieds.dependencies import get_current_profile

router = APIRouter()


def ensure_participant(db: Session, conversation_id: str, profile: models.Profile):
    if not crud.is_conversation_participant(db, conversation_id, profile.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a participant in this conversation")


@router.get("/conversations", response_model=schemas.ConversationList)
def read_conversations(
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    return {"conversations": crud.get_conversations(db, profile.id)}


@router.get("/unread-count", response_model=schemas.UnreadCount)
def read_unread_count(
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    return {"unread_count": crud.count_unread_messages(db, profile.id)}


@router.get("/messages/{conversation_id}", response_model=schemas.MessageList)
def read_messages(
    conversation_id: str,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    ensure_participant(db, conversation_id, profile)
    crud.mark_conversation_read(db, conversation_id, profile.id)
    return {"messages": crud.get_conversation_messages(db, conversation_id)}


@router.get("/messages/{conversation_id}/count", response_model=schemas.MessageCount)
def read_message_count(
    conversation_id: str,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    ensure_participant(db, conversation_id, profile)
    return {"count": crud.count_conversation_messages(db, conversation_id)}


@router.post("/messages", response_model=schemas.MessageOut, status_code=status.HTTP_201_CREATED)
def send_message(
    message_in: schemas.MessageCreate,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    ensure_participant(db, message_in.conversation_id, profile)
    return {"message": crud.create_message(db, profile.id, message_in)}
