# db/store.py
import logging
import uuid
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload, sessionmaker

from core.errors import NotFound, PersistenceError
from db.models import Chat, Message, Role

logger = logging.getLogger(__name__)


class ChatStore:
    """Chat and message persistence on top of a SQLAlchemy session factory.

    Every call opens and closes its own session, so a store can be shared by
    concurrent requests. Returned entities are detached; relationships that
    were not loaded stay unloaded.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def list_chats(self) -> List[Chat]:
        db = self._session_factory()
        try:
            return db.query(Chat).order_by(Chat.created_at.desc(), Chat.id.desc()).all()
        finally:
            db.close()

    def get_chat(self, chat_id: str, with_messages: bool = False) -> Chat:
        db = self._session_factory()
        try:
            qry = db.query(Chat)
            if with_messages:
                qry = qry.options(selectinload(Chat.messages))
            chat = qry.filter(Chat.id == chat_id).one_or_none()
            if chat is None:
                raise NotFound("Chat", chat_id)
            return chat
        finally:
            db.close()

    def create_chat(self) -> Chat:
        db = self._session_factory()
        try:
            chat = Chat(id=str(uuid.uuid4()))
            db.add(chat)
            db.commit()
            db.refresh(chat)
            return chat
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Could not create chat: {e}") from e
        finally:
            db.close()

    def add_message(self, chat_id: str, role: Role, content: str, truncated: bool = False) -> Message:
        db = self._session_factory()
        try:
            msg = Message(chat_id=chat_id, role=Role(role).value, content=content, truncated=truncated)
            db.add(msg)
            db.commit()
            db.refresh(msg)
            logger.debug("stored %s message %s in chat %s", msg.role, msg.id, chat_id)
            return msg
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Could not store {Role(role).value} message: {e}") from e
        finally:
            db.close()

    def list_messages(self, chat_id: str) -> List[Message]:
        db = self._session_factory()
        try:
            return (
                db.query(Message)
                .filter(Message.chat_id == chat_id)
                .order_by(Message.created_at.asc(), Message.id.asc())
                .all()
            )
        finally:
            db.close()
