# db/models.py
import enum
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, ForeignKey, Text, Index
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Role(str, enum.Enum):
    user = "user"
    assistant = "assistant"
    system = "system"


class Chat(Base):
    __tablename__ = "chats"
    id = Column(String(36), primary_key=True)          # UUID string
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    messages = relationship(
        "Message",
        back_populates="chat",
        order_by=lambda: [Message.created_at, Message.id],
    )

    __table_args__ = (
        Index("ix_chats_created_at", "created_at"),
    )


class Message(Base):
    __tablename__ = "messages"
    id = Column(Integer, primary_key=True, autoincrement=True)
    chat_id = Column(String(36), ForeignKey("chats.id"), nullable=False)
    role = Column(String(16), nullable=False)          # "user" | "assistant" | "system"
    content = Column(Text, nullable=False)
    truncated = Column(Boolean, default=False, nullable=False)  # stream ended early
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    chat = relationship("Chat", back_populates="messages")

    __table_args__ = (Index("ix_messages_chat_created", "chat_id", "created_at"),)
