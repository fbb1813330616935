"""Re-export all models so Base.metadata sees them."""

from fixy.db.models.agent import Agent
from fixy.db.models.byok import ByokCredential
from fixy.db.models.chatroom import Chatroom, ChatroomParticipant
from fixy.db.models.credit import CreditAccount, CreditTransaction
from fixy.db.models.message import Message
from fixy.db.models.user import User

__all__ = [
    "Agent",
    "ByokCredential",
    "Chatroom",
    "ChatroomParticipant",
    "CreditAccount",
    "CreditTransaction",
    "Message",
    "User",
]
