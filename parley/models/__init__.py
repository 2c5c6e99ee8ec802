from parley.models.chat import Chat
from parley.models.language import Language
from parley.models.message import Message
from parley.models.user import User

__all__ = [
    "Chat",
    "Language",
    "Message",
    "User",
]
