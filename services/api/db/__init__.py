"""
MongoDB database module.

Re-exports the client factory, the request dependency and the repositories
for users, verification codes, chat rooms and knowledge-base documents.
"""

from services.api.db.client import create_mongo_client, get_database, normalize_mongodb_uri
from services.api.db.session import get_db
from services.api.db.users import UserRepository, can_reset_password
from services.api.db.verifications import VerificationRepository
from services.api.db.chat import ChatRoomRepository, MessageRepository
from services.api.db.documents import DocumentRepository

__all__ = [
    "create_mongo_client",
    "get_database",
    "normalize_mongodb_uri",
    "get_db",
    "UserRepository",
    "can_reset_password",
    "VerificationRepository",
    "ChatRoomRepository",
    "MessageRepository",
    "DocumentRepository",
]
