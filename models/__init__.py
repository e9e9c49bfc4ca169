"""
Persistence layer: SQLAlchemy models, the DBStorage handle and the stores
built on top of it. Nothing here is instantiated at import time; the
application factory builds a DBStorage and passes it along.
"""
from models.base_model import Base, BaseModel
from models.user import User
from models.post import Post
from models.refresh_token import RefreshToken
from models.db_storage import DBStorage
from models.stores import UserStore, RefreshTokenStore, RefreshTokenRecord

__all__ = [
    "Base",
    "BaseModel",
    "User",
    "Post",
    "RefreshToken",
    "DBStorage",
    "UserStore",
    "RefreshTokenStore",
    "RefreshTokenRecord",
]
