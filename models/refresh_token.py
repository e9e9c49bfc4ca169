"""
RefreshToken model: stores issued refresh tokens so we can revoke and rotate them
Fields:
- token (unique) - the signed refresh token as handed to the client
- user_id (String(36)) - FK to users.id
- expires_at - mirrors the token's signed "exp" claim; checked independently
- created_at, updated_at
A row exists only while the token is redeemable: rotation and logout delete it.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"

    token = Column(String(512), nullable=False, unique=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    user = relationship("User", back_populates="refresh_tokens")

    __table_args__ = (
        Index("ix_refresh_tokens_user_id", "user_id"),
    )

    def __repr__(self):
        return f"<RefreshToken user_id={self.user_id} expires_at={self.expires_at}>"
