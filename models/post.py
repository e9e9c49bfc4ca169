from sqlalchemy import (
    Column,
    String,
    Boolean,
    ForeignKey,
    CheckConstraint,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base


class Post(BaseModel, Base):
    __tablename__ = "posts"

    title = Column(String(50), nullable=False)
    content = Column(String(191), nullable=False, default="")
    published = Column(Boolean, nullable=False, default=False)
    author_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    author = relationship("User", back_populates="posts")

    __table_args__ = (
        # One title per author; enforced here and pre-checked in the API for a friendly 409
        UniqueConstraint("author_id", "title", name="uq_posts_author_title"),
        CheckConstraint("length(title) >= 1", name="ck_posts_title_not_empty"),
        Index("ix_posts_author_published", "author_id", "published"),
        Index("ix_posts_created_at", "created_at"),
    )
