from sqlalchemy import Column, String, DateTime, Boolean, Integer, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from academy.core.database import Base
from datetime import datetime
import enum


class VoteType(str, enum.Enum):
    UP = "up"
    DOWN = "down"


class ForumCategory(Base):
    __tablename__ = "forum_categories"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    color = Column(String, nullable=False, default="#3b82f6")
    sort_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    posts = relationship("ForumPost", back_populates="category")


class ForumPost(Base):
    __tablename__ = "forum_posts"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    category_id = Column(String, ForeignKey("forum_categories.id"), nullable=False, index=True)
    parent_id = Column(String, ForeignKey("forum_posts.id"), nullable=True, index=True)  # null for top-level posts
    title = Column(String, nullable=True)
    content = Column(Text, nullable=False)
    likes_count = Column(Integer, nullable=False, default=0)
    dislikes_count = Column(Integer, nullable=False, default=0)
    is_edited = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="forum_posts")
    category = relationship("ForumCategory", back_populates="posts")
    parent = relationship("ForumPost", remote_side=[id], back_populates="replies")
    replies = relationship("ForumPost", back_populates="parent")
    votes = relationship("UserVote", back_populates="post", cascade="all, delete-orphan")


class UserVote(Base):
    __tablename__ = "user_votes"
    __table_args__ = (
        UniqueConstraint("user_id", "post_id", name="uq_user_votes_user_post"),
    )

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    post_id = Column(String, ForeignKey("forum_posts.id"), nullable=False, index=True)
    vote_type = Column(String, nullable=False)  # 'up' or 'down'
    created_at = Column(DateTime, default=datetime.utcnow)

    post = relationship("ForumPost", back_populates="votes")
