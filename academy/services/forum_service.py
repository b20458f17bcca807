import logging
import re
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from academy.models.forum import ForumCategory, ForumPost, UserVote, VoteType
from academy.models.user import User

_SLUG_INVALID = re.compile(r'[^a-z0-9]+')


def generate_slug(name: str) -> str:
    """'Technical Analysis & Charts' -> 'technical-analysis-charts'"""
    return _SLUG_INVALID.sub('-', name.lower()).strip('-')


def serialize_category(category: ForumCategory) -> dict:
    return {
        'id': category.id,
        'name': category.name,
        'slug': category.slug,
        'description': category.description,
        'color': category.color,
        'sort_order': category.sort_order,
        'is_active': category.is_active,
        'created_at': category.created_at.isoformat() if category.created_at else None,
    }


class ForumService:
    def __init__(self):
        self.logger = logging.getLogger(__name__)

    # Categories

    def list_categories(self, db: Session, active_only: bool = True) -> list[dict]:
        query = db.query(ForumCategory)
        if active_only:
            query = query.filter(ForumCategory.is_active == True)
        categories = query.order_by(ForumCategory.sort_order, ForumCategory.name).all()
        return [serialize_category(c) for c in categories]

    def _slug_taken(self, db: Session, slug: str, exclude_id: Optional[str] = None) -> bool:
        query = db.query(ForumCategory).filter(ForumCategory.slug == slug)
        if exclude_id:
            query = query.filter(ForumCategory.id != exclude_id)
        return query.first() is not None

    def create_category(
        self,
        db: Session,
        name: str,
        description: Optional[str] = None,
        color: Optional[str] = None,
        sort_order: int = 0,
        is_active: bool = True,
    ) -> ForumCategory:
        self.logger.info(f"create_category: Entry - name: {name}")

        try:
            if not name or not name.strip():
                raise ValueError("Category name is required")

            slug = generate_slug(name)
            if not slug:
                raise ValueError("Category name must contain letters or numbers")
            if self._slug_taken(db, slug):
                raise ValueError("A category with this name already exists")

            category = ForumCategory(
                id=str(uuid.uuid4()),
                name=name.strip(),
                slug=slug,
                description=description,
                color=color or "#3b82f6",
                sort_order=sort_order,
                is_active=is_active,
            )
            db.add(category)
            try:
                db.commit()
            except IntegrityError:
                # Lost a race with a concurrent insert of the same slug
                db.rollback()
                raise ValueError("A category with this name already exists")
            db.refresh(category)

            self.logger.info(f"create_category: Success - {category.id} ({slug})")
            return category
        except Exception as e:
            db.rollback()
            self.logger.error(f"create_category: Failure - {e}")
            raise

    def update_category(self, db: Session, category_id: str, **changes) -> ForumCategory:
        self.logger.info(f"update_category: Entry - category: {category_id}")

        try:
            category = db.query(ForumCategory).filter(ForumCategory.id == category_id).first()
            if not category:
                raise LookupError("Category not found")

            name = changes.get('name')
            if name is not None:
                if not name.strip():
                    raise ValueError("Category name is required")
                slug = generate_slug(name)
                if not slug:
                    raise ValueError("Category name must contain letters or numbers")
                if self._slug_taken(db, slug, exclude_id=category_id):
                    raise ValueError("A category with this name already exists")
                category.name = name.strip()
                category.slug = slug

            for field in ('description', 'color', 'sort_order', 'is_active'):
                if changes.get(field) is not None:
                    setattr(category, field, changes[field])
            category.updated_at = datetime.utcnow()

            db.commit()
            db.refresh(category)
            self.logger.info(f"update_category: Success - {category_id}")
            return category
        except Exception as e:
            db.rollback()
            self.logger.error(f"update_category: Failure - {e}")
            raise

    def delete_category(self, db: Session, category_id: str):
        self.logger.info(f"delete_category: Entry - category: {category_id}")

        try:
            category = db.query(ForumCategory).filter(ForumCategory.id == category_id).first()
            if not category:
                raise LookupError("Category not found")

            post_count = db.query(ForumPost).filter(ForumPost.category_id == category_id).count()
            if post_count > 0:
                raise ValueError(f"Cannot delete category with {post_count} existing posts")

            db.delete(category)
            db.commit()
            self.logger.info(f"delete_category: Success - {category_id}")
        except Exception as e:
            db.rollback()
            self.logger.error(f"delete_category: Failure - {e}")
            raise

    # Posts

    def create_post(
        self,
        db: Session,
        user_id: str,
        category_id: str,
        content: str,
        title: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> ForumPost:
        self.logger.info(f"create_post: Entry - user: {user_id}, category: {category_id}, parent: {parent_id}")

        try:
            user = db.query(User).filter(User.id == user_id).first()
            if not user:
                raise LookupError("User not found")
            if user.forum_suspended:
                raise PermissionError("You are suspended from posting in the forum")

            if not content or not content.strip():
                raise ValueError("Post content is required")

            category = db.query(ForumCategory).filter(ForumCategory.id == category_id).first()
            if not category or not category.is_active:
                raise LookupError("Category not found")

            if parent_id:
                parent = db.query(ForumPost).filter(ForumPost.id == parent_id).first()
                if not parent:
                    raise LookupError("Parent post not found")
                if parent.category_id != category_id:
                    raise ValueError("Reply must be in the same category as its parent post")

            post = ForumPost(
                id=str(uuid.uuid4()),
                user_id=user_id,
                category_id=category_id,
                parent_id=parent_id,
                title=title or None,
                content=content.strip(),
            )
            db.add(post)
            db.commit()
            db.refresh(post)

            self.logger.info(f"create_post: Success - {post.id}")
            return post
        except Exception as e:
            db.rollback()
            self.logger.error(f"create_post: Failure - {e}")
            raise

    def list_posts(
        self,
        db: Session,
        category_id: Optional[str] = None,
        parent_id: Optional[str] = None,
        viewer_id: Optional[str] = None,
        limit: int = 50,
    ) -> list[dict]:
        """Posts newest first with vote totals; top-level posts unless a parent is given"""
        self.logger.info(f"list_posts: Entry - category: {category_id}, parent: {parent_id}")

        try:
            query = db.query(ForumPost)
            if category_id:
                query = query.filter(ForumPost.category_id == category_id)
            if parent_id:
                query = query.filter(ForumPost.parent_id == parent_id)
            else:
                query = query.filter(ForumPost.parent_id.is_(None))
            posts = query.order_by(ForumPost.created_at.desc()).limit(limit).all()

            post_ids = [p.id for p in posts]
            reply_counts = {}
            viewer_votes = {}
            if post_ids:
                reply_counts = dict(
                    db.query(ForumPost.parent_id, func.count(ForumPost.id))
                    .filter(ForumPost.parent_id.in_(post_ids))
                    .group_by(ForumPost.parent_id)
                    .all()
                )
                if viewer_id:
                    viewer_votes = dict(
                        db.query(UserVote.post_id, UserVote.vote_type)
                        .filter(UserVote.user_id == viewer_id, UserVote.post_id.in_(post_ids))
                        .all()
                    )

            result = []
            for post in posts:
                result.append({
                    'id': post.id,
                    'title': post.title,
                    'content': post.content,
                    'parent_id': post.parent_id,
                    'likes_count': post.likes_count,
                    'dislikes_count': post.dislikes_count,
                    'score': post.likes_count - post.dislikes_count,
                    'reply_count': reply_counts.get(post.id, 0),
                    'user_vote': viewer_votes.get(post.id),
                    'is_edited': post.is_edited,
                    'created_at': post.created_at.isoformat() if post.created_at else None,
                    'user': {
                        'id': post.user.id,
                        'first_name': post.user.first_name,
                        'last_name': post.user.last_name,
                    } if post.user else None,
                    'category': {
                        'id': post.category.id,
                        'name': post.category.name,
                        'slug': post.category.slug,
                    } if post.category else None,
                })

            self.logger.info(f"list_posts: Success - {len(result)} posts")
            return result
        except Exception as e:
            self.logger.error(f"list_posts: Failure - {e}")
            raise

    # Votes

    def record_vote(self, db: Session, user_id: str, post_id: str, vote: str) -> dict:
        """
        Apply a user's vote on a post.

        Voting the same way twice withdraws the vote; voting the other way
        switches it. Post counters are recomputed from the vote rows in the
        same transaction.
        """
        self.logger.info(f"record_vote: Entry - user: {user_id}, post: {post_id}, vote: {vote}")

        try:
            try:
                vote_type = VoteType(vote)
            except ValueError:
                raise ValueError("Vote must be 'up' or 'down'")

            post = db.query(ForumPost).filter(ForumPost.id == post_id).first()
            if not post:
                raise LookupError("Post not found")

            existing = db.query(UserVote).filter(
                UserVote.user_id == user_id,
                UserVote.post_id == post_id
            ).first()

            if existing is None:
                db.add(UserVote(id=str(uuid.uuid4()), user_id=user_id, post_id=post_id, vote_type=vote_type.value))
                user_vote = vote_type.value
            elif existing.vote_type == vote_type.value:
                db.delete(existing)
                user_vote = None
            else:
                existing.vote_type = vote_type.value
                user_vote = vote_type.value
            db.flush()

            counts = dict(
                db.query(UserVote.vote_type, func.count(UserVote.id))
                .filter(UserVote.post_id == post_id)
                .group_by(UserVote.vote_type)
                .all()
            )
            post.likes_count = counts.get(VoteType.UP.value, 0)
            post.dislikes_count = counts.get(VoteType.DOWN.value, 0)

            db.commit()

            result = {
                'post_id': post_id,
                'likes_count': post.likes_count,
                'dislikes_count': post.dislikes_count,
                'user_vote': user_vote,
            }
            self.logger.info(f"record_vote: Success - {result}")
            return result
        except Exception as e:
            db.rollback()
            self.logger.error(f"record_vote: Failure - {e}")
            raise
