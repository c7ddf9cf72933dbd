# likes + comments helpers, all called with the store lock held
import uuid
from typing import List, NamedTuple, Optional

from .models import Comment, PostView, Post, Profile, Reaction


class LikeToggle(NamedTuple):
    likes: int
    liked: bool


def toggle(reaction: Reaction, identity: str) -> LikeToggle:
    """
    Flip identity's membership in liked_by and recount.
    Returns the new count and the new membership state.
    """
    if identity in reaction.liked_by:
        reaction.liked_by = [addr for addr in reaction.liked_by if addr != identity]
        liked = False
    else:
        reaction.liked_by.append(identity)
        liked = True

    reaction.likes = len(reaction.liked_by)
    return LikeToggle(likes=reaction.likes, liked=liked)


def new_comment(
    post_id: str,
    author: str,
    text: str,
    now: int,
    comment_id: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> Comment:
    return Comment(
        id=comment_id or f"{post_id}_{uuid.uuid4().hex[:12]}",
        post_id=post_id,
        author=author,
        text=text,
        timestamp=timestamp or now,
    )


def enrich_post(
    post: Post,
    reaction: Optional[Reaction],
    comments: Optional[List[Comment]],
    profile: Profile,
) -> PostView:
    """
    Read view of a post with its current likes, comments and author profile.
    Everything is copied so the view never aliases store state.
    """
    reaction = reaction or Reaction()
    comments = comments or []
    return PostView(
        **post.model_dump(),
        likes=len(reaction.liked_by),
        liked_by=list(reaction.liked_by),
        comments=len(comments),
        comments_list=[c.model_copy() for c in comments],
        author_profile=profile.model_copy(),
    )
