# in-memory collections + the operations that mutate them
import logging
import threading
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import TypeAdapter

from . import polls as tally
from . import reactions
from .auth import normalize_identity, require_owner
from .config import COLLECTIONS, DEFAULT_POLL_DURATION_HOURS
from .errors import NotFound, PersistenceFailure, ValidationError
from .models import (
    COMMENTS,
    POLLS,
    POSTS,
    PROFILES,
    REACTIONS,
    Comment,
    Poll,
    PollView,
    Post,
    PostView,
    Profile,
    Reaction,
)
from .snapshots import SnapshotBackend

log = logging.getLogger(__name__)

ADAPTERS: Dict[str, TypeAdapter] = {
    "posts": POSTS,
    "profiles": PROFILES,
    "reactions": REACTIONS,
    "comments": COMMENTS,
    "polls": POLLS,
}


def _blank(value: Optional[str]) -> bool:
    return not value or not str(value).strip()


def _short(value: str, n: int = 8) -> str:
    return value[-n:] if len(value) > n else value


def default_profile(address: str) -> Profile:
    """
    Stand-in profile for an author who never saved one.
    """
    address = normalize_identity(address)
    return Profile(address=address, display_name=f"User {address[-4:]}", is_default=True)


class ContentStore:
    """
    Owns posts, profiles, reactions, comments and polls.

    Every read and mutation happens under one store-wide lock. Snapshot
    writes happen outside it, on a copy taken under it; per-collection
    versions keep an older copy from overwriting a newer one on disk.
    """

    def __init__(
        self,
        backend: SnapshotBackend,
        clock: Callable[[], float] = time.time,
        default_poll_hours: float = DEFAULT_POLL_DURATION_HOURS,
    ) -> None:
        self.backend = backend
        self.clock = clock
        self.default_poll_hours = default_poll_hours

        self._lock = threading.RLock()
        self._write_lock = threading.Lock()

        # newest first, like the feed is displayed
        self._posts: List[Post] = []
        self._profiles: Dict[str, Profile] = {}
        # post_id -> Reaction / comments in insertion order
        self._reactions: Dict[str, Reaction] = {}
        self._comments: Dict[str, List[Comment]] = {}
        self._polls: List[Poll] = []

        self._versions: Dict[str, int] = {name: 0 for name in COLLECTIONS}
        self._written: Dict[str, int] = {name: -1 for name in COLLECTIONS}

    # ----------- snapshots -----------

    def load(self) -> None:
        """
        Initialize every collection from its snapshot, or empty when absent.
        """
        loaded = {
            name: self.backend.load(name, ADAPTERS[name], [] if name in ("posts", "polls") else {})
            for name in COLLECTIONS
        }
        with self._lock:
            self._posts = loaded["posts"]
            self._profiles = loaded["profiles"]
            self._reactions = loaded["reactions"]
            self._comments = loaded["comments"]
            self._polls = loaded["polls"]
            for name in COLLECTIONS:
                self._versions[name] = 0
                self._written[name] = 0

        log.info(
            "Loaded %d posts, %d profiles, %d polls from %s",
            len(loaded["posts"]),
            len(loaded["profiles"]),
            len(loaded["polls"]),
            self.backend.data_dir,
        )

    def _collection(self, name: str) -> Any:
        return {
            "posts": self._posts,
            "profiles": self._profiles,
            "reactions": self._reactions,
            "comments": self._comments,
            "polls": self._polls,
        }[name]

    def _touch(self, *names: str) -> None:
        for name in names:
            self._versions[name] += 1

    def _capture(self, names) -> Dict[str, tuple]:
        """
        JSON-ready copies of the named collections with their versions.
        """
        with self._lock:
            return {
                name: (self._versions[name], ADAPTERS[name].dump_python(self._collection(name), mode="json"))
                for name in names
            }

    def _write(self, captured: Dict[str, tuple]) -> Dict[str, bool]:
        results = {}
        with self._write_lock:
            for name, (version, data) in captured.items():
                if version < self._written[name]:
                    # a newer copy already reached disk
                    results[name] = True
                    continue
                ok = self.backend.write(name, data)
                if ok:
                    self._written[name] = version
                results[name] = ok
        return results

    def persist(self, *names: str) -> Dict[str, bool]:
        """
        Best-effort write of the named collections; failures are only logged
        and the next autosave tries again.
        """
        results = self._write(self._capture(names))
        failed = [name for name, ok in results.items() if not ok]
        if failed:
            log.error("Snapshot failed for %s; will retry on next autosave", ", ".join(failed))
        return results

    def _persist_required(self, name: str, what: str) -> None:
        if not self._write(self._capture([name]))[name]:
            raise PersistenceFailure(f"Failed to save {what}")

    def snapshot_all(self) -> Dict[str, bool]:
        return self._write(self._capture(COLLECTIONS))

    def backup(self) -> Path:
        """
        Write all five collections into one timestamped file.
        """
        payload = {name: data for name, (_, data) in self._capture(COLLECTIONS).items()}
        payload["timestamp"] = self.clock()
        path = self.backend.write_backup(payload)
        log.info("Backup created: %s", path)
        return path

    # ----------- helpers (lock held) -----------

    def _now(self) -> int:
        return int(self.clock())

    def _find_post(self, post_id: str) -> Post:
        for post in self._posts:
            if post.id == post_id:
                return post
        raise NotFound("Post not found")

    def _find_poll(self, poll_id: str) -> Poll:
        for poll in self._polls:
            if poll.id == poll_id:
                return poll
        raise NotFound("Poll not found")

    def _profile_for(self, address: str) -> Profile:
        return self._profiles.get(normalize_identity(address)) or default_profile(address)

    # ----------- profiles -----------

    def get_profile(self, address: str) -> Profile:
        with self._lock:
            profile = self._profiles.get(normalize_identity(address))
            if profile is None:
                raise NotFound("Profile not found")
            return profile.model_copy()

    def list_profiles(self) -> List[Profile]:
        with self._lock:
            return [p.model_copy() for p in self._profiles.values()]

    def upsert_profile(
        self,
        address: str,
        display_name: Optional[str],
        profile_photo: Optional[str] = None,
        bio: Optional[str] = "",
        tx_hash: Optional[str] = None,
        block_number: Optional[int] = None,
        fees_paid: Optional[str] = None,
    ) -> Profile:
        address = normalize_identity(address)
        if not address:
            raise ValidationError("Address is required")
        if _blank(display_name):
            raise ValidationError("Display name is required")

        with self._lock:
            now = self.clock()
            existing = self._profiles.get(address)
            profile = Profile(
                address=address,
                display_name=display_name,
                profile_photo=profile_photo or None,
                bio=bio or "",
                joined_date=existing.joined_date if existing else now,
                updated_date=now,
                tx_hash=tx_hash or None,
                block_number=block_number,
                fees_paid=fees_paid or None,
            )
            self._profiles[address] = profile
            self._touch("profiles")
            result = profile.model_copy()

        self.persist("profiles")
        log.info(
            "Profile %s for %s: %r",
            "updated" if existing else "created",
            address[:8],
            display_name,
        )
        if tx_hash:
            log.info("  blockchain tx %s fee %s", tx_hash[:16], fees_paid)
        return result

    # ----------- posts -----------

    def create_post(
        self,
        post_id: Optional[str],
        content: Optional[str],
        author: Optional[str],
        photo: Optional[str] = None,
        timestamp: Optional[int] = None,
        tx_hash: Optional[str] = None,
        block_number: Optional[int] = None,
    ) -> Post:
        if _blank(post_id) or _blank(content) or _blank(author):
            raise ValidationError("Missing required fields")

        with self._lock:
            if any(p.id == post_id for p in self._posts):
                raise ValidationError(f"Post {post_id} already exists")
            post = Post(
                id=post_id,
                content=content,
                photo=photo or None,
                author=normalize_identity(author),
                timestamp=timestamp or self._now(),
                tx_hash=tx_hash,
                block_number=block_number,
            )
            self._posts.insert(0, post)
            self._reactions[post_id] = Reaction()
            self._comments[post_id] = []
            self._touch("posts", "reactions", "comments")
            result = post.model_copy()
            name = self._profile_for(post.author).display_name

        self.persist("posts", "reactions", "comments")
        log.info("New post %s by %s (%s): %r", _short(post_id), name, result.author[:8], content[:50])
        if tx_hash:
            log.info("  blockchain tx %s", tx_hash[:16])
        return result

    def get_posts(self) -> List[PostView]:
        with self._lock:
            return [
                reactions.enrich_post(
                    post,
                    self._reactions.get(post.id),
                    self._comments.get(post.id),
                    self._profile_for(post.author),
                )
                for post in self._posts
            ]

    def get_post(self, post_id: str) -> PostView:
        with self._lock:
            post = self._find_post(post_id)
            return reactions.enrich_post(
                post,
                self._reactions.get(post.id),
                self._comments.get(post.id),
                self._profile_for(post.author),
            )

    def update_post(self, post_id: str, caller: Optional[str], content: Optional[str]) -> Post:
        if _blank(caller):
            raise ValidationError("User address required")
        if _blank(content):
            raise ValidationError("Content cannot be empty")

        with self._lock:
            post = self._find_post(post_id)
            require_owner(post, caller, "posts")
            post.content = content.strip()
            post.updated_at = self._now()
            post.is_edited = True
            self._touch("posts")
            result = post.model_copy()
            name = self._profile_for(caller).display_name

        self.persist("posts")
        log.info("Post %s edited by %s", _short(post_id), name)
        return result

    def delete_post(self, post_id: str, caller: Optional[str]) -> None:
        """
        Remove the post together with its reaction and comments,
        all under one lock acquisition.
        """
        if _blank(caller):
            raise ValidationError("User address required")

        with self._lock:
            post = self._find_post(post_id)
            require_owner(post, caller, "posts")
            self._posts = [p for p in self._posts if p.id != post_id]
            self._reactions.pop(post_id, None)
            self._comments.pop(post_id, None)
            self._touch("posts", "reactions", "comments")
            name = self._profile_for(caller).display_name

        self.persist("posts", "reactions", "comments")
        log.info("Post %s deleted by %s", _short(post_id), name)

    # ----------- reactions + comments -----------

    def toggle_like(self, post_id: str, identity: Optional[str]) -> reactions.LikeToggle:
        identity = normalize_identity(identity)
        if not identity:
            raise ValidationError("User address required")

        with self._lock:
            self._find_post(post_id)
            reaction = self._reactions.setdefault(post_id, Reaction())
            result = reactions.toggle(reaction, identity)
            self._touch("reactions")
            name = self._profile_for(identity).display_name

        self.persist("reactions")
        log.info("%s from %s on post %s", "Like" if result.liked else "Unlike", name, _short(post_id))
        return result

    def add_comment(
        self,
        post_id: str,
        author: Optional[str],
        text: Optional[str],
        comment_id: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> Comment:
        if _blank(author) or _blank(text):
            raise ValidationError("Author and text required")

        with self._lock:
            self._find_post(post_id)
            comment = reactions.new_comment(
                post_id,
                normalize_identity(author),
                text,
                now=self._now(),
                comment_id=comment_id,
                timestamp=timestamp,
            )
            self._comments.setdefault(post_id, []).append(comment)
            self._touch("comments")
            result = comment.model_copy()
            name = self._profile_for(author).display_name

        self.persist("comments")
        log.info("Comment by %s on post %s: %r", name, _short(post_id), text[:30])
        return result

    def get_comments(self, post_id: str) -> List[Comment]:
        with self._lock:
            self._find_post(post_id)
            return [c.model_copy() for c in self._comments.get(post_id, [])]

    # ----------- polls -----------

    def create_poll(
        self,
        question: Optional[str],
        options,
        author: Optional[str],
        duration_hours: Optional[float] = None,
        poll_id: Optional[str] = None,
        end_time: Optional[float] = None,
        timestamp: Optional[int] = None,
        tx_hash: Optional[str] = None,
    ) -> Poll:
        """
        Create a poll and write the polls snapshot before returning.
        Raises PersistenceFailure if that write fails.
        """
        if _blank(question) or _blank(author):
            raise ValidationError("Missing required fields")
        texts = tally.option_texts(options)
        poll_id = poll_id or uuid.uuid4().hex

        with self._lock:
            if any(p.id == poll_id for p in self._polls):
                raise ValidationError(f"Poll {poll_id} already exists")
            poll = tally.new_poll(
                poll_id,
                question.strip(),
                texts,
                normalize_identity(author),
                duration_hours if duration_hours is not None else self.default_poll_hours,
                now=self.clock(),
                end_time=end_time,
                timestamp=timestamp,
                tx_hash=tx_hash,
            )
            self._polls.insert(0, poll)
            self._touch("polls")
            result = poll.model_copy(deep=True)
            name = self._profile_for(poll.author).display_name
            total = len(self._polls)

        self._persist_required("polls", "poll")
        log.info("New poll %s by %s: %r (%d options, %d polls now)", _short(poll_id), name, result.question, len(texts), total)
        return result

    def get_polls(self) -> List[PollView]:
        with self._lock:
            now = self.clock()
            return [tally.poll_view(p, self._profile_for(p.author), now) for p in self._polls]

    def get_poll(self, poll_id: str) -> PollView:
        with self._lock:
            poll = self._find_poll(poll_id)
            return tally.poll_view(poll, self._profile_for(poll.author), self.clock())

    def vote(self, poll_id: str, identity: Optional[str], option_id: Optional[int]) -> Poll:
        """
        Cast or move identity's vote and write the polls snapshot before
        returning. Raises PersistenceFailure if that write fails.
        """
        identity = normalize_identity(identity)
        if not identity or option_id is None:
            raise ValidationError("User address and option ID required")

        with self._lock:
            poll = self._find_poll(poll_id)
            tally.cast_vote(poll, identity, option_id, now=self.clock())
            self._touch("polls")
            result = poll.model_copy(deep=True)
            name = self._profile_for(identity).display_name

        self._persist_required("polls", "vote")
        log.info("Vote from %s on poll %s for option %d", name, _short(poll_id), option_id)
        return result

    def delete_poll(self, poll_id: str, caller: Optional[str]) -> None:
        if _blank(caller):
            raise ValidationError("User address required")

        with self._lock:
            poll = self._find_poll(poll_id)
            require_owner(poll, caller, "polls")
            self._polls = [p for p in self._polls if p.id != poll_id]
            self._touch("polls")
            name = self._profile_for(caller).display_name

        self.persist("polls")
        log.info("Poll %s deleted by %s", _short(poll_id), name)

    # ----------- aggregates -----------

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            now = self.clock()
            authors = {p.author for p in self._posts}
            profiles = list(self._profiles.values())
            return {
                "total_posts": len(self._posts),
                "total_likes": sum(len(r.liked_by) for r in self._reactions.values()),
                "total_comments": sum(len(c) for c in self._comments.values()),
                "total_profiles": len(profiles),
                "active_users": len(authors),
                "total_polls": len(self._polls),
                "active_polls": sum(1 for p in self._polls if tally.is_active(p, now)),
                "total_votes": sum(p.total_votes for p in self._polls),
                "profiles_with_photos": sum(1 for p in profiles if p.profile_photo),
                "profiles_with_blockchain_tx": sum(1 for p in profiles if p.tx_hash),
                "average_posts_per_user": round(len(self._posts) / len(authors), 2) if authors else 0,
            }

    def counts(self) -> Dict[str, int]:
        with self._lock:
            return {
                "posts": len(self._posts),
                "profiles": len(self._profiles),
                "polls": len(self._polls),
            }
