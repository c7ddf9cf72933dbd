from typing import Dict, List, Optional, Union
from pydantic import BaseModel, Field, TypeAdapter


# ----------- stored records -----------

class Profile(BaseModel):
    address: str
    display_name: str
    profile_photo: Optional[str] = None
    bio: str = ""
    joined_date: Optional[float] = None
    updated_date: Optional[float] = None
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    fees_paid: Optional[str] = None
    # True only for profiles synthesized for authors who never saved one
    is_default: bool = False


class Post(BaseModel):
    id: str
    content: str
    photo: Optional[str] = None
    author: str
    timestamp: int
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    updated_at: Optional[int] = None
    is_edited: bool = False


class Reaction(BaseModel):
    """
    Likes of one post. liked_by is used as an ordered set and
    likes is always len(liked_by).
    """
    likes: int = 0
    liked_by: List[str] = Field(default_factory=list)


class Comment(BaseModel):
    id: str
    post_id: str
    author: str
    text: str
    timestamp: int


class PollOption(BaseModel):
    id: int
    text: str
    votes: int = 0
    percentage: int = 0
    voters: List[str] = Field(default_factory=list)


class Poll(BaseModel):
    id: str
    question: str
    options: List[PollOption]
    duration: float = Field(allow_inf_nan=False)
    end_time: float = Field(allow_inf_nan=False)
    author: str
    total_votes: int = 0
    timestamp: int
    tx_hash: Optional[str] = None


# Snapshot shapes, one per collection file
POSTS = TypeAdapter(List[Post])
PROFILES = TypeAdapter(Dict[str, Profile])
REACTIONS = TypeAdapter(Dict[str, Reaction])
COMMENTS = TypeAdapter(Dict[str, List[Comment]])
POLLS = TypeAdapter(List[Poll])


# ----------- read views -----------

class PostView(Post):
    likes: int = 0
    liked_by: List[str] = Field(default_factory=list)
    comments: int = 0
    comments_list: List[Comment] = Field(default_factory=list)
    author_profile: Profile


class PollView(Poll):
    author_profile: Profile
    is_active: bool


# ----------- request payloads -----------
# Required fields default to None so that the store reports them as
# ValidationError instead of the framework rejecting the body.

class ProfileIn(BaseModel):
    display_name: Optional[str] = Field(None, examples=["Alice"])
    profile_photo: Optional[str] = None
    bio: str = ""
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    fees_paid: Optional[str] = None


class PostIn(BaseModel):
    id: Optional[str] = Field(None, examples=["p1"])
    content: Optional[str] = Field(None, examples=["hello"])
    photo: Optional[str] = None
    author: Optional[str] = Field(None, examples=["0xAA"])
    timestamp: Optional[int] = None
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None


class PostUpdateIn(BaseModel):
    content: Optional[str] = None
    user: Optional[str] = None


class LikeIn(BaseModel):
    user: Optional[str] = Field(None, examples=["0xBB"])


class CommentIn(BaseModel):
    id: Optional[str] = None
    author: Optional[str] = None
    text: Optional[str] = None
    timestamp: Optional[int] = None


class OptionIn(BaseModel):
    text: str = ""


class PollIn(BaseModel):
    id: Optional[str] = None
    question: Optional[str] = Field(None, examples=["Tabs or spaces?"])
    options: List[Union[str, int, OptionIn]] = Field(default_factory=list, examples=[["Tabs", "Spaces"]])
    duration: Optional[float] = Field(None, description="Hours the poll stays open")
    end_time: Optional[float] = None
    author: Optional[str] = None
    timestamp: Optional[int] = None
    tx_hash: Optional[str] = None


class VoteIn(BaseModel):
    user: Optional[str] = Field(None, examples=["0xCC"])
    option_id: Optional[int] = Field(None, examples=[0])
