# poll construction + tally, all called with the store lock held
import math
from typing import Iterable, List, Optional, Union

from .errors import Expired, ValidationError
from .models import OptionIn, Poll, PollOption, PollView, Profile

SECONDS_PER_HOUR = 3600


def option_texts(options: Iterable[Union[str, int, OptionIn, dict]]) -> List[str]:
    """
    Accepts plain strings, numbers or {"text": ...} objects and drops blank entries.
    """
    texts = []
    for opt in options or []:
        if isinstance(opt, OptionIn):
            text = opt.text
        elif isinstance(opt, dict):
            text = opt.get("text") or ""
        else:
            text = "" if opt is None else opt
        text = str(text).strip()
        if text:
            texts.append(text)
    return texts


def new_poll(
    poll_id: str,
    question: str,
    options: List[str],
    author: str,
    duration_hours: float,
    now: float,
    end_time: Optional[float] = None,
    timestamp: Optional[int] = None,
    tx_hash: Optional[str] = None,
) -> Poll:
    if len(options) < 2:
        raise ValidationError("A poll needs at least 2 non-empty options")
    if not math.isfinite(duration_hours) or duration_hours <= 0:
        raise ValidationError("Poll duration must be a positive number of hours")
    if end_time is None:
        end_time = now + duration_hours * SECONDS_PER_HOUR
    elif not math.isfinite(end_time) or end_time <= now:
        raise ValidationError("Poll end time must be in the future")

    return Poll(
        id=poll_id,
        question=question,
        options=[PollOption(id=i, text=text) for i, text in enumerate(options)],
        duration=duration_hours,
        end_time=end_time,
        author=author,
        total_votes=0,
        timestamp=timestamp or int(now),
        tx_hash=tx_hash,
    )


def is_active(poll: Poll, now: float) -> bool:
    return poll.end_time > now


def percentage(votes: int, total: int) -> int:
    """
    Share of total as an integer percent, halves rounded up.
    """
    if total <= 0:
        return 0
    return (200 * votes + total) // (2 * total)


def retally(poll: Poll) -> None:
    """
    Recompute counts, total and percentages from the voter sets.
    Always from scratch so rounding never accumulates.
    """
    for option in poll.options:
        option.votes = len(option.voters)
    poll.total_votes = sum(option.votes for option in poll.options)
    for option in poll.options:
        option.percentage = percentage(option.votes, poll.total_votes)


def cast_vote(poll: Poll, identity: str, option_id: int, now: float) -> None:
    """
    Record identity's vote for option_id. A previous vote by the same
    identity anywhere in the poll is removed first, so re-voting moves it.
    """
    if not is_active(poll, now):
        raise Expired("Poll has ended")
    if option_id is None or not 0 <= option_id < len(poll.options):
        raise ValidationError("Invalid option ID")

    for option in poll.options:
        if identity in option.voters:
            option.voters = [v for v in option.voters if v != identity]

    poll.options[option_id].voters.append(identity)
    retally(poll)


def poll_view(poll: Poll, profile: Profile, now: float) -> PollView:
    return PollView(
        **poll.model_dump(),
        author_profile=profile.model_copy(),
        is_active=is_active(poll, now),
    )
