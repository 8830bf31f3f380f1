# backend/quizledger/services/leaderboard.py
"""Read-only rankings over UserScore rows. Nothing here writes to the session."""
from dataclasses import dataclass, field
from typing import Dict, List

from sqlalchemy.orm import Session

from quizledger import crud, models


def win_rate(score: int, total_completed: int) -> float:
    return score / total_completed if total_completed else 0.0


@dataclass
class LeaderboardEntry:
    user: str
    topic: str
    score: int
    total_completed: int
    total_rewards: int
    last_activity: int
    win_rate: float

    @classmethod
    def from_score(cls, row: models.UserScore, topic_name: str) -> "LeaderboardEntry":
        return cls(
            user=row.user,
            topic=topic_name,
            score=row.score,
            total_completed=row.total_completed,
            total_rewards=row.total_rewards,
            last_activity=row.last_activity or 0,
            win_rate=win_rate(row.score, row.total_completed),
        )


@dataclass
class GlobalLeaderboardEntry:
    user: str
    total_score: int = 0
    total_completed: int = 0
    total_rewards: int = 0
    win_rate: float = 0.0
    topics: Dict[str, LeaderboardEntry] = field(default_factory=dict)


@dataclass
class TopicStats:
    name: str
    owner: str
    is_active: bool
    total_quizzes: int
    total_participants: int
    top_performers: List[LeaderboardEntry] = field(default_factory=list)


def topic_leaderboard(db: Session, topic_name: str, limit: int = 100) -> List[LeaderboardEntry]:
    """Rank a topic by wins, then win rate, then quizzes completed."""
    topic = crud.get_topic(db, topic_name)
    entries = [LeaderboardEntry.from_score(row, topic.name) for row in crud.list_user_scores(db, topic_name=topic.name)]
    entries.sort(key=lambda e: (-e.score, -e.win_rate, -e.total_completed, e.user))
    return entries[:limit]


def _aggregate(db: Session) -> Dict[str, GlobalLeaderboardEntry]:
    names = {t.address: t.name for t in crud.list_topics(db)}
    users: Dict[str, GlobalLeaderboardEntry] = {}
    for row in crud.list_user_scores(db):
        entry = users.setdefault(row.user, GlobalLeaderboardEntry(user=row.user))
        entry.total_score += row.score
        entry.total_completed += row.total_completed
        entry.total_rewards += row.total_rewards
        topic_name = names.get(row.topic_address, row.topic_address)
        entry.topics[topic_name] = LeaderboardEntry.from_score(row, topic_name)
    for entry in users.values():
        entry.win_rate = win_rate(entry.total_score, entry.total_completed)
    return users


def global_leaderboard(db: Session, limit: int = 100) -> List[GlobalLeaderboardEntry]:
    """Sum each user's rows across topics; rank by wins, rewards, then quizzes completed."""
    entries = list(_aggregate(db).values())
    entries.sort(key=lambda e: (-e.total_score, -e.total_rewards, -e.total_completed, e.user))
    return entries[:limit]


def user_stats(db: Session, user: str, history_limit: int = 10) -> dict:
    entry = _aggregate(db).get(user) or GlobalLeaderboardEntry(user=user)
    return {
        "user": user,
        "total_score": entry.total_score,
        "total_completed": entry.total_completed,
        "total_rewards": entry.total_rewards,
        "win_rate": entry.win_rate,
        "topics": list(entry.topics.values()),
        "recent_history": crud.get_user_history(db, user, limit=history_limit),
    }


def topic_stats(db: Session, top: int = 3) -> List[TopicStats]:
    stats = [
        TopicStats(
            name=t.name,
            owner=t.owner,
            is_active=t.is_active,
            total_quizzes=t.total_quizzes,
            total_participants=t.total_participants,
            top_performers=topic_leaderboard(db, t.name, limit=top),
        )
        for t in crud.list_topics(db)
    ]
    stats.sort(key=lambda s: (-s.total_participants, -s.total_quizzes, s.name))
    return stats
