from sqlalchemy import and_, case, func

from quizburst import db
from quizburst.models import Answer, Participant, as_utc
from .ledger import round_half_up
from .state import get_by_id


def accuracy(correct: int, answered: int) -> int:
    return round_half_up(correct * 100.0 / answered) if answered else 0


def leaderboard(session_id) -> list:
    """Scores for every participant of the session, recomputed from answers.

    Ordered by total score descending; ties go to whoever joined first
    (joined_at, then participant id).
    """
    session = get_by_id(session_id)
    correct = case((Answer.points > 0, 1), else_=0)
    rows = (
        db.session.query(
            Participant.id,
            Participant.name,
            Participant.joined_at,
            func.coalesce(func.sum(Answer.points), 0),
            func.coalesce(func.sum(correct), 0),
            func.count(Answer.id),
        )
        .outerjoin(Answer, and_(Answer.participant_id == Participant.id, Answer.session_id == Participant.session_id))
        .filter(Participant.session_id == session.id)
        .group_by(Participant.id, Participant.name, Participant.joined_at)
        .all()
    )
    rows.sort(key=lambda r: (-int(r[3]), as_utc(r[2]), r[0]))

    board = []
    for rank, (pid, name, _joined, total, correct_count, answered) in enumerate(rows, start=1):
        board.append({
            'rank': rank,
            'participant_id': pid,
            'name': name,
            'total_score': int(total),
            'correct_count': int(correct_count),
            'total_answered': int(answered),
            'accuracy': accuracy(int(correct_count), int(answered)),
        })
    return board
