import math
import time

from flask import current_app
from sqlalchemy import func

from quizburst import db
from quizburst.models import Answer, Participant, Question, QuizSession, SESSION_ACTIVE, upsert, utcnow
from .errors import NotFound, SessionNotActive, ValidationError
from .state import current_question_id, get_by_id, participant_count

# Occupies the answer slot of a participant whose countdown ran out
TIMEOUT_SENTINEL = -1

ANSWER_KEY = ['session_id', 'participant_id', 'question_id']


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_points(is_correct: bool, time_remaining, time_limit, base_points=None, bonus_range=None) -> int:
    """Time-bonus score: base + (remaining / limit) * bonus, or 0 when wrong."""
    if not is_correct:
        return 0
    if base_points is None:
        base_points = current_app.config.get('BASE_POINTS', 30)
    if bonus_range is None:
        bonus_range = current_app.config.get('BONUS_RANGE', 70)
    time_limit = float(time_limit or 0)
    if time_limit <= 0:
        return round_half_up(base_points)
    remaining = min(max(float(time_remaining or 0), 0.0), time_limit)
    return round_half_up(base_points + (remaining / time_limit) * bonus_range)


def server_time_remaining(session: QuizSession, now=None) -> float:
    now = time.time() if now is None else now
    limit = float(session.quiz.time_limit)
    started = session.question_started_at if session.question_started_at is not None else now
    return max(0.0, limit - (now - started))


def count_distinct_answered_participants(session_id: int, question_id: int) -> int:
    """Participants holding a real (non-timeout) answer for the question."""
    count = (
        db.session.query(func.count(func.distinct(Answer.participant_id)))
        .filter(
            Answer.session_id == session_id,
            Answer.question_id == question_id,
            Answer.option_index != TIMEOUT_SENTINEL,
        )
        .scalar()
    )
    return int(count or 0)


def mark_timeouts(session_id: int, question_id: int) -> int:
    """Fill every empty answer slot for the question with a timeout marker.

    Does not commit; the caller owns the transaction.
    """
    participant_ids = [pid for (pid,) in db.session.query(Participant.id).filter_by(session_id=session_id).all()]
    if not participant_ids:
        return 0
    now = utcnow()
    rows = [
        {
            'session_id': session_id,
            'participant_id': pid,
            'question_id': question_id,
            'option_index': TIMEOUT_SENTINEL,
            'time_remaining': 0.0,
            'points': 0,
            'submitted_at': now,
        }
        for pid in participant_ids
    ]
    return upsert(Answer, rows, ANSWER_KEY)


def _parse_option(option_index, question: Question) -> int:
    try:
        option_index = int(option_index)
    except (TypeError, ValueError):
        raise ValidationError('option_index must be an integer')
    if option_index != TIMEOUT_SENTINEL and not 0 <= option_index < len(question.options):
        raise ValidationError(f'option_index must be between 0 and {len(question.options) - 1}')
    return option_index


def submit_answer(session_id, participant_id, question_id, option_index, time_remaining=None) -> dict:
    """Record one participant's answer for the session's current question.

    Resubmissions overwrite the earlier answer for the same slot. A timeout
    marker never replaces a real answer, and once a slot holds a timeout
    marker it accepts nothing else. When ``time_remaining`` is None it is
    derived from the server's question start stamp.
    """
    session = get_by_id(session_id)
    if session.status != SESSION_ACTIVE:
        raise SessionNotActive(f'Session is {session.status}')
    current_qid = current_question_id(session)
    try:
        question_id = int(question_id)
        participant_id = int(participant_id)
    except (TypeError, ValueError):
        raise ValidationError('question_id and participant_id must be integers')
    if current_qid is None or question_id != current_qid:
        raise SessionNotActive('That question is no longer open')

    participant = Participant.query.filter_by(id=participant_id, session_id=session.id).first()
    if not participant:
        raise NotFound('Participant not found in this session')

    question = db.session.get(Question, current_qid)
    if not question:
        raise NotFound('Question not found')
    option_index = _parse_option(option_index, question)

    limit = session.quiz.time_limit
    if time_remaining is None:
        time_remaining = server_time_remaining(session)
    time_remaining = min(max(float(time_remaining), 0.0), float(limit))

    is_timeout = option_index == TIMEOUT_SENTINEL
    is_correct = (not is_timeout) and option_index == question.correct_option
    points = compute_points(is_correct, time_remaining, limit)

    values = {
        'session_id': session.id,
        'participant_id': participant.id,
        'question_id': question.id,
        'option_index': option_index,
        'time_remaining': time_remaining,
        'points': points,
        'submitted_at': utcnow(),
    }
    if is_timeout:
        written = upsert(Answer, values, ANSWER_KEY)
    else:
        written = upsert(
            Answer,
            values,
            ANSWER_KEY,
            set_={k: values[k] for k in ('option_index', 'time_remaining', 'points', 'submitted_at')},
            where=Answer.__table__.c.option_index != TIMEOUT_SENTINEL,
        )
    db.session.commit()

    accepted = written > 0
    if not accepted:
        kept = Answer.query.filter_by(session_id=session.id, participant_id=participant.id, question_id=question.id).first()
        points = kept.points if kept else 0

    answered = count_distinct_answered_participants(session.id, question.id)
    total = participant_count(session.id)
    current_app.logger.info(
        f"[answer] session={session.id} participant={participant.id} question={question.id} "
        f"option={option_index} points={points} accepted={accepted} answered={answered}/{total}"
    )
    return {
        'accepted': accepted,
        'points': points,
        'answered_count': answered,
        'total_participants': total,
        'all_answered': total > 0 and answered >= total,
    }
