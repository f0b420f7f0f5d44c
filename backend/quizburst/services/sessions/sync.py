"""Polling contract.

There is no push channel: clients poll ``session_status`` (cheap, safe at
sub-second intervals) and re-fetch ``current_question`` whenever
``current_question_index`` moves. ``is_complete`` is terminal whatever the
status says.
"""
import time

from quizburst import db
from quizburst.models import Question, SESSION_WAITING
from .errors import InvalidState, NotFound
from .ledger import count_distinct_answered_participants
from .state import current_question_id, get_by_id, participant_count


def session_status(session_id) -> dict:
    session = get_by_id(session_id)
    total = session.total_questions if session.total_questions is not None else len(session.quiz.questions)
    participants = participant_count(session.id)
    question_id = current_question_id(session)
    answered = count_distinct_answered_participants(session.id, question_id) if question_id else 0
    return {
        'session_id': session.id,
        'join_code': session.join_code,
        'status': session.status,
        'current_question_index': session.current_question_index,
        'total_questions': total,
        'participant_count': participants,
        'answered_count': answered,
        'all_answered': participants > 0 and question_id is not None and answered >= participants,
        'is_complete': session.is_complete,
        'time_limit': session.quiz.time_limit,
        'question_deadline': session.question_deadline,
        'server_time': time.time(),
    }


def _reveal_previous(session) -> dict:
    index = session.current_question_index - 1
    ids = session.question_ids
    if not 0 <= index < len(ids):
        return None
    question = db.session.get(Question, ids[index])
    if not question:
        return None
    return {
        'id': question.id,
        'index': index,
        'correct_option': question.correct_option,
        'explanation': question.explanation,
    }


def current_question(session_id) -> dict:
    """Payload for the present index only; never the rest of the quiz."""
    session = get_by_id(session_id)
    if session.status == SESSION_WAITING:
        raise InvalidState('Session has not started yet')

    total = session.total_questions or 0
    payload = {
        'session_id': session.id,
        'status': session.status,
        'index': session.current_question_index,
        'total': total,
        'time_limit': session.quiz.time_limit,
        'previous': _reveal_previous(session),
        'server_time': time.time(),
    }
    question_id = current_question_id(session)
    if question_id is None:
        payload.update({'question': None, 'is_complete': True, 'question_started_at': None, 'deadline': None})
        return payload

    question = db.session.get(Question, question_id)
    if not question:
        raise NotFound('Question not found')
    payload.update({
        'question': question.to_dict(),
        'is_complete': False,
        'question_started_at': session.question_started_at,
        'deadline': session.question_deadline,
    })
    return payload
