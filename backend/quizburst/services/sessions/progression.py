import time
from typing import Optional

from flask import current_app

from quizburst import db
from quizburst.models import QuizSession, SESSION_ACTIVE, SESSION_ENDED, utcnow
from .errors import InvalidState, ValidationError
from .ledger import count_distinct_answered_participants, mark_timeouts
from .state import current_question_id, get_by_id, mark_participants_completed, participant_count


def all_answered(session: QuizSession, question_id: Optional[int] = None) -> bool:
    """Every joined participant holds a real answer for the current question.

    Reported to pollers only; the question still runs until its timer ends.
    """
    question_id = question_id or current_question_id(session)
    if question_id is None:
        return False
    total = participant_count(session.id)
    return total > 0 and count_distinct_answered_participants(session.id, question_id) >= total


def _progress(session: QuizSession, advanced: bool) -> dict:
    return {
        'new_index': session.current_question_index,
        'is_complete': session.is_complete,
        'total_questions': session.total_questions or 0,
        'status': session.status,
        'advanced': advanced,
    }


def advance(session_id, expected_index) -> dict:
    """Move the session off ``expected_index`` onto the next question.

    ``expected_index`` is the index the caller is leaving, for the host's
    "next" button as much as for a participant's timer. Only the call whose
    expected index still matches performs the move, via a conditional update
    on the index, so retries and duplicate clicks are no-ops. Stale callers
    get the now-current index back with ``advanced=False``. Passing the last
    question ends the session.
    """
    session = get_by_id(session_id)
    if session.status != SESSION_ACTIVE:
        raise InvalidState(f'Cannot advance a session that is {session.status}')

    current = session.current_question_index
    try:
        expected_index = int(expected_index)
    except (TypeError, ValueError):
        raise ValidationError('expected_index must be an integer')
    if expected_index != current:
        current_app.logger.info(
            f"[advance-noop] session={session.id} expected={expected_index} current={current}"
        )
        return _progress(session, advanced=False)

    total = session.total_questions or 0
    new_index = current + 1
    values = {'current_question_index': new_index, 'question_started_at': time.time()}
    finishing = new_index >= total
    if finishing:
        values.update({'status': SESSION_ENDED, 'ended_at': utcnow(), 'question_started_at': None})

    superseded_qid = current_question_id(session)
    won = QuizSession.query.filter_by(
        id=session.id, status=SESSION_ACTIVE, current_question_index=current
    ).update(values, synchronize_session=False)
    if won:
        if superseded_qid is not None:
            mark_timeouts(session.id, superseded_qid)
        if finishing:
            mark_participants_completed(session.id)
    db.session.commit()
    db.session.refresh(session)

    if won:
        current_app.logger.info(
            f"[advance] session={session.id} index {current} -> {new_index} of {total}"
            + (" (ended)" if finishing else "")
        )
    else:
        current_app.logger.info(
            f"[advance-noop] session={session.id} lost race at index={current} now={session.current_question_index}"
        )
    return _progress(session, advanced=bool(won))
