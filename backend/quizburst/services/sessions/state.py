import json
import time
from typing import Optional

from flask import current_app

from quizburst import db
from quizburst.models import (
    Participant,
    Quiz,
    QuizSession,
    SESSION_ACTIVE,
    SESSION_ENDED,
    SESSION_WAITING,
    utcnow,
)
from .errors import (
    InvalidState,
    InvalidTransition,
    NoParticipants,
    NotFound,
    Unauthorized,
    ValidationError,
)


def get_by_id(session_id) -> QuizSession:
    try:
        session = db.session.get(QuizSession, int(session_id))
    except (TypeError, ValueError):
        session = None
    if not session:
        raise NotFound('Session not found')
    return session


def get_by_code(code) -> QuizSession:
    """Resolve a join code, preferring the live session that owns it."""
    code = (code or '').strip().upper()
    if not code:
        raise NotFound('Session not found')
    session = (
        QuizSession.query.filter(QuizSession.join_code == code, QuizSession.status != SESSION_ENDED)
        .order_by(QuizSession.id.desc())
        .first()
    )
    if not session:
        # Ended sessions keep their code for late pollers and history
        session = QuizSession.query.filter_by(join_code=code).order_by(QuizSession.id.desc()).first()
    if not session:
        raise NotFound('Session not found')
    return session


def require_owner(session: QuizSession, user) -> None:
    if user is None or not getattr(user, 'is_authenticated', False):
        raise Unauthorized('Host login required')
    if session.quiz.owner_id != user.id:
        raise Unauthorized()


def participant_count(session_id: int) -> int:
    return Participant.query.filter_by(session_id=session_id).count()


def current_question_id(session: QuizSession) -> Optional[int]:
    if session.status != SESSION_ACTIVE:
        return None
    ids = session.question_ids
    index = session.current_question_index or 0
    return ids[index] if 0 <= index < len(ids) else None


def create_session(quiz_id, owner=None) -> QuizSession:
    quiz = db.session.get(Quiz, quiz_id) if quiz_id is not None else None
    if not quiz:
        raise NotFound('Quiz not found')
    if owner is not None and quiz.owner_id != owner.id:
        raise Unauthorized('Only the quiz owner may host it')
    if quiz.is_expired:
        raise InvalidState('Quiz has expired')
    if not quiz.questions:
        raise InvalidState('Quiz has no questions')
    session = QuizSession(quiz_id=quiz.id)
    db.session.add(session)
    db.session.commit()
    current_app.logger.info(f"[session-create] session={session.id} quiz={quiz.id} code={session.join_code}")
    return session


def latest_session(quiz_id, owner=None) -> QuizSession:
    """Most recently created session of a quiz, whatever its status."""
    quiz = db.session.get(Quiz, quiz_id) if quiz_id is not None else None
    if not quiz:
        raise NotFound('Quiz not found')
    if owner is not None and quiz.owner_id != owner.id:
        raise Unauthorized('Only the quiz owner may see its sessions')
    session = (
        QuizSession.query.filter_by(quiz_id=quiz.id)
        .order_by(QuizSession.created_at.desc(), QuizSession.id.desc())
        .first()
    )
    if not session:
        raise NotFound('Quiz has no sessions yet')
    return session


def join_session(session_id, name, user=None) -> Participant:
    session = get_by_id(session_id)
    name = (name or '').strip()
    if not name:
        raise ValidationError('Name is required')
    if session.status == SESSION_ENDED:
        raise InvalidState('Session has ended')
    participant = Participant(
        session_id=session.id,
        name=name[:64],
        user_id=user.id if user is not None and getattr(user, 'is_authenticated', False) else None,
    )
    db.session.add(participant)
    db.session.commit()
    current_app.logger.info(f"[join] session={session.id} participant={participant.id} status={session.status}")
    return participant


def start_session(session_id, owner=None) -> QuizSession:
    """waiting -> active. Snapshots the question order and opens question 0."""
    session = get_by_id(session_id)
    if owner is not None:
        require_owner(session, owner)
    if session.status != SESSION_WAITING:
        raise InvalidTransition(f'Cannot start a session that is {session.status}')

    joined = participant_count(session.id)
    min_participants = max(1, int(current_app.config.get('MIN_PARTICIPANTS', 1)))
    if joined < min_participants:
        raise NoParticipants(f'At least {min_participants} participant(s) must join before starting')

    quiz = session.quiz
    if quiz.is_expired:
        raise InvalidState('Quiz has expired')
    order = [q.id for q in quiz.questions]
    if not order:
        raise InvalidState('Quiz has no questions')

    won = QuizSession.query.filter_by(id=session.id, status=SESSION_WAITING).update(
        {
            'status': SESSION_ACTIVE,
            'current_question_index': 0,
            'question_order': json.dumps(order),
            'total_questions': len(order),
            'started_at': utcnow(),
            'question_started_at': time.time(),
        },
        synchronize_session=False,
    )
    db.session.commit()
    db.session.refresh(session)
    if not won:
        raise InvalidTransition(f'Cannot start a session that is {session.status}')
    current_app.logger.info(f"[start] session={session.id} participants={joined} questions={len(order)}")
    return session


def mark_participants_completed(session_id: int) -> int:
    return Participant.query.filter_by(session_id=session_id, completed_at=None).update(
        {'completed_at': utcnow()}, synchronize_session=False
    )


def end_session(session_id, owner=None, reason: str = 'host') -> QuizSession:
    """active -> ended. Ending an already ended session is a no-op."""
    session = get_by_id(session_id)
    if owner is not None:
        require_owner(session, owner)
    if session.status == SESSION_ENDED:
        return session
    if session.status != SESSION_ACTIVE:
        raise InvalidTransition(f'Cannot end a session that is {session.status}')

    won = QuizSession.query.filter_by(id=session.id, status=SESSION_ACTIVE).update(
        {'status': SESSION_ENDED, 'ended_at': utcnow()}, synchronize_session=False
    )
    if won:
        mark_participants_completed(session.id)
    db.session.commit()
    db.session.refresh(session)
    if won:
        current_app.logger.info(
            f"[end] session={session.id} reason={reason} at_index={session.current_question_index}"
        )
    return session


def cleanup_sessions(now: Optional[float] = None) -> int:
    """End active sessions whose quiz expired or that sat on one question too long."""
    now = time.time() if now is None else now
    stale_after = int(current_app.config.get('STALE_SESSION_MINUTES', 120)) * 60
    ended = 0
    for session in QuizSession.query.filter_by(status=SESSION_ACTIVE).all():
        started = session.question_started_at or 0
        if session.quiz.is_expired or now - started > stale_after:
            before = session.status
            session = end_session(session.id, reason='cleanup')
            if before != session.status:
                ended += 1
    current_app.logger.info(f"[cleanup] ended={ended}")
    return ended
