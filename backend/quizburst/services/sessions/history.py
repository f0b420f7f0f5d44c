from sqlalchemy import case, func

from quizburst import db
from quizburst.models import Answer, Participant, Question, Quiz, QuizSession, SESSION_ENDED, as_utc
from .errors import InvalidState, NotFound
from .leaderboard import accuracy
from .ledger import TIMEOUT_SENTINEL


def _answer_totals(query):
    correct = case((Answer.points > 0, 1), else_=0)
    score, correct_count, answered = query.with_entities(
        func.coalesce(func.sum(Answer.points), 0),
        func.coalesce(func.sum(correct), 0),
        func.count(Answer.id),
    ).one()
    return int(score), int(correct_count), int(answered)


def participant_history(user_id: int) -> list:
    """Sessions a logged-in user has played, newest first."""
    participants = (
        Participant.query.filter_by(user_id=user_id)
        .order_by(Participant.joined_at.desc(), Participant.id.desc())
        .all()
    )
    history = []
    for p in participants:
        session = p.session
        quiz = session.quiz
        score, correct_count, answered = _answer_totals(
            Answer.query.filter_by(participant_id=p.id, session_id=session.id)
        )
        total_questions = session.total_questions if session.total_questions is not None else len(quiz.questions)
        history.append({
            'session_id': session.id,
            'join_code': session.join_code,
            'status': 'completed' if p.completed_at is not None else session.status,
            'quiz': {'id': quiz.id, 'title': quiz.title, 'description': quiz.description, 'category': quiz.category},
            'participant': {'id': p.id, 'name': p.name, 'joined_at': as_utc(p.joined_at).isoformat()},
            'score': score,
            'correct_answers': correct_count,
            'total_answered': answered,
            'total_questions': total_questions,
            'accuracy': accuracy(correct_count, answered),
        })
    return history


def user_stats(user) -> dict:
    if user.is_host:
        return {
            'role': user.role,
            'quizzes_created': Quiz.query.filter_by(owner_id=user.id).count(),
            'sessions_hosted': QuizSession.query.join(Quiz).filter(Quiz.owner_id == user.id).count(),
        }
    _score, correct_count, answered = _answer_totals(
        db.session.query(Answer).join(Participant, Answer.participant_id == Participant.id).filter(Participant.user_id == user.id)
    )
    return {
        'role': user.role,
        'quizzes_participated': Participant.query.filter_by(user_id=user.id).count(),
        'total_answers': answered,
        'accuracy': accuracy(correct_count, answered),
    }


def participant_answers(participant_id) -> dict:
    """Question-by-question review for one participant.

    Only served once the session has ended, since it carries the answer key.
    Questions the participant let run out are reported with ``timed_out``
    and no chosen option.
    """
    try:
        participant = db.session.get(Participant, int(participant_id))
    except (TypeError, ValueError):
        participant = None
    if not participant:
        raise NotFound('Participant not found')
    session = participant.session
    if session.status != SESSION_ENDED:
        raise InvalidState('Answers can be reviewed once the session has ended')

    given = {
        a.question_id: a
        for a in Answer.query.filter_by(session_id=session.id, participant_id=participant.id)
    }
    review = []
    for index, question_id in enumerate(session.question_ids):
        question = db.session.get(Question, question_id)
        if not question:
            continue
        answer = given.get(question_id)
        timed_out = answer is not None and answer.option_index == TIMEOUT_SENTINEL
        chosen = answer.option_index if answer is not None and not timed_out else None
        review.append({
            'index': index,
            'question': question.to_dict(reveal=True),
            'chosen_option': chosen,
            'timed_out': timed_out,
            'is_correct': chosen is not None and chosen == question.correct_option,
            'points': answer.points if answer is not None else 0,
            'time_remaining': answer.time_remaining if answer is not None else None,
        })
    return {
        'session_id': session.id,
        'quiz_title': session.quiz.title,
        'participant': participant.to_dict(),
        'total_score': sum(item['points'] for item in review),
        'answers': review,
    }
