from datetime import timedelta
from functools import wraps

from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user, login_required

from quizburst import db
from quizburst.models import Question, Quiz, utcnow
from quizburst.services.sessions.errors import Unauthorized, ValidationError
from quizburst.services.sessions.state import latest_session


quizzes = Blueprint('quizzes', __name__)

MIN_OPTIONS = 2
MIN_TIME_LIMIT_SEC = 5


def host_required(view):
    @wraps(view)
    @login_required
    def wrapped(*args, **kwargs):
        if not current_user.is_host:
            raise Unauthorized('Host account required')
        return view(*args, **kwargs)
    return wrapped


def _clean_question(raw, position):
    if not isinstance(raw, dict):
        raise ValidationError(f'Question {position + 1} must be an object')
    text = (raw.get('text') or '').strip()
    if not text:
        raise ValidationError(f'Question {position + 1} needs text')
    options = raw.get('options')
    if not isinstance(options, list) or len(options) < MIN_OPTIONS:
        raise ValidationError(f'Question {position + 1} needs at least {MIN_OPTIONS} options')
    options = [str(o).strip() for o in options]
    if any(not o for o in options):
        raise ValidationError(f'Question {position + 1} has an empty option')
    try:
        correct = int(raw.get('correct_option'))
        points = int(raw.get('points', 100))
        order_index = int(raw.get('order_index', position))
    except (TypeError, ValueError):
        raise ValidationError(f'Question {position + 1} has a non-numeric field')
    if not 0 <= correct < len(options):
        raise ValidationError(f'Question {position + 1} correct_option is out of range')
    if points < 0:
        raise ValidationError(f'Question {position + 1} points must not be negative')
    return {
        'text': text,
        'options': options,
        'correct_option': correct,
        'points': points,
        'hint': raw.get('hint') or None,
        'explanation': raw.get('explanation') or None,
        'order_index': order_index,
    }


@quizzes.route('', methods=['POST'])
@host_required
def create_quiz():
    data = request.get_json(silent=True) or {}
    title = (data.get('title') or '').strip()
    if not title:
        raise ValidationError('Title is required')
    try:
        time_limit = int(data.get('time_limit') or current_app.config.get('QUESTION_TIME_LIMIT_SEC', 20))
    except (TypeError, ValueError):
        raise ValidationError('time_limit must be an integer')
    if time_limit < MIN_TIME_LIMIT_SEC:
        raise ValidationError(f'time_limit must be at least {MIN_TIME_LIMIT_SEC} seconds')

    raw_questions = data.get('questions') or []
    if not isinstance(raw_questions, list) or not raw_questions:
        raise ValidationError('At least one question is required')
    cleaned = [_clean_question(q, i) for i, q in enumerate(raw_questions)]
    if len({q['order_index'] for q in cleaned}) != len(cleaned):
        raise ValidationError('order_index values must be unique')

    ttl_hours = int(current_app.config.get('QUIZ_TTL_HOURS', 24))
    quiz = Quiz(
        owner_id=current_user.id,
        title=title[:200],
        description=data.get('description'),
        category=data.get('category'),
        time_limit=time_limit,
        expires_at=utcnow() + timedelta(hours=ttl_hours) if ttl_hours > 0 else None,
    )
    db.session.add(quiz)
    db.session.flush()
    for q in cleaned:
        question = Question(quiz_id=quiz.id, **{k: v for k, v in q.items() if k != 'options'})
        question.options = q['options']
        db.session.add(question)
    db.session.commit()
    current_app.logger.info(f"[quiz-create] quiz={quiz.id} owner={current_user.id} questions={len(cleaned)}")
    return jsonify(quiz.to_dict(include_questions=True)), 201


@quizzes.route('', methods=['GET'])
@host_required
def list_quizzes():
    own = Quiz.query.filter_by(owner_id=current_user.id).order_by(Quiz.created_at.desc()).all()
    return jsonify([q.to_dict() for q in own])


@quizzes.route('/<int:quiz_id>/latest-session', methods=['GET'])
@host_required
def get_latest_session(quiz_id):
    return jsonify(latest_session(quiz_id, owner=current_user).to_dict())
