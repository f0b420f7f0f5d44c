from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user

from quizburst.api.quizzes import host_required
from quizburst.models import Participant
from quizburst.services.sessions import state
from quizburst.services.sessions.errors import NotFound, Unauthorized, ValidationError
from quizburst.services.sessions.history import participant_answers
from quizburst.services.sessions.leaderboard import leaderboard
from quizburst.services.sessions.ledger import submit_answer
from quizburst.services.sessions.progression import advance
from quizburst.services.sessions.sync import current_question, session_status


sessions = Blueprint('sessions', __name__)


def _is_owner(session) -> bool:
    return current_user.is_authenticated and session.quiz.owner_id == current_user.id


def _is_participant(session, participant_id) -> bool:
    if participant_id in (None, ''):
        return False
    try:
        participant_id = int(participant_id)
    except (TypeError, ValueError):
        return False
    return Participant.query.filter_by(id=participant_id, session_id=session.id).first() is not None


@sessions.route('', methods=['POST'])
@host_required
def create_session():
    data = request.get_json(silent=True) or {}
    if data.get('quiz_id') is None:
        raise ValidationError('quiz_id is required')
    session = state.create_session(data.get('quiz_id'), owner=current_user)
    return jsonify(session.to_dict()), 201


@sessions.route('/code/<string:code>', methods=['GET'])
def get_session_by_code(code):
    return jsonify(state.get_by_code(code).to_dict())


@sessions.route('/<int:session_id>', methods=['GET'])
def get_session(session_id):
    return jsonify(state.get_by_id(session_id).to_dict())


@sessions.route('/join', methods=['POST'])
def join_session():
    data = request.get_json(silent=True) or {}
    code = data.get('join_code')
    name = data.get('name')
    if not all([code, name]):
        raise ValidationError('Join code and name are required')
    session = state.get_by_code(code)
    user = current_user if current_user.is_authenticated else None
    participant = state.join_session(session.id, name, user=user)
    return jsonify({'participant': participant.to_dict(), 'session': session.to_dict()}), 201


@sessions.route('/<int:session_id>/participants', methods=['GET'])
def list_participants(session_id):
    session = state.get_by_id(session_id)
    return jsonify([p.to_dict() for p in session.participants])


@sessions.route('/<int:session_id>/start', methods=['POST'])
@host_required
def start_session(session_id):
    session = state.start_session(session_id, owner=current_user)
    return jsonify(session.to_dict())


@sessions.route('/<int:session_id>/end', methods=['POST'])
@host_required
def end_session(session_id):
    session = state.end_session(session_id, owner=current_user, reason='host')
    return jsonify(session.to_dict())


@sessions.route('/<int:session_id>/status', methods=['GET'])
def get_status(session_id):
    return jsonify(session_status(session_id))


@sessions.route('/<int:session_id>/question', methods=['GET'])
def get_current_question(session_id):
    return jsonify(current_question(session_id))


@sessions.route('/<int:session_id>/answers', methods=['POST'])
def post_answer(session_id):
    data = request.get_json(silent=True) or {}
    for field in ('participant_id', 'question_id', 'option_index'):
        if data.get(field) is None:
            raise ValidationError(f'{field} is required')
    # Client clocks are only trusted when the deployment opts in
    time_remaining = None
    if current_app.config.get('TRUST_CLIENT_TIMING') and data.get('time_remaining') is not None:
        try:
            time_remaining = float(data['time_remaining'])
        except (TypeError, ValueError):
            raise ValidationError('time_remaining must be a number')
    result = submit_answer(
        session_id,
        data['participant_id'],
        data['question_id'],
        data['option_index'],
        time_remaining=time_remaining,
    )
    return jsonify(result)


@sessions.route('/<int:session_id>/advance', methods=['POST'])
def advance_question(session_id):
    """Host "next" button, or a participant whose countdown reached zero.

    Every caller says which index it is leaving so a late timer or a
    repeated click can never skip a question.
    """
    data = request.get_json(silent=True) or {}
    session = state.get_by_id(session_id)
    expected_index = data.get('expected_index')
    if expected_index is None:
        raise ValidationError('expected_index is required')
    if not (_is_owner(session) or _is_participant(session, data.get('participant_id'))):
        raise Unauthorized('Only the host or a participant of this session may advance it')
    return jsonify(advance(session.id, expected_index=expected_index))


@sessions.route('/<int:session_id>/leaderboard', methods=['GET'])
def get_leaderboard(session_id):
    session = state.get_by_id(session_id)
    if not (_is_owner(session) or _is_participant(session, request.args.get('participant_id'))):
        raise Unauthorized('Leaderboard is visible to the host and participants only')
    return jsonify({'session_id': session.id, 'status': session.status, 'leaderboard': leaderboard(session.id)})


@sessions.route('/<int:session_id>/participants/<int:participant_id>/answers', methods=['GET'])
def get_participant_answers(session_id, participant_id):
    session = state.get_by_id(session_id)
    participant = Participant.query.filter_by(id=participant_id, session_id=session.id).first()
    if not participant:
        raise NotFound('Participant not found in this session')
    # Answers of a signed-in player stay with that player and the host
    if participant.user_id is not None and not _is_owner(session):
        if not (current_user.is_authenticated and current_user.id == participant.user_id):
            raise Unauthorized('These answers belong to another player')
    return jsonify(participant_answers(participant.id))
