from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from quizburst.services.sessions.history import participant_history, user_stats


history = Blueprint('history', __name__)


@history.route('/history', methods=['GET'])
@login_required
def get_history():
    return jsonify({'sessions': participant_history(current_user.id)})


@history.route('/stats', methods=['GET'])
@login_required
def get_stats():
    return jsonify(user_stats(current_user))
