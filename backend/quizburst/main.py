from flask import Blueprint, request, jsonify, current_app
from flask_login import login_user, logout_user, login_required, current_user
from quizburst import db
from quizburst.auth import verify_credentials
from quizburst.models import User

main = Blueprint('main', __name__)

ROLES = ('host', 'player')


@main.route('/')
def index():
    return jsonify({'message': 'QuizBurst session server'})


@main.route('/users/add', methods=['POST'])
def add_user():
    data = request.get_json(silent=True) or {}
    if not data.get('username') or not data.get('password'):
        return jsonify({'error': 'Missing username or password'}), 400

    role = data.get('role') or 'player'
    if role not in ROLES:
        return jsonify({'error': f'Role must be one of {", ".join(ROLES)}'}), 400
    if role == 'host' and not current_app.config.get('ALLOW_HOST_SIGNUP') and not (
        current_user.is_authenticated and current_user.is_host
    ):
        return jsonify({'error': 'Host accounts are created by an existing host', 'code': 'unauthorized'}), 403

    if User.query.filter_by(username=data['username']).first():
        return jsonify({'error': 'Username already exists'}), 400

    user = User(username=data['username'], role=role)
    user.set_password(data['password'])
    db.session.add(user)
    db.session.commit()

    return jsonify({'message': 'User created successfully', 'user': user.to_dict()}), 201


@main.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    verified = verify_credentials(data.get('username'), data.get('password'))
    login_user(verified['user'], remember=True)
    return jsonify({'message': 'Logged in successfully.', 'user': verified['user'].to_dict()})


@main.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'message': 'Logged out successfully.'})


@main.route('/me')
@login_required
def me():
    return jsonify(current_user.to_dict())
