import os
import sys
import pytest

# Ensure the backend root (containing the `quizburst` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from quizburst import create_app, db


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    LOG_LEVEL = 'DEBUG'
    QUESTION_TIME_LIMIT_SEC = 20
    BASE_POINTS = 30
    BONUS_RANGE = 70
    TRUST_CLIENT_TIMING = False
    ALLOW_HOST_SIGNUP = False
    JOIN_CODE_LENGTH = 6
    MIN_PARTICIPANTS = 1
    QUIZ_TTL_HOURS = 24
    STALE_SESSION_MINUTES = 120


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)

    # The fixture keeps one app context open, so test-client requests share
    # its `g`; drop Flask-Login's per-request user cache so clients don't
    # see each other's logins.
    @application.before_request
    def _reset_login_cache():
        from flask import g
        g.pop('_login_user', None)

    with application.app_context():
        # Ensure models are imported so tables are created
        import quizburst.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


def make_user(username='host1', role='host', password='password'):
    from quizburst.models import User
    user = User(username=username, role=role)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


def make_quiz(owner, question_count=2, time_limit=20, expires_at=None):
    from quizburst.models import Question, Quiz
    quiz = Quiz(owner_id=owner.id, title='General knowledge', time_limit=time_limit, expires_at=expires_at)
    db.session.add(quiz)
    db.session.flush()
    for i in range(question_count):
        q = Question(
            quiz_id=quiz.id,
            text=f'Question {i + 1}?',
            correct_option=1,
            points=100,
            explanation=f'Because {i + 1}.',
            order_index=i,
        )
        q.options = ['A', 'B', 'C', 'D']
        db.session.add(q)
    db.session.commit()
    return quiz


@pytest.fixture()
def host(flask_app):
    return make_user()


@pytest.fixture()
def quiz(host):
    return make_quiz(host)


@pytest.fixture()
def host_client(flask_app, host):
    c = flask_app.test_client()
    res = c.post('/api/login', json={'username': 'host1', 'password': 'password'})
    assert res.status_code == 200
    return c


QUIZ_PAYLOAD = {
    'title': 'Capitals',
    'time_limit': 20,
    'questions': [
        {'text': 'Capital of France?', 'options': ['Lyon', 'Paris', 'Nice'], 'correct_option': 1, 'points': 100},
        {'text': 'Capital of Spain?', 'options': ['Madrid', 'Seville'], 'correct_option': 0, 'points': 100,
         'hint': 'Centre of the country', 'explanation': 'Madrid since 1561.'},
    ],
}
