from quizburst import db, bcrypt
from flask import current_app
from flask_login import UserMixin
from datetime import datetime, timezone
import json
import random

from quizburst.services.sessions.errors import JoinCodeUnavailable

# No 0/O or 1/I so codes read back correctly off a projector
JOIN_CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
JOIN_CODE_ATTEMPTS = 20

SESSION_WAITING = 'waiting'
SESSION_ACTIVE = 'active'
SESSION_ENDED = 'ended'


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _iso(value):
    value = as_utc(value)
    return value.isoformat() if value else None


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(16), nullable=False, default='player')  # host, player

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def is_host(self):
        return self.role == 'host'

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'role': self.role,
        }


class Quiz(db.Model):
    __tablename__ = 'quiz'
    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(64), nullable=True)
    time_limit = db.Column(db.Integer, nullable=False, default=20)  # seconds per question
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    owner = db.relationship('User')
    questions = db.relationship('Question', back_populates='quiz', order_by='Question.order_index')

    @property
    def is_expired(self):
        expires_at = as_utc(self.expires_at)
        return expires_at is not None and expires_at <= utcnow()

    def to_dict(self, include_questions=False):
        data = {
            'id': self.id,
            'owner_id': self.owner_id,
            'title': self.title,
            'description': self.description,
            'category': self.category,
            'time_limit': self.time_limit,
            'expires_at': _iso(self.expires_at),
            'created_at': _iso(self.created_at),
            'question_count': len(self.questions),
        }
        if include_questions:
            data['questions'] = [q.to_dict(reveal=True) for q in self.questions]
        return data


class Question(db.Model):
    __tablename__ = 'question'
    __table_args__ = (db.UniqueConstraint('quiz_id', 'order_index', name='uq_question_quiz_order'),)
    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quiz.id'), nullable=False, index=True)
    text = db.Column(db.Text, nullable=False)
    options_json = db.Column('options', db.Text, nullable=False)  # JSON-encoded list of strings
    correct_option = db.Column(db.Integer, nullable=False)
    points = db.Column(db.Integer, nullable=False, default=100)
    hint = db.Column(db.Text, nullable=True)
    explanation = db.Column(db.Text, nullable=True)
    order_index = db.Column(db.Integer, nullable=False)
    quiz = db.relationship('Quiz', back_populates='questions')

    @property
    def options(self):
        return json.loads(self.options_json or '[]')

    @options.setter
    def options(self, value):
        self.options_json = json.dumps(list(value))

    def to_dict(self, reveal=False):
        data = {
            'id': self.id,
            'text': self.text,
            'options': self.options,
            'points': self.points,
            'hint': self.hint,
            'order_index': self.order_index,
        }
        # The answer key only leaves the server once a question is over
        if reveal:
            data['correct_option'] = self.correct_option
            data['explanation'] = self.explanation
        return data


def generate_join_code(length=None):
    """Generate a join code unique among sessions that have not ended."""
    if length is None:
        length = int(current_app.config.get('JOIN_CODE_LENGTH', 6))
    for _attempt in range(JOIN_CODE_ATTEMPTS):
        code = ''.join(random.choices(JOIN_CODE_ALPHABET, k=length))
        clash = QuizSession.query.filter(
            QuizSession.join_code == code,
            QuizSession.status != SESSION_ENDED,
        ).first()
        if not clash:
            return code
    current_app.logger.error(f"[join-code] no free code after {JOIN_CODE_ATTEMPTS} attempts (length={length})")
    raise JoinCodeUnavailable()


class QuizSession(db.Model):
    __tablename__ = 'quiz_session'
    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quiz.id'), nullable=False, index=True)
    join_code = db.Column(db.String(12), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=SESSION_WAITING)  # waiting, active, ended
    current_question_index = db.Column(db.Integer, nullable=False, default=0)
    # Snapshot of question ids taken at start so quiz edits never reach a running session
    question_order = db.Column(db.Text, nullable=True)
    total_questions = db.Column(db.Integer, nullable=True)
    # Epoch seconds of the server stamp for the current question
    question_started_at = db.Column(db.Float, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)
    quiz = db.relationship('Quiz')
    participants = db.relationship('Participant', back_populates='session', order_by='Participant.id')

    def __init__(self, **kwargs):
        super(QuizSession, self).__init__(**kwargs)
        if not self.join_code:
            self.join_code = generate_join_code()

    @property
    def question_ids(self):
        return json.loads(self.question_order) if self.question_order else []

    @property
    def is_complete(self):
        total = self.total_questions or 0
        return self.status == SESSION_ENDED or (self.status == SESSION_ACTIVE and self.current_question_index >= total)

    @property
    def question_deadline(self):
        if self.status != SESSION_ACTIVE or self.question_started_at is None:
            return None
        return self.question_started_at + self.quiz.time_limit

    def to_dict(self):
        return {
            'id': self.id,
            'quiz_id': self.quiz_id,
            'quiz_title': self.quiz.title if self.quiz else None,
            'join_code': self.join_code,
            'status': self.status,
            'current_question_index': self.current_question_index,
            'total_questions': self.total_questions if self.total_questions is not None else len(self.quiz.questions),
            'time_limit': self.quiz.time_limit if self.quiz else None,
            'created_at': _iso(self.created_at),
            'started_at': _iso(self.started_at),
            'ended_at': _iso(self.ended_at),
        }


class Participant(db.Model):
    __tablename__ = 'participant'
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('quiz_session.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True, index=True)
    name = db.Column(db.String(64), nullable=False)
    joined_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    session = db.relationship('QuizSession', back_populates='participants')

    def to_dict(self):
        return {
            'id': self.id,
            'session_id': self.session_id,
            'user_id': self.user_id,
            'name': self.name,
            'joined_at': _iso(self.joined_at),
            'completed': self.completed_at is not None,
        }


class Answer(db.Model):
    __tablename__ = 'answer'
    __table_args__ = (
        db.UniqueConstraint('session_id', 'participant_id', 'question_id', name='uq_answer_slot'),
        db.Index('ix_answer_session_question', 'session_id', 'question_id'),
    )
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('quiz_session.id'), nullable=False)
    participant_id = db.Column(db.Integer, db.ForeignKey('participant.id'), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey('question.id'), nullable=False)
    option_index = db.Column(db.Integer, nullable=False)  # -1 marks a timeout with no answer
    time_remaining = db.Column(db.Float, nullable=False, default=0.0)
    points = db.Column(db.Integer, nullable=False, default=0)
    submitted_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'session_id': self.session_id,
            'participant_id': self.participant_id,
            'question_id': self.question_id,
            'option_index': self.option_index,
            'time_remaining': self.time_remaining,
            'points': self.points,
            'submitted_at': _iso(self.submitted_at),
        }


def upsert(model, values, index_elements, set_=None, where=None):
    """INSERT .. ON CONFLICT for the configured dialect.

    ``values`` is a dict or a list of dicts. With ``set_`` the conflicting
    row is updated (optionally only when ``where`` holds); without it the
    insert is ignored. Returns the number of rows written.
    """
    dialect = db.engine.dialect.name
    if dialect == 'postgresql':
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == 'sqlite':
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"upsert not supported on dialect {dialect}")
    stmt = insert(model.__table__).values(values)
    if set_:
        stmt = stmt.on_conflict_do_update(index_elements=index_elements, set_=set_, where=where)
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=index_elements)
    result = db.session.execute(stmt)
    return result.rowcount
