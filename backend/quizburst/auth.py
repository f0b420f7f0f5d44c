from quizburst.models import User
from quizburst.services.sessions.errors import AuthError


def verify_credentials(username, password) -> dict:
    """Check a username/password pair and return the identity and its role."""
    user = User.query.filter_by(username=(username or '').strip()).first()
    if not user or not password or not user.check_password(password):
        raise AuthError()
    return {'identity': user.id, 'role': user.role, 'user': user}
