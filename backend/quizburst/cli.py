import click

from quizburst import db


def register_commands(flask_app):
    from quizburst.models import User
    from quizburst.services.sessions.state import cleanup_sessions

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            # Seed one host and two players
            for username, role in (('host1', 'host'), ('player1', 'player'), ('player2', 'player')):
                user = User(username=username, role=role)
                user.set_password('password')
                db.session.add(user)

            db.session.commit()
            click.echo('Database has been reset and seeded!')

    @click.command('sessions-cleanup')
    def sessions_cleanup_command():
        """Ends active sessions whose quiz expired or that stalled on a question."""
        with flask_app.app_context():
            ended = cleanup_sessions()
            click.echo(f'Ended {ended} session(s).')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(sessions_cleanup_command)
