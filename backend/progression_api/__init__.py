import logging
import secrets

import click
from flask import Flask
from flask.logging import default_handler
from flask_cors import CORS
from flask_login import LoginManager
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from werkzeug.middleware.proxy_fix import ProxyFix

from config import Config

__project__ = 'vu-progression-api'
__description__ = 'Progression persistence API for VU game servers'
__version__ = '0.2.0'

db = SQLAlchemy()
login_manager = LoginManager()
cors = CORS()


def _configure_sqlite(engine):
    """Enforce foreign keys and open every transaction with BEGIN IMMEDIATE.

    SQLite has no row locks; taking the write lock at BEGIN serializes the
    read-check-write sequences that use SELECT ... FOR UPDATE on other backends.
    """
    @event.listens_for(engine, 'connect')
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()

    @event.listens_for(engine, 'begin')
    def _on_begin(conn):
        conn.exec_driver_sql('BEGIN IMMEDIATE')


def _configure_logging(flask_app):
    default_handler.setFormatter(logging.Formatter(
        '[%(asctime)s] %(levelname)s: %(message)s', datefmt='%Y-%m-%d %H:%M:%S'
    ))
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    _configure_logging(flask_app)

    proxies = int(flask_app.config.get('TRUSTED_PROXIES', 0))
    if proxies > 0:
        flask_app.logger.info(f"Trusting {proxies} proxy hop(s) for client addresses")
        flask_app.wsgi_app = ProxyFix(flask_app.wsgi_app, x_for=proxies, x_proto=proxies)

    db.init_app(flask_app)
    login_manager.init_app(flask_app)
    cors.init_app(flask_app, origins=flask_app.config.get('CORS_ORIGINS', '*'))

    with flask_app.app_context():
        if db.engine.dialect.name == 'sqlite':
            _configure_sqlite(db.engine)

    from progression_api.auth import init_auth
    init_auth(login_manager)

    from progression_api.errors import register_error_handlers
    register_error_handlers(flask_app)

    # Import and register blueprints here
    from progression_api.routes import main
    flask_app.register_blueprint(main)

    from progression_api.api.players import players
    flask_app.register_blueprint(players, url_prefix='/players')

    from progression_api.api.rounds import rounds
    flask_app.register_blueprint(rounds, url_prefix='/rounds')

    @click.command('init-db')
    def init_db_command():
        """Creates missing tables and the sentinel "unknown" round."""
        from progression_api.models import seed_unknown_round
        with flask_app.app_context():
            db.create_all()
            seed_unknown_round()
        click.echo('Database initialized.')

    @click.command('add-server')
    @click.option('--owner-name', prompt="Server owner's name")
    @click.option('--owner-contact', prompt='Owner contact info (optional)', default='', show_default=False)
    @click.option('--guid', prompt='Server GUID (32/36 chars, dashes allowed)')
    def add_server_command(owner_name, owner_contact, guid):
        """Registers a game server and prints its new API token."""
        from progression_api.auth import normalize_guid
        from progression_api.models import ServerRegistration
        server_guid = normalize_guid(guid)
        if len(server_guid) != 32:
            raise click.BadParameter('GUID must have 32 hex digits', param_hint='--guid')
        with flask_app.app_context():
            existing = ServerRegistration.query.filter_by(server_guid=server_guid).first()
            if existing is not None:
                click.echo(existing.to_dict())
                raise click.ClickException('Server GUID already exists')
            server = ServerRegistration(
                owner_name=owner_name.strip(),
                owner_contact=owner_contact.strip() or None,
                server_guid=server_guid,
                token=secrets.token_hex(32),
            )
            db.session.add(server)
            db.session.commit()
            click.echo('New authorized server added:')
            click.echo(server.to_dict())
            click.echo(f'token: {server.token}')

    @click.command('disable-server')
    @click.argument('guid')
    def disable_server_command(guid):
        """Revokes the API token of the server with GUID."""
        from progression_api.auth import normalize_guid
        from progression_api.models import ServerRegistration
        with flask_app.app_context():
            server = ServerRegistration.query.filter_by(server_guid=normalize_guid(guid)).first()
            if server is None:
                raise click.ClickException('No server with that GUID')
            server.authorized = False
            db.session.commit()
            click.echo(f'Server {server.id} ({server.owner_name}) disabled.')

    flask_app.cli.add_command(init_db_command)
    flask_app.cli.add_command(add_server_command)
    flask_app.cli.add_command(disable_server_command)

    return flask_app
