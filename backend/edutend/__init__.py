"""EdUTEND attendance service - Application Factory."""
import atexit
import logging
import os
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200 per day", "50 per hour"]
)

def create_app(config_name: str = None) -> Flask:
    """Application factory pattern."""
    app = Flask(__name__)

    # Load configuration
    from config import get_config
    config_class = get_config(config_name)
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)

    # Configure CORS
    CORS(app, origins=app.config.get('CORS_ORIGINS', ["*"]))

    # Setup logging
    setup_logging(app)

    # Real-time broadcast channel
    setup_broadcaster(app)

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Add CLI commands
    register_commands(app)

    # Add health check
    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'EdUTEND Attendance',
            'version': '1.0.0'
        })

    return app

def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from edutend.api.sessions import sessions_bp
    from edutend.api.attendance import attendance_bp

    app.register_blueprint(sessions_bp, url_prefix='/api/sessions')
    app.register_blueprint(attendance_bp, url_prefix='/api/attendance')

def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from edutend.utils.errors import EdutendError
    from edutend.utils.helpers import handle_error, error_response
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(EdutendError)
    def handle_domain_error(error):
        return error_response(error.message, error.status_code, error.context)

    @app.errorhandler(HTTPException)
    def handle_exception(e):
        return handle_error(e.description, e.code)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return handle_error("Internal server error", 500)

    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            'error': True,
            'message': 'Token has expired',
            'status_code': 401
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Invalid token',
            'status_code': 401
        }), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Authorization token required',
            'status_code': 401
        }), 401

def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)
    logging.getLogger('edutend').setLevel(level)

    if not app.debug and not app.testing:
        log_file = app.config.get('LOG_FILE', 'logs/app.log')
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(level)
        app.logger.addHandler(file_handler)
        logging.getLogger('edutend').addHandler(file_handler)

        app.logger.setLevel(level)
        app.logger.info('EdUTEND attendance service startup')

def setup_broadcaster(app: Flask) -> None:
    """Attach the event broadcaster used by the services."""
    from edutend.services.broadcast_service import create_broadcaster

    broadcaster = create_broadcaster(app.config)
    app.extensions['edutend.broadcaster'] = broadcaster

    # Stop the publisher thread on interpreter exit
    atexit.register(broadcaster.close)

def register_commands(app: Flask) -> None:
    """Register CLI commands."""
    import click

    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables')
    def init_db(drop):
        """Initialize the database."""
        import edutend.models  # noqa: F401  registers tables

        if drop:
            db.drop_all()
            click.echo('Dropped all tables.')

        db.create_all()
        click.echo('Created all tables.')

    @app.cli.command('seed-db')
    def seed_db():
        """Seed database with demo accounts and a course."""
        from edutend.services.seed_service import SeedService

        try:
            credentials = SeedService.seed_all()
        except Exception as e:
            db.session.rollback()
            raise click.ClickException(f'Error seeding database: {str(e)}')

        click.echo('Database seeded successfully!')
        for role, (email, password) in credentials.items():
            click.echo(f'{role}: {email} / {password}')

    @app.cli.command('sweep-sessions')
    def sweep_sessions():
        """Mark every overdue attendance session as expired."""
        from edutend.container import get_container

        expired = get_container().session_manager.expire_overdue()
        click.echo(f'Expired {expired} sessions.')
