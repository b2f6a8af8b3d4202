from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from config import Config
import click
import markdown as _md
import os
import uuid

# App version — bump this on each release. Appended to static file URLs
# as a cache-busting query string.
APP_VERSION = '0.4.0'

# Create the database object here, but don't attach it to an app yet
db = SQLAlchemy()

# Schema changes are tracked as Alembic migrations under migrations/
migrate = Migrate()

# Login manager — there is only one "user": whoever knows the shared password
login_manager = LoginManager()

# CSRF protection — every POST form must include {{ csrf_token() }} as a hidden input.
csrf = CSRFProtect()

# Rate limiter — slows down password guessing on /login.
limiter = Limiter(key_func=get_remote_address, default_limits=[])


def save_upload(file, prefix=''):
    """Save an uploaded image file to the uploads folder.

    Validates the file extension, generates a unique filename (UUID + original
    extension) to avoid collisions, then writes the file to UPLOAD_FOLDER.
    Returns the new filename string, or None if the file is missing/invalid.
    """
    from flask import current_app
    if not file or not file.filename:
        return None
    if '.' not in file.filename:
        return None
    ext = file.filename.rsplit('.', 1)[1].lower()
    if ext not in current_app.config.get('ALLOWED_EXTENSIONS', set()):
        return None
    filename = f"{prefix}{uuid.uuid4().hex}.{ext}"
    file.save(os.path.join(current_app.config['UPLOAD_FOLDER'], filename))
    return filename


def delete_upload(filename):
    """Remove a previously saved upload. Missing files are logged, not raised."""
    from flask import current_app
    if not filename:
        return
    path = os.path.join(current_app.config['UPLOAD_FOLDER'], os.path.basename(filename))
    try:
        os.remove(path)
    except FileNotFoundError:
        current_app.logger.warning(f'Upload {filename} was already gone')
    except OSError as e:
        current_app.logger.error(f'Failed to remove upload {filename}: {e}')


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Attach the database and migration engine to this app instance
    db.init_app(app)
    migrate.init_app(app, db)

    # Set up Flask-Login
    login_manager.init_app(app)
    login_manager.login_view = 'auth.login'
    login_manager.login_message_category = 'warning'

    csrf.init_app(app)
    limiter.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        from dnd_manager.models import SharedUser
        if user_id == SharedUser.id:
            return SharedUser()
        return None

    # Ensure the uploads directory exists when the app starts
    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)

    # Usage in templates: {{ some_field | md | safe }}
    @app.template_filter('md')
    def markdown_filter(text):
        if not text:
            return ''
        return _md.markdown(text, extensions=['nl2br', 'tables', 'fenced_code'])

    # Usage in templates: {{ session.notes | mentions(mention_targets) }}
    from dnd_manager.mentions import render_mentions
    app.add_template_filter(render_mentions, 'mentions')

    # Register Blueprints — each Blueprint is a group of related routes
    from dnd_manager.routes.auth import auth_bp
    from dnd_manager.routes.main import main_bp
    from dnd_manager.routes.campaigns import campaigns_bp
    from dnd_manager.routes.sessions import sessions_bp
    from dnd_manager.routes.characters import characters_bp
    from dnd_manager.routes.organizations import organizations_bp
    from dnd_manager.routes.locations import locations_bp
    from dnd_manager.routes.mention_search import mention_search_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(main_bp)
    app.register_blueprint(campaigns_bp)
    app.register_blueprint(sessions_bp)
    app.register_blueprint(characters_bp)
    app.register_blueprint(organizations_bp)
    app.register_blueprint(locations_bp)
    app.register_blueprint(mention_search_bp)

    # Uniqueness lookups that fail surface as 503, never as "name is free"
    from dnd_manager.uniqueness import RemoteQueryError

    @app.errorhandler(RemoteQueryError)
    def handle_remote_query_error(e):
        from flask import request, jsonify, render_template
        message = 'The database is unavailable right now. Please try again.'
        if request.is_json or request.path.startswith('/api/'):
            return jsonify({'error': message}), 503
        return render_template('error.html', message=message), 503

    @app.context_processor
    def inject_app_version():
        return dict(app_version=APP_VERSION)

    @app.context_processor
    def override_url_for():
        """Append version query string to static file URLs for cache busting."""
        def versioned_url_for(endpoint, **values):
            from flask import url_for as _url_for
            if endpoint == 'static':
                values['v'] = APP_VERSION
            return _url_for(endpoint, **values)
        return dict(url_for=versioned_url_for)

    # CLI command: flask check-password "some guess"
    # Tells the operator which normalization (if any) accepts a candidate,
    # without ever printing the stored secret.
    @app.cli.command('check-password')
    @click.argument('candidate')
    def check_password(candidate):
        """Check a candidate against APP_PASSWORD."""
        from dnd_manager.passwords import matching_strategy
        stored = app.config.get('APP_PASSWORD')
        if not stored:
            print('APP_PASSWORD is not set.')
            return
        strategy = matching_strategy(candidate, stored)
        if strategy:
            print(f'Accepted (matched by "{strategy}").')
        else:
            print('Rejected.')

    return app
