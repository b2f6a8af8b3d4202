import os
from datetime import timedelta

class Config:
    # The secret key is used by Flask to sign session cookies — keep it secret in production.
    # Locally, a dev-only fallback is used so you don't need a .env file just to run the app.
    SECRET_KEY = os.environ.get('SECRET_KEY')
    if not SECRET_KEY and os.environ.get('FLASK_ENV') != 'development':
        import warnings
        warnings.warn('SECRET_KEY not set — using insecure default. Set SECRET_KEY env var in production!')
        SECRET_KEY = 'dev-secret-key-not-for-production'
    elif not SECRET_KEY:
        SECRET_KEY = 'dev-secret-key-not-for-production'

    # The single shared password everyone at the table logs in with.
    # If it's not set, nobody can log in.
    APP_PASSWORD = os.environ.get('APP_PASSWORD')

    # DATABASE_URL can point at Postgres in production.
    # Locally, falls back to the instance/ folder next to this file.
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(os.path.abspath(os.path.dirname(__file__)), 'instance', 'dnd_manager.db')

    # This disables a noisy tracking feature we don't need
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Character portraits, session headers, organization logos and location maps
    # are stored in dnd_manager/static/uploads/. Only the filename goes in the database.
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER') or \
        os.path.join(os.path.dirname(os.path.abspath(__file__)), 'dnd_manager', 'static', 'uploads')
    ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}

    # Session cookie security
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_SECURE = os.environ.get('FLASK_ENV') == 'production'
    SESSION_COOKIE_NAME = 'dnd-manager-session'
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = 'Lax'

    # A login lasts one week
    PERMANENT_SESSION_LIFETIME = timedelta(days=7)
    REMEMBER_COOKIE_DURATION = timedelta(days=7)

    # Maximum upload size (16 MB)
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024
