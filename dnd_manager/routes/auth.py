from flask import (Blueprint, render_template, request, redirect, url_for, flash, session,
                   current_app)
from flask_login import login_user, logout_user, current_user
from dnd_manager import limiter
from dnd_manager.models import SharedUser
from dnd_manager.passwords import verify_password
from dnd_manager.sanitize import MAX_LENGTHS

auth_bp = Blueprint('auth', __name__)


@auth_bp.route('/login', methods=['GET', 'POST'])
@limiter.limit("5 per minute", methods=["POST"])
def login():
    if current_user.is_authenticated:
        return redirect(url_for('main.dashboard'))

    if request.method == 'POST':
        password = request.form.get('password', '')
        stored = current_app.config.get('APP_PASSWORD')

        if not stored:
            current_app.logger.error('Login attempted but APP_PASSWORD is not configured')
            flash('Login is not configured on this server.', 'danger')
            return render_template('auth/login.html'), 503

        if len(password) <= MAX_LENGTHS['password'] and verify_password(password, stored):
            login_user(SharedUser(), remember=True)
            session.permanent = True
            next_page = request.args.get('next')
            # Relative paths only
            if next_page and (not next_page.startswith('/') or next_page.startswith('//')):
                next_page = None
            return redirect(next_page or url_for('main.dashboard'))

        current_app.logger.warning(f'Failed login attempt from {request.remote_addr}')
        flash('Invalid password.', 'danger')

    return render_template('auth/login.html')


@auth_bp.route('/logout')
def logout():
    logout_user()
    session.clear()
    flash('You have been logged out.', 'info')
    return redirect(url_for('auth.login'))
