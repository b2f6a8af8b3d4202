from flask import Blueprint, render_template, redirect, url_for
from flask_login import login_required
from dnd_manager.mentions import build_mention_targets
from dnd_manager.models import Campaign, GameSession, Character, Organization, Location

main_bp = Blueprint('main', __name__)

RECENT_SESSION_COUNT = 5


@main_bp.route('/')
def index():
    return redirect(url_for('main.dashboard'))


@main_bp.route('/dashboard')
@login_required
def dashboard():
    counts = {
        'campaigns': Campaign.query.count(),
        'sessions': GameSession.query.count(),
        'characters': Character.query.count(),
        'organizations': Organization.query.count(),
        'locations': Location.query.count(),
    }
    recent_sessions = (GameSession.query
                       .order_by(GameSession.session_date.desc(), GameSession.created_at.desc())
                       .limit(RECENT_SESSION_COUNT).all())
    mention_targets = build_mention_targets(characters=Character.query.all())
    return render_template('dashboard.html', counts=counts, recent_sessions=recent_sessions,
                           mention_targets=mention_targets)
