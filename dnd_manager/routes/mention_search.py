"""Autocomplete source for @mentions.

GET /api/mention-targets?q=mir&kind=character
Returns a JSON array (max 20) of {id, name, href, kind}, names starting with
the query first, then names containing it.
"""

from flask import Blueprint, jsonify, request
from flask_login import login_required
from dnd_manager.mentions import build_mention_targets, MENTION_KINDS
from dnd_manager.models import Campaign, GameSession, Character, Organization, Location
from dnd_manager.sanitize import sanitize_mention_query

mention_search_bp = Blueprint('mention_search', __name__, url_prefix='/api')

MAX_RESULTS = 20


@mention_search_bp.route('/mention-targets')
@login_required
def mention_targets():
    q = sanitize_mention_query(request.args.get('q', '')).lower()
    kind = request.args.get('kind', '').strip().lower() or None
    if kind and kind not in MENTION_KINDS:
        return jsonify({'error': f'Unknown kind: {kind}'}), 400

    targets = build_mention_targets(
        characters=Character.query.order_by(Character.name).all(),
        sessions=GameSession.query.order_by(GameSession.name).all(),
        organizations=Organization.query.order_by(Organization.name).all(),
        campaigns=Campaign.query.order_by(Campaign.name).all(),
        locations=Location.query.order_by(Location.name).all(),
    )
    if kind:
        targets = [t for t in targets if t.kind == kind]
    if q:
        prefix = [t for t in targets if t.name.lower().startswith(q)]
        contains = [t for t in targets if q in t.name.lower() and t not in prefix]
        targets = prefix + contains

    return jsonify([t._asdict() for t in targets[:MAX_RESULTS]])
