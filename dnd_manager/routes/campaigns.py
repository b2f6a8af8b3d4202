from flask import Blueprint, render_template, redirect, url_for, request, flash, jsonify
from flask_login import login_required
from dnd_manager import db, csrf
from dnd_manager.form_data import get_string, get_id_list
from dnd_manager.mentions import build_mention_targets
from dnd_manager.models import Campaign, GameSession, Character, Organization, Location
from dnd_manager.sanitize import (sanitize_text, sanitize_nullable_text, sanitize_field,
                                  sanitize_search_query)
from dnd_manager.uniqueness import assert_unique_value, DuplicateError

campaigns_bp = Blueprint('campaigns', __name__, url_prefix='/campaigns')

NAME_MAX = 200
DUPLICATE_MESSAGE = 'Campaign name already exists. Choose a different name.'


def _render_form(campaign, status=200):
    organizations = Organization.query.order_by(Organization.name).all()
    return render_template('campaigns/form.html', campaign=campaign, form=request.form,
                           organizations=organizations), status


def _read_name(raw):
    """Return (name, error_message)."""
    name = sanitize_text(raw or '').strip()
    if not name:
        return name, 'Campaign name is required.'
    if len(name) > NAME_MAX:
        return name, f'Campaign name must be {NAME_MAX} characters or fewer.'
    return name, None


def _read_description(raw):
    description = sanitize_nullable_text(raw)
    return sanitize_field('description', description) if description else None


def _organizations_for(ids):
    if not ids:
        return []
    return Organization.query.filter(Organization.id.in_(ids)).all()


@campaigns_bp.route('/')
@login_required
def list_campaigns():
    q = sanitize_search_query(request.args.get('q', ''))
    query = Campaign.query
    if q:
        query = query.filter(Campaign.name.ilike(f'%{q}%'))
    campaigns = query.order_by(Campaign.name).all()
    mention_targets = build_mention_targets(characters=Character.query.all())
    return render_template('campaigns/list.html', campaigns=campaigns, q=q,
                           mention_targets=mention_targets)


@campaigns_bp.route('/new', methods=['GET', 'POST'])
@login_required
def create_campaign():
    if request.method == 'POST':
        name, error = _read_name(get_string(request.form, 'name'))
        if error:
            flash(error, 'danger')
            return _render_form(None, 400)
        try:
            assert_unique_value(Campaign, 'name', name, error_message=DUPLICATE_MESSAGE)
        except DuplicateError as e:
            flash(str(e), 'danger')
            return _render_form(None, 400)

        campaign = Campaign(
            name=name,
            description=_read_description(request.form.get('description')),
        )
        campaign.organizations = _organizations_for(get_id_list(request.form, 'organization_ids'))
        db.session.add(campaign)
        db.session.commit()

        flash(f'Campaign "{campaign.name}" created!', 'success')
        return redirect(url_for('campaigns.campaign_detail', campaign_id=campaign.id))

    return _render_form(None)


@campaigns_bp.route('/inline', methods=['POST'])
@csrf.exempt
@login_required
def create_campaign_inline():
    """JSON endpoint used by the "create new" option in multi-selects."""
    data = request.get_json(silent=True) or {}
    name, error = _read_name(data.get('name'))
    if error:
        return jsonify({'error': error}), 400
    try:
        assert_unique_value(Campaign, 'name', name, error_message=DUPLICATE_MESSAGE)
    except DuplicateError as e:
        return jsonify({'error': str(e)}), 409

    org_ids = [i for i in (data.get('organization_ids') or []) if isinstance(i, int)]
    campaign = Campaign(
        name=name,
        description=_read_description(data.get('description')),
    )
    campaign.organizations = _organizations_for(list(dict.fromkeys(org_ids)))
    db.session.add(campaign)
    db.session.commit()
    return jsonify({'id': campaign.id, 'name': campaign.name}), 201


@campaigns_bp.route('/<int:campaign_id>')
@login_required
def campaign_detail(campaign_id):
    campaign = Campaign.query.get_or_404(campaign_id)
    sessions = (GameSession.query.filter_by(campaign_id=campaign.id)
                .order_by(GameSession.session_date.desc()).all())

    # Everyone who showed up in any session of this campaign
    characters = {}
    for sess in sessions:
        for character in sess.characters:
            characters[character.id] = character
    characters = sorted(characters.values(), key=lambda c: c.name)

    mention_targets = build_mention_targets(
        characters=Character.query.all(),
        sessions=GameSession.query.all(),
        organizations=Organization.query.all(),
    )
    return render_template('campaigns/detail.html', campaign=campaign, sessions=sessions,
                           characters=characters, mention_targets=mention_targets)


@campaigns_bp.route('/<int:campaign_id>/edit', methods=['GET', 'POST'])
@login_required
def edit_campaign(campaign_id):
    campaign = Campaign.query.get_or_404(campaign_id)
    if request.method == 'POST':
        name, error = _read_name(get_string(request.form, 'name'))
        if error:
            flash(error, 'danger')
            return _render_form(campaign, 400)
        try:
            assert_unique_value(Campaign, 'name', name, exclude_id=campaign.id,
                                error_message=DUPLICATE_MESSAGE)
        except DuplicateError as e:
            flash(str(e), 'danger')
            return _render_form(campaign, 400)

        campaign.name = name
        campaign.description = _read_description(request.form.get('description'))
        if 'organization_field_present' in request.form:
            campaign.organizations = _organizations_for(
                get_id_list(request.form, 'organization_ids'))
        db.session.commit()
        flash(f'Campaign "{campaign.name}" updated.', 'success')
        return redirect(url_for('campaigns.campaign_detail', campaign_id=campaign.id))

    return _render_form(campaign)


@campaigns_bp.route('/<int:campaign_id>/delete', methods=['POST'])
@login_required
def delete_campaign(campaign_id):
    campaign = Campaign.query.get_or_404(campaign_id)
    name = campaign.name

    # Sessions and locations outlive their campaign; they just lose the link.
    for sess in list(campaign.sessions):
        sess.campaign_id = None
    for loc in Location.query.filter_by(primary_campaign_id=campaign.id).all():
        loc.primary_campaign_id = None
    campaign.organizations = []

    db.session.delete(campaign)
    db.session.commit()

    flash(f'Campaign "{name}" deleted.', 'warning')
    return redirect(url_for('campaigns.list_campaigns'))
