from flask import (Blueprint, render_template, request, redirect, url_for, flash,
                   jsonify, current_app)
from flask_login import login_required
from dnd_manager import db, csrf, save_upload, delete_upload
from dnd_manager.form_data import get_string, get_id_list, get_file, get_checkbox
from dnd_manager.mentions import build_mention_targets
from dnd_manager.models import (Organization, OrganizationCharacter, Campaign, GameSession,
                                Character, sync_links)
from dnd_manager.sanitize import (sanitize_text, sanitize_nullable_text, sanitize_field,
                                  sanitize_search_query)
from dnd_manager.uniqueness import assert_unique_value, DuplicateError

organizations_bp = Blueprint('organizations', __name__, url_prefix='/organizations')

NAME_MAX = 200
DUPLICATE_MESSAGE = 'Organization name already exists. Choose a different name.'


def _form_choices():
    return dict(
        campaigns=Campaign.query.order_by(Campaign.name).all(),
        sessions=GameSession.query.order_by(GameSession.name).all(),
        characters=Character.query.order_by(Character.name).all(),
    )


def _render_form(organization, status=200):
    return render_template('organizations/form.html', organization=organization,
                           form=request.form, **_form_choices()), status


def _read_name():
    """Return (name, error_message)."""
    name = sanitize_text(get_string(request.form, 'name')).strip()
    if not name:
        return name, 'Organization name is required.'
    if len(name) > NAME_MAX:
        return name, f'Organization name must be {NAME_MAX} characters or fewer.'
    return name, None


def _read_description():
    description = sanitize_nullable_text(request.form.get('description'))
    return sanitize_field('description', description) if description else None


def _sync_characters(organization, character_ids):
    """Set the organization's members, keeping each existing member's role.

    New members join as 'npc'. Returns the touched character ids.
    """
    roles = {link.character_id: link.role for link in organization.character_links}
    _removed, _added, touched = sync_links(roles.keys(), character_ids)
    keep = set(character_ids)
    for link in list(organization.character_links):
        if link.character_id not in keep:
            organization.character_links.remove(link)
    for character_id in character_ids:
        if character_id not in roles:
            organization.character_links.append(
                OrganizationCharacter(character_id=character_id, role='npc'))
    return touched


def _apply_links(organization):
    """Replace campaign, session and member links from the submitted form.

    Returns {'campaigns': [...], 'sessions': [...], 'characters': [...]} of touched ids.
    """
    campaign_ids = get_id_list(request.form, 'campaign_ids')
    session_ids = get_id_list(request.form, 'session_ids')
    character_ids = get_id_list(request.form, 'character_ids')

    _r, _a, touched_campaigns = sync_links([c.id for c in organization.campaigns], campaign_ids)
    organization.campaigns = Campaign.query.filter(Campaign.id.in_(campaign_ids)).all()
    _r, _a, touched_sessions = sync_links([s.id for s in organization.sessions], session_ids)
    organization.sessions = GameSession.query.filter(GameSession.id.in_(session_ids)).all()
    valid = {c.id for c in Character.query.filter(Character.id.in_(character_ids))}
    touched_characters = _sync_characters(
        organization, [i for i in character_ids if i in valid])

    return {'campaigns': touched_campaigns, 'sessions': touched_sessions,
            'characters': touched_characters}


@organizations_bp.route('/')
@login_required
def list_organizations():
    q = sanitize_search_query(request.args.get('q', ''))
    query = Organization.query
    if q:
        query = query.filter(Organization.name.ilike(f'%{q}%'))
    organizations = query.order_by(Organization.name).all()
    return render_template('organizations/list.html', organizations=organizations, q=q)


@organizations_bp.route('/new', methods=['GET', 'POST'])
@login_required
def create_organization():
    if request.method == 'POST':
        name, error = _read_name()
        if error:
            flash(error, 'danger')
            return _render_form(None, 400)
        try:
            assert_unique_value(Organization, 'name', name, error_message=DUPLICATE_MESSAGE)
        except DuplicateError as e:
            flash(str(e), 'danger')
            return _render_form(None, 400)

        organization = Organization(
            name=name,
            description=_read_description(),
        )
        logo = save_upload(get_file(request.files, 'logo'), prefix='org-')
        organization.logo_filename = logo
        db.session.add(organization)
        _apply_links(organization)
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            delete_upload(logo)
            raise

        flash(f'Organization "{organization.name}" created!', 'success')
        return redirect(url_for('organizations.organization_detail',
                                organization_id=organization.id))

    return _render_form(None)


@organizations_bp.route('/inline', methods=['POST'])
@csrf.exempt
@login_required
def create_organization_inline():
    """JSON endpoint used by the "create new" option in multi-selects."""
    data = request.get_json(silent=True) or {}
    name = sanitize_text(data.get('name') or '').strip()[:NAME_MAX]
    if not name:
        return jsonify({'error': 'Organization name is required'}), 400
    try:
        assert_unique_value(Organization, 'name', name, error_message=DUPLICATE_MESSAGE)
    except DuplicateError as e:
        return jsonify({'error': str(e)}), 409

    organization = Organization(name=name)
    db.session.add(organization)
    db.session.commit()
    return jsonify({'id': organization.id, 'name': organization.name}), 201


@organizations_bp.route('/<int:organization_id>')
@login_required
def organization_detail(organization_id):
    organization = Organization.query.get_or_404(organization_id)
    members = {'player': [], 'npc': []}
    for link in sorted(organization.character_links, key=lambda l: l.character.name):
        members.setdefault(link.role, []).append(link.character)
    mention_targets = build_mention_targets(
        characters=Character.query.all(),
        sessions=GameSession.query.all(),
        organizations=Organization.query.all(),
    )
    return render_template('organizations/detail.html', organization=organization,
                           members=members, mention_targets=mention_targets)


@organizations_bp.route('/<int:organization_id>/edit', methods=['GET', 'POST'])
@login_required
def edit_organization(organization_id):
    organization = Organization.query.get_or_404(organization_id)

    if request.method == 'POST':
        name, error = _read_name()
        if error:
            flash(error, 'danger')
            return _render_form(organization, 400)
        try:
            assert_unique_value(Organization, 'name', name, exclude_id=organization.id,
                                error_message=DUPLICATE_MESSAGE)
        except DuplicateError as e:
            flash(str(e), 'danger')
            return _render_form(organization, 400)

        organization.name = name
        organization.description = _read_description()

        old_logo = organization.logo_filename
        new_logo = save_upload(get_file(request.files, 'logo'), prefix='org-')
        if new_logo:
            organization.logo_filename = new_logo
        elif get_checkbox(request.form, 'logo_remove'):
            organization.logo_filename = None

        touched = _apply_links(organization)

        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            delete_upload(new_logo)
            raise
        if old_logo and organization.logo_filename != old_logo:
            delete_upload(old_logo)

        current_app.logger.debug(
            f'Organization {organization.id} links changed: {touched}')
        flash(f'Organization "{organization.name}" updated!', 'success')
        return redirect(url_for('organizations.organization_detail',
                                organization_id=organization.id))

    return _render_form(organization)


@organizations_bp.route('/<int:organization_id>/delete', methods=['POST'])
@login_required
def delete_organization(organization_id):
    organization = Organization.query.get_or_404(organization_id)
    name = organization.name
    logo = organization.logo_filename

    # Membership rows cascade; campaign/session link rows are cleared by SQLAlchemy
    db.session.delete(organization)
    db.session.commit()
    delete_upload(logo)

    flash(f'Organization "{name}" deleted.', 'warning')
    return redirect(url_for('organizations.list_organizations'))
