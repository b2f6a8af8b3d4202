from flask import (Blueprint, render_template, request, redirect, url_for, flash,
                   jsonify, current_app)
from flask_login import login_required
from dnd_manager import db, csrf, save_upload, delete_upload
from dnd_manager.form_data import (get_string, get_id_list, get_file, get_checkbox,
                                   get_date_value, to_title_case)
from dnd_manager.mentions import build_mention_targets, collect_mention_targets
from dnd_manager.models import (GameSession, Campaign, Character, Organization,
                                OrganizationCharacter, sync_links)
from dnd_manager.sanitize import (sanitize_text, sanitize_nullable_text, sanitize_field,
                                  sanitize_search_query)
from dnd_manager.uniqueness import assert_unique_value, DuplicateError

sessions_bp = Blueprint('sessions', __name__, url_prefix='/sessions')

NAME_MAX = 200
DUPLICATE_MESSAGE = 'Session name already exists. Choose a different name.'


def _render_form(sess, status=200):
    return render_template(
        'sessions/form.html', sess=sess, form=request.form,
        campaigns=Campaign.query.order_by(Campaign.name).all(),
        characters=Character.query.order_by(Character.name).all(),
        organizations=Organization.query.order_by(Organization.name).all(),
    ), status


def _read_name():
    """Return (title-cased name, error_message)."""
    name = to_title_case(sanitize_text(get_string(request.form, 'name')))
    if not name:
        return name, 'Session name is required.'
    if len(name) > NAME_MAX:
        return name, f'Session name must be {NAME_MAX} characters or fewer.'
    return name, None


def _read_campaign_id():
    raw = get_string(request.form, 'campaign_id')
    if not raw.isdigit():
        return None
    campaign = db.session.get(Campaign, int(raw))
    return campaign.id if campaign else None


def _coerce_id(value):
    """Return value as a positive int id, or None. Accepts ints and digit strings."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip()) or None
    return None


def _read_notes():
    notes = sanitize_nullable_text(request.form.get('notes'))
    return sanitize_field('notes', notes) if notes else None


def _apply_characters(sess):
    """Selected characters plus anyone @mentioned in the notes."""
    character_ids = get_id_list(request.form, 'character_ids')
    if sess.notes:
        targets = build_mention_targets(characters=Character.query.all())
        for target in collect_mention_targets(sess.notes, targets, kind='character'):
            if target.id not in character_ids:
                character_ids.append(target.id)
    sess.characters = Character.query.filter(Character.id.in_(character_ids)).all()


def organizations_from_characters(sess):
    """Organization ids that any of the session's characters belong to."""
    character_ids = [c.id for c in sess.characters]
    if not character_ids:
        return []
    rows = (db.session.query(OrganizationCharacter.organization_id)
            .filter(OrganizationCharacter.character_id.in_(character_ids))
            .distinct().all())
    return sorted(row[0] for row in rows)


def _apply_organizations(sess):
    """Use the picked organizations; with no organization field on the form,
    fall back to the organizations of the attending characters."""
    if 'organization_ids' in request.form or 'organization_field_present' in request.form:
        org_ids = get_id_list(request.form, 'organization_ids')
    else:
        org_ids = organizations_from_characters(sess)
    _removed, _added, touched = sync_links([o.id for o in sess.organizations], org_ids)
    sess.organizations = Organization.query.filter(Organization.id.in_(org_ids)).all()
    return touched


@sessions_bp.route('/')
@login_required
def list_sessions():
    q = sanitize_search_query(request.args.get('q', ''))
    query = GameSession.query
    if q:
        query = query.filter(GameSession.name.ilike(f'%{q}%'))
    sessions_list = query.order_by(GameSession.session_date.desc(),
                                   GameSession.created_at.desc()).all()
    mention_targets = build_mention_targets(characters=Character.query.all())
    return render_template('sessions/list.html', sessions=sessions_list, q=q,
                           mention_targets=mention_targets)


@sessions_bp.route('/new', methods=['GET', 'POST'])
@login_required
def create_session():
    if request.method == 'POST':
        name, error = _read_name()
        if error:
            flash(error, 'danger')
            return _render_form(None, 400)
        try:
            session_date = get_date_value(request.form, 'session_date')
        except ValueError:
            flash('Invalid date format. Use YYYY-MM-DD.', 'danger')
            return _render_form(None, 400)
        try:
            assert_unique_value(GameSession, 'name', name, error_message=DUPLICATE_MESSAGE)
        except DuplicateError as e:
            flash(str(e), 'danger')
            return _render_form(None, 400)

        sess = GameSession(
            name=name,
            campaign_id=_read_campaign_id(),
            session_date=session_date,
            notes=_read_notes(),
        )
        header = save_upload(get_file(request.files, 'header_image'), prefix='session-')
        sess.header_image_filename = header
        db.session.add(sess)
        _apply_characters(sess)
        _apply_organizations(sess)

        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            delete_upload(header)
            raise

        flash(f'Session "{sess.name}" created!', 'success')
        return redirect(url_for('sessions.session_detail', session_id=sess.id))

    return _render_form(None)


@sessions_bp.route('/inline', methods=['POST'])
@csrf.exempt
@login_required
def create_session_inline():
    """JSON endpoint used by the "create new" option in multi-selects."""
    data = request.get_json(silent=True) or {}
    name = to_title_case(sanitize_text(data.get('name') or ''))[:NAME_MAX]
    if not name:
        return jsonify({'error': 'Session name is required'}), 400
    try:
        assert_unique_value(GameSession, 'name', name, error_message=DUPLICATE_MESSAGE)
    except DuplicateError as e:
        return jsonify({'error': str(e)}), 409

    campaign_id = _coerce_id(data.get('campaign_id'))
    if campaign_id is not None and db.session.get(Campaign, campaign_id) is None:
        campaign_id = None

    sess = GameSession(name=name, campaign_id=campaign_id)
    db.session.add(sess)
    db.session.commit()
    return jsonify({'id': sess.id, 'name': sess.name}), 201


@sessions_bp.route('/<int:session_id>')
@login_required
def session_detail(session_id):
    sess = GameSession.query.get_or_404(session_id)
    mention_targets = build_mention_targets(
        characters=Character.query.all(),
        sessions=GameSession.query.all(),
        organizations=Organization.query.all(),
        campaigns=Campaign.query.all(),
    )
    players = [c for c in sess.characters if c.player_type == 'player']
    npcs = [c for c in sess.characters if c.player_type != 'player']
    return render_template('sessions/detail.html', sess=sess, players=players, npcs=npcs,
                           mention_targets=mention_targets)


@sessions_bp.route('/<int:session_id>/edit', methods=['GET', 'POST'])
@login_required
def edit_session(session_id):
    sess = GameSession.query.get_or_404(session_id)

    if request.method == 'POST':
        name, error = _read_name()
        if error:
            flash(error, 'danger')
            return _render_form(sess, 400)
        try:
            session_date = get_date_value(request.form, 'session_date')
        except ValueError:
            flash('Invalid date format. Use YYYY-MM-DD.', 'danger')
            return _render_form(sess, 400)
        try:
            assert_unique_value(GameSession, 'name', name, exclude_id=sess.id,
                                error_message=DUPLICATE_MESSAGE)
        except DuplicateError as e:
            flash(str(e), 'danger')
            return _render_form(sess, 400)

        sess.name = name
        sess.campaign_id = _read_campaign_id()
        sess.session_date = session_date
        sess.notes = _read_notes()

        old_header = sess.header_image_filename
        new_header = save_upload(get_file(request.files, 'header_image'), prefix='session-')
        if new_header:
            sess.header_image_filename = new_header
        elif get_checkbox(request.form, 'header_image_remove'):
            sess.header_image_filename = None

        _apply_characters(sess)
        touched = _apply_organizations(sess)

        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            delete_upload(new_header)
            raise
        if old_header and sess.header_image_filename != old_header:
            delete_upload(old_header)

        current_app.logger.debug(f'Session {sess.id} organizations touched: {touched}')
        flash(f'Session "{sess.name}" updated!', 'success')
        return redirect(url_for('sessions.session_detail', session_id=sess.id))

    return _render_form(sess)


@sessions_bp.route('/<int:session_id>/delete', methods=['POST'])
@login_required
def delete_session(session_id):
    sess = GameSession.query.get_or_404(session_id)
    name = sess.name
    header = sess.header_image_filename

    # SQLAlchemy clears the session_characters and organization_sessions rows
    db.session.delete(sess)
    db.session.commit()
    delete_upload(header)

    flash(f'Session "{name}" deleted.', 'warning')
    return redirect(url_for('sessions.list_sessions'))
