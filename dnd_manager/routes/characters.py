from flask import (Blueprint, render_template, request, redirect, url_for, flash,
                   jsonify, current_app)
from flask_login import login_required
from dnd_manager import db, csrf, save_upload, delete_upload
from dnd_manager.form_data import (get_string, get_string_or_none, get_id_list, get_file,
                                   get_checkbox, to_title_case)
from dnd_manager.mentions import build_mention_targets, collect_mention_targets
from dnd_manager.models import (Character, GameSession, Organization, PLAYER_TYPES,
                                PLAYER_TYPE_LABELS, CHARACTER_STATUSES,
                                set_character_organizations)
from dnd_manager.sanitize import (sanitize_field, sanitize_text, sanitize_nullable_text,
                                  sanitize_search_query)
from dnd_manager.uniqueness import assert_unique_value, DuplicateError

characters_bp = Blueprint('characters', __name__, url_prefix='/characters')

NAME_MAX = 100
DUPLICATE_MESSAGE = 'Character name already exists. Choose a different name.'


def _render_form(character, status=200):
    return render_template(
        'characters/form.html', character=character, form=request.form,
        player_types=PLAYER_TYPES, player_type_labels=PLAYER_TYPE_LABELS,
        statuses=CHARACTER_STATUSES,
        organizations=Organization.query.order_by(Organization.name).all(),
        sessions=GameSession.query.order_by(GameSession.name).all(),
    ), status


def _read_name():
    """Return (title-cased name, error_message)."""
    name = to_title_case(sanitize_text(get_string(request.form, 'name')))
    if not name:
        return name, 'Character name is required.'
    if len(name) > NAME_MAX:
        return name, f'Character name must be {NAME_MAX} characters or fewer.'
    return name, None


def _optional(kind, key):
    value = sanitize_nullable_text(get_string_or_none(request.form, key))
    return sanitize_field(kind, value) if value else None


def _apply_fields(character):
    """Copy the non-name form fields onto character."""
    player_type = get_string(request.form, 'player_type')
    status = get_string(request.form, 'status')
    character.race = _optional('race', 'race')
    character.character_class = _optional('class', 'character_class')
    character.level = _optional('level', 'level')
    character.backstory = _optional('backstory', 'backstory')
    character.last_known_location = _optional('location', 'last_known_location')
    character.player_type = player_type if player_type in PLAYER_TYPES else 'npc'
    character.status = status if status in CHARACTER_STATUSES else 'alive'


def link_mentioned_sessions(character):
    """Attach character to every session its backstory @mentions.

    Returns the sessions that were newly linked.
    """
    if not character.backstory or not character.backstory.strip():
        return []
    targets = build_mention_targets(sessions=GameSession.query.all())
    mentioned_ids = {t.id for t in collect_mention_targets(character.backstory, targets,
                                                           kind='session')}
    if not mentioned_ids:
        return []
    already = {s.id for s in character.sessions}
    new_sessions = GameSession.query.filter(GameSession.id.in_(mentioned_ids - already)).all()
    character.sessions.extend(new_sessions)
    return new_sessions


def _organization_affiliations(character):
    org_ids = get_id_list(request.form, 'organization_ids')
    valid = {o.id for o in Organization.query.filter(Organization.id.in_(org_ids))}
    return [(org_id, character.player_type) for org_id in org_ids if org_id in valid]


@characters_bp.route('/')
@login_required
def list_characters():
    q = sanitize_search_query(request.args.get('q', ''))
    player_type = request.args.get('type', '').strip().lower() or None
    query = Character.query
    if q:
        query = query.filter(Character.name.ilike(f'%{q}%'))
    if player_type in PLAYER_TYPES:
        query = query.filter(Character.player_type == player_type)
    characters = query.order_by(Character.name).all()
    return render_template('characters/list.html', characters=characters, q=q,
                           player_type=player_type, player_type_labels=PLAYER_TYPE_LABELS)


@characters_bp.route('/new', methods=['GET', 'POST'])
@login_required
def create_character():
    if request.method == 'POST':
        name, error = _read_name()
        if error:
            flash(error, 'danger')
            return _render_form(None, 400)
        try:
            assert_unique_value(Character, 'name', name, error_message=DUPLICATE_MESSAGE)
        except DuplicateError as e:
            flash(str(e), 'danger')
            return _render_form(None, 400)

        character = Character(name=name)
        _apply_fields(character)
        image = save_upload(get_file(request.files, 'image'), prefix='character-')
        character.image_filename = image
        db.session.add(character)

        session_ids = get_id_list(request.form, 'session_ids')
        character.sessions = GameSession.query.filter(GameSession.id.in_(session_ids)).all()
        set_character_organizations(character, _organization_affiliations(character))
        newly_linked = link_mentioned_sessions(character)

        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            delete_upload(image)
            raise

        if newly_linked:
            current_app.logger.info(
                f'Character {character.id} linked to sessions '
                f'{[s.id for s in newly_linked]} from backstory mentions')
        flash(f'Character "{character.name}" created!', 'success')

        # Forms embedded in another page (e.g. a session) send the user back there
        redirect_to = get_string(request.form, 'redirect_to')
        if redirect_to.startswith('/') and not redirect_to.startswith('//'):
            sep = '&' if '?' in redirect_to else '?'
            return redirect(f'{redirect_to}{sep}newCharacterId={character.id}')
        return redirect(url_for('characters.character_detail', character_id=character.id))

    return _render_form(None)


@characters_bp.route('/inline', methods=['POST'])
@csrf.exempt
@login_required
def create_character_inline():
    """JSON endpoint used by the "create new" option in multi-selects."""
    data = request.get_json(silent=True) or {}
    name = to_title_case(sanitize_text(data.get('name') or ''))[:NAME_MAX]
    if not name:
        return jsonify({'error': 'Character name is required'}), 400
    player_type = data.get('player_type') or 'npc'
    if player_type not in PLAYER_TYPES:
        return jsonify({'error': f'Unknown player type: {player_type}'}), 400
    try:
        assert_unique_value(Character, 'name', name, error_message=DUPLICATE_MESSAGE)
    except DuplicateError as e:
        return jsonify({'error': str(e)}), 409

    character = Character(name=name, player_type=player_type, status='alive')
    db.session.add(character)
    db.session.commit()
    return jsonify({'id': character.id, 'name': character.name}), 201


@characters_bp.route('/<int:character_id>')
@login_required
def character_detail(character_id):
    character = Character.query.get_or_404(character_id)
    mention_targets = build_mention_targets(
        characters=Character.query.all(),
        sessions=GameSession.query.all(),
        organizations=Organization.query.all(),
    )
    sessions = sorted(character.sessions,
                      key=lambda s: (s.session_date is not None, s.session_date), reverse=True)
    return render_template('characters/detail.html', character=character, sessions=sessions,
                           mention_targets=mention_targets,
                           player_type_labels=PLAYER_TYPE_LABELS)


@characters_bp.route('/<int:character_id>/edit', methods=['GET', 'POST'])
@login_required
def edit_character(character_id):
    character = Character.query.get_or_404(character_id)

    if request.method == 'POST':
        name, error = _read_name()
        if error:
            flash(error, 'danger')
            return _render_form(character, 400)
        try:
            assert_unique_value(Character, 'name', name, exclude_id=character.id,
                                error_message=DUPLICATE_MESSAGE)
        except DuplicateError as e:
            flash(str(e), 'danger')
            return _render_form(character, 400)

        character.name = name
        _apply_fields(character)

        old_image = character.image_filename
        new_image = save_upload(get_file(request.files, 'image'), prefix='character-')
        if new_image:
            character.image_filename = new_image
        elif get_checkbox(request.form, 'image_remove'):
            character.image_filename = None

        if 'organization_field_present' in request.form:
            touched = set_character_organizations(character, _organization_affiliations(character))
            current_app.logger.debug(f'Character {character.id} organizations touched: {touched}')
        if 'session_field_present' in request.form:
            session_ids = get_id_list(request.form, 'session_ids')
            character.sessions = GameSession.query.filter(GameSession.id.in_(session_ids)).all()
        link_mentioned_sessions(character)

        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            delete_upload(new_image)
            raise
        if old_image and character.image_filename != old_image:
            delete_upload(old_image)

        flash(f'Character "{character.name}" updated!', 'success')
        return redirect(url_for('characters.character_detail', character_id=character.id))

    return _render_form(character)


@characters_bp.route('/<int:character_id>/delete', methods=['POST'])
@login_required
def delete_character(character_id):
    character = Character.query.get_or_404(character_id)
    name = character.name
    image = character.image_filename

    # Session links are cleared by SQLAlchemy; organization memberships cascade
    character.sessions = []
    db.session.delete(character)
    db.session.commit()
    delete_upload(image)

    flash(f'Character "{name}" deleted.', 'warning')
    return redirect(url_for('characters.list_characters'))
