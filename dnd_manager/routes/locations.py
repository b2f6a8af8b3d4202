from flask import Blueprint, render_template, redirect, url_for, request, flash
from flask_login import login_required
from dnd_manager import db, save_upload, delete_upload
from dnd_manager.form_data import get_string, get_file, get_checkbox
from dnd_manager.models import Location, Campaign, Character
from dnd_manager.sanitize import (sanitize_text, sanitize_nullable_text, sanitize_field,
                                  sanitize_search_query)
from dnd_manager.uniqueness import assert_unique_value, DuplicateError, escape_like, LIKE_ESCAPE

locations_bp = Blueprint('locations', __name__, url_prefix='/locations')

NAME_MAX = 200
SUMMARY_MAX = 500
DUPLICATE_MESSAGE = 'Location name already exists. Choose a different name.'


def _render_form(location, status=200):
    campaigns = Campaign.query.order_by(Campaign.name).all()
    return render_template('locations/form.html', location=location, form=request.form,
                           campaigns=campaigns), status


def _read_fields():
    """Return (fields_dict, error_message) from the submitted form."""
    name = sanitize_text(get_string(request.form, 'name')).strip()
    if not name:
        return None, 'Location name is required.'
    if len(name) > NAME_MAX:
        return None, f'Location name must be {NAME_MAX} characters or fewer.'

    summary = sanitize_nullable_text(request.form.get('summary'))
    if summary and len(summary) > SUMMARY_MAX:
        return None, f'Summary must be {SUMMARY_MAX} characters or fewer.'

    description = sanitize_nullable_text(request.form.get('description'))
    if description:
        description = sanitize_field('description', description)

    campaign_id = get_string(request.form, 'primary_campaign_id')
    campaign = db.session.get(Campaign, int(campaign_id)) if campaign_id.isdigit() else None

    return dict(
        name=name,
        summary=summary,
        description=description,
        primary_campaign_id=campaign.id if campaign else None,
    ), None


@locations_bp.route('/')
@login_required
def list_locations():
    q = sanitize_search_query(request.args.get('q', ''))
    query = Location.query
    if q:
        query = query.filter(Location.name.ilike(f'%{q}%'))
    locations = query.order_by(Location.name).all()
    return render_template('locations/list.html', locations=locations, q=q)


@locations_bp.route('/new', methods=['GET', 'POST'])
@login_required
def create_location():
    if request.method == 'POST':
        fields, error = _read_fields()
        if error:
            flash(error, 'danger')
            return _render_form(None, 400)
        try:
            assert_unique_value(Location, 'name', fields['name'],
                                error_message=DUPLICATE_MESSAGE)
        except DuplicateError as e:
            flash(str(e), 'danger')
            return _render_form(None, 400)

        location = Location(**fields)
        map_file = save_upload(get_file(request.files, 'map_image'), prefix='map-')
        location.map_filename = map_file
        db.session.add(location)
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            delete_upload(map_file)
            raise

        flash(f'Location "{location.name}" created!', 'success')
        return redirect(url_for('locations.location_detail', location_id=location.id))

    return _render_form(None)


@locations_bp.route('/<int:location_id>')
@login_required
def location_detail(location_id):
    location = Location.query.get_or_404(location_id)
    # Characters last seen here
    residents = (Character.query
                 .filter(Character.last_known_location.ilike(escape_like(location.name),
                                                             escape=LIKE_ESCAPE))
                 .order_by(Character.name).all())
    return render_template('locations/detail.html', location=location, residents=residents)


@locations_bp.route('/<int:location_id>/edit', methods=['GET', 'POST'])
@login_required
def edit_location(location_id):
    location = Location.query.get_or_404(location_id)

    if request.method == 'POST':
        fields, error = _read_fields()
        if error:
            flash(error, 'danger')
            return _render_form(location, 400)
        try:
            assert_unique_value(Location, 'name', fields['name'], exclude_id=location.id,
                                error_message=DUPLICATE_MESSAGE)
        except DuplicateError as e:
            flash(str(e), 'danger')
            return _render_form(location, 400)

        for key, value in fields.items():
            setattr(location, key, value)

        old_map = location.map_filename
        new_map = save_upload(get_file(request.files, 'map_image'), prefix='map-')
        if new_map:
            location.map_filename = new_map
        elif get_checkbox(request.form, 'map_remove'):
            location.map_filename = None

        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            delete_upload(new_map)
            raise
        if old_map and location.map_filename != old_map:
            delete_upload(old_map)

        flash(f'Location "{location.name}" updated!', 'success')
        return redirect(url_for('locations.location_detail', location_id=location.id))

    return _render_form(location)


@locations_bp.route('/<int:location_id>/delete', methods=['POST'])
@login_required
def delete_location(location_id):
    location = Location.query.get_or_404(location_id)
    name = location.name
    map_file = location.map_filename

    db.session.delete(location)
    db.session.commit()
    delete_upload(map_file)

    flash(f'Location "{name}" deleted.', 'warning')
    return redirect(url_for('locations.list_locations'))
