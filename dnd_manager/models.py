from dnd_manager import db
from datetime import datetime
from flask_login import UserMixin

# Name columns carry no UNIQUE constraint. Duplicate names are
# rejected by the advisory check in dnd_manager.uniqueness before each write.

# Association table: Session ↔ Character (who was at the table / who appeared)
session_characters = db.Table('session_characters',
    db.Column('session_id', db.Integer, db.ForeignKey('sessions.id'), primary_key=True),
    db.Column('character_id', db.Integer, db.ForeignKey('characters.id'), primary_key=True)
)

# Association table: Organization ↔ Campaign (many-to-many)
organization_campaigns = db.Table('organization_campaigns',
    db.Column('organization_id', db.Integer, db.ForeignKey('organizations.id'), primary_key=True),
    db.Column('campaign_id', db.Integer, db.ForeignKey('campaigns.id'), primary_key=True)
)

# Association table: Organization ↔ Session (many-to-many)
organization_sessions = db.Table('organization_sessions',
    db.Column('organization_id', db.Integer, db.ForeignKey('organizations.id'), primary_key=True),
    db.Column('session_id', db.Integer, db.ForeignKey('sessions.id'), primary_key=True)
)

PLAYER_TYPES = ['npc', 'player']
PLAYER_TYPE_LABELS = {'npc': 'NPC', 'player': 'Player Character'}
CHARACTER_STATUSES = ['alive', 'dead', 'unknown']


class SharedUser(UserMixin):
    """The one and only login. Everyone who knows APP_PASSWORD is this user."""
    id = 'shared'

    def get_id(self):
        return self.id

    def __repr__(self):
        return '<SharedUser>'


class TimestampMixin:
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Campaign(TimestampMixin, db.Model):
    __tablename__ = 'campaigns'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)

    sessions = db.relationship('GameSession', backref='campaign', lazy=True,
                               order_by='GameSession.session_date')
    organizations = db.relationship('Organization', secondary=organization_campaigns,
                                    backref='campaigns')

    def __repr__(self):
        return f'<Campaign {self.name}>'


class GameSession(TimestampMixin, db.Model):
    """One night of play. Named GameSession so it never gets confused with
    Flask's session or SQLAlchemy's db.session."""
    __tablename__ = 'sessions'

    id = db.Column(db.Integer, primary_key=True)
    campaign_id = db.Column(db.Integer, db.ForeignKey('campaigns.id'), nullable=True, index=True)
    name = db.Column(db.String(200), nullable=False)
    session_date = db.Column(db.Date)
    notes = db.Column(db.Text)
    header_image_filename = db.Column(db.String(255))

    characters = db.relationship('Character', secondary=session_characters,
                                 backref='sessions', order_by='Character.name')
    organizations = db.relationship('Organization', secondary=organization_sessions,
                                    backref='sessions')

    def __repr__(self):
        return f'<GameSession {self.name}>'


class Character(TimestampMixin, db.Model):
    __tablename__ = 'characters'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    race = db.Column(db.String(50))
    character_class = db.Column('class', db.String(50))   # "class" is a keyword in Python
    level = db.Column(db.String(20))                      # Free text: "5", "Veteran"
    backstory = db.Column(db.Text)
    image_filename = db.Column(db.String(255))
    player_type = db.Column(db.String(20), default='npc', nullable=False)   # npc / player
    status = db.Column(db.String(20), default='alive', nullable=False)      # alive / dead / unknown
    last_known_location = db.Column(db.String(200))

    organization_links = db.relationship('OrganizationCharacter', backref='character',
                                         cascade='all, delete-orphan')

    @property
    def organizations(self):
        return [link.organization for link in self.organization_links]

    def __repr__(self):
        return f'<Character {self.name}>'


class Organization(TimestampMixin, db.Model):
    """A guild, faction, family or any other group characters can belong to."""
    __tablename__ = 'organizations'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    logo_filename = db.Column(db.String(255))

    character_links = db.relationship('OrganizationCharacter', backref='organization',
                                      cascade='all, delete-orphan')

    @property
    def characters(self):
        return [link.character for link in self.character_links]

    def __repr__(self):
        return f'<Organization {self.name}>'


class OrganizationCharacter(db.Model):
    """Membership of a character in an organization, with the role they hold there."""
    __tablename__ = 'organization_characters'

    organization_id = db.Column(db.Integer, db.ForeignKey('organizations.id'), primary_key=True)
    character_id = db.Column(db.Integer, db.ForeignKey('characters.id'), primary_key=True)
    role = db.Column(db.String(20), default='npc', nullable=False)   # npc / player

    def __repr__(self):
        return f'<OrganizationCharacter org={self.organization_id} char={self.character_id}>'


class Location(TimestampMixin, db.Model):
    __tablename__ = 'locations'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    summary = db.Column(db.String(500))
    description = db.Column(db.Text)
    map_filename = db.Column(db.String(255))       # stored filename in static/uploads/
    primary_campaign_id = db.Column(db.Integer, db.ForeignKey('campaigns.id'), nullable=True, index=True)

    primary_campaign = db.relationship('Campaign', backref='locations')

    def __repr__(self):
        return f'<Location {self.name}>'


def sync_links(current_ids, next_ids):
    """Return (ids_to_remove, ids_to_add, touched_ids) for a join-table update.

    touched_ids is every id whose link was added or removed; those are the
    records whose pages now show different data.
    """
    current_ids = {i for i in current_ids if i}
    next_ids = {i for i in next_ids if i}
    removed = current_ids - next_ids
    added = next_ids - current_ids
    return removed, added, sorted(removed | added)


def set_character_organizations(character, affiliations):
    """Replace a character's organization memberships.

    affiliations is a list of (organization_id, role) pairs. Later pairs win
    when an organization is listed twice. Returns the touched organization ids
    (added, removed, or role changed).
    """
    wanted = {}
    for org_id, role in affiliations:
        wanted[org_id] = role if role in PLAYER_TYPES else 'npc'

    previous = {link.organization_id: link.role for link in character.organization_links}
    _removed, _added, touched = sync_links(previous.keys(), wanted.keys())
    touched = set(touched)
    for org_id, role in wanted.items():
        if org_id in previous and previous[org_id] != role:
            touched.add(org_id)

    # Edit links in place so an unchanged membership keeps its row
    for link in list(character.organization_links):
        if link.organization_id not in wanted:
            character.organization_links.remove(link)
        else:
            link.role = wanted.pop(link.organization_id)
    for org_id, role in wanted.items():
        character.organization_links.append(
            OrganizationCharacter(organization_id=org_id, role=role))
    return sorted(touched)
