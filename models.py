import enum
import logging
from datetime import datetime, timezone

from bson.errors import InvalidId
from bson.objectid import ObjectId
from flask_login import AnonymousUserMixin, UserMixin
from pymongo import ASCENDING, DESCENDING

from extensions import mongo

logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    GUEST = 'guest'
    USER = 'user'
    ADMIN = 'admin'


class Permission(str, enum.Enum):
    VIEW = 'view'
    POST = 'post'
    VOTE = 'vote'
    MODERATE = 'moderate'


ROLE_PERMISSIONS = {
    Role.GUEST: frozenset({Permission.VIEW}),
    Role.USER: frozenset({Permission.VIEW, Permission.POST, Permission.VOTE}),
    Role.ADMIN: frozenset({Permission.VIEW, Permission.POST, Permission.VOTE, Permission.MODERATE}),
}

NOTIFICATION_TYPES = ('info', 'discount', 'other', 'answer', 'comment', 'mention', 'vote', 'accept')

VOTE_TYPES = ('upvote', 'downvote')


def utcnow():
    return datetime.now(timezone.utc)


def to_object_id(value):
    """Parse a client-supplied id, returning None when it is not an ObjectId."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def ensure_indexes():
    mongo.db.users.create_index('username', unique=True)
    mongo.db.users.create_index('email', unique=True)
    mongo.db.questions.create_index([('created_at', DESCENDING)])
    mongo.db.questions.create_index('tags')
    mongo.db.answers.create_index([('question_id', ASCENDING), ('is_accepted', DESCENDING)])
    mongo.db.notifications.create_index([('user_id', ASCENDING), ('is_read', ASCENDING),
                                         ('created_at', DESCENDING)])
    mongo.db.notifications.create_index([('created_at', DESCENDING)])
    mongo.db.chats.create_index([('user_id', ASCENDING), ('updated_at', DESCENDING)])


def role_allows(role, permission):
    return Permission(permission) in ROLE_PERMISSIONS[Role(role)]


class User(UserMixin):
    def __init__(self, user_data):
        self.id = str(user_data['_id'])
        self.object_id = user_data['_id']
        self.username = user_data['username']
        self.email = user_data['email']
        self.password_hash = user_data.get('password_hash', None)
        self.role = Role(user_data.get('role', Role.USER.value))
        self.reputation = user_data.get('reputation', 0)
        self.avatar = user_data.get('avatar', '')
        self.bio = user_data.get('bio', '')
        self.created_at = user_data.get('created_at')

    @property
    def is_admin(self):
        return self.role is Role.ADMIN

    @property
    def is_guest(self):
        return self.role is Role.GUEST

    def can(self, permission):
        return role_allows(self.role, permission)

    def owns(self, owner_id):
        return owner_id is not None and str(owner_id) == self.id

    @staticmethod
    def get(user_id):
        try:
            user_data = mongo.db.users.find_one({'_id': ObjectId(user_id)})
        except (InvalidId, TypeError):
            logger.debug("Rejected malformed user id %r", user_id)
            return None
        return User(user_data) if user_data else None


class AnonymousUser(AnonymousUserMixin):
    role = None
    is_admin = False
    is_guest = False

    def can(self, permission):
        return Permission(permission) is Permission.VIEW

    def owns(self, owner_id):
        return False


def new_user_document(username, email, password_hash, role=Role.USER, reputation=0):
    return {
        'username': username,
        'email': email,
        'password_hash': password_hash,
        'role': Role(role).value,
        'reputation': reputation,
        'avatar': '',
        'bio': '',
        'created_at': utcnow(),
    }


def new_question_document(title, description, tags, author_id):
    now = utcnow()
    return {
        'title': title,
        'description': description,
        'tags': tags,
        'author_id': author_id,
        'votes': {'upvotes': [], 'downvotes': []},
        'vote_count': 0,
        'views': 0,
        'is_answered': False,
        'accepted_answer_id': None,
        'created_at': now,
        'updated_at': now,
    }


def new_answer_document(content, question_id, author_id):
    now = utcnow()
    return {
        'content': content,
        'question_id': question_id,
        'author_id': author_id,
        'votes': {'upvotes': [], 'downvotes': []},
        'vote_count': 0,
        'is_accepted': False,
        'created_at': now,
        'updated_at': now,
    }


def new_notification_document(user_id, created_by, type, title, message, discount_code=None,
                              question_id=None, answer_id=None):
    doc = {
        'user_id': user_id,
        'created_by': created_by,
        'type': type,
        'title': title,
        'message': message,
        'is_read': False,
        'created_at': utcnow(),
    }
    if discount_code:
        doc['discount_code'] = discount_code
    if question_id:
        doc['question_id'] = question_id
    if answer_id:
        doc['answer_id'] = answer_id
    return doc


def new_chat_document(user_id, title='New Chat'):
    now = utcnow()
    return {'user_id': user_id, 'title': title, 'messages': [], 'created_at': now, 'updated_at': now}


def normalize_tags(tags):
    """Lower-case, strip and de-duplicate tags, preserving first-seen order."""
    if isinstance(tags, str):
        tags = [tags]
    parts = (part for tag in tags or [] for part in str(tag).split(','))
    return list(dict.fromkeys(part.strip().lower() for part in parts if part.strip()))
