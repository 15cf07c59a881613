"""Notification dispatch: durable row first, live push second.

The live channel is a Socket.IO room per user id. Pushes are fire-and-forget:
a failed emit is logged and the stored notification stays, since clients poll
``GET /api/notifications`` for the durable list.
"""
from flask import current_app
from flask_socketio import emit, join_room, leave_room

from auth import verify_token
from extensions import mongo
from models import new_notification_document

EXTENSION_KEY = 'peerq.publisher'


class NotificationPublisher:
    """Publishes ``notification`` events to per-user rooms (or to everyone)."""

    event = 'notification'

    def __init__(self, socketio):
        self.socketio = socketio

    def publish(self, user_id, payload):
        if user_id is None:
            self.socketio.emit(self.event, payload)
        else:
            self.socketio.emit(self.event, payload, to=str(user_id))


def get_publisher():
    return current_app.extensions[EXTENSION_KEY]


def live_payload(doc, message=None):
    payload = {
        'message': message or doc['message'],
        'type': doc['type'],
        'title': doc['title'],
        'notificationId': str(doc['_id']),
    }
    if doc.get('question_id'):
        payload['questionId'] = str(doc['question_id'])
    if doc.get('answer_id'):
        payload['answerId'] = str(doc['answer_id'])
    return payload


def dispatch_notification(user_id, created_by, type, title, message, live_message=None, **extra):
    doc = new_notification_document(user_id, created_by, type, title, message, **extra)
    doc['_id'] = mongo.db.notifications.insert_one(doc).inserted_id
    try:
        get_publisher().publish(user_id, live_payload(doc, live_message))
    except Exception:
        current_app.logger.warning("Live push of notification %s to %s failed", doc['_id'], user_id or 'everyone',
                                   exc_info=True)
    return doc


def _room_for(auth):
    token = auth.get('token') if isinstance(auth, dict) else auth
    if not token:
        return None
    user = verify_token(token)
    return user.id if user else None


def register_socket_handlers(socketio):
    @socketio.on('connect')
    def on_connect(auth=None):
        room = _room_for(auth)
        if room:
            join_room(room)

    @socketio.on('join')
    def on_join(data):
        room = _room_for(data)
        if not room:
            emit('error', {'message': 'Invalid token'})
            return
        join_room(room)
        emit('joined', {'room': room})

    @socketio.on('leave')
    def on_leave(data):
        room = _room_for(data)
        if room:
            leave_room(room)
