import re

from flask import Blueprint, abort, current_app, jsonify, request
from flask_login import current_user, login_required

from auth import admin_required
from extensions import mongo
from forms import NotificationForm, NotificationUpdateForm, validate_or_400
from models import NOTIFICATION_TYPES, to_object_id
from notifications import dispatch_notification
from serializers import page_args, pagination, serialize_notification, serialize_notifications, serialize_user

notifications_bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')


def visible_to_current_user():
    """Own notifications plus broadcasts (``user_id`` null)."""
    return {'$or': [{'user_id': current_user.object_id}, {'user_id': None}]}


@notifications_bp.route('', methods=['POST'])
@admin_required
def create_notification():
    form = validate_or_400(NotificationForm())
    target_id = None
    if form.userId.data:
        target_id = to_object_id(form.userId.data)
        if not target_id or not mongo.db.users.find_one({'_id': target_id}, {'_id': 1}):
            abort(404, description='Target user not found')
    doc = dispatch_notification(
        target_id, current_user.object_id, form.type.data,
        form.title.data.strip(), form.message.data.strip(),
        discount_code=(form.discountCode.data or '').strip() or None,
    )
    current_app.logger.info("%s created %s notification %s for %s", current_user.username, doc['type'], doc['_id'],
                            target_id or 'everyone')
    return jsonify(serialize_notification(doc)), 201


@notifications_bp.route('')
@login_required
def list_notifications():
    page, limit = page_args(20)
    query = visible_to_current_user()
    notification_type = request.args.get('type')
    if notification_type:
        query['type'] = notification_type
    notifications = list(mongo.db.notifications.find(query).sort('created_at', -1)
                         .skip((page - 1) * limit).limit(limit))
    total = mongo.db.notifications.count_documents(query)
    unread_count = mongo.db.notifications.count_documents({**query, 'is_read': False})
    return jsonify({
        'notifications': serialize_notifications(notifications),
        'pagination': pagination(page, limit, total, len(notifications)),
        'unreadCount': unread_count,
    })


@notifications_bp.route('/unread-count')
@login_required
def unread_count():
    count = mongo.db.notifications.count_documents({**visible_to_current_user(), 'is_read': False})
    return jsonify({'unreadCount': count})


@notifications_bp.route('/read-all', methods=['PUT'])
@login_required
def mark_all_read():
    result = mongo.db.notifications.update_many({**visible_to_current_user(), 'is_read': False},
                                                {'$set': {'is_read': True}})
    return jsonify({'message': 'All notifications marked as read', 'updated': result.modified_count})


@notifications_bp.route('/<ObjectId:notification_id>/read', methods=['PATCH'])
@login_required
def mark_read(notification_id):
    notification = mongo.db.notifications.find_one_or_404({'_id': notification_id})
    if notification.get('user_id') is not None and not current_user.owns(notification['user_id']):
        abort(403, description='Not authorized')
    mongo.db.notifications.update_one({'_id': notification_id}, {'$set': {'is_read': True}})
    notification['is_read'] = True
    return jsonify(serialize_notification(notification))


@notifications_bp.route('/<ObjectId:notification_id>/unread', methods=['PATCH'])
@admin_required
def mark_unread(notification_id):
    notification = mongo.db.notifications.find_one_or_404({'_id': notification_id})
    mongo.db.notifications.update_one({'_id': notification_id}, {'$set': {'is_read': False}})
    notification['is_read'] = False
    return jsonify(serialize_notification(notification))


@notifications_bp.route('/<ObjectId:notification_id>', methods=['PATCH'])
@admin_required
def update_notification(notification_id):
    notification = mongo.db.notifications.find_one_or_404({'_id': notification_id})
    form = validate_or_400(NotificationUpdateForm())
    updates = {}
    if form.title.data:
        updates['title'] = form.title.data.strip()
    if form.message.data:
        updates['message'] = form.message.data.strip()
    if form.discountCode.raw_data:
        updates['discount_code'] = (form.discountCode.data or '').strip() or None
    if form.type.data:
        updates['type'] = form.type.data
    if updates:
        mongo.db.notifications.update_one({'_id': notification_id}, {'$set': updates})
        notification.update(updates)
    return jsonify(serialize_notification(notification))


@notifications_bp.route('/<ObjectId:notification_id>', methods=['DELETE'])
@admin_required
def delete_notification(notification_id):
    mongo.db.notifications.find_one_or_404({'_id': notification_id})
    mongo.db.notifications.delete_one({'_id': notification_id})
    current_app.logger.info("%s deleted notification %s", current_user.username, notification_id)
    return jsonify({'message': 'Notification deleted successfully'})


@notifications_bp.route('/admin/all')
@admin_required
def admin_list_notifications():
    page, limit = page_args(20)
    query = {}
    notification_type = request.args.get('type')
    if notification_type:
        if notification_type not in NOTIFICATION_TYPES:
            abort(400, description='Invalid notification type')
        query['type'] = notification_type
    user_id = request.args.get('userId')
    if user_id:
        query['user_id'] = to_object_id(user_id)
        if query['user_id'] is None:
            abort(400, description='Invalid userId')
    is_read = request.args.get('isRead')
    if is_read is not None:
        query['is_read'] = is_read == 'true'
    notifications = list(mongo.db.notifications.find(query).sort('created_at', -1)
                         .skip((page - 1) * limit).limit(limit))
    total = mongo.db.notifications.count_documents(query)
    return jsonify({
        'notifications': serialize_notifications(notifications),
        'pagination': pagination(page, limit, total, len(notifications)),
    })


@notifications_bp.route('/users/all')
@admin_required
def admin_list_users():
    page, limit = page_args(50)
    query = {}
    search_text = request.args.get('search', '').strip()
    if search_text:
        regex = re.compile(re.escape(search_text), re.IGNORECASE)
        query['$or'] = [{'username': {'$regex': regex}}, {'email': {'$regex': regex}}]
    users = list(mongo.db.users.find(query, {'password_hash': 0}).sort('created_at', -1)
                 .skip((page - 1) * limit).limit(limit))
    total = mongo.db.users.count_documents(query)
    return jsonify({
        'users': [serialize_user(u) for u in users],
        'pagination': pagination(page, limit, total, len(users)),
    })
