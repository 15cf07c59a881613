import secrets
import time

from flask import Blueprint, abort, current_app, jsonify
from flask_login import current_user, login_required

from auth import admin_required, issue_token
from extensions import bcrypt, mongo
from forms import (GuestRegistrationForm, LoginForm, ProfileForm, RegistrationForm, RoleForm, UpgradeGuestForm,
                   validate_or_400)
from models import Role, new_user_document
from serializers import serialize_user

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def hash_password(password):
    return bcrypt.generate_password_hash(password).decode('utf-8')


def auth_response(message, user_doc, status=200):
    token = issue_token(user_doc['_id'], user_doc['role'])
    return jsonify({'message': message, 'token': token, 'user': serialize_user(user_doc)}), status


@auth_bp.route('/register/guest', methods=['POST'])
def register_guest():
    form = validate_or_400(GuestRegistrationForm())
    username = form.username.data.strip()
    if mongo.db.users.find_one({'username': username}):
        abort(400, description='Username already exists')
    user_doc = new_user_document(
        username,
        f"guest_{int(time.time() * 1000)}_{secrets.token_hex(3)}@peerq.com",
        hash_password('guest_password_' + secrets.token_urlsafe(9)),
        role=Role.GUEST,
    )
    user_doc['_id'] = mongo.db.users.insert_one(user_doc).inserted_id
    current_app.logger.info("Guest account %s created", username)
    return auth_response('Guest account created successfully', user_doc, 201)


@auth_bp.route('/register', methods=['POST'])
def register():
    form = validate_or_400(RegistrationForm())
    username, email = form.username.data.strip(), form.email.data.strip().lower()
    if mongo.db.users.find_one({'$or': [{'email': email}, {'username': username}]}):
        abort(400, description='User with this email or username already exists')
    user_doc = new_user_document(username, email, hash_password(form.password.data),
                                 role=form.role.data or Role.USER.value)
    user_doc['_id'] = mongo.db.users.insert_one(user_doc).inserted_id
    current_app.logger.info("User %s registered as %s", username, user_doc['role'])
    return auth_response('User registered successfully', user_doc, 201)


@auth_bp.route('/login', methods=['POST'])
def login():
    form = validate_or_400(LoginForm())
    user_data = mongo.db.users.find_one({'email': form.email.data.strip().lower()})
    if not (user_data and user_data.get('password_hash')
            and bcrypt.check_password_hash(user_data['password_hash'], form.password.data)):
        abort(400, description='Invalid credentials')
    return auth_response('Login successful', user_data)


@auth_bp.route('/me')
@login_required
def me():
    return jsonify({'user': serialize_user(mongo.db.users.find_one({'_id': current_user.object_id}))})


def apply_profile_update(form, user_doc):
    """Shared by /api/auth/profile and /api/users/profile."""
    updates = {}
    username = (form.username.data or '').strip()
    email = (form.email.data or '').strip().lower()
    if username and username != user_doc['username']:
        if mongo.db.users.find_one({'username': username}):
            abort(400, description='Username already taken')
        updates['username'] = username
    if email and email != user_doc['email']:
        if mongo.db.users.find_one({'email': email}):
            abort(400, description='Email already taken')
        updates['email'] = email
    if form.avatar.data is not None and form.avatar.data != user_doc.get('avatar', ''):
        updates['avatar'] = form.avatar.data
    if form.bio.data is not None and form.bio.data != user_doc.get('bio', ''):
        updates['bio'] = form.bio.data
    if updates:
        mongo.db.users.update_one({'_id': user_doc['_id']}, {'$set': updates})
        user_doc = {**user_doc, **updates}
    return user_doc


@auth_bp.route('/profile', methods=['PUT'])
@login_required
def update_profile():
    form = validate_or_400(ProfileForm())
    user_doc = apply_profile_update(form, mongo.db.users.find_one({'_id': current_user.object_id}))
    return jsonify({'message': 'Profile updated successfully', 'user': serialize_user(user_doc)})


@auth_bp.route('/upgrade-guest', methods=['POST'])
@login_required
def upgrade_guest():
    if not current_user.is_guest:
        abort(400, description='Only guest users can upgrade their account')
    form = validate_or_400(UpgradeGuestForm())
    email = form.email.data.strip().lower()
    if mongo.db.users.find_one({'email': email}):
        abort(400, description='Email already exists')
    updates = {'email': email, 'password_hash': hash_password(form.password.data), 'role': Role.USER.value}
    mongo.db.users.update_one({'_id': current_user.object_id}, {'$set': updates})
    user_doc = mongo.db.users.find_one({'_id': current_user.object_id})
    current_app.logger.info("Guest %s upgraded to user", user_doc['username'])
    return auth_response('Account upgraded successfully', user_doc)


# --- Admin user management ---

@auth_bp.route('/users')
@admin_required
def list_users():
    users = mongo.db.users.find({}, {'password_hash': 0}).sort('created_at', -1)
    return jsonify({'users': [serialize_user(u) for u in users]})


@auth_bp.route('/users/<ObjectId:user_id>/role', methods=['PUT'])
@admin_required
def update_user_role(user_id):
    form = validate_or_400(RoleForm())
    result = mongo.db.users.update_one({'_id': user_id}, {'$set': {'role': form.role.data}})
    if result.matched_count == 0:
        abort(404, description='User not found')
    current_app.logger.info("%s set role of %s to %s", current_user.username, user_id, form.role.data)
    return jsonify({'message': 'User role updated successfully',
                    'user': serialize_user(mongo.db.users.find_one({'_id': user_id}))})


@auth_bp.route('/users/<ObjectId:user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    user_doc = mongo.db.users.find_one({'_id': user_id})
    if not user_doc:
        abort(404, description='User not found')
    if user_doc.get('role') == Role.ADMIN.value:
        abort(400, description='Cannot delete admin users')
    mongo.db.users.delete_one({'_id': user_id})
    current_app.logger.info("%s deleted user %s", current_user.username, user_doc['username'])
    return jsonify({'message': 'User deleted successfully'})
