from flask import Blueprint, abort, current_app, jsonify
from flask_login import current_user, login_required

from assistant import build_forum_context, get_assistant, validate_response
from extensions import mongo
from forms import ChatForm, ChatMessageForm, validate_or_400
from models import new_chat_document, utcnow
from serializers import serialize_chat, serialize_message

chat_bp = Blueprint('chat', __name__, url_prefix='/api/chat')


def _own_chat_or_404(chat_id):
    return mongo.db.chats.find_one_or_404({'_id': chat_id, 'user_id': current_user.object_id})


@chat_bp.route('')
@login_required
def list_chats():
    chats = mongo.db.chats.find({'user_id': current_user.object_id}).sort('updated_at', -1)
    return jsonify([serialize_chat(chat) for chat in chats])


@chat_bp.route('/<ObjectId:chat_id>')
@login_required
def get_chat(chat_id):
    return jsonify(serialize_chat(_own_chat_or_404(chat_id)))


@chat_bp.route('', methods=['POST'])
@login_required
def create_chat():
    form = validate_or_400(ChatForm())
    chat = new_chat_document(current_user.object_id, (form.title.data or '').strip() or 'New Chat')
    chat['_id'] = mongo.db.chats.insert_one(chat).inserted_id
    return jsonify(serialize_chat(chat)), 201


@chat_bp.route('/<ObjectId:chat_id>/messages', methods=['POST'])
@login_required
def send_message(chat_id):
    form = validate_or_400(ChatMessageForm())
    return converse(_own_chat_or_404(chat_id), form.message.data.strip())


@chat_bp.route('/messages', methods=['POST'])
@login_required
def start_conversation():
    """Open a new chat with its first message."""
    form = validate_or_400(ChatMessageForm())
    chat = new_chat_document(current_user.object_id)
    chat['_id'] = mongo.db.chats.insert_one(chat).inserted_id
    response = converse(chat, form.message.data.strip())
    response.status_code = 201
    return response


def converse(chat, text):
    chat_id = chat['_id']
    assistant = get_assistant()

    history = [{'role': m['role'], 'content': m['content']} for m in chat.get('messages', [])]
    user_message = {'role': 'user', 'content': text, 'timestamp': utcnow()}
    reply = assistant.reply(text, history, build_forum_context(text))
    validation = validate_response(reply['content'])
    if not validation['isValid']:
        current_app.logger.warning("Assistant reply in chat %s failed validation: %s", chat_id, validation['reason'])
    assistant_message = {'role': 'assistant', 'content': reply['content'], 'timestamp': reply['timestamp']}

    chat['messages'] = chat.get('messages', []) + [user_message, assistant_message]
    updates = {'updated_at': utcnow()}
    if len(chat['messages']) == 2:
        title = assistant.title_for(text)
        if title:
            updates['title'] = title
    mongo.db.chats.update_one({'_id': chat_id}, {
        '$push': {'messages': {'$each': [user_message, assistant_message]}},
        '$set': updates,
    })
    chat.update(updates)

    return jsonify({
        'message': 'Message sent successfully',
        'chat': serialize_chat(chat),
        'aiResponse': reply['content'],
        'aiMessage': serialize_message(assistant_message),
        'fallback': not reply['success'],
        'validation': validation,
    })


@chat_bp.route('/<ObjectId:chat_id>', methods=['DELETE'])
@login_required
def delete_chat(chat_id):
    result = mongo.db.chats.delete_one({'_id': chat_id, 'user_id': current_user.object_id})
    if result.deleted_count == 0:
        abort(404, description='Chat not found')
    return jsonify({'message': 'Chat deleted successfully'})
