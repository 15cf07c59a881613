from flask import Blueprint, abort, current_app, jsonify
from flask_login import current_user, login_required

from ai_helpers import sanitize_rich_text
from auth import owner_or_admin, permission_required
from extensions import mongo
from forms import AnswerForm, AnswerUpdateForm, validate_or_400
from models import Permission, new_answer_document, to_object_id, utcnow
from notifications import dispatch_notification
from serializers import serialize_answer
from voting import handle_vote

answers_bp = Blueprint('answers', __name__, url_prefix='/api/answers')

POINTS_ACCEPTED_ANSWER = 15


@answers_bp.route('', methods=['POST'])
@permission_required(Permission.POST)
def create_answer():
    form = validate_or_400(AnswerForm())
    question_id = to_object_id(form.questionId.data)
    if not question_id:
        abort(404, description='Question not found')
    question = mongo.db.questions.find_one_or_404({'_id': question_id})
    content = sanitize_rich_text(form.content.data)
    if not content:
        abort(400, description='Content and questionId are required')

    answer_doc = new_answer_document(content, question_id, current_user.object_id)
    answer_doc['_id'] = mongo.db.answers.insert_one(answer_doc).inserted_id

    if question['author_id'] != current_user.object_id:
        dispatch_notification(
            question['author_id'], current_user.object_id, 'answer',
            'New answer', f'{current_user.username} answered your question "{question["title"]}"',
            live_message=f'{current_user.username} answered your question',
            question_id=question_id, answer_id=answer_doc['_id'],
        )
    current_app.logger.info("%s answered question %s", current_user.username, question_id)
    return jsonify({'message': 'Answer posted successfully', 'answer': serialize_answer(answer_doc)}), 201


@answers_bp.route('/<ObjectId:answer_id>', methods=['PUT'])
@login_required
def update_answer(answer_id):
    answer = mongo.db.answers.find_one_or_404({'_id': answer_id})
    if not current_user.owns(answer['author_id']):
        abort(403, description='Not authorized')
    form = validate_or_400(AnswerUpdateForm())
    content = sanitize_rich_text(form.content.data)
    if not content:
        abort(400, description='Content is required')
    updates = {'content': content, 'updated_at': utcnow()}
    mongo.db.answers.update_one({'_id': answer_id}, {'$set': updates})
    answer.update(updates)
    return jsonify({'message': 'Answer updated successfully', 'answer': serialize_answer(answer)})


@answers_bp.route('/<ObjectId:answer_id>', methods=['DELETE'])
@login_required
def delete_answer(answer_id):
    answer = mongo.db.answers.find_one_or_404({'_id': answer_id})
    owner_or_admin(answer['author_id'])
    if answer.get('is_accepted'):
        mongo.db.questions.update_one(
            {'_id': answer['question_id'], 'accepted_answer_id': answer_id},
            {'$set': {'is_answered': False, 'accepted_answer_id': None}})
    mongo.db.answers.delete_one({'_id': answer_id})
    return jsonify({'message': 'Answer deleted successfully'})


@answers_bp.route('/<ObjectId:answer_id>/vote', methods=['POST'])
@permission_required(Permission.VOTE)
def vote_answer(answer_id):
    return handle_vote('answers', answer_id)


@answers_bp.route('/<ObjectId:answer_id>/accept', methods=['POST'])
@login_required
def accept_answer(answer_id):
    answer = mongo.db.answers.find_one_or_404({'_id': answer_id})
    question = mongo.db.questions.find_one_or_404({'_id': answer['question_id']})
    if not (current_user.owns(question['author_id']) or current_user.is_admin):
        abort(403, description='Only question author can accept answers')

    previous_id = question.get('accepted_answer_id')
    if previous_id and previous_id != answer_id:
        previous = mongo.db.answers.find_one({'_id': previous_id}, {'author_id': 1})
        if previous:
            mongo.db.users.update_one({'_id': previous['author_id']}, {'$inc': {'reputation': -POINTS_ACCEPTED_ANSWER}})
    # at most one accepted answer per question
    mongo.db.answers.update_many(
        {'question_id': question['_id'], 'is_accepted': True, '_id': {'$ne': answer_id}},
        {'$set': {'is_accepted': False}})
    mongo.db.answers.update_one({'_id': answer_id}, {'$set': {'is_accepted': True}})
    mongo.db.questions.update_one({'_id': question['_id']},
                                  {'$set': {'is_answered': True, 'accepted_answer_id': answer_id}})
    if previous_id != answer_id:
        mongo.db.users.update_one({'_id': answer['author_id']}, {'$inc': {'reputation': POINTS_ACCEPTED_ANSWER}})

    if answer['author_id'] != current_user.object_id:
        dispatch_notification(
            answer['author_id'], current_user.object_id, 'accept',
            'Answer accepted', f'{current_user.username} accepted your answer to "{question["title"]}"',
            live_message=f'{current_user.username} accepted your answer',
            question_id=question['_id'], answer_id=answer_id,
        )
    current_app.logger.info("%s accepted answer %s on question %s", current_user.username, answer_id,
                            question['_id'])
    return jsonify({'message': 'Answer accepted successfully',
                    'answer': serialize_answer(mongo.db.answers.find_one({'_id': answer_id}))})
