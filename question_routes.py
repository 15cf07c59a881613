import re

from flask import Blueprint, abort, current_app, jsonify, request
from flask_login import current_user, login_required
from pymongo import ReturnDocument

from ai_helpers import sanitize_rich_text
from auth import owner_or_admin, permission_required
from extensions import mongo
from forms import QuestionForm, QuestionUpdateForm, validate_or_400
from models import Permission, new_question_document, utcnow
from search import comprehensive_search, popular_tags
from serializers import page_args, pagination, serialize_answers, serialize_question, serialize_questions
from voting import handle_vote

questions_bp = Blueprint('questions', __name__, url_prefix='/api/questions')

SORT_OPTIONS = {
    'newest': [('created_at', -1)],
    'oldest': [('created_at', 1)],
    'votes': [('vote_count', -1), ('created_at', -1)],
    'views': [('views', -1), ('created_at', -1)],
}


@questions_bp.route('')
@permission_required(Permission.VIEW)
def list_questions():
    page, limit = page_args(10)
    sort = SORT_OPTIONS.get(request.args.get('sort', 'newest'), SORT_OPTIONS['newest'])
    query = {}
    search_text = request.args.get('search', '').strip()
    if search_text:
        regex = re.compile(re.escape(search_text), re.IGNORECASE)
        query['$or'] = [{'title': {'$regex': regex}}, {'description': {'$regex': regex}}]
    tag = request.args.get('tag', '').strip().lower()
    if tag:
        query['tags'] = tag

    questions = list(mongo.db.questions.find(query).sort(sort).skip((page - 1) * limit).limit(limit))
    total = mongo.db.questions.count_documents(query)
    counts = {}
    if questions:
        for row in mongo.db.answers.aggregate([
            {'$match': {'question_id': {'$in': [q['_id'] for q in questions]}}},
            {'$group': {'_id': '$question_id', 'count': {'$sum': 1}}},
        ]):
            counts[row['_id']] = row['count']
    data = serialize_questions(questions)
    for item, doc in zip(data, questions):
        item['answerCount'] = counts.get(doc['_id'], 0)
    return jsonify({'questions': data, 'pagination': pagination(page, limit, total, len(questions))})


@questions_bp.route('/search/comprehensive')
@permission_required(Permission.VIEW)
def search_comprehensive():
    limit = min(max(request.args.get('limit', 5, type=int) or 5, 1), 50)
    return jsonify(comprehensive_search(request.args.get('q', ''), limit=limit))


@questions_bp.route('/tags/popular')
def tags_popular():
    return jsonify({'tags': popular_tags()})


@questions_bp.route('/<ObjectId:question_id>')
@permission_required(Permission.VIEW)
def get_question(question_id):
    question = mongo.db.questions.find_one_and_update(
        {'_id': question_id}, {'$inc': {'views': 1}}, return_document=ReturnDocument.AFTER)
    if not question:
        abort(404, description='Question not found')
    answers = mongo.db.answers.find({'question_id': question_id}).sort(
        [('is_accepted', -1), ('vote_count', -1), ('created_at', 1)])
    answers = serialize_answers(answers)
    return jsonify({'question': serialize_question(question, answer_count=len(answers)), 'answers': answers})


@questions_bp.route('', methods=['POST'])
@permission_required(Permission.POST)
def create_question():
    form = validate_or_400(QuestionForm())
    description = sanitize_rich_text(form.description.data)
    if not description:
        abort(400, description='Title and description are required')
    question_doc = new_question_document(form.title.data.strip(), description, form.tags.data or [],
                                         current_user.object_id)
    question_doc['_id'] = mongo.db.questions.insert_one(question_doc).inserted_id
    current_app.logger.info("%s asked question %s", current_user.username, question_doc['_id'])
    return jsonify({'message': 'Question created successfully', 'question': serialize_question(question_doc)}), 201


@questions_bp.route('/<ObjectId:question_id>', methods=['PUT'])
@login_required
def update_question(question_id):
    question = mongo.db.questions.find_one_or_404({'_id': question_id})
    if not current_user.owns(question['author_id']):
        abort(403, description='Not authorized')
    form = validate_or_400(QuestionUpdateForm())
    updates = {}
    if form.title.data and form.title.data.strip():
        updates['title'] = form.title.data.strip()
    if form.description.data:
        description = sanitize_rich_text(form.description.data)
        if description:
            updates['description'] = description
    if form.tags.data is not None:
        updates['tags'] = form.tags.data
    if updates:
        updates['updated_at'] = utcnow()
        mongo.db.questions.update_one({'_id': question_id}, {'$set': updates})
        question.update(updates)
    return jsonify({'message': 'Question updated successfully', 'question': serialize_question(question)})


@questions_bp.route('/<ObjectId:question_id>', methods=['DELETE'])
@login_required
def delete_question(question_id):
    question = mongo.db.questions.find_one_or_404({'_id': question_id})
    owner_or_admin(question['author_id'])
    deleted_answers = mongo.db.answers.delete_many({'question_id': question_id}).deleted_count
    mongo.db.questions.delete_one({'_id': question_id})
    current_app.logger.info("%s deleted question %s (%d answers)", current_user.username, question_id,
                            deleted_answers)
    return jsonify({'message': 'Question deleted successfully'})


@questions_bp.route('/<ObjectId:question_id>/vote', methods=['POST'])
@permission_required(Permission.VOTE)
def vote_question(question_id):
    return handle_vote('questions', question_id)
