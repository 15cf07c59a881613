from flask import Blueprint, abort, jsonify
from flask_login import current_user, login_required

from auth_routes import apply_profile_update
from extensions import mongo
from forms import ProfileForm, validate_or_400
from serializers import fetch_user_summaries, serialize_answer, serialize_questions, serialize_user

users_bp = Blueprint('users', __name__, url_prefix='/api/users')


def _own_user_doc():
    user_doc = mongo.db.users.find_one({'_id': current_user.object_id})
    if not user_doc:
        abort(404, description='User not found')
    return user_doc


@users_bp.route('/profile')
@login_required
def get_profile():
    user_doc = _own_user_doc()
    stats = {
        'questionsAsked': mongo.db.questions.count_documents({'author_id': user_doc['_id']}),
        'answersPosted': mongo.db.answers.count_documents({'author_id': user_doc['_id']}),
        'acceptedAnswers': mongo.db.answers.count_documents({'author_id': user_doc['_id'], 'is_accepted': True}),
    }
    return jsonify({'user': serialize_user(user_doc), 'stats': stats})


@users_bp.route('/profile', methods=['PUT'])
@login_required
def update_profile():
    form = validate_or_400(ProfileForm())
    user_doc = apply_profile_update(form, _own_user_doc())
    return jsonify({'user': serialize_user(user_doc)})


@users_bp.route('/questions')
@login_required
def my_questions():
    questions = mongo.db.questions.find({'author_id': current_user.object_id}).sort('created_at', -1)
    return jsonify({'questions': serialize_questions(questions)})


@users_bp.route('/answers')
@login_required
def my_answers():
    answers = list(mongo.db.answers.find({'author_id': current_user.object_id}).sort('created_at', -1))
    question_ids = list({a['question_id'] for a in answers})
    questions = {q['_id']: q for q in mongo.db.questions.find({'_id': {'$in': question_ids}}, {'title': 1})}
    users = fetch_user_summaries([current_user.object_id])
    return jsonify({'answers': [serialize_answer(a, users, questions.get(a['question_id'])) for a in answers]})
