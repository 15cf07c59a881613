import re
from datetime import timedelta

from extensions import mongo
from models import utcnow
from serializers import fetch_user_summaries, serialize_answer, serialize_questions

SEARCH_MIN_LENGTH = 2
TRENDING_WINDOW = timedelta(days=7)


def empty_results(query=''):
    return {
        'query': query,
        'questions': [],
        'answers': [],
        'recommendations': {'matchingTags': [], 'recentQuestions': [], 'trendingQuestions': []},
    }


def substring_pattern(query):
    """Case-insensitive literal substring match; user input is never a regex."""
    return re.compile(re.escape(query), re.IGNORECASE)


def tag_counts(match=None, limit=20):
    pipeline = [{'$unwind': '$tags'}]
    if match is not None:
        pipeline.append({'$match': {'tags': {'$regex': match}}})
    pipeline += [
        {'$group': {'_id': '$tags', 'count': {'$sum': 1}}},
        {'$sort': {'count': -1, '_id': 1}},
        {'$limit': limit},
    ]
    return [{'name': t['_id'], 'count': t['count']} for t in mongo.db.questions.aggregate(pipeline)]


def popular_tags(limit=20):
    return tag_counts(limit=limit)


def comprehensive_search(query, limit=5):
    """Questions, answers and recommendations for a free-text query.

    Queries shorter than two characters return an empty bundle.
    """
    query = (query or '').strip()
    if len(query) < SEARCH_MIN_LENGTH:
        return empty_results(query)
    regex = substring_pattern(query)

    questions = mongo.db.questions.find({'$or': [
        {'title': {'$regex': regex}},
        {'description': {'$regex': regex}},
        {'tags': {'$regex': regex}},
    ]}).sort('created_at', -1).limit(limit)

    answers = list(mongo.db.answers.find({'content': {'$regex': regex}}).sort('created_at', -1).limit(limit))
    parents = {q['_id']: q for q in mongo.db.questions.find(
        {'_id': {'$in': list({a['question_id'] for a in answers})}}, {'title': 1})}
    authors = fetch_user_summaries(a.get('author_id') for a in answers)

    matching_tags = tag_counts(match=regex, limit=limit)
    tag_names = [tag['name'] for tag in matching_tags]
    recent_questions = []
    if tag_names:
        recent_questions = mongo.db.questions.find({'tags': {'$in': tag_names}}).sort('created_at', -1).limit(limit)
    trending_questions = mongo.db.questions.find(
        {'created_at': {'$gte': utcnow() - TRENDING_WINDOW}}
    ).sort('views', -1).limit(limit)

    return {
        'query': query,
        'questions': serialize_questions(questions),
        'answers': [serialize_answer(a, authors, parents.get(a['question_id'])) for a in answers],
        'recommendations': {
            'matchingTags': matching_tags,
            'recentQuestions': serialize_questions(recent_questions),
            'trendingQuestions': serialize_questions(trending_questions),
        },
    }
