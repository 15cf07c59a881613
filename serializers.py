"""JSON views of stored documents.

References are resolved with explicit by-id lookups (``fetch_user_summaries``)
so each response is assembled from plain dicts, never from lazily populated
documents.
"""
import math
from datetime import timezone

from flask import request

from extensions import mongo
from ai_helpers import render_markdown

USER_SUMMARY_FIELDS = {'username': 1, 'reputation': 1, 'avatar': 1}


def iso(value):
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def oid_str(value):
    return str(value) if value is not None else None


def fetch_user_summaries(user_ids):
    ids = list({uid for uid in user_ids if uid is not None})
    if not ids:
        return {}
    summaries = {}
    for doc in mongo.db.users.find({'_id': {'$in': ids}}, USER_SUMMARY_FIELDS):
        summaries[doc['_id']] = user_summary(doc)
    return summaries


def user_summary(doc):
    return {
        'id': str(doc['_id']),
        '_id': str(doc['_id']),
        'username': doc.get('username', 'Unknown'),
        'reputation': doc.get('reputation', 0),
        'avatar': doc.get('avatar', ''),
    }


def serialize_user(doc):
    return {
        'id': str(doc['_id']),
        '_id': str(doc['_id']),
        'username': doc['username'],
        'email': doc['email'],
        'role': doc.get('role', 'user'),
        'reputation': doc.get('reputation', 0),
        'avatar': doc.get('avatar', ''),
        'bio': doc.get('bio', ''),
        'createdAt': iso(doc.get('created_at')),
    }


def _votes(doc):
    votes = doc.get('votes') or {}
    upvotes = [str(uid) for uid in votes.get('upvotes', [])]
    downvotes = [str(uid) for uid in votes.get('downvotes', [])]
    return {'upvotes': upvotes, 'downvotes': downvotes}


def serialize_question(doc, users=None, answer_count=None):
    if users is None:
        users = fetch_user_summaries([doc.get('author_id')])
    data = {
        'id': str(doc['_id']),
        '_id': str(doc['_id']),
        'title': doc['title'],
        'description': doc['description'],
        'tags': doc.get('tags', []),
        'author': users.get(doc.get('author_id')),
        'votes': _votes(doc),
        'voteCount': doc.get('vote_count', 0),
        'views': doc.get('views', 0),
        'isAnswered': doc.get('is_answered', False),
        'acceptedAnswer': oid_str(doc.get('accepted_answer_id')),
        'createdAt': iso(doc.get('created_at')),
        'updatedAt': iso(doc.get('updated_at')),
    }
    if answer_count is not None:
        data['answerCount'] = answer_count
    return data


def serialize_questions(docs):
    docs = list(docs)
    users = fetch_user_summaries(doc.get('author_id') for doc in docs)
    return [serialize_question(doc, users) for doc in docs]


def serialize_answer(doc, users=None, question=None):
    if users is None:
        users = fetch_user_summaries([doc.get('author_id')])
    data = {
        'id': str(doc['_id']),
        '_id': str(doc['_id']),
        'content': doc['content'],
        'question': oid_str(doc.get('question_id')),
        'author': users.get(doc.get('author_id')),
        'votes': _votes(doc),
        'voteCount': doc.get('vote_count', 0),
        'isAccepted': doc.get('is_accepted', False),
        'createdAt': iso(doc.get('created_at')),
        'updatedAt': iso(doc.get('updated_at')),
    }
    if question is not None:
        data['question'] = {'id': str(question['_id']), '_id': str(question['_id']), 'title': question['title']}
    return data


def serialize_answers(docs):
    docs = list(docs)
    users = fetch_user_summaries(doc.get('author_id') for doc in docs)
    return [serialize_answer(doc, users) for doc in docs]


def serialize_notification(doc, users=None):
    if users is None:
        users = fetch_user_summaries([doc.get('created_by'), doc.get('user_id')])
    return {
        'id': str(doc['_id']),
        '_id': str(doc['_id']),
        'userId': users.get(doc.get('user_id'), oid_str(doc.get('user_id'))),
        'createdBy': users.get(doc.get('created_by'), oid_str(doc.get('created_by'))),
        'type': doc['type'],
        'title': doc['title'],
        'message': doc['message'],
        'discountCode': doc.get('discount_code'),
        'isRead': doc.get('is_read', False),
        'question': oid_str(doc.get('question_id')),
        'answer': oid_str(doc.get('answer_id')),
        'isBroadcast': doc.get('user_id') is None,
        'createdAt': iso(doc.get('created_at')),
    }


def serialize_notifications(docs):
    docs = list(docs)
    ids = []
    for doc in docs:
        ids.extend([doc.get('created_by'), doc.get('user_id')])
    users = fetch_user_summaries(ids)
    return [serialize_notification(doc, users) for doc in docs]


def serialize_message(message):
    data = {
        'role': message['role'],
        'content': message['content'],
        'timestamp': iso(message.get('timestamp')),
    }
    if message['role'] == 'assistant':
        data['html'] = render_markdown(message['content'])
    return data


def serialize_chat(doc, include_messages=True):
    data = {
        'id': str(doc['_id']),
        '_id': str(doc['_id']),
        'userId': oid_str(doc.get('user_id')),
        'title': doc.get('title', 'New Chat'),
        'messageCount': len(doc.get('messages', [])),
        'createdAt': iso(doc.get('created_at')),
        'updatedAt': iso(doc.get('updated_at')),
    }
    if include_messages:
        data['messages'] = [serialize_message(m) for m in doc.get('messages', [])]
    return data


def page_args(default_limit, max_limit=100):
    page = max(request.args.get('page', 1, type=int) or 1, 1)
    limit = min(max(request.args.get('limit', default_limit, type=int) or default_limit, 1), max_limit)
    return page, limit


def pagination(page, limit, total, returned):
    skip = (page - 1) * limit
    return {
        'current': page,
        'total': math.ceil(total / limit) if limit else 0,
        'hasNext': skip + returned < total,
        'hasPrev': page > 1,
    }
