from flask import abort, current_app, jsonify, request
from flask_login import current_user
from pymongo import ReturnDocument

from extensions import mongo
from models import VOTE_TYPES

# Reputation the author holds for each standing vote on their content.
REPUTATION_POINTS = {'upvote': 10, 'downvote': -2, None: 0}


def current_vote(votes, user_id):
    if user_id in votes.get('upvotes', []):
        return 'upvote'
    if user_id in votes.get('downvotes', []):
        return 'downvote'
    return None


def build_vote_update(votes, user_id, vote_type):
    """Mongo update toggling ``user_id``'s vote.

    Returns ``(update, previous, new)`` where previous/new are 'upvote',
    'downvote' or None. The user is always pulled from the opposite set, so
    it can never sit in both.
    """
    if vote_type not in VOTE_TYPES:
        raise ValueError(f'Invalid vote type: {vote_type!r}')
    previous = current_vote(votes, user_id)
    chosen = 'votes.upvotes' if vote_type == 'upvote' else 'votes.downvotes'
    opposite = 'votes.downvotes' if vote_type == 'upvote' else 'votes.upvotes'
    if previous == vote_type:
        return {'$pull': {chosen: user_id, opposite: user_id}}, previous, None
    return {'$addToSet': {chosen: user_id}, '$pull': {opposite: user_id}}, previous, vote_type


def reputation_delta(previous, new):
    return REPUTATION_POINTS[new] - REPUTATION_POINTS[previous]


def apply_vote(collection, item, voter_id, vote_type):
    update, previous, new = build_vote_update(item.get('votes') or {}, voter_id, vote_type)
    updated = collection.find_one_and_update({'_id': item['_id']}, update, return_document=ReturnDocument.AFTER)
    if updated is None:
        return None
    votes = updated.get('votes') or {}
    up_count, down_count = len(votes.get('upvotes', [])), len(votes.get('downvotes', []))
    vote_count = up_count - down_count
    collection.update_one({'_id': item['_id']}, {'$set': {'vote_count': vote_count}})

    author_id = item.get('author_id')
    delta = reputation_delta(previous, new)
    if author_id is not None and author_id != voter_id and delta:
        mongo.db.users.update_one({'_id': author_id}, {'$inc': {'reputation': delta}})

    return {'voteCount': vote_count, 'upvotes': up_count, 'downvotes': down_count, 'userVote': new}


def handle_vote(collection_name, item_id):
    """Shared vote endpoint body for questions and answers."""
    data = request.get_json(silent=True) or {}
    vote_type = data.get('voteType')
    if vote_type not in VOTE_TYPES:
        abort(400, description='voteType must be "upvote" or "downvote"')
    collection = mongo.db[collection_name]
    label = collection_name[:-1].capitalize()
    item = collection.find_one({'_id': item_id})
    if not item:
        abort(404, description=f'{label} not found')
    result = apply_vote(collection, item, current_user.object_id, vote_type)
    if result is None:
        abort(404, description=f'{label} not found')
    current_app.logger.debug("%s %s on %s %s", current_user.username, vote_type, label.lower(), item_id)
    return jsonify({'message': 'Vote updated successfully', **result})
