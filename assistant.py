"""Chat assistant: prompt composition around an external generative-text API.

The external service is opaque: it takes one prompt string and returns text.
Whenever it is unavailable (no key, network error, bad payload) the assistant
answers with :func:`fallback_response` instead of surfacing the failure.
"""
import logging
import re

import requests
from flask import current_app

from ai_helpers import extract_keywords, find_similar_questions
from extensions import mongo
from models import utcnow

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'peerq.assistant'

SYSTEM_PROMPT = """You are a helpful AI assistant integrated with a Q&A forum platform. Follow these strict rules:

1. NO HALLUCINATION: Only provide information that is explicitly stated in the conversation or available in the provided data
2. NO ASSUMPTIONS: Do not make assumptions beyond what is clearly presented
3. VALIDATION: If you don't have enough information to answer accurately, ask for clarification
4. CONTEXT AWARENESS: You have access to forum data including questions, answers, and user information
5. HELPFUL GUIDANCE: Provide clear, actionable advice based on available information
6. SAFETY: Never provide harmful, illegal, or inappropriate content

When responding:
- Be concise but thorough
- Use markdown formatting for better readability
- If referencing forum content, mention the source
- Always maintain a helpful and professional tone"""

TITLE_PROMPT = 'Generate a short title (max 50 characters) for this conversation: "{message}"'
MAX_TITLE_LENGTH = 50


class GenerativeServiceError(Exception):
    pass


class GenerativeTextClient:
    """Minimal client for the Gemini ``generateContent`` REST endpoint."""

    def __init__(self, api_key, model='gemini-pro',
                 base_url='https://generativelanguage.googleapis.com/v1beta', timeout=30, session=None):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config, session=None):
        return cls(config.get('GEMINI_API_KEY'), model=config['GEMINI_MODEL'], base_url=config['GEMINI_API_URL'],
                   timeout=config['GEMINI_TIMEOUT'], session=session)

    @property
    def configured(self):
        return bool(self.api_key)

    def generate(self, prompt):
        if not self.configured:
            raise GenerativeServiceError('No generative API key configured')
        url = f"{self.base_url}/models/{self.model}:generateContent"
        payload = {'contents': [{'parts': [{'text': prompt}]}]}
        try:
            resp = self.session.post(url, params={'key': self.api_key}, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise GenerativeServiceError(f'Generative API request failed: {e}') from e
        if resp.status_code != 200:
            raise GenerativeServiceError(f'Generative API returned HTTP {resp.status_code}')
        try:
            parts = resp.json()['candidates'][0]['content']['parts']
            text = ''.join(part.get('text', '') for part in parts)
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise GenerativeServiceError('Malformed generative API response') from e
        if not text.strip():
            raise GenerativeServiceError('Empty generative API response')
        return text.strip()


def build_prompt(message, history=(), context=''):
    prompt = SYSTEM_PROMPT + '\n\n'
    if context:
        prompt += f'Forum Context:\n{context}\n\n'
    if history:
        prompt += 'Previous conversation:\n'
        for msg in history:
            prompt += f"{msg['role']}: {msg['content']}\n"
        prompt += '\n'
    prompt += f'User: {message}\nAssistant:'
    return prompt


FALLBACK_RULES = [
    (re.compile(r'\b(hi|hello|hey|greetings)\b'),
     "Hello! I'm the PeerQ assistant. I can help you ask good questions, write answers, "
     "and find your way around the forum. What would you like to know?"),
    (re.compile(r'\b(accept|accepted|solution|solved)\b'),
     "If an answer solved your problem, open your question and click **Accept** on that answer. "
     "Only the question's author can accept, and accepting a different answer replaces the previous one."),
    (re.compile(r'\b(vote|votes|voting|upvote|downvote|reputation)'),
     "Use the up and down arrows next to a question or answer to vote. Clicking the same arrow again "
     "removes your vote. Upvotes on your posts raise your reputation. Guest accounts cannot vote."),
    (re.compile(r'\b(tag|tags|tagging)\b'),
     "Tags group related questions. Add a few specific tags when you ask, and click a tag to browse "
     "every question that uses it."),
    (re.compile(r'\b(notification|notifications|notify|alert)'),
     "You get a notification when someone answers your question or accepts your answer. "
     "Open the bell icon to see them and mark them as read."),
    (re.compile(r'\b(guest|upgrade|register|account|sign ?up)'),
     "Guest accounts can browse but cannot post or vote. Upgrade your guest account from your profile "
     "by adding an email and password; you keep the same username."),
    (re.compile(r'\b(answer|answers|reply|respond)'),
     "To answer, open the question and write your reply in the editor below it. Explain the reasoning, "
     "include code where it helps, and keep it focused on the question asked."),
    (re.compile(r'\b(ask|question|questions|post)'),
     "To ask a good question: pick a clear, specific title, describe what you tried and what happened, "
     "include the relevant code or error message, and add a few tags."),
    (re.compile(r'\b(search|find|look ?up)'),
     "Use the search bar at the top: it matches question titles, descriptions, tags and answers, and "
     "suggests related tags and trending questions."),
]

DEFAULT_FALLBACK = ("I'm having trouble reaching the AI service right now. You can still search the forum "
                    "or post your question so the community can help.")


def fallback_response(message):
    """Canned reply chosen by the first keyword rule matching ``message``."""
    text = (message or '').lower()
    for pattern, response in FALLBACK_RULES:
        if pattern.search(text):
            return response
    return DEFAULT_FALLBACK


HALLUCINATION_MARKERS = (
    "i don't have access to",
    'i cannot access',
    "i don't know about",
    "i'm not sure about",
    'i cannot provide information about',
)
GENERIC_MARKERS = (
    "i'm sorry, i don't understand",
    'i cannot help with that',
    "i don't have information about",
)


def validate_response(response):
    lower_response = (response or '').lower()
    if any(marker in lower_response for marker in HALLUCINATION_MARKERS):
        return {'isValid': False, 'reason': 'Potential hallucination detected'}
    if any(marker in lower_response for marker in GENERIC_MARKERS):
        return {'isValid': False, 'reason': 'Response too generic'}
    return {'isValid': True, 'reason': 'Valid response'}


def clean_title(text):
    title = (text or '').strip().strip('"\'“”').strip()
    return title if 0 < len(title) <= MAX_TITLE_LENGTH else None


class ChatAssistant:
    def __init__(self, client):
        self.client = client

    def reply(self, message, history=(), context=''):
        try:
            content = self.client.generate(build_prompt(message, history, context))
            success = True
        except GenerativeServiceError as e:
            logger.warning("Generative API unavailable, using fallback reply: %s", e)
            content = fallback_response(message)
            success = False
        return {'content': content, 'success': success, 'timestamp': utcnow()}

    def title_for(self, message):
        try:
            return clean_title(self.client.generate(TITLE_PROMPT.format(message=message)))
        except GenerativeServiceError as e:
            logger.info("Chat title generation skipped: %s", e)
            return None


def get_assistant():
    return current_app.extensions[EXTENSION_KEY]


CONTEXT_TRIGGERS = {
    'questions': ('question', 'ask', 'post'),
    'answers': ('answer', 'reply', 'response'),
    'users': ('user', 'member', 'profile'),
}


def _usernames(ids):
    return {u['_id']: u['username'] for u in mongo.db.users.find({'_id': {'$in': list(set(ids))}}, {'username': 1})}


def build_forum_context(message, limit=5):
    """Short plain-text digest of forum data relevant to ``message``."""
    lower_message = message.lower()
    sections = []

    if any(word in lower_message for word in CONTEXT_TRIGGERS['questions']):
        questions = list(mongo.db.questions.find({}, {'title': 1, 'author_id': 1}).sort('created_at', -1).limit(limit))
        if questions:
            names = _usernames(q['author_id'] for q in questions)
            lines = [f"- {q['title']} (by {names.get(q['author_id'], 'Unknown')})" for q in questions]
            sections.append('Recent Questions:\n' + '\n'.join(lines))

    if any(word in lower_message for word in CONTEXT_TRIGGERS['answers']):
        answers = list(mongo.db.answers.find({}, {'question_id': 1, 'author_id': 1}).sort('created_at', -1).limit(limit))
        if answers:
            names = _usernames(a['author_id'] for a in answers)
            titles = {q['_id']: q['title'] for q in mongo.db.questions.find(
                {'_id': {'$in': [a['question_id'] for a in answers]}}, {'title': 1})}
            lines = [f"- Answer to \"{titles.get(a['question_id'], 'a deleted question')}\" "
                     f"(by {names.get(a['author_id'], 'Unknown')})" for a in answers]
            sections.append('Recent Answers:\n' + '\n'.join(lines))

    if any(word in lower_message for word in CONTEXT_TRIGGERS['users']):
        users = list(mongo.db.users.find({}, {'username': 1, 'role': 1}).sort('created_at', -1).limit(limit))
        if users:
            sections.append('Recent Users:\n' + '\n'.join(f"- {u['username']} ({u.get('role', 'user')})" for u in users))

    keywords = extract_keywords(message, top_n=5)
    if keywords:
        pattern = '|'.join(re.escape(k) for k in keywords)
        candidates = list(mongo.db.questions.find(
            {'$or': [{'title': {'$regex': pattern, '$options': 'i'}}, {'tags': {'$in': keywords}}]},
            {'title': 1, 'description': 1},
        ).sort('created_at', -1).limit(50))
        related = find_similar_questions(message, candidates, top_n=3)
        if related:
            sections.append('Related Questions:\n' + '\n'.join(f"- {item['question']['title']}" for item in related))

    return '\n\n'.join(sections)
