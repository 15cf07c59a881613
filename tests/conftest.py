import mongomock
import pytest
from flask import abort

from app import create_app
from assistant import GenerativeServiceError
from auth import issue_token
from config import TestingConfig
from extensions import bcrypt, mongo
from models import Role, ensure_indexes, new_user_document


class RecordingPublisher:
    """Stands in for the Socket.IO publisher; remembers every push."""

    def __init__(self):
        self.events = []
        self.fail = False

    def publish(self, user_id, payload):
        if self.fail:
            raise ConnectionError('socket server down')
        self.events.append((user_id, payload))


class FakeGenerativeClient:
    configured = True

    def __init__(self):
        self.replies = []
        self.prompts = []
        self.fail = False

    def generate(self, prompt):
        self.prompts.append(prompt)
        if self.fail:
            raise GenerativeServiceError('service unavailable')
        if self.replies:
            return self.replies.pop(0)
        return 'Here is a **helpful** answer.'


class FlaskCollection(mongomock.collection.Collection):
    """mongomock collection with the Flask-PyMongo `find_one_or_404` helper."""

    def find_one_or_404(self, *args, **kwargs):
        found = self.find_one(*args, **kwargs)
        if found is None:
            abort(404)
        return found


class Account:
    def __init__(self, doc, token):
        self.doc = doc
        self.oid = doc['_id']
        self.id = str(doc['_id'])
        self.username = doc['username']
        self.token = token

    @property
    def headers(self):
        return {'Authorization': f'Bearer {self.token}'}


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def generative_client():
    return FakeGenerativeClient()


@pytest.fixture
def app(monkeypatch, publisher, generative_client):
    monkeypatch.setattr(mongomock.database, 'Collection', FlaskCollection)
    app = create_app(TestingConfig, mongo_client=mongomock.MongoClient(),
                     generative_client=generative_client, publisher=publisher)
    with app.app_context():
        ensure_indexes()
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return mongo.db


@pytest.fixture
def make_user(app):
    def _make(username, role=Role.USER, password='secret123', reputation=0):
        with app.app_context():
            doc = new_user_document(username, f'{username}@peerq.dev',
                                    bcrypt.generate_password_hash(password).decode('utf-8'),
                                    role=role, reputation=reputation)
            doc['_id'] = mongo.db.users.insert_one(doc).inserted_id
            return Account(doc, issue_token(doc['_id'], doc['role']))
    return _make


@pytest.fixture
def alice(make_user):
    return make_user('alice')


@pytest.fixture
def bob(make_user):
    return make_user('bob')


@pytest.fixture
def guest(make_user):
    return make_user('visitor', role=Role.GUEST)


@pytest.fixture
def admin(make_user):
    return make_user('root', role=Role.ADMIN)


@pytest.fixture
def ask(client):
    def _ask(account, title='How do I sort a dict by value?', description='<p>I have a dict.</p>',
             tags=('python',)):
        resp = client.post('/api/questions', headers=account.headers,
                           json={'title': title, 'description': description, 'tags': list(tags)})
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()['question']
    return _ask


@pytest.fixture
def answer(client):
    def _answer(account, question_id, content='Use sorted() with a key function.'):
        resp = client.post('/api/answers', headers=account.headers,
                           json={'content': content, 'questionId': question_id})
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()['answer']
    return _answer
