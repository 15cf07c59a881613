from datetime import timedelta

from models import new_question_document, utcnow
from search import SEARCH_MIN_LENGTH, comprehensive_search, substring_pattern


def _search(client, q, **params):
    resp = client.get('/api/questions/search/comprehensive', query_string={'q': q, **params})
    assert resp.status_code == 200
    return resp.get_json()


def test_short_query_returns_empty_bundle(client, alice, ask):
    ask(alice)
    body = _search(client, 'p')
    assert len('p') < SEARCH_MIN_LENGTH
    assert body == {'query': 'p', 'questions': [], 'answers': [],
                    'recommendations': {'matchingTags': [], 'recentQuestions': [], 'trendingQuestions': []}}


def test_matches_titles_descriptions_and_tags(client, alice, ask):
    by_title = ask(alice, title='Flask routing basics', description='<p>Routes</p>', tags=['web'])
    by_description = ask(alice, title='Blueprint question', description='<p>How does flask register them?</p>',
                         tags=['web'])
    by_tag = ask(alice, title='Something else', description='<p>Nothing</p>', tags=['flask-login'])
    ask(alice, title='Unrelated', description='<p>pandas</p>', tags=['pandas'])

    body = _search(client, 'FLASK')
    assert {q['id'] for q in body['questions']} == {by_title['id'], by_description['id'], by_tag['id']}


def test_matches_answers_with_parent_title(client, alice, bob, ask, answer):
    question = ask(alice, title='Sorting', tags=['python'])
    answer(bob, question['id'], content='Try functools.cmp_to_key for this')
    body = _search(client, 'cmp_to_key')
    [found] = body['answers']
    assert found['question']['title'] == 'Sorting'
    assert found['author']['username'] == 'bob'


def test_regex_metacharacters_are_literal(client, alice, ask):
    literal = ask(alice, title='What does a.*b mean?')
    ask(alice, title='aXXXb is not it')
    body = _search(client, 'a.*b')
    assert [q['id'] for q in body['questions']] == [literal['id']]


def test_matching_tags_and_recent_questions(client, alice, ask):
    ask(alice, title='one', tags=['django', 'orm'])
    ask(alice, title='two', tags=['django'])
    ask(alice, title='three', tags=['django-rest'])
    body = _search(client, 'djan')
    tags = body['recommendations']['matchingTags']
    assert tags == [{'name': 'django', 'count': 2}, {'name': 'django-rest', 'count': 1}]
    assert {q['title'] for q in body['recommendations']['recentQuestions']} == {'one', 'two', 'three'}


def test_trending_only_covers_last_week(client, db, alice, ask):
    fresh = ask(alice, title='fresh')
    stale = new_question_document('stale', 'old news', ['python'], alice.oid)
    stale['created_at'] = stale['updated_at'] = utcnow() - timedelta(days=30)
    stale['views'] = 500
    db.questions.insert_one(stale)

    trending = _search(client, 'python')['recommendations']['trendingQuestions']
    assert [q['id'] for q in trending] == [fresh['id']]


def test_limit_param(client, alice, ask):
    for i in range(4):
        ask(alice, title=f'Python tip {i}')
    assert len(_search(client, 'python', limit=2)['questions']) == 2


def test_substring_pattern_ignores_case():
    assert substring_pattern('C++').search('Learning c++ today')
    assert not substring_pattern('C++').search('Learning ccc today')


def test_search_function_trims_query(app):
    with app.app_context():
        assert comprehensive_search('   ')['query'] == ''
