from bson.objectid import ObjectId


def test_create_question(client, alice):
    resp = client.post('/api/questions', headers=alice.headers,
                       json={'title': 'T', 'description': 'D', 'tags': ['x']})
    assert resp.status_code == 201
    question = resp.get_json()['question']
    assert question['author']['username'] == 'alice'
    assert question['tags'] == ['x']
    assert question['voteCount'] == 0
    assert question['isAnswered'] is False
    assert question['acceptedAnswer'] is None


def test_create_question_normalizes_tags(client, alice):
    resp = client.post('/api/questions', headers=alice.headers,
                       json={'title': 'T', 'description': 'D', 'tags': ['Python', ' flask, python ']})
    assert resp.get_json()['question']['tags'] == ['python', 'flask']


def test_create_question_requires_fields(client, alice):
    resp = client.post('/api/questions', headers=alice.headers, json={'title': 'Only a title'})
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Title and description are required'


def test_description_is_sanitized(client, alice):
    resp = client.post('/api/questions', headers=alice.headers, json={
        'title': 'XSS', 'description': '<p>hello</p><script>alert(1)</script>'})
    description = resp.get_json()['question']['description']
    assert '<p>hello</p>' in description
    assert '<script' not in description


def test_list_questions_pagination(client, alice, ask):
    for i in range(3):
        ask(alice, title=f'Question {i}')
    body = client.get('/api/questions?limit=2').get_json()
    assert len(body['questions']) == 2
    assert body['pagination'] == {'current': 1, 'total': 2, 'hasNext': True, 'hasPrev': False}

    body = client.get('/api/questions?limit=2&page=2').get_json()
    assert len(body['questions']) == 1
    assert body['pagination']['hasNext'] is False
    assert body['pagination']['hasPrev'] is True


def test_list_questions_filters(client, alice, ask):
    ask(alice, title='Flask blueprints', tags=['flask'])
    ask(alice, title='Pandas merge', tags=['pandas'])

    body = client.get('/api/questions?tag=flask').get_json()
    assert [q['title'] for q in body['questions']] == ['Flask blueprints']

    body = client.get('/api/questions?search=MERGE').get_json()
    assert [q['title'] for q in body['questions']] == ['Pandas merge']


def test_list_questions_sorted_by_votes(client, alice, bob, ask):
    ask(alice, title='Quiet')
    loud = ask(alice, title='Loud')
    client.post(f"/api/questions/{loud['id']}/vote", headers=bob.headers, json={'voteType': 'upvote'})
    titles = [q['title'] for q in client.get('/api/questions?sort=votes').get_json()['questions']]
    assert titles == ['Loud', 'Quiet']


def test_list_includes_answer_count(client, alice, bob, ask, answer):
    question = ask(alice)
    answer(bob, question['id'])
    answer(bob, question['id'], content='Another approach')
    listed = client.get('/api/questions').get_json()['questions'][0]
    assert listed['answerCount'] == 2


def test_get_question_counts_views_and_orders_answers(client, alice, bob, make_user, ask, answer):
    carol = make_user('carol')
    question = ask(alice)
    first = answer(bob, question['id'], content='first')
    second = answer(carol, question['id'], content='second')
    client.post(f"/api/answers/{second['id']}/vote", headers=alice.headers, json={'voteType': 'upvote'})

    body = client.get(f"/api/questions/{question['id']}").get_json()
    assert body['question']['views'] == 1
    assert [a['id'] for a in body['answers']] == [second['id'], first['id']]

    client.post(f"/api/answers/{first['id']}/accept", headers=alice.headers)
    body = client.get(f"/api/questions/{question['id']}").get_json()
    assert body['question']['views'] == 2
    assert body['answers'][0]['id'] == first['id']


def test_get_missing_question_is_404(client):
    resp = client.get(f'/api/questions/{ObjectId()}')
    assert resp.status_code == 404
    assert resp.get_json()['message'] == 'Question not found'


def test_update_question_by_owner(client, alice, ask):
    question = ask(alice)
    resp = client.put(f"/api/questions/{question['id']}", headers=alice.headers,
                      json={'title': 'Better title', 'tags': ['Python', 'dict']})
    assert resp.status_code == 200
    updated = resp.get_json()['question']
    assert updated['title'] == 'Better title'
    assert updated['tags'] == ['python', 'dict']
    assert updated['description'] == question['description']


def test_update_with_empty_tags_keeps_tags(client, alice, ask):
    question = ask(alice, tags=['python'])
    resp = client.put(f"/api/questions/{question['id']}", headers=alice.headers, json={'tags': []})
    assert resp.get_json()['question']['tags'] == ['python']


def test_update_question_by_other_user_is_403(client, alice, bob, admin, ask):
    question = ask(alice)
    for account in (bob, admin):
        resp = client.put(f"/api/questions/{question['id']}", headers=account.headers, json={'title': 'Mine now'})
        assert resp.status_code == 403


def test_delete_question_cascades_answers(client, db, alice, bob, admin, ask, answer):
    question = ask(alice)
    answer(bob, question['id'])

    resp = client.delete(f"/api/questions/{question['id']}", headers=bob.headers)
    assert resp.status_code == 403

    resp = client.delete(f"/api/questions/{question['id']}", headers=admin.headers)
    assert resp.status_code == 200
    assert db.questions.count_documents({}) == 0
    assert db.answers.count_documents({}) == 0


def test_popular_tags(client, db, alice, ask):
    ask(alice, title='a', tags=['python', 'flask'])
    ask(alice, title='b', tags=['python'])
    tags = client.get('/api/questions/tags/popular').get_json()['tags']
    assert tags == [{'name': 'python', 'count': 2}, {'name': 'flask', 'count': 1}]


def test_user_question_and_answer_history(client, alice, bob, ask, answer):
    question = ask(alice)
    answer(bob, question['id'])

    mine = client.get('/api/users/questions', headers=alice.headers).get_json()['questions']
    assert [q['id'] for q in mine] == [question['id']]

    answers = client.get('/api/users/answers', headers=bob.headers).get_json()['answers']
    assert answers[0]['question'] == {'id': question['id'], '_id': question['id'], 'title': question['title']}


def test_profile_stats(client, alice, bob, ask, answer):
    question = ask(alice)
    posted = answer(bob, question['id'])
    client.post(f"/api/answers/{posted['id']}/accept", headers=alice.headers)
    body = client.get('/api/users/profile', headers=bob.headers).get_json()
    assert body['stats'] == {'questionsAsked': 0, 'answersPosted': 1, 'acceptedAnswers': 1}
    assert body['user']['reputation'] == 15
