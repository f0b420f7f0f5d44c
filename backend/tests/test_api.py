from conftest import QUIZ_PAYLOAD, make_user


def _login(flask_app, username, password='password'):
    c = flask_app.test_client()
    res = c.post('/api/login', json={'username': username, 'password': password})
    assert res.status_code == 200
    return c


def _host_session(host_client):
    quiz = host_client.post('/api/quizzes', json=QUIZ_PAYLOAD).get_json()
    res = host_client.post('/api/sessions', json={'quiz_id': quiz['id']})
    assert res.status_code == 201
    return quiz, res.get_json()


def test_login_and_me(client, host):
    res = client.post('/api/login', json={'username': 'host1', 'password': 'nope'})
    assert res.status_code == 401
    assert res.get_json()['code'] == 'auth_error'
    res = client.post('/api/login', json={'username': 'host1', 'password': 'password'})
    assert res.status_code == 200
    me = client.get('/api/me').get_json()
    assert me['username'] == 'host1'
    assert me['role'] == 'host'


def test_add_user(client):
    res = client.post('/api/users/add', json={'username': 'quizfan', 'password': 'pw'})
    assert res.status_code == 201
    assert res.get_json()['user']['role'] == 'player'
    res = client.post('/api/users/add', json={'username': 'quizfan', 'password': 'pw'})
    assert res.status_code == 400
    res = client.post('/api/users/add', json={'username': 'x', 'password': 'pw', 'role': 'admin'})
    assert res.status_code == 400


def test_host_accounts_need_a_host_or_open_signup(flask_app, client, host_client):
    res = client.post('/api/users/add', json={'username': 'quizmaster', 'password': 'pw', 'role': 'host'})
    assert res.status_code == 403
    res = host_client.post('/api/users/add', json={'username': 'quizmaster', 'password': 'pw', 'role': 'host'})
    assert res.status_code == 201
    assert res.get_json()['user']['role'] == 'host'

    flask_app.config['ALLOW_HOST_SIGNUP'] = True
    res = client.post('/api/users/add', json={'username': 'selfhost', 'password': 'pw', 'role': 'host'})
    assert res.status_code == 201


def test_create_quiz_requires_host(flask_app, client):
    assert client.post('/api/quizzes', json=QUIZ_PAYLOAD).status_code == 401
    make_user('player1', role='player')
    player = _login(flask_app, 'player1')
    res = player.post('/api/quizzes', json=QUIZ_PAYLOAD)
    assert res.status_code == 403
    assert res.get_json()['code'] == 'unauthorized'


def test_create_quiz_validates_questions(host_client):
    bad_options = dict(QUIZ_PAYLOAD, questions=[{'text': 'Only one?', 'options': ['yes'], 'correct_option': 0}])
    res = host_client.post('/api/quizzes', json=bad_options)
    assert res.status_code == 400
    assert res.get_json()['code'] == 'validation_error'

    bad_index = dict(QUIZ_PAYLOAD, questions=[{'text': 'Pick', 'options': ['a', 'b'], 'correct_option': 2}])
    assert host_client.post('/api/quizzes', json=bad_index).status_code == 400

    dup_order = dict(QUIZ_PAYLOAD, questions=[
        {'text': 'One', 'options': ['a', 'b'], 'correct_option': 0, 'order_index': 0},
        {'text': 'Two', 'options': ['a', 'b'], 'correct_option': 0, 'order_index': 0},
    ])
    assert host_client.post('/api/quizzes', json=dup_order).status_code == 400

    res = host_client.post('/api/quizzes', json=QUIZ_PAYLOAD)
    assert res.status_code == 201
    quiz = res.get_json()
    assert quiz['question_count'] == 2
    assert [q['order_index'] for q in quiz['questions']] == [0, 1]
    assert quiz['expires_at'] is not None
    listed = host_client.get('/api/quizzes').get_json()
    assert [q['id'] for q in listed] == [quiz['id']]


def test_start_without_participants(host_client):
    _quiz, session = _host_session(host_client)
    res = host_client.post(f"/api/sessions/{session['id']}/start")
    assert res.status_code == 400
    assert res.get_json()['code'] == 'no_participants'


def test_join_by_code_and_poll_waiting(flask_app, host_client):
    _quiz, session = _host_session(host_client)
    player = flask_app.test_client()
    res = player.post('/api/sessions/join', json={'join_code': session['join_code'].lower(), 'name': 'Alice'})
    assert res.status_code == 201
    joined = res.get_json()
    assert joined['participant']['name'] == 'Alice'
    assert joined['session']['id'] == session['id']

    status = player.get(f"/api/sessions/{session['id']}/status").get_json()
    assert status['status'] == 'waiting'
    assert status['participant_count'] == 1
    assert status['is_complete'] is False

    # Question is not served before the host starts
    res = player.get(f"/api/sessions/{session['id']}/question")
    assert res.status_code == 409
    assert res.get_json()['code'] == 'invalid_state'

    assert player.post('/api/sessions/join', json={'join_code': 'NOPE99', 'name': 'Bob'}).status_code == 404
    assert player.post('/api/sessions/join', json={'join_code': session['join_code']}).status_code == 400


def test_full_live_round(flask_app, host_client):
    _quiz, session = _host_session(host_client)
    sid = session['id']
    alice_client = flask_app.test_client()
    bob_client = flask_app.test_client()
    alice = alice_client.post('/api/sessions/join', json={'join_code': session['join_code'], 'name': 'Alice'}).get_json()['participant']
    bob = bob_client.post('/api/sessions/join', json={'join_code': session['join_code'], 'name': 'Bob'}).get_json()['participant']

    # Only the host can start
    assert alice_client.post(f'/api/sessions/{sid}/start').status_code == 401
    started = host_client.post(f'/api/sessions/{sid}/start')
    assert started.status_code == 200
    assert started.get_json()['status'] == 'active'
    assert host_client.post(f'/api/sessions/{sid}/start').status_code == 409

    q = alice_client.get(f'/api/sessions/{sid}/question').get_json()
    assert q['index'] == 0 and q['total'] == 2
    assert 'correct_option' not in q['question']
    assert q['question']['options'] == ['Lyon', 'Paris', 'Nice']
    qid = q['question']['id']

    # Client-reported timing is ignored; the server clock scores
    res = alice_client.post(f'/api/sessions/{sid}/answers', json={
        'participant_id': alice['id'], 'question_id': qid, 'option_index': 1, 'time_remaining': 0,
    })
    assert res.status_code == 200
    body = res.get_json()
    assert body['accepted'] is True
    assert 'is_correct' not in body and 'correct_option' not in body
    assert 30 < body['points'] <= 100
    assert body['all_answered'] is False

    res = bob_client.post(f'/api/sessions/{sid}/answers', json={
        'participant_id': bob['id'], 'question_id': qid, 'option_index': 0,
    })
    assert res.get_json()['points'] == 0
    assert res.get_json()['all_answered'] is True

    status = bob_client.get(f'/api/sessions/{sid}/status').get_json()
    assert status['all_answered'] is True
    assert status['answered_count'] == 2
    assert status['current_question_index'] == 0
    assert status['question_deadline'] is not None

    # Both countdowns hit zero at once: exactly one advance wins
    first = alice_client.post(f'/api/sessions/{sid}/advance', json={'participant_id': alice['id'], 'expected_index': 0}).get_json()
    second = bob_client.post(f'/api/sessions/{sid}/advance', json={'participant_id': bob['id'], 'expected_index': 0}).get_json()
    assert first['advanced'] is True and first['new_index'] == 1
    assert second['advanced'] is False and second['new_index'] == 1

    # Late answer for the old question
    res = bob_client.post(f'/api/sessions/{sid}/answers', json={
        'participant_id': bob['id'], 'question_id': qid, 'option_index': 1,
    })
    assert res.status_code == 409
    assert res.get_json()['code'] == 'session_not_active'

    q2 = bob_client.get(f'/api/sessions/{sid}/question').get_json()
    assert q2['index'] == 1
    assert q2['previous']['correct_option'] == 1
    assert q2['question']['hint'] == 'Centre of the country'

    # Host closes the last question
    done = host_client.post(f'/api/sessions/{sid}/advance', json={'expected_index': 1}).get_json()
    assert done['is_complete'] is True
    assert done['new_index'] == 2
    assert done['status'] == 'ended'

    status = alice_client.get(f'/api/sessions/{sid}/status').get_json()
    assert status['status'] == 'ended'
    assert status['is_complete'] is True
    assert alice_client.get(f'/api/sessions/{sid}/question').get_json()['question'] is None
    assert alice_client.post(f'/api/sessions/{sid}/advance', json={'participant_id': alice['id'], 'expected_index': 1}).status_code == 409

    res = alice_client.post(f'/api/sessions/{sid}/answers', json={
        'participant_id': alice['id'], 'question_id': q2['question']['id'], 'option_index': 0,
    })
    assert res.status_code == 409

    board = alice_client.get(f"/api/sessions/{sid}/leaderboard?participant_id={alice['id']}").get_json()
    assert board['status'] == 'ended'
    names = [row['name'] for row in board['leaderboard']]
    assert names == ['Alice', 'Bob']
    assert board['leaderboard'][0]['total_score'] == body['points']
    # Neither answered question 2; both slots were closed as timeouts
    assert board['leaderboard'][0]['total_answered'] == 2
    assert board['leaderboard'][1]['accuracy'] == 0

    participants = host_client.get(f'/api/sessions/{sid}/participants').get_json()
    assert all(p['completed'] for p in participants)


def test_advance_and_leaderboard_need_a_session_member(flask_app, host_client):
    _quiz, session = _host_session(host_client)
    sid = session['id']
    player = flask_app.test_client()
    alice = player.post('/api/sessions/join', json={'join_code': session['join_code'], 'name': 'Alice'}).get_json()['participant']
    host_client.post(f'/api/sessions/{sid}/start')

    stranger = flask_app.test_client()
    assert stranger.post(f'/api/sessions/{sid}/advance', json={'expected_index': 0}).status_code == 403
    assert stranger.post(f'/api/sessions/{sid}/advance', json={'participant_id': 999, 'expected_index': 0}).status_code == 403
    # Every caller names the index it is leaving
    assert player.post(f'/api/sessions/{sid}/advance', json={'participant_id': alice['id']}).status_code == 400
    assert stranger.get(f'/api/sessions/{sid}/leaderboard').status_code == 403
    assert host_client.get(f'/api/sessions/{sid}/leaderboard').status_code == 200


def test_host_can_end_session(host_client, flask_app):
    _quiz, session = _host_session(host_client)
    sid = session['id']
    flask_app.test_client().post('/api/sessions/join', json={'join_code': session['join_code'], 'name': 'Alice'})
    host_client.post(f'/api/sessions/{sid}/start')
    res = host_client.post(f'/api/sessions/{sid}/end')
    assert res.status_code == 200
    assert res.get_json()['status'] == 'ended'
    assert res.get_json()['ended_at'] is not None
    # Ended sessions still resolve by code for late pollers
    assert host_client.get(f"/api/sessions/code/{session['join_code']}").get_json()['status'] == 'ended'


def test_other_host_cannot_control_session(flask_app, host_client):
    _quiz, session = _host_session(host_client)
    make_user('host2')
    other = _login(flask_app, 'host2')
    flask_app.test_client().post('/api/sessions/join', json={'join_code': session['join_code'], 'name': 'Alice'})
    res = other.post(f"/api/sessions/{session['id']}/start")
    assert res.status_code == 403


def test_player_history_and_stats(flask_app, host_client):
    _quiz, session = _host_session(host_client)
    sid = session['id']
    make_user('player1', role='player')
    player = _login(flask_app, 'player1')
    me = player.post('/api/sessions/join', json={'join_code': session['join_code'], 'name': 'P1'}).get_json()['participant']
    assert me['user_id'] is not None
    host_client.post(f'/api/sessions/{sid}/start')
    qid = player.get(f'/api/sessions/{sid}/question').get_json()['question']['id']
    player.post(f'/api/sessions/{sid}/answers', json={'participant_id': me['id'], 'question_id': qid, 'option_index': 1})
    host_client.post(f'/api/sessions/{sid}/end')

    history = player.get('/api/me/history').get_json()['sessions']
    assert len(history) == 1
    entry = history[0]
    assert entry['status'] == 'completed'
    assert entry['quiz']['title'] == 'Capitals'
    assert entry['correct_answers'] == 1
    assert entry['total_questions'] == 2
    assert entry['score'] > 30

    stats = player.get('/api/me/stats').get_json()
    assert stats == {'role': 'player', 'quizzes_participated': 1, 'total_answers': 1, 'accuracy': 100}
    host_stats = host_client.get('/api/me/stats').get_json()
    assert host_stats['quizzes_created'] == 1
    assert host_stats['sessions_hosted'] == 1
    assert flask_app.test_client().get('/api/me/history').status_code == 401


def _live_session(flask_app, host_client, names=('Alice',)):
    _quiz, session = _host_session(host_client)
    players = []
    for name in names:
        c = flask_app.test_client()
        joined = c.post('/api/sessions/join', json={'join_code': session['join_code'], 'name': name}).get_json()
        players.append((c, joined['participant']))
    host_client.post(f"/api/sessions/{session['id']}/start")
    return session, players


def test_host_advance_sent_twice_moves_one_question(flask_app, host_client):
    session, _players = _live_session(flask_app, host_client)
    url = f"/api/sessions/{session['id']}/advance"
    first = host_client.post(url, json={'expected_index': 0}).get_json()
    again = host_client.post(url, json={'expected_index': 0}).get_json()
    assert first['advanced'] is True and first['new_index'] == 1
    assert again['advanced'] is False and again['new_index'] == 1
    assert again['status'] == 'active'

    res = host_client.post(url, json={})
    assert res.status_code == 400
    assert res.get_json()['code'] == 'validation_error'


def test_storage_outage_refuses_the_answer(flask_app, host_client, monkeypatch, caplog):
    from sqlalchemy.exc import OperationalError
    from quizburst.models import Answer
    from quizburst.services.sessions import ledger

    session, [(player, alice)] = _live_session(flask_app, host_client)
    sid = session['id']
    qid = player.get(f'/api/sessions/{sid}/question').get_json()['question']['id']

    def storage_down(*args, **kwargs):
        raise OperationalError('INSERT INTO answer', {}, Exception('could not connect to server'))

    monkeypatch.setattr(ledger, 'upsert', storage_down)
    res = player.post(f'/api/sessions/{sid}/answers', json={
        'participant_id': alice['id'], 'question_id': qid, 'option_index': 1,
    })
    assert res.status_code == 503
    assert res.get_json()['code'] == 'storage_unavailable'
    assert '[storage-down]' in caplog.text
    assert Answer.query.count() == 0


def test_client_timing_is_used_only_when_trusted(flask_app, host_client):
    session, [(alice_client, alice), (bob_client, bob)] = _live_session(flask_app, host_client, names=('Alice', 'Bob'))
    sid = session['id']
    qid = alice_client.get(f'/api/sessions/{sid}/question').get_json()['question']['id']
    url = f'/api/sessions/{sid}/answers'

    res = alice_client.post(url, json={'participant_id': alice['id'], 'question_id': qid, 'option_index': 1, 'time_remaining': 0})
    assert res.get_json()['points'] > 30

    flask_app.config['TRUST_CLIENT_TIMING'] = True
    res = bob_client.post(url, json={'participant_id': bob['id'], 'question_id': qid, 'option_index': 1, 'time_remaining': 0})
    assert res.get_json()['points'] == 30
    res = bob_client.post(url, json={'participant_id': bob['id'], 'question_id': qid, 'option_index': 1, 'time_remaining': 10})
    assert res.get_json()['points'] == 65
    res = bob_client.post(url, json={'participant_id': bob['id'], 'question_id': qid, 'option_index': 1, 'time_remaining': 'soon'})
    assert res.status_code == 400


def test_latest_session_for_quiz_owner(flask_app, host_client):
    quiz, first = _host_session(host_client)
    url = f"/api/quizzes/{quiz['id']}/latest-session"
    res = host_client.get(url)
    assert res.status_code == 200
    assert res.get_json()['id'] == first['id']
    assert res.get_json()['status'] == 'waiting'

    second = host_client.post('/api/sessions', json={'quiz_id': quiz['id']}).get_json()
    assert host_client.get(url).get_json()['id'] == second['id']

    make_user('host2')
    other = _login(flask_app, 'host2')
    assert other.get(url).status_code == 403
    assert host_client.get('/api/quizzes/9999/latest-session').status_code == 404


def test_answer_review_after_the_session(flask_app, host_client):
    session, [(player, alice)] = _live_session(flask_app, host_client)
    sid = session['id']
    qid = player.get(f'/api/sessions/{sid}/question').get_json()['question']['id']
    player.post(f'/api/sessions/{sid}/answers', json={'participant_id': alice['id'], 'question_id': qid, 'option_index': 1})

    url = f"/api/sessions/{sid}/participants/{alice['id']}/answers"
    res = player.get(url)
    assert res.status_code == 409
    assert res.get_json()['code'] == 'invalid_state'

    host_client.post(f'/api/sessions/{sid}/end')
    review = player.get(url).get_json()
    assert review['participant']['name'] == 'Alice'
    first, second = review['answers']
    assert first['is_correct'] is True
    assert first['question']['correct_option'] == 1
    assert second['chosen_option'] is None
    assert second['question']['explanation'] == 'Madrid since 1561.'
    assert review['total_score'] == first['points']
    assert player.get(f'/api/sessions/{sid}/participants/9999/answers').status_code == 404


def test_signed_in_players_answers_stay_private(flask_app, host_client):
    _quiz, session = _host_session(host_client)
    sid = session['id']
    make_user('player1', role='player')
    player = _login(flask_app, 'player1')
    me = player.post('/api/sessions/join', json={'join_code': session['join_code'], 'name': 'P1'}).get_json()['participant']
    host_client.post(f'/api/sessions/{sid}/start')
    host_client.post(f'/api/sessions/{sid}/end')

    url = f"/api/sessions/{sid}/participants/{me['id']}/answers"
    assert flask_app.test_client().get(url).status_code == 403
    assert player.get(url).status_code == 200
    assert host_client.get(url).status_code == 200
