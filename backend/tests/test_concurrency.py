import threading
import time

from skorbord.repository import KeyedLocks, get_repository


def test_concurrent_opposing_deltas_are_not_lost(file_app):
    setup = file_app.test_client()
    assert setup.post('/api/environments/race1').status_code == 201
    alice = setup.post('/api/race1/players', json={'name': 'Alice'}).get_json()
    bob = setup.post('/api/race1/players', json={'name': 'Bob'}).get_json()
    game = setup.post('/api/race1/games', json={
        'game_type_id': 'custom',
        'player_ids': [alice['id'], bob['id']],
        'win_condition_value': 10_000,
    }).get_json()
    url = f"/api/race1/games/{game['id']}/stats"

    workers = 8
    rounds = 10
    statuses = []
    status_lock = threading.Lock()
    start = threading.Barrier(workers)

    def worker(index):
        # Each thread gets its own client, app context and session
        client = file_app.test_client()
        delta = 3 if index % 2 == 0 else -2
        start.wait()
        for _ in range(rounds):
            res = client.post(url, json={'stats': [
                {'player_id': alice['id'], 'score': delta},
                {'player_id': bob['id'], 'score': -delta},
            ]})
            with status_lock:
                statuses.append(res.status_code)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert statuses == [200] * (workers * rounds)
    expected = (workers // 2) * rounds * 3 + (workers // 2) * rounds * -2
    final = {row['player_id']: row['score'] for row in setup.get(url).get_json()}
    assert final[alice['id']] == expected
    assert final[bob['id']] == -expected
    assert len(file_app.extensions['skorbord']['locks']) == 0


def _setup_table(file_app, environment_id, *names):
    setup = file_app.test_client()
    assert setup.post(f'/api/environments/{environment_id}').status_code == 201
    players = [setup.post(f'/api/{environment_id}/players', json={'name': n}).get_json() for n in names]
    return setup, players


def test_new_game_does_not_replace_game_being_finalized(file_app, monkeypatch):
    from skorbord.services.games import lifecycle

    setup, (alice, bob) = _setup_table(file_app, 'race2', 'Alice', 'Bob')
    body = {'game_type_id': 'custom', 'player_ids': [alice['id'], bob['id']]}
    game = setup.post('/api/race2/games', json=body).get_json()

    finalizing = threading.Event()
    original = lifecycle.recompute_for_game

    def slow_recompute(repo, target):
        original(repo, target)
        finalizing.set()
        time.sleep(0.5)

    monkeypatch.setattr(lifecycle, 'recompute_for_game', slow_recompute)
    results = {}

    def finalize():
        res = file_app.test_client().put(f"/api/race2/games/{game['id']}", json={'finalized': True})
        results['finalize'] = res.status_code

    def start_next():
        assert finalizing.wait(timeout=10)
        res = file_app.test_client().post('/api/race2/games', json=body)
        results['start'] = (res.status_code, res.get_json())

    threads = [threading.Thread(target=finalize), threading.Thread(target=start_next)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert results['finalize'] == 200
    status, started = results['start']
    assert status == 201
    kept = setup.get(f"/api/race2/games/{game['id']}")
    assert kept.status_code == 200
    assert kept.get_json()['finalized'] is True
    assert setup.get('/api/race2/games/active').get_json()['id'] == started['id']
    assert len(file_app.extensions['skorbord']['locks']) == 0


def test_concurrent_games_for_same_players_share_one_rivalry(file_app):
    setup, (alice, bob) = _setup_table(file_app, 'race3', 'Alice', 'Bob')
    orders = [[alice['id'], bob['id']], [bob['id'], alice['id']]] * 3
    responses = []
    response_lock = threading.Lock()
    start = threading.Barrier(len(orders))

    def worker(player_ids):
        client = file_app.test_client()
        start.wait()
        res = client.post('/api/race3/games', json={'game_type_id': 'custom', 'player_ids': player_ids})
        with response_lock:
            responses.append((res.status_code, res.get_json()))

    threads = [threading.Thread(target=worker, args=(ids,)) for ids in orders]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert len(responses) == len(orders)
    assert {status for status, _ in responses} <= {201, 409}
    rivalry_ids = {body['rivalry_id'] for status, body in responses if status == 201}
    rivalries = setup.get('/api/race3/rivalries').get_json()
    assert len(rivalries) == 1
    assert rivalry_ids == {rivalries[0]['id']}


def test_keyed_locks_drop_entries_when_released():
    locks = KeyedLocks()
    with locks.hold(('game', 'g1'), ('environment', 'e1')):
        with locks.hold(('game', 'g1')):
            assert len(locks) == 2
    assert len(locks) == 0

    for index in range(100):
        with locks.hold(('game', f'g{index}')):
            pass
    assert len(locks) == 0


def test_nested_transaction_keeps_its_locks_until_commit(file_app):
    with file_app.app_context():
        repo = get_repository()
        with repo.transaction(('environment', 'e1')):
            with repo.transaction(('game', 'g1')):
                pass
            assert len(repo.locks) == 2
        assert len(repo.locks) == 0
