def test_health(client):
    res = client.get('/health')
    assert res.status_code == 200
    assert res.get_json()['status'] == 'ok'


def test_create_environment(client):
    res = client.post('/api/environments/den7', json={'name': 'The Den'})
    assert res.status_code == 201
    env = res.get_json()
    assert env['id'] == 'den7'
    assert env['name'] == 'The Den'
    assert env['player_count'] == 0

    # Same id again is a conflict
    assert client.post('/api/environments/den7').status_code == 409
    # Bad id format
    res = client.post('/api/environments/NO!')
    assert res.status_code == 400
    assert 'error' in res.get_json()


def test_environment_default_name_and_details(client):
    client.post('/api/environments/abcd1234')
    res = client.get('/api/abcd1234')
    assert res.status_code == 200
    assert res.get_json()['name'] == 'Game abcd1234'
    assert client.get('/api/zzzz9999').status_code == 404


def test_players_get_colors_in_palette_order(make_players):
    alice, bob, cara = make_players('Alice', 'Bob', 'Cara')
    assert [alice['color'], bob['color'], cara['color']] == ['primary', 'secondary', 'accent']


def test_player_names_unique_case_insensitive(client, environment, make_players):
    make_players('Alice')
    res = client.post(f'/api/{environment}/players', json={'name': '  alice '})
    assert res.status_code == 409
    res = client.post(f'/api/{environment}/players', json={'name': '   '})
    assert res.status_code == 400


def test_rename_and_delete_player(client, environment, make_players):
    alice, bob = make_players('Alice', 'Bob')
    res = client.put(f"/api/{environment}/players/{alice['id']}", json={'name': 'Alicia'})
    assert res.status_code == 200
    assert res.get_json()['name'] == 'Alicia'
    # Rename onto an existing name
    res = client.put(f"/api/{environment}/players/{alice['id']}", json={'name': 'BOB'})
    assert res.status_code == 409

    assert client.delete(f"/api/{environment}/players/{bob['id']}").status_code == 200
    names = [p['name'] for p in client.get(f'/api/{environment}/players').get_json()]
    assert names == ['Alicia']


def test_players_are_scoped_to_environment(client, environment, make_players):
    alice, = make_players('Alice')
    client.post('/api/environments/other1')
    assert client.get(f"/api/other1/players/{alice['id']}").status_code == 404
    assert client.get('/api/other1/players').get_json() == []


def test_create_game_defaults_from_game_type(make_players, start_game):
    alice, bob = make_players('Alice', 'Bob')
    game = start_game([alice, bob], game_type_id='spades')
    assert game['win_condition_type'] == 'reach-target'
    assert game['win_condition_value'] == 500
    assert game['finalized'] is False
    assert game['rivalry_id']
    assert [p['player_id'] for p in game['players']] == [alice['id'], bob['id']]
    assert all(p['score'] == 0 for p in game['players'])
    assert [p['player_order'] for p in game['players']] == [1, 2]


def test_create_game_override_and_legacy_condition(make_players, start_game):
    alice, bob = make_players('Alice', 'Bob')
    game = start_game([alice, bob], game_type_id='custom', win_condition_type='lose', win_condition_value=-50)
    assert game['win_condition_type'] == 'fall-below-floor'
    assert game['win_condition_value'] == -50


def test_create_game_with_player_names(client, environment, make_players):
    alice, = make_players('Alice')
    res = client.post(f'/api/{environment}/games', json={
        'game_type_id': 'hearts', 'player_names': ['alice', 'Dana'],
    })
    assert res.status_code == 201
    game = res.get_json()
    assert game['players'][0]['player_id'] == alice['id']
    assert game['players'][1]['player_name'] == 'Dana'


def test_create_game_validation(client, environment, make_players):
    alice, = make_players('Alice')
    # Too few players
    res = client.post(f'/api/{environment}/games', json={'game_type_id': 'custom', 'player_ids': [alice['id']]})
    assert res.status_code == 400
    # Unknown game type
    res = client.post(f'/api/{environment}/games', json={'game_type_id': 'nope', 'player_ids': [alice['id']]})
    assert res.status_code == 400
    # Unknown player
    res = client.post(f'/api/{environment}/games', json={
        'game_type_id': 'custom', 'player_ids': [alice['id'], 'missing'],
    })
    assert res.status_code == 400


def test_new_game_replaces_unfinalized_game(client, environment, make_players, start_game):
    alice, bob = make_players('Alice', 'Bob')
    first = start_game([alice, bob])
    second = start_game([alice, bob])
    assert client.get(f"/api/{environment}/games/{first['id']}").status_code == 404
    active = client.get(f'/api/{environment}/games/active').get_json()
    assert active['id'] == second['id']
    games = client.get(f'/api/{environment}/games').get_json()
    assert [g['id'] for g in games] == [second['id']]


def test_no_active_game(client, environment):
    res = client.get(f'/api/{environment}/games/active')
    assert res.status_code == 404
    assert res.get_json() == {'error': 'No active game found'}


def test_apply_deltas(client, environment, make_players, start_game):
    alice, bob = make_players('Alice', 'Bob')
    game = start_game([alice, bob])
    url = f"/api/{environment}/games/{game['id']}/stats"
    res = client.post(url, json={'stats': [
        {'player_id': alice['id'], 'score': 15},
        {'player_id': bob['id'], 'score': -5},
        {'player_id': alice['id'], 'score': 5},
    ]})
    assert res.status_code == 200
    scores = {row['player_id']: row['score'] for row in res.get_json()}
    assert scores == {alice['id']: 20, bob['id']: -5}
    assert client.get(f"{url}/{bob['id']}").get_json()['score'] == -5


def test_out_of_range_delta_rejects_whole_batch(client, environment, make_players, start_game):
    alice, bob = make_players('Alice', 'Bob')
    game = start_game([alice, bob])
    url = f"/api/{environment}/games/{game['id']}/stats"
    client.post(url, json={'stats': [{'player_id': alice['id'], 'score': 900}]})

    res = client.post(url, json={'stats': [
        {'player_id': bob['id'], 'score': 10},
        {'player_id': alice['id'], 'score': 200},
    ]})
    assert res.status_code == 400
    body = res.get_json()
    assert body['attempted_score'] == 1100
    assert body['max_score'] == 999
    assert body['player_id'] == alice['id']
    # Bob's delta in the same batch was not written
    scores = {row['player_id']: row['score'] for row in client.get(url).get_json()}
    assert scores == {alice['id']: 900, bob['id']: 0}


def test_bounds_are_inclusive(client, environment, make_players, start_game):
    alice, bob = make_players('Alice', 'Bob')
    game = start_game([alice, bob])
    url = f"/api/{environment}/games/{game['id']}/stats"
    res = client.post(url, json={'stats': [
        {'player_id': alice['id'], 'score': 999},
        {'player_id': bob['id'], 'score': -999},
    ]})
    assert res.status_code == 200


def test_delta_validation(client, environment, make_players, start_game):
    alice, bob, cara = make_players('Alice', 'Bob', 'Cara')
    game = start_game([alice, bob])
    url = f"/api/{environment}/games/{game['id']}/stats"
    # Player not in the game
    assert client.post(url, json={'stats': [{'player_id': cara['id'], 'score': 1}]}).status_code == 400
    # Non-integer delta
    assert client.post(url, json={'stats': [{'player_id': alice['id'], 'score': 1.5}]}).status_code == 400
    assert client.post(url, json={'stats': [{'player_id': alice['id'], 'score': True}]}).status_code == 400
    assert client.post(url, json={'stats': []}).status_code == 400


def test_absolute_set(client, environment, make_players, start_game):
    alice, bob = make_players('Alice', 'Bob')
    game = start_game([alice, bob])
    url = f"/api/{environment}/games/{game['id']}/stats/{alice['id']}"
    res = client.put(url, json={'score': 42})
    assert res.status_code == 200
    assert res.get_json()['score'] == 42
    assert client.put(url, json={'score': 1000}).status_code == 400
    assert client.get(url).get_json()['score'] == 42


def test_player_order(client, environment, make_players, start_game):
    alice, bob, cara = make_players('Alice', 'Bob', 'Cara')
    game = start_game([alice, bob, cara])
    url = f"/api/{environment}/games/{game['id']}/stats/order"
    new_order = [cara['id'], alice['id'], bob['id']]
    res = client.put(url, json={'playerOrder': new_order})
    assert res.status_code == 200
    assert [row['player_id'] for row in res.get_json()] == new_order
    # Must be a full permutation
    assert client.put(url, json={'playerOrder': [cara['id'], alice['id']]}).status_code == 400
    assert client.put(url, json={'playerOrder': [cara['id'], cara['id'], bob['id']]}).status_code == 400


def test_winner_recorded_without_finalizing(client, environment, make_players, start_game):
    alice, bob = make_players('Alice', 'Bob')
    game = start_game([alice, bob], game_type_id='spades')
    client.post(f"/api/{environment}/games/{game['id']}/stats", json={'stats': [
        {'player_id': alice['id'], 'score': 510},
        {'player_id': bob['id'], 'score': 480},
    ]})
    state = client.get(f"/api/{environment}/games/{game['id']}").get_json()
    assert state['winner_id'] == alice['id']
    assert state['finalized'] is False


def test_finalize_flow_updates_rivalry_stats(client, environment, make_players, start_game):
    alice, bob = make_players('Alice', 'Bob')
    game = start_game([alice, bob], game_type_id='spades')
    client.post(f"/api/{environment}/games/{game['id']}/stats", json={'stats': [
        {'player_id': alice['id'], 'score': 510},
        {'player_id': bob['id'], 'score': 480},
    ]})
    res = client.put(f"/api/{environment}/games/{game['id']}", json={'finalized': True})
    assert res.status_code == 200
    final = res.get_json()
    assert final['finalized'] is True
    assert final['ended_at'] is not None
    assert final['winner_id'] == alice['id']

    rivalry = client.get(f"/api/{environment}/rivalries/{game['rivalry_id']}").get_json()
    a_stats = rivalry['player_stats'][alice['id']]['spades']
    b_stats = rivalry['player_stats'][bob['id']]['spades']
    assert (a_stats['wins'], a_stats['losses'], a_stats['total_games']) == (1, 0, 1)
    assert a_stats['min_win_margin'] == a_stats['max_win_margin'] == 30
    assert a_stats['min_loss_margin'] == 0
    assert a_stats['last_10_results'] == 'W'
    assert (b_stats['wins'], b_stats['losses']) == (0, 1)
    assert b_stats['min_loss_margin'] == b_stats['max_loss_margin'] == 30
    assert b_stats['last_10_results'] == 'L'
    assert [g['id'] for g in rivalry['recent_games']] == [game['id']]


def test_finalized_game_is_frozen(client, environment, make_players, start_game):
    alice, bob = make_players('Alice', 'Bob')
    game = start_game([alice, bob])
    base = f"/api/{environment}/games/{game['id']}"
    client.put(base, json={'finalized': True})

    assert client.put(base, json={'finalized': False}).status_code == 409
    assert client.put(base, json={'winner_id': bob['id']}).status_code == 409
    assert client.post(f'{base}/stats', json={'stats': [{'player_id': alice['id'], 'score': 1}]}).status_code == 409
    assert client.put(f"{base}/stats/{alice['id']}", json={'score': 3}).status_code == 409
    assert client.delete(base).status_code == 409
    # Finalizing again is a no-op
    assert client.put(base, json={'finalized': True}).status_code == 200
    # A finalized game is no longer active and is not replaced by a new game
    assert client.get(f'/api/{environment}/games/active').status_code == 404
    start_game([alice, bob])
    assert client.get(base).status_code == 200


def test_finalized_game_end_time_is_frozen(client, environment, make_players, start_game):
    alice, bob = make_players('Alice', 'Bob')
    game = start_game([alice, bob])
    base = f"/api/{environment}/games/{game['id']}"
    ended_at = client.put(base, json={'finalized': True}).get_json()['ended_at']
    assert ended_at is not None

    res = client.put(base, json={'ended_at': '2001-01-01T00:00:00Z'})
    assert res.status_code == 409
    assert client.put(base, json={'ended_at': None}).status_code == 409
    # Sending the stored value back is accepted
    assert client.put(base, json={'ended_at': ended_at}).status_code == 200
    assert client.get(base).get_json()['ended_at'] == ended_at


def test_manual_winner_must_be_in_game(client, environment, make_players, start_game):
    alice, bob, cara = make_players('Alice', 'Bob', 'Cara')
    game = start_game([alice, bob])
    base = f"/api/{environment}/games/{game['id']}"
    assert client.put(base, json={'winner_id': cara['id']}).status_code == 400
    res = client.put(base, json={'winner_id': bob['id'], 'finalized': True})
    assert res.status_code == 200
    assert res.get_json()['winner_id'] == bob['id']


def test_delete_game(client, environment, make_players, start_game):
    alice, bob = make_players('Alice', 'Bob')
    game = start_game([alice, bob])
    assert client.delete(f"/api/{environment}/games/{game['id']}").status_code == 200
    assert client.get(f"/api/{environment}/games/{game['id']}").status_code == 404


def test_player_with_history_cannot_be_deleted(client, environment, make_players, start_game):
    alice, bob = make_players('Alice', 'Bob')
    start_game([alice, bob])
    assert client.delete(f"/api/{environment}/players/{alice['id']}").status_code == 409


def test_player_summary(client, environment, make_players, start_game):
    alice, bob = make_players('Alice', 'Bob')
    game = start_game([alice, bob])
    client.put(f"/api/{environment}/games/{game['id']}", json={'winner_id': alice['id'], 'finalized': True})
    summary = client.get(f"/api/{environment}/players/{alice['id']}").get_json()
    assert summary['games_played'] == 1
    assert summary['wins'] == 1
    assert summary['recent_games'][0]['game_id'] == game['id']


def test_game_list_filters(client, environment, make_players, start_game):
    alice, bob = make_players('Alice', 'Bob')
    done = start_game([alice, bob])
    client.put(f"/api/{environment}/games/{done['id']}", json={'finalized': True})
    live = start_game([alice, bob])
    finalized = client.get(f'/api/{environment}/games?finalized=true').get_json()
    assert [g['id'] for g in finalized] == [done['id']]
    unfinalized = client.get(f'/api/{environment}/games?finalized=false').get_json()
    assert [g['id'] for g in unfinalized] == [live['id']]
    assert client.get(f'/api/{environment}/games?limit=abc').status_code == 400


def test_rivalry_is_order_independent(client, environment, make_players, start_game):
    alice, bob, cara = make_players('Alice', 'Bob', 'Cara')
    first = start_game([alice, bob, cara], game_type_id='hearts')
    second = start_game([cara, alice, bob], game_type_id='spades')
    assert first['rivalry_id'] == second['rivalry_id']
    # A subset is a different rivalry
    third = start_game([alice, bob])
    assert third['rivalry_id'] != first['rivalry_id']

    rivalries = client.get(f'/api/{environment}/rivalries').get_json()
    assert len(rivalries) == 2
    trio = next(r for r in rivalries if r['id'] == first['rivalry_id'])
    assert {gt['id'] for gt in trio['game_types']} == {'hearts', 'spades'}
    assert trio['player_names'] == ['Alice', 'Bob', 'Cara']


def test_rivalry_by_players(client, environment, make_players, start_game):
    alice, bob, cara = make_players('Alice', 'Bob', 'Cara')
    game = start_game([alice, bob], game_type_id='euchre')
    url = f'/api/{environment}/rivalries/by-players'
    res = client.get(f"{url}?player_ids={bob['id']},{alice['id']}")
    assert res.status_code == 200
    assert res.get_json()['id'] == game['rivalry_id']
    # Repeated query args work too
    res = client.get(f"{url}?player_ids={alice['id']}&player_ids={bob['id']}&game_type_id=euchre")
    assert res.get_json()['id'] == game['rivalry_id']
    # Never played together, or never played this game type
    assert client.get(f"{url}?player_ids={alice['id']},{cara['id']}").get_json() is None
    assert client.get(f"{url}?player_ids={alice['id']},{bob['id']}&game_type_id=golf").get_json() is None
    assert client.get(f"{url}?player_ids={alice['id']}").status_code == 400


def test_rivalry_games(client, environment, make_players, start_game):
    alice, bob = make_players('Alice', 'Bob')
    game = start_game([alice, bob], game_type_id='spades')
    client.post(f"/api/{environment}/games/{game['id']}/stats", json={'stats': [
        {'player_id': alice['id'], 'score': 120},
        {'player_id': bob['id'], 'score': 600},
    ]})
    client.put(f"/api/{environment}/games/{game['id']}", json={'finalized': True})
    games = client.get(f"/api/{environment}/rivalries/{game['rivalry_id']}/games").get_json()
    assert len(games) == 1
    top = games[0]['player_scores'][0]
    assert top['player_id'] == bob['id']
    assert top['is_winner'] is True
    assert client.get(f'/api/{environment}/rivalries/missing').status_code == 404


def test_create_rivalry(client, environment, make_players):
    alice, bob, cara = make_players('Alice', 'Bob', 'Cara')
    url = f'/api/{environment}/rivalries'
    res = client.post(url, json={'player_ids': [bob['id'], alice['id']], 'game_type_ids': ['hearts', 'golf']})
    assert res.status_code == 201
    rivalry = res.get_json()
    assert rivalry['player_names'] == ['Alice', 'Bob']
    assert {gt['id'] for gt in rivalry['game_types']} == {'hearts', 'golf'}

    # Same group in either order is a conflict
    assert client.post(url, json={'player_ids': [alice['id'], bob['id']]}).status_code == 409
    assert client.post(url, json={'player_ids': [bob['id'], alice['id']]}).status_code == 409

    found = client.get(f"{url}/by-players?player_ids={alice['id']},{bob['id']}").get_json()
    assert found['id'] == rivalry['id']
    assert len(client.get(url).get_json()) == 1


def test_create_rivalry_validation(client, environment, make_players):
    alice, bob = make_players('Alice', 'Bob')
    url = f'/api/{environment}/rivalries'
    assert client.post(url, json={'player_ids': [alice['id']]}).status_code == 400
    assert client.post(url, json={'player_ids': [alice['id'], alice['id']]}).status_code == 400
    assert client.post(url, json={'player_ids': [alice['id'], 'nobody']}).status_code == 400
    assert client.post(url, json={'player_ids': 'abc'}).status_code == 400
    res = client.post(url, json={'player_ids': [alice['id'], bob['id']], 'game_type_ids': ['nope']})
    assert res.status_code == 400
    # Nothing was written by the rejected requests
    assert client.get(url).get_json() == []


def test_delete_game_type(client, environment, make_players, start_game):
    assert client.delete('/api/game_types/missing').status_code == 404

    rummy = client.post('/api/game_types', json={'name': 'Rummy'}).get_json()
    alice, bob = make_players('Alice', 'Bob')
    client.post(f'/api/{environment}/rivalries', json={
        'player_ids': [alice['id'], bob['id']], 'game_type_ids': [rummy['id']],
    })
    client.post(f"/api/{environment}/game_types/{rummy['id']}/favorite")

    res = client.delete(f"/api/game_types/{rummy['id']}")
    assert res.status_code == 200
    assert client.get(f"/api/game_types/{rummy['id']}").status_code == 404
    assert client.get(f'/api/{environment}/favorites').get_json() == []
    rivalry = client.get(f'/api/{environment}/rivalries').get_json()[0]
    assert rivalry['game_types'] == []


def test_game_type_in_use_cannot_be_deleted(client, environment, make_players, start_game):
    alice, bob = make_players('Alice', 'Bob')
    start_game([alice, bob], game_type_id='golf')
    assert client.delete('/api/game_types/golf').status_code == 409
    assert client.get('/api/game_types/golf').status_code == 200


def test_game_types_and_favorites(client, environment):
    types = client.get('/api/game_types').get_json()
    assert {'hearts', 'spades', 'euchre', 'golf', 'custom'} <= {t['id'] for t in types}

    res = client.post('/api/game_types', json={
        'name': 'Rummy', 'condition_kind': 'reach-target', 'threshold': 250,
    })
    assert res.status_code == 201
    rummy = res.get_json()
    assert client.post('/api/game_types', json={'name': 'rummy'}).status_code == 409
    res = client.put(f"/api/game_types/{rummy['id']}", json={'threshold': 300})
    assert res.get_json()['threshold'] == 300

    assert client.post(f"/api/{environment}/game_types/{rummy['id']}/favorite").status_code == 200
    favorites = client.get(f'/api/{environment}/favorites').get_json()
    assert [f['id'] for f in favorites] == [rummy['id']]
    listed = client.get(f'/api/game_types?environment_id={environment}').get_json()
    assert next(t for t in listed if t['id'] == rummy['id'])['is_favorite'] is True

    client.delete(f"/api/{environment}/game_types/{rummy['id']}/favorite")
    assert client.get(f'/api/{environment}/favorites').get_json() == []


def test_unknown_environment(client):
    assert client.get('/api/nowhere1/players').status_code == 404
    assert client.get('/api/bad!id/games').status_code == 400
