def test_unknown_path_returns_error_json(client):
    resp = client.get('/non-existent-path')
    # Flask default 404 should be wrapped by error handler
    assert resp.status_code == 404
    body = resp.get_json()
    assert body['error']['status'] == 404
    assert 'detail' in body['error']


def test_healthz(client):
    assert client.get('/healthz').get_json() == {'status': 'ok'}


def test_internal_error_shape(client, app_context, monkeypatch):
    from tests.test_utils_seed import ensure_profile, jwt_headers
    import projectport.routes.messages as messages_mod
    user = ensure_profile('err@example.com')
    headers = jwt_headers(user)

    class BoomSession:
        def query(self, *a, **k):
            raise RuntimeError('explode')

    monkeypatch.setattr(messages_mod, 'get_db', lambda: BoomSession())
    resp = client.get('/messages', headers=headers)
    assert resp.status_code == 500
    body = resp.get_json()
    assert body['error']['status'] == 500
    assert body['error']['title'] == 'Internal Server Error'


def test_failed_request_leaves_nothing_pending(client, app_context):
    from projectport import get_db
    from projectport.models.profile import Profile
    from tests.test_utils_seed import ensure_profile, jwt_headers
    admin = ensure_profile('err_admin@example.com', 'admin')
    owner = ensure_profile('err_owner@example.com')
    resp = client.post('/shops', json={'name': 'Ghost', 'region': 'R', 'district': 'D', 'owner_id': 999999}, headers=jwt_headers(admin))
    assert resp.status_code == 400
    # the next successful commit must not carry the rejected shop along
    client.put(f'/iam/profiles/{owner.id}', json={'approved': True}, headers=jwt_headers(admin))
    shops = client.get('/shops?limit=200', headers=jwt_headers(admin)).get_json()['data']
    assert 'Ghost' not in {s['name'] for s in shops}
    assert get_db().get(Profile, owner.id).approved is True
