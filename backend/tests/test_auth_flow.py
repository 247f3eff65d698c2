from projectport import get_db
from projectport.models.audit import AuditLog
from tests.test_utils_seed import ensure_profile, ensure_shop, jwt_headers, login_headers


def test_signup_login_and_me(client):
    resp = client.post('/iam/auth/signup', json={'name': 'T', 'email': 'T@Example.com', 'password': 'pw'})
    assert resp.status_code == 201, resp.get_json()
    assert resp.get_json()['email'] == 't@example.com'
    assert resp.get_json()['approved'] is False
    assert client.post('/iam/auth/signup', json={'email': 't@example.com', 'password': 'pw'}).status_code == 400

    headers = login_headers(client, 't@example.com')
    me = client.get('/iam/auth/me', headers=headers)
    assert me.status_code == 200
    body = me.get_json()
    assert body['email'] == 't@example.com'
    assert body['permissions'] == {'role': 'mechanic', 'shop_id': None, 'can_see_all_jobs': False}


def test_login_rejects_bad_credentials(client, app_context):
    ensure_profile('auth_bad@example.com')
    assert client.post('/iam/auth/login', json={'email': 'auth_bad@example.com', 'password': 'nope'}).status_code == 401
    assert client.post('/iam/auth/login', json={'email': 'auth_bad@example.com'}).status_code == 400


def test_signup_unknown_invitation(client):
    resp = client.post('/iam/auth/signup', json={'email': 'auth_inv@example.com', 'password': 'pw', 'invitation_code': 'nope'})
    assert resp.status_code == 404
    # nothing half-created
    assert client.post('/iam/auth/login', json={'email': 'auth_inv@example.com', 'password': 'pw'}).status_code == 401


def test_me_requires_token(client):
    assert client.get('/iam/auth/me').status_code == 401


def test_admin_manages_profiles(client, app_context):
    admin = ensure_profile('auth_admin@example.com', 'admin')
    target = ensure_profile('auth_target@example.com')
    shop = ensure_shop('Auth Shop')
    resp = client.put(f'/iam/profiles/{target.id}', json={'role': 'support', 'shop_id': shop.id, 'approved': True},
                      headers=jwt_headers(admin))
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['role'] == 'support'
    audit = get_db().query(AuditLog).filter_by(action='PROFILE.UPDATE', entity_id=str(target.id)).one()
    assert audit.meta['changes']['role'] == {'before': 'mechanic', 'after': 'support'}
    assert client.put(f'/iam/profiles/{target.id}', json={'role': 'owner'}, headers=jwt_headers(admin)).status_code == 400
    listed = client.get('/iam/profiles?role=support&limit=200', headers=jwt_headers(admin)).get_json()['data']
    assert target.id in {p['id'] for p in listed}


def test_profiles_admin_only(client, app_context):
    sup = ensure_profile('auth_support_only@example.com', 'support')
    assert client.get('/iam/profiles', headers=jwt_headers(sup)).status_code == 403
    assert client.put('/iam/profiles/1', json={'role': 'admin'}, headers=jwt_headers(sup)).status_code == 403


def test_login_claims_carry_email_and_role(client, app_context):
    from flask_jwt_extended import decode_token
    ensure_profile('auth_claims@example.com', 'support')
    token = client.post('/iam/auth/login', json={'email': 'auth_claims@example.com', 'password': 'pw'}).get_json()['access_token']
    claims = decode_token(token)
    assert claims['email'] == 'auth_claims@example.com'
    assert claims['role'] == 'support'


def test_signup_refuses_system_admin_email(client, app_context):
    admin_email = app_context.config['SYSTEM_ADMIN_EMAIL']
    resp = client.post('/iam/auth/signup', json={'email': admin_email.upper(), 'password': 'pw'})
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'email reserved'
