from datetime import timedelta
from projectport import get_db
from projectport.models.notification import Notification
from projectport.models.profile import Profile, utcnow
from projectport.models.shop import ShopInvitation
from tests.test_utils_seed import ensure_profile, ensure_shop, jwt_headers

ADMIN = 'shops_admin@example.com'


def test_admin_creates_shop(client, app_context):
    admin = ensure_profile(ADMIN, 'admin')
    owner = ensure_profile('shops_owner@example.com')
    resp = client.post('/shops', json={'name': 'Busan Bikes', 'region': 'Busan', 'district': 'Haeundae',
                                       'services': ['Oil Change'], 'owner_id': owner.id}, headers=jwt_headers(admin))
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['id'].startswith('SHOP-')
    assert body['unique_identifier'].startswith('BUSAN-BUSAN-')
    assert get_db().get(Profile, owner.id).shop_id == body['id']


def test_non_admin_cannot_create_shop(client, app_context):
    mech = ensure_profile('shops_mech_create@example.com')
    resp = client.post('/shops', json={'name': 'X', 'region': 'Y', 'district': 'Z'}, headers=jwt_headers(mech))
    assert resp.status_code == 403


def test_shop_visibility(client, app_context):
    s1 = ensure_shop('Visible Shop A')
    s2 = ensure_shop('Visible Shop B')
    mech = ensure_profile('shops_vis_mech@example.com', 'mechanic', s1.id)
    sup = ensure_profile('shops_vis_support@example.com', 'support')
    mine = client.get('/shops', headers=jwt_headers(mech)).get_json()['data']
    assert [s['id'] for s in mine] == [s1.id]
    assert client.get(f'/shops/{s2.id}', headers=jwt_headers(mech)).status_code == 403
    assert client.get(f'/shops/{s1.id}', headers=jwt_headers(mech)).status_code == 200
    every = {s['id'] for s in client.get('/shops?limit=200', headers=jwt_headers(sup)).get_json()['data']}
    assert {s1.id, s2.id} <= every


def test_invitation_flow(client, app_context):
    owner = ensure_profile('shops_inv_owner@example.com')
    shop = ensure_shop('Invite Shop', owner_id=owner.id)
    invitee = ensure_profile('shops_invitee@example.com')
    outsider = ensure_profile('shops_outsider@example.com')
    assert client.post(f'/shops/{shop.id}/invitations', json={'email': invitee.email}, headers=jwt_headers(outsider)).status_code == 403
    resp = client.post(f'/shops/{shop.id}/invitations', json={'email': invitee.email}, headers=jwt_headers(owner))
    assert resp.status_code == 201, resp.get_json()
    code = resp.get_json()['invitation_code']
    assert len(code) == 13
    note = get_db().query(Notification).filter_by(user_id=invitee.id, type='shop_invitation').one()
    assert 'Invite Shop' in note.content
    accepted = client.post(f'/shops/invitations/{code}/accept', headers=jwt_headers(invitee))
    assert accepted.status_code == 200
    assert get_db().get(Profile, invitee.id).shop_id == shop.id
    # single use
    assert client.post(f'/shops/invitations/{code}/accept', headers=jwt_headers(outsider)).status_code == 400


def test_expired_invitation(client, app_context):
    owner = ensure_profile('shops_exp_owner@example.com')
    shop = ensure_shop('Expired Invite Shop', owner_id=owner.id)
    session = get_db()
    inv = ShopInvitation(shop_id=shop.id, invited_by=owner.id, email='late@example.com', invitation_code='EXPIREDCODE01',
                         status=ShopInvitation.STATUS_PENDING, expires_at=utcnow() - timedelta(days=1))
    session.add(inv); session.commit()
    late = ensure_profile('late@example.com')
    assert client.post('/shops/invitations/EXPIREDCODE01/accept', headers=jwt_headers(late)).status_code == 400
    assert session.get(ShopInvitation, inv.id).status == ShopInvitation.STATUS_EXPIRED
    assert session.get(Profile, late.id).shop_id is None


def test_signup_with_invitation(client, app_context):
    owner = ensure_profile('shops_signup_owner@example.com')
    shop = ensure_shop('Signup Shop', owner_id=owner.id)
    resp = client.post(f'/shops/{shop.id}/invitations', json={'email': 'newbie@example.com'}, headers=jwt_headers(owner))
    code = resp.get_json()['invitation_code']
    signup = client.post('/iam/auth/signup', json={'name': 'Newbie', 'email': 'newbie@example.com', 'password': 'pw',
                                                   'invitation_code': code})
    assert signup.status_code == 201, signup.get_json()
    assert signup.get_json()['shop_id'] == shop.id
    assert signup.get_json()['role'] == 'mechanic'
