from projectport import get_db
from projectport.models.notification import Notification
from tests.test_utils_seed import ensure_profile, jwt_headers


def test_list_and_mark_read(client, app_context):
    me = ensure_profile('notif_me@example.com')
    other = ensure_profile('notif_other@example.com')
    session = get_db()
    mine = Notification(user_id=me.id, title='Hi', content='welcome', type='system')
    theirs = Notification(user_id=other.id, title='Hi', content='not yours', type='system')
    session.add_all([mine, theirs]); session.commit()
    data = client.get('/notifications', headers=jwt_headers(me)).get_json()['data']
    assert [n['id'] for n in data] == [mine.id]
    assert client.post(f'/notifications/{theirs.id}/read', headers=jwt_headers(me)).status_code == 404
    assert client.post(f'/notifications/{mine.id}/read', headers=jwt_headers(me)).get_json()['is_read'] is True
    assert client.get('/notifications?unread=1', headers=jwt_headers(me)).get_json()['data'] == []
