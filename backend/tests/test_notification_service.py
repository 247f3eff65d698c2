import requests
from projectport import get_db
from projectport.models.notification import Notification
from projectport.models.shop import ShopInvitation
from projectport.services.notifications import NotificationService, status_message, sms_type_for_status
from tests.test_utils_seed import ensure_profile, ensure_shop, jwt_headers


class ClientTransport:
    """Routes NotificationService HTTP calls into the Flask test client."""

    def __init__(self, client, fail=False):
        self.client = client
        self.fail = fail
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append((url, json))
        if self.fail:
            raise requests.ConnectionError('unreachable')
        path = url.split('http://functions', 1)[1]
        resp = self.client.post(path, json=json, headers=headers)
        return _Resp(resp)


class _Resp:
    def __init__(self, resp):
        self._resp = resp
        self.status_code = resp.status_code
        self.ok = resp.status_code < 400

    def json(self):
        return self._resp.get_json()


def _service(client, fail=False):
    transport = ClientTransport(client, fail)
    return NotificationService('http://functions/functions/v1', site_url='https://portal.example', http=transport), transport


def test_status_messages_localized():
    assert 'Gangnam Moto' in status_message('completed', 'JOB-1', 'Gangnam Moto', locale='en')
    assert '완료' in status_message('completed', 'JOB-1', 'Gangnam Moto', locale='ko')
    assert status_message('in-progress', 'JOB-1', 'S', link='L', locale='fr').endswith('Track progress: L')
    assert status_message('on-hold', 'JOB-9', 'S') == 'Service status update for job JOB-9'
    assert sms_type_for_status('completed') == 'job_completed'
    assert sms_type_for_status('in-progress') == 'job_progress'
    assert sms_type_for_status('pending') == 'general'


def test_send_sms_through_function(client):
    svc, transport = _service(client)
    assert svc.send_sms('+821011112222', 'hello', job_id='JOB-1', type='job_start') is True
    url, body = transport.calls[0]
    assert url.endswith('/send-kakaotalk')
    assert body == {'to': '+821011112222', 'message': 'hello', 'type': 'job_start', 'jobId': 'JOB-1'}


def test_delivery_failures_never_raise(client):
    svc, _ = _service(client, fail=True)
    assert svc.send_sms('010', 'x') is False
    assert svc.send_invitation_email('a@example.com', 'S', 'code', 'SHOP-1') is False
    assert NotificationService('').send_sms('010', 'x') is False


def test_notify_job_status_change(client):
    svc, transport = _service(client)
    assert svc.notify_job_status_change('JOB-7', '010-1234-5678', 'in-progress', 'Shop', tracking_code='ABCD1234') is True
    _, body = transport.calls[0]
    assert body['type'] == 'job_progress'
    assert 'https://portal.example/track/ABCD1234' in body['message']
    assert svc.notify_job_status_change('JOB-7', None, 'completed', 'Shop') is False


def test_create_shop_invitation(client, app_context):
    owner = ensure_profile('svc_inv_owner@example.com')
    invitee = ensure_profile('svc_invitee@example.com')
    shop = ensure_shop('Service Invite Shop', owner_id=owner.id)
    svc, transport = _service(client)
    inv = svc.create_shop_invitation(get_db(), shop.id, invitee.email, owner.id, ttl_days=7)
    assert inv is not None
    assert inv.status == ShopInvitation.STATUS_PENDING
    assert get_db().query(Notification).filter_by(user_id=invitee.id, reference_id=str(inv.id)).count() == 1
    url, body = transport.calls[-1]
    assert url.endswith('/send-invitation-email')
    assert body['invitationCode'] == inv.invitation_code


def test_create_shop_invitation_survives_email_failure(client, app_context):
    owner = ensure_profile('svc_inv_owner2@example.com')
    shop = ensure_shop('Service Invite Shop Two', owner_id=owner.id)
    svc, _ = _service(client, fail=True)
    inv = svc.create_shop_invitation(get_db(), shop.id, 'nobody@example.com', owner.id)
    assert inv is not None
    assert get_db().get(ShopInvitation, inv.id) is not None
    assert svc.create_shop_invitation(get_db(), 'SHOP-MISSING', 'x@example.com', owner.id) is None
