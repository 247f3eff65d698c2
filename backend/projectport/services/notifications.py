"""Client for the notification functions plus the invitation workflow built on it.

Delivery is best effort: every public call returns a plain success value and logs failures
instead of raising, so a broken SMS/email path never fails the operation that triggered it.
"""
from __future__ import annotations
import logging
from datetime import timedelta
from typing import Any, Dict, Optional
import requests
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from projectport.constants.roles import DEFAULT_LOCALE
from projectport.models.notification import Notification
from projectport.models.profile import Profile, utcnow
from projectport.models.shop import Shop, ShopInvitation
from projectport.utils.ids import generate_invitation_code

log = logging.getLogger(__name__)

SMS_TYPES = ('job_start', 'job_progress', 'job_completed', 'invitation', 'general')

JOB_STATUS_MESSAGES = {
    'in-progress': {
        'en': 'Your motorcycle service has started at {shop}. Track progress: {link}',
        'ko': '{shop}에서 오토바이 정비가 시작되었습니다. 진행 상황 확인: {link}',
    },
    'completed': {
        'en': 'Your motorcycle service at {shop} is complete! Please come pick up your vehicle. Job ID: {job_id}',
        'ko': '{shop}에서 오토바이 정비가 완료되었습니다! 차량을 찾아가 주세요. 작업 ID: {job_id}',
    },
    'pending': {
        'en': "Your motorcycle service request has been received by {shop}. We'll notify you when work begins.",
        'ko': '{shop}에서 오토바이 정비 요청을 접수했습니다. 작업이 시작되면 알려드리겠습니다.',
    },
}
FALLBACK_STATUS_MESSAGE = {
    'en': 'Service status update for job {job_id}',
    'ko': '작업 {job_id}의 정비 상태가 변경되었습니다',
}


def status_message(status: str, job_id: str, shop_name: str, link: str = '', locale: str = DEFAULT_LOCALE) -> str:
    templates = JOB_STATUS_MESSAGES.get(status, FALLBACK_STATUS_MESSAGE)
    template = templates.get(locale) or templates[DEFAULT_LOCALE]
    return template.format(shop=shop_name, job_id=job_id, link=link)


def sms_type_for_status(status: str) -> str:
    if status == 'completed':
        return 'job_completed'
    if status == 'in-progress':
        return 'job_progress'
    return 'general'


class NotificationService:
    def __init__(self, base_url: Optional[str], api_key: Optional[str] = None, site_url: str = '', http=None, timeout: float = 10):
        self.base_url = (base_url or '').rstrip('/')
        self.api_key = api_key
        self.site_url = (site_url or '').rstrip('/')
        self.http = http or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> 'NotificationService':
        return cls(config.get('FUNCTIONS_URL'), config.get('FUNCTIONS_API_KEY'), config.get('SITE_URL', ''))

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def _invoke(self, name: str, body: Dict[str, Any]) -> bool:
        if not self.configured:
            log.info('Notification function %s skipped: FUNCTIONS_URL not configured', name)
            return False
        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['Authorization'] = f'Bearer {self.api_key}'
        try:
            resp = self.http.post(f'{self.base_url}/{name}', json=body, headers=headers, timeout=self.timeout)
            data = resp.json()
        except (requests.RequestException, ValueError):
            log.exception('Error invoking notification function %s', name)
            return False
        if not resp.ok or not isinstance(data, dict):
            log.error('Notification function %s failed: %s %s', name, resp.status_code, data)
            return False
        return bool(data.get('success'))

    def send_sms(self, to: str, message: str, job_id: Optional[str] = None, type: str = 'general', template_code: Optional[str] = None) -> bool:
        body = {'to': to, 'message': message, 'type': type if type in SMS_TYPES else 'general'}
        if job_id:
            body['jobId'] = job_id
        if template_code:
            body['templateCode'] = template_code
        return self._invoke('send-kakaotalk', body)

    def send_invitation_email(self, to: str, shop_name: str, invitation_code: str, shop_id: str) -> bool:
        return self._invoke('send-invitation-email', {
            'to': to, 'shopName': shop_name, 'invitationCode': invitation_code, 'shopId': shop_id,
        })

    def tracking_link(self, tracking_code: Optional[str]) -> str:
        if not tracking_code:
            return self.site_url
        return f'{self.site_url}/track/{tracking_code}'

    def notify_job_status_change(self, job_id: str, customer_phone: Optional[str], status: str, shop_name: str,
                                 tracking_code: Optional[str] = None, locale: str = DEFAULT_LOCALE) -> bool:
        if not customer_phone:
            return False
        message = status_message(status, job_id, shop_name, self.tracking_link(tracking_code), locale)
        return self.send_sms(customer_phone, message, job_id=job_id, type=sms_type_for_status(status))

    def create_shop_invitation(self, session, shop_id: str, email: str, invited_by: int,
                               phone: Optional[str] = None, ttl_days: int = 7) -> Optional[ShopInvitation]:
        """Persist a pending invitation, notify an existing profile in-app and email the invitee.

        Returns None when the invitation could not be stored. Notification and email failures
        do not undo the invitation.
        """
        try:
            shop = session.execute(select(Shop).where(Shop.id == shop_id)).scalar_one_or_none()
            if shop is None:
                log.warning('Invitation for unknown shop %s', shop_id)
                return None
            invitation = ShopInvitation(
                shop_id=shop_id, invited_by=invited_by, email=email, phone=phone,
                invitation_code=generate_invitation_code(), status=ShopInvitation.STATUS_PENDING,
                expires_at=utcnow() + timedelta(days=ttl_days),
            )
            session.add(invitation)
            session.flush()
            invitee = session.execute(select(Profile).where(Profile.email == email)).scalar_one_or_none()
            if invitee is not None:
                session.add(Notification(
                    user_id=invitee.id, title='Shop Invitation',
                    content=f'You have been invited to join {shop.name or "a shop"}',
                    type='shop_invitation', reference_id=str(invitation.id), is_read=False,
                ))
            session.commit()
        except SQLAlchemyError:
            log.exception('Error creating shop invitation for %s', email)
            session.rollback()
            return None
        if not self.send_invitation_email(email, shop.name, invitation.invitation_code, shop_id):
            log.warning('Invitation email to %s was not delivered', email)
        return invitation


__all__ = ['NotificationService', 'status_message', 'sms_type_for_status', 'JOB_STATUS_MESSAGES']
