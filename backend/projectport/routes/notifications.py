from flask import Blueprint, request, abort
from projectport import get_db
from projectport.models.notification import Notification
from projectport.services.session import current_context
from projectport.utils.listing import list_response, iso_z

notifications_bp = Blueprint('notifications', __name__)


def _notification_json(n: Notification):
    return {
        'id': n.id,
        'title': n.title,
        'content': n.content,
        'type': n.type,
        'reference_id': n.reference_id,
        'is_read': bool(n.is_read),
        'created_at': iso_z(n.created_at),
    }


@notifications_bp.route('', methods=['GET', 'HEAD'])
def list_notifications():
    ctx = current_context()
    q = get_db().query(Notification).filter(Notification.user_id == ctx.user_id)
    if request.args.get('unread') in ('1', 'true'):
        q = q.filter(Notification.is_read.is_(False))
    q = q.order_by(Notification.created_at.desc(), Notification.id.desc())
    return list_response(q, _notification_json, latest_field='created_at')


@notifications_bp.post('/<int:notification_id>/read')
def mark_read(notification_id: int):
    ctx = current_context()
    session = get_db()
    n = session.get(Notification, notification_id)
    if not n or n.user_id != ctx.user_id:
        abort(404)
    if not n.is_read:
        n.is_read = True
        session.commit()
    return _notification_json(n)
