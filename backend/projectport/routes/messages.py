from flask import Blueprint, abort
from sqlalchemy import select
from projectport import get_db
from projectport.models.message import Message
from projectport.models.profile import Profile
from projectport.services.session import current_context
from projectport.sync.unread_messages import fetch_unread_messages_count
from projectport.utils.listing import list_response, single_response, iso_z
from projectport.utils.validation import json_body, require_fields

messages_bp = Blueprint('messages', __name__)


def _sender_names(ids):
    ids = {i for i in ids if i is not None}
    if not ids:
        return {}
    rows = get_db().execute(select(Profile).where(Profile.id.in_(ids))).scalars().all()
    return {p.id: p.display_name for p in rows}


def _message_json(m: Message, names=None):
    if names is None:
        names = _sender_names([m.sender_id])
    return {
        'id': m.id,
        'sender_id': m.sender_id,
        'sender_name': names.get(m.sender_id, 'Unknown User'),
        'recipient_id': m.recipient_id,
        'subject': m.subject,
        'content': m.content,
        'is_read': bool(m.is_read),
        'created_at': iso_z(m.created_at),
    }


def _load_own_message(message_id: int, ctx) -> Message:
    m = get_db().get(Message, message_id)
    if not m:
        abort(404)
    if ctx.user_id not in (m.sender_id, m.recipient_id):
        abort(403, description='Not a participant')
    return m


@messages_bp.route('', methods=['GET', 'HEAD'])
def inbox():
    ctx = current_context()
    session = get_db()
    q = session.query(Message).filter(Message.recipient_id == ctx.user_id).order_by(Message.created_at.desc(), Message.id.desc())
    names = {}

    def serialize(m):
        if m.sender_id not in names:
            names.update(_sender_names([m.sender_id]))
        return _message_json(m, names)

    return list_response(q, serialize)


@messages_bp.get('/unread-count')
def unread_count():
    ctx = current_context()
    return {'count': fetch_unread_messages_count(get_db(), ctx.user_id)}


@messages_bp.route('/<int:message_id>', methods=['GET', 'HEAD'])
def get_message(message_id: int):
    ctx = current_context()
    m = _load_own_message(message_id, ctx)
    return single_response(_message_json(m), m.updated_at)


@messages_bp.post('')
def send_message():
    ctx = current_context()
    data = json_body()
    require_fields(data, 'recipient_id', 'content')
    session = get_db()
    if not session.get(Profile, data['recipient_id']):
        abort(400, description='unknown recipient')
    m = Message(
        sender_id=ctx.user_id,
        recipient_id=data['recipient_id'],
        subject=data.get('subject'),
        content=data['content'],
        is_read=False,
    )
    session.add(m)
    session.commit()
    return _message_json(m), 201


@messages_bp.post('/<int:message_id>/read')
def mark_read(message_id: int):
    ctx = current_context()
    m = _load_own_message(message_id, ctx)
    if m.recipient_id != ctx.user_id:
        abort(403, description='Only the recipient can mark a message as read')
    if not m.is_read:
        m.is_read = True
        get_db().commit()
    return _message_json(m)
