from __future__ import annotations
import logging
from flask import Blueprint, request, abort
from sqlalchemy import select
from projectport import get_db
from projectport.decorators.audit import audit_log
from projectport.decorators.auth import require_staff
from projectport.models.profile import Profile
from projectport.models.support_ticket import SupportTicket, TicketMessage
from projectport.services.policy import current_permissions
from projectport.services.session import current_context
from projectport.sync.ticket_alerts import assign_open_ticket, TicketAcceptError, UNKNOWN_CREATOR
from projectport.sync.unread_tickets import fetch_unread_tickets_count
from projectport.utils.fsm import TICKET_LIFECYCLE
from projectport.utils.listing import list_response, single_response, iso_z
from projectport.utils.validation import json_body, require_fields, validate_choice

log = logging.getLogger(__name__)

tickets_bp = Blueprint('tickets', __name__)


def _ticket_json(t: SupportTicket):
    creator = get_db().get(Profile, t.creator_id) if t.creator_id else None
    return {
        'id': t.id,
        'title': t.title,
        'creator_id': t.creator_id,
        'creator_name': creator.display_name if creator else UNKNOWN_CREATOR,
        'assigned_to': t.assigned_to,
        'priority': t.priority,
        'status': t.status,
        'created_at': iso_z(t.created_at),
        'updated_at': iso_z(t.updated_at),
    }


def _ticket_message_json(m: TicketMessage):
    return {
        'id': m.id,
        'ticket_id': m.ticket_id,
        'sender_id': m.sender_id,
        'content': m.content,
        'is_from_support': bool(m.is_from_support),
        'created_at': iso_z(m.created_at),
    }


def _load_ticket(ticket_id: int):
    """Ticket plus viewer context; staff reach every ticket, others only their own."""
    ctx = current_context()
    perms = current_permissions()
    t = get_db().get(SupportTicket, ticket_id)
    if not t:
        abort(404)
    if not perms.is_staff and t.creator_id != ctx.user_id:
        abort(403, description='Ticket access denied')
    return t, ctx, perms


@tickets_bp.post('')
@audit_log('TICKET.CREATE', entity='SupportTicket', entity_id_key='id', meta_keys=['priority'])
def create_ticket():
    ctx = current_context()
    data = json_body()
    require_fields(data, 'title')
    priority = validate_choice(data.get('priority') or 'medium', SupportTicket.PRIORITIES, 'priority')
    session = get_db()
    t = SupportTicket(title=data['title'], creator_id=ctx.user_id, priority=priority, status=SupportTicket.STATUS_OPEN)
    session.add(t)
    session.flush()
    if data.get('message'):
        session.add(TicketMessage(ticket_id=t.id, sender_id=ctx.user_id, content=data['message'], is_from_support=False))
    session.commit()
    return _ticket_json(t), 201


@tickets_bp.route('', methods=['GET', 'HEAD'])
def list_tickets():
    ctx = current_context()
    perms = current_permissions()
    q = get_db().query(SupportTicket)
    if not perms.is_staff:
        q = q.filter(SupportTicket.creator_id == ctx.user_id)
    status = request.args.get('status')
    if status:
        q = q.filter(SupportTicket.status == validate_choice(status, SupportTicket.ALL_STATUSES))
    return list_response(
        q, _ticket_json,
        sort_fields={'created_at': SupportTicket.created_at, 'priority': SupportTicket.priority, 'status': SupportTicket.status},
        tie_breaker=SupportTicket.id,
    )


@tickets_bp.get('/unread-count')
def unread_count():
    ctx = current_context()
    return {'count': fetch_unread_tickets_count(get_db(), ctx.user_id)}


@tickets_bp.route('/<int:ticket_id>', methods=['GET', 'HEAD'])
def get_ticket(ticket_id: int):
    t, _, _ = _load_ticket(ticket_id)
    return single_response(_ticket_json(t), t.updated_at)


@tickets_bp.post('/<int:ticket_id>/accept')
@require_staff
@audit_log('TICKET.ACCEPT', entity='SupportTicket', entity_id_key='id')
def accept_ticket(ticket_id: int):
    ctx = current_context()
    session = get_db()
    if not session.get(SupportTicket, ticket_id):
        abort(404)
    try:
        t = assign_open_ticket(session, ticket_id, ctx.user_id)
    except TicketAcceptError as e:
        abort(409, description=str(e))
    return _ticket_json(t)


@tickets_bp.post('/<int:ticket_id>/close')
@audit_log('TICKET.CLOSE', entity='SupportTicket', entity_id_key='id')
def close_ticket(ticket_id: int):
    t, _, _ = _load_ticket(ticket_id)
    TICKET_LIFECYCLE.assert_can_transition(t.status, SupportTicket.STATUS_CLOSED)
    t.status = SupportTicket.STATUS_CLOSED
    get_db().commit()
    return _ticket_json(t)


@tickets_bp.route('/<int:ticket_id>/messages', methods=['GET', 'HEAD'])
def list_ticket_messages(ticket_id: int):
    _load_ticket(ticket_id)
    q = get_db().query(TicketMessage).filter(TicketMessage.ticket_id == ticket_id)
    return list_response(
        q, _ticket_message_json,
        sort_fields={'created_at': TicketMessage.created_at},
        tie_breaker=TicketMessage.id,
        latest_field='created_at',
    )


@tickets_bp.post('/<int:ticket_id>/messages')
def post_ticket_message(ticket_id: int):
    t, ctx, perms = _load_ticket(ticket_id)
    if t.status == SupportTicket.STATUS_CLOSED:
        abort(400, description='ticket closed')
    data = json_body()
    require_fields(data, 'content')
    m = TicketMessage(ticket_id=t.id, sender_id=ctx.user_id, content=data['content'], is_from_support=perms.is_staff)
    session = get_db()
    session.add(m)
    session.commit()
    return _ticket_message_json(m), 201
