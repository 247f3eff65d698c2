"""Notification and intake functions served under /functions/v1.

Responses follow the function contract rather than the API error shape: success bodies carry
``success: true``, failures ``{"success": false, "error": ...}``. Every response gets CORS headers.
Delivery is simulated: messages are logged, never handed to a real provider.
"""
from __future__ import annotations
import logging
import time
import uuid
from flask import Blueprint, request, current_app
from werkzeug.exceptions import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from projectport import get_db
from projectport.models.external_job import ExternalJobRequest
from projectport.models.job import Job
from projectport.models.profile import utcnow
from projectport.services.notifications import SMS_TYPES
from projectport.utils.ids import generate_job_id
from projectport.utils.listing import iso_z

log = logging.getLogger(__name__)

functions_bp = Blueprint('functions', __name__)

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Headers': 'authorization, x-client-info, apikey, content-type',
}

SYSTEM_JOB_TYPE = 'Ownership Transfer'
SYSTEM_JOB_STATUS = 'closed'
SYSTEM_JOB_FIELDS = ('job_type', 'status', 'created_by', 'vehicle_id', 'auto_generated')
SYSTEM_SOURCE_APP = 'portrider'
RECEIVE_ENDPOINT = '/functions/v1/receive-system-job'


class FunctionError(Exception):
    def __init__(self, message: str, status: int = 400, **extra):
        super().__init__(message)
        self.message = message
        self.status = status
        self.extra = extra


@functions_bp.after_request
def add_cors_headers(response):
    for k, v in CORS_HEADERS.items():
        response.headers[k] = v
    return response


@functions_bp.errorhandler(FunctionError)
def handle_function_error(e: FunctionError):
    body = {'success': False, 'error': e.message}
    body.update(e.extra)
    return body, e.status


@functions_bp.errorhandler(Exception)
def handle_unexpected(e):
    if isinstance(e, HTTPException):
        return {'success': False, 'error': e.description}, e.code
    log.exception('Function %s failed', request.path)
    return {'success': False, 'error': str(e) or 'Internal server error'}, 500


def _now_ms() -> int:
    return int(time.time() * 1000)


def _json_object() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise FunctionError('Invalid JSON in request body')
    return data


def format_korean_phone(to: str) -> str:
    """Strip the +82 country prefix, or else a single leading trunk 0."""
    if to.startswith('+82'):
        return to.replace('+82', '', 1)
    return to[1:] if to.startswith('0') else to


def signup_url(site_url: str, invitation_code: str, shop_id: str) -> str:
    return f"{site_url.rstrip('/')}/signup?invitation={invitation_code}&shop={shop_id}"


@functions_bp.route('/send-kakaotalk', methods=['POST', 'OPTIONS'])
def send_kakaotalk():
    if request.method == 'OPTIONS':
        return '', 200
    data = _json_object()
    to, message = data.get('to'), data.get('message')
    if not isinstance(to, str) or not to or not message:
        raise FunctionError('to and message are required')
    msg_type = data.get('type') or 'general'
    if msg_type not in SMS_TYPES:
        raise FunctionError(f'unsupported message type {msg_type}')
    recipient = format_korean_phone(to)
    log.info('Sending KakaoTalk message (%s, job=%s, template=%s) to %s: %s',
             msg_type, data.get('jobId'), data.get('templateCode'), recipient, message)
    return {
        'success': True,
        'messageId': f'kakao_{_now_ms()}',
        'message': 'KakaoTalk message sent successfully (simulated)',
        'recipient': recipient,
    }


@functions_bp.route('/send-invitation-email', methods=['POST', 'OPTIONS'])
def send_invitation_email():
    if request.method == 'OPTIONS':
        return '', 200
    data = _json_object()
    missing = [k for k in ('to', 'shopName', 'invitationCode', 'shopId') if not data.get(k)]
    if missing:
        raise FunctionError(f"{', '.join(missing)} required")
    url = signup_url(current_app.config.get('SITE_URL') or '', data['invitationCode'], data['shopId'])
    log.info('Sending invitation email to %s for shop %s: %s', data['to'], data['shopName'], url)
    return {
        'success': True,
        'messageId': f'email_{_now_ms()}',
        'message': 'Invitation email sent successfully (simulated)',
        'recipient': data['to'],
        'signupUrl': url,
    }


def _record_intake(request_id: str, payload, status: int, error=None, job_id=None) -> None:
    """Store one external_job_tracking row; a failure here is logged and never changes the response."""
    session = get_db()
    try:
        session.add(ExternalJobRequest(
            request_id=request_id,
            source_app=SYSTEM_SOURCE_APP,
            endpoint=RECEIVE_ENDPOINT,
            http_method=request.method,
            request_payload=payload,
            response_status=status,
            response_payload={'error': error} if error else {'success': True, 'job_id': job_id},
            error_message=error,
            job_id=job_id,
        ))
        session.commit()
    except SQLAlchemyError:
        log.exception('[%s] Failed to log intake request', request_id)
        session.rollback()


def _reject(request_id: str, payload, status: int, error: str, message: str = None, **extra):
    log.info('[%s] Rejected: %s', request_id, error)
    _record_intake(request_id, payload, status, error)
    raise FunctionError(message or error, status, **extra)


def _intake_user_id(created_by):
    try:
        return int(created_by)
    except (TypeError, ValueError):
        return None


@functions_bp.route('/receive-system-job', methods=['POST', 'OPTIONS'])
def receive_system_job():
    if request.method == 'OPTIONS':
        return '', 200
    request_id = str(uuid.uuid4())
    log.info('[%s] Incoming request from %s', request_id, request.headers.get('User-Agent'))
    auth = request.headers.get('Authorization') or ''
    if not auth.startswith('Bearer '):
        _reject(request_id, None, 403, 'Missing Authorization header')
    expected = current_app.config.get('SYSTEM_JOB_API_KEY')
    if not expected or auth[len('Bearer '):] != expected:
        _reject(request_id, None, 403, 'Invalid API key')
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        _reject(request_id, None, 400, 'Invalid JSON', 'Invalid JSON in request body')
    if any(not data.get(k) for k in SYSTEM_JOB_FIELDS[:-1]) or not isinstance(data.get('auto_generated'), bool):
        _reject(request_id, data, 400, 'Missing required fields', required=list(SYSTEM_JOB_FIELDS))
    if data['job_type'] != SYSTEM_JOB_TYPE:
        _reject(request_id, data, 400, 'Invalid job_type', f'job_type must be "{SYSTEM_JOB_TYPE}"')
    if data['status'] != SYSTEM_JOB_STATUS:
        _reject(request_id, data, 400, 'Invalid status', f'status must be "{SYSTEM_JOB_STATUS}"')

    now = utcnow()
    vehicle_id = data['vehicle_id']
    job = Job(
        job_id=generate_job_id(),
        user_id=_intake_user_id(data['created_by']),
        customer={'name': 'System Generated', 'email': 'system@projectportms.com', 'phone': 'N/A'},
        motorcycle={'make': 'Unknown', 'model': 'Unknown', 'year': now.year, 'vin': vehicle_id, 'license_plate': 'N/A'},
        service_type=data['job_type'],
        status=Job.STATUS_CLOSED,
        notes=[{
            'text': data.get('note') or f'System-generated job for vehicle {vehicle_id}. Auto-generated: {str(data["auto_generated"]).lower()}',
            'timestamp': iso_z(now),
            'user_id': data['created_by'],
        }],
        photos={'start': [], 'completion': []},
        date_created=now,
        date_completed=now,
    )
    session = get_db()
    try:
        session.add(job)
        session.commit()
    except SQLAlchemyError as e:
        log.exception('[%s] Database insert error', request_id)
        session.rollback()
        _reject(request_id, data, 500, f'Database error: {e.__class__.__name__}', 'Database error')
    log.info('[%s] Successfully created job: %s', request_id, job.job_id)
    _record_intake(request_id, data, 201, job_id=job.job_id)
    return {'success': True, 'job_id': job.job_id, 'message': 'System job created successfully'}, 201
