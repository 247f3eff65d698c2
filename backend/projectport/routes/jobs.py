from __future__ import annotations
import logging
from flask import Blueprint, request, abort, current_app
from sqlalchemy import select
from projectport import get_db
from projectport.constants.roles import Role, SUPPORTED_LOCALES, DEFAULT_LOCALE
from projectport.decorators.audit import audit_log
from projectport.models.job import Job
from projectport.models.profile import utcnow
from projectport.models.shop import Shop
from projectport.services.notifications import NotificationService
from projectport.services.policy import current_permissions, scope_jobs_query, assert_job_visible, assert_shop_access
from projectport.services.session import current_context
from projectport.utils.fsm import JOB_LIFECYCLE
from projectport.utils.ids import generate_job_id, generate_tracking_id
from projectport.utils.listing import list_response, single_response, iso_z
from projectport.utils.validation import json_body, require_fields, validate_choice

log = logging.getLogger(__name__)

jobs_bp = Blueprint('jobs', __name__)
tracking_bp = Blueprint('tracking', __name__)

SORT_FIELDS = {
    'date_created': Job.date_created,
    'updated_at': Job.updated_at,
    'status': Job.status,
    'service_type': Job.service_type,
    'job_id': Job.job_id,
}


def _job_json(j: Job):
    return {
        'id': j.id,
        'job_id': j.job_id,
        'shop_id': j.shop_id,
        'user_id': j.user_id,
        'customer': dict(j.customer or {}),
        'motorcycle': dict(j.motorcycle or {}),
        'service_type': j.service_type,
        'status': j.status,
        'tracking_code': j.tracking_code,
        'notes': list(j.notes or []),
        'photos': dict(j.photos or {}),
        'date_created': iso_z(j.date_created),
        'date_completed': iso_z(j.date_completed),
    }


def _load_visible_job(job_id: str) -> Job:
    perms = current_permissions()
    job = get_db().execute(select(Job).where(Job.job_id == job_id)).scalar_one_or_none()
    if not job:
        abort(404)
    assert_job_visible(perms, job)
    return job


def _prefetch_job(job_id: str):
    job = get_db().execute(select(Job).where(Job.job_id == job_id)).scalar_one_or_none()
    return {'status': job.status} if job else {}


@jobs_bp.route('', methods=['GET', 'HEAD'])
def list_jobs():
    perms = current_permissions()
    q = scope_jobs_query(get_db().query(Job), Job.shop_id, perms)
    status = request.args.get('status')
    if status:
        q = q.filter(Job.status == validate_choice(status, Job.ALL_STATUSES))
    service_type = request.args.get('service_type')
    if service_type:
        q = q.filter(Job.service_type == service_type)
    if request.args.get('shop_id'):
        q = q.filter(Job.shop_id == request.args['shop_id'])
    return list_response(q, _job_json, sort_fields=SORT_FIELDS, tie_breaker=Job.id)


@jobs_bp.post('')
@audit_log('JOB.CREATE', entity='Job', entity_id_key='job_id', meta_keys=['shop_id', 'service_type'])
def create_job():
    ctx = current_context()
    perms = current_permissions()
    data = json_body()
    require_fields(data, 'customer', 'motorcycle', 'service_type')
    if not isinstance(data['customer'], dict) or not isinstance(data['motorcycle'], dict):
        abort(400, description='customer and motorcycle must be objects')
    if perms.role is Role.MECHANIC:
        # mechanics always work inside their own shop
        if not perms.shop_id:
            abort(403, description='No shop assigned')
        shop_id = perms.shop_id
    else:
        shop_id = data.get('shop_id')
        if not shop_id:
            abort(400, description='shop_id required')
    session = get_db()
    if not session.get(Shop, shop_id):
        abort(400, description='unknown shop')
    assert_shop_access(perms, shop_id)
    job = Job(
        job_id=generate_job_id(),
        shop_id=shop_id,
        user_id=ctx.user_id,
        customer=data['customer'],
        motorcycle=data['motorcycle'],
        service_type=data['service_type'],
        status=Job.STATUS_PENDING,
        tracking_code=generate_tracking_id(),
        notes=[],
        photos={'start': [], 'completion': []},
    )
    session.add(job)
    session.commit()
    return _job_json(job), 201


@jobs_bp.route('/<job_id>', methods=['GET', 'HEAD'])
def get_job(job_id: str):
    job = _load_visible_job(job_id)
    return single_response(_job_json(job), job.updated_at)


@jobs_bp.delete('/<job_id>')
@audit_log('JOB.DELETE', entity='Job', entity_id_arg='job_id')
def delete_job(job_id: str):
    job = _load_visible_job(job_id)
    session = get_db()
    session.delete(job)
    session.commit()
    return {'status': 'deleted', 'job_id': job_id}


def _customer_locale(job: Job) -> str:
    locale = (job.customer or {}).get('locale') or DEFAULT_LOCALE
    return locale if locale in SUPPORTED_LOCALES else DEFAULT_LOCALE


def _notify_customer(job: Job) -> bool:
    shop = get_db().get(Shop, job.shop_id) if job.shop_id else None
    notifier = NotificationService.from_config(current_app.config)
    sent = notifier.notify_job_status_change(
        job.job_id, (job.customer or {}).get('phone'), job.status,
        shop.name if shop else '', tracking_code=job.tracking_code, locale=_customer_locale(job),
    )
    if not sent:
        log.info('Status notification for job %s not delivered', job.job_id)
    return sent


@jobs_bp.post('/<job_id>/status')
@audit_log(
    'JOB.STATUS',
    entity='Job',
    entity_id_key='job_id',
    diff_keys=['status'],
    pre_fetch=lambda a, kw: _prefetch_job(kw.get('job_id')),
)
def change_status(job_id: str):
    job = _load_visible_job(job_id)
    data = json_body()
    require_fields(data, 'status')
    target = validate_choice(data['status'], Job.ALL_STATUSES)
    JOB_LIFECYCLE.assert_can_transition(job.status, target)
    job.status = target
    if target == Job.STATUS_COMPLETED:
        job.date_completed = utcnow()
    get_db().commit()
    body = _job_json(job)
    body['customer_notified'] = _notify_customer(job)
    return body


@jobs_bp.post('/<job_id>/notes')
@audit_log('JOB.NOTE', entity='Job', entity_id_key='job_id')
def add_note(job_id: str):
    ctx = current_context()
    job = _load_visible_job(job_id)
    data = json_body()
    require_fields(data, 'text')
    note = {'text': data['text'], 'timestamp': iso_z(utcnow()), 'user_id': ctx.user_id}
    # reassign so the JSON column is flagged dirty
    job.notes = list(job.notes or []) + [note]
    get_db().commit()
    return _job_json(job), 201


@tracking_bp.route('/<tracking_code>', methods=['GET', 'HEAD'])
def track_job(tracking_code: str):
    session = get_db()
    job = session.execute(select(Job).where(Job.tracking_code == tracking_code.upper())).scalar_one_or_none()
    if not job:
        abort(404)
    shop = session.get(Shop, job.shop_id) if job.shop_id else None
    moto = job.motorcycle or {}
    body = {
        'id': job.job_id,
        'job_id': job.job_id,
        'status': job.status,
        'service_type': job.service_type,
        'shop_name': shop.name if shop else None,
        'motorcycle': {k: moto.get(k) for k in ('make', 'model', 'year') if k in moto},
        'date_created': iso_z(job.date_created),
        'date_completed': iso_z(job.date_completed),
    }
    return single_response(body, job.updated_at)
