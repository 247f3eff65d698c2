from flask import Blueprint, request, abort, current_app
from sqlalchemy import select
from projectport import get_db
from projectport.constants.roles import Role
from projectport.models.profile import Profile
from projectport.models.shop import Shop
from projectport.services.notifications import NotificationService
from projectport.services.policy import current_permissions, visible_shop_ids, assert_shop_access, has_role
from projectport.services.session import current_context
from projectport.utils.ids import generate_shop_id, generate_shop_identifier
from projectport.utils.listing import list_response, single_response
from projectport.utils.validation import json_body, require_fields
from projectport.decorators.audit import audit_log
from projectport.decorators.auth import require_roles
from projectport.routes.iam import load_pending_invitation, redeem_invitation

shops_bp = Blueprint('shops', __name__)


def _shop_json(s: Shop):
    return {
        'id': s.id,
        'name': s.name,
        'region': s.region,
        'district': s.district,
        'employee_count': s.employee_count,
        'services': list(s.services or []),
        'unique_identifier': s.unique_identifier,
        'owner_id': s.owner_id,
        'business_phone': s.business_phone,
        'full_address': s.full_address,
    }


def _get_shop_or_404(shop_id: str) -> Shop:
    shop = get_db().execute(select(Shop).where(Shop.id == shop_id)).scalar_one_or_none()
    if not shop:
        abort(404)
    return shop


@shops_bp.post('')
@require_roles(Role.ADMIN)
@audit_log('SHOP.CREATE', entity='Shop', entity_id_key='id', meta_keys=['name', 'region'])
def create_shop():
    data = json_body()
    require_fields(data, 'name', 'region', 'district')
    services = data.get('services') or []
    if not isinstance(services, list):
        abort(400, description='services must be a list')
    try:
        employee_count = int(data.get('employee_count') or 0)
    except (TypeError, ValueError):
        abort(400, description='employee_count must be int')
    session = get_db()
    shop = Shop(
        id=generate_shop_id(),
        name=data['name'],
        region=data['region'],
        district=data['district'],
        employee_count=employee_count,
        services=services,
        unique_identifier=generate_shop_identifier(data['name'], data['region']),
        owner_id=data.get('owner_id'),
        business_phone=data.get('business_phone'),
        full_address=data.get('full_address'),
    )
    session.add(shop)
    if shop.owner_id is not None:
        owner = session.get(Profile, shop.owner_id)
        if owner is None:
            abort(400, description='unknown owner')
        owner.shop_id = shop.id
    session.commit()
    return _shop_json(shop), 201


@shops_bp.route('', methods=['GET', 'HEAD'])
def list_shops():
    perms = current_permissions()
    q = get_db().query(Shop)
    allowed = visible_shop_ids(perms)
    if allowed is not None:
        q = q.filter(Shop.id.in_(allowed))
    if request.args.get('region'):
        q = q.filter(Shop.region == request.args['region'])
    return list_response(
        q, _shop_json,
        sort_fields={'name': Shop.name, 'region': Shop.region, 'created_at': Shop.created_at},
        tie_breaker=Shop.id,
    )


@shops_bp.route('/<shop_id>', methods=['GET', 'HEAD'])
def get_shop(shop_id: str):
    perms = current_permissions()
    shop = _get_shop_or_404(shop_id)
    assert_shop_access(perms, shop.id)
    return single_response(_shop_json(shop), shop.updated_at)


@shops_bp.post('/<shop_id>/invitations')
@audit_log('SHOP.INVITE', entity='ShopInvitation', entity_id_key='id', meta_keys=['shop_id', 'email'])
def invite_to_shop(shop_id: str):
    ctx = current_context()
    perms = current_permissions()
    shop = _get_shop_or_404(shop_id)
    if not has_role(perms, [Role.ADMIN]) and shop.owner_id != ctx.user_id:
        abort(403, description='Only admins or the shop owner can invite')
    data = json_body()
    require_fields(data, 'email')
    notifier = NotificationService.from_config(current_app.config)
    inv = notifier.create_shop_invitation(
        get_db(), shop.id, data['email'].strip().lower(), ctx.user_id,
        phone=data.get('phone'), ttl_days=current_app.config['INVITATION_TTL_DAYS'],
    )
    if inv is None:
        abort(500, description='Failed to create invitation')
    return {
        'id': inv.id,
        'shop_id': inv.shop_id,
        'email': inv.email,
        'invitation_code': inv.invitation_code,
        'status': inv.status,
        'expires_at': inv.expires_at.isoformat(),
    }, 201


@shops_bp.post('/invitations/<code>/accept')
@audit_log('SHOP.INVITE.ACCEPT', entity='Shop', entity_id_key='shop_id')
def accept_invitation(code: str):
    ctx = current_context()
    session = get_db()
    profile = session.get(Profile, ctx.user_id)
    if profile is None:
        abort(404)
    inv = load_pending_invitation(session, code)
    redeem_invitation(inv, profile)
    session.commit()
    return {'shop_id': inv.shop_id, 'profile_id': profile.id, 'status': inv.status}
