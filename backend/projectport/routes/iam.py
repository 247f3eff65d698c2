from datetime import timezone
from flask import Blueprint, request, abort
from flask_jwt_extended import create_access_token, jwt_required
from sqlalchemy import select
from projectport import get_db
from projectport.constants.roles import Role, ALL_ROLES, SUPPORTED_LOCALES, DEFAULT_LOCALE
from projectport.models.profile import Profile, utcnow
from projectport.models.shop import Shop, ShopInvitation
from projectport.services.policy import resolve_viewer_permissions, system_admin_email
from projectport.services.session import current_context, AuthContext
from projectport.utils.listing import list_response
from projectport.utils.validation import json_body, require_fields, validate_choice
from projectport.decorators.audit import audit_log
from projectport.decorators.auth import require_roles

iam_bp = Blueprint('iam', __name__)


def _profile_json(p: Profile):
    return {
        'id': p.id,
        'name': p.name,
        'email': p.email,
        'phone': p.phone,
        'role': Role.parse(p.role).value,
        'shop_id': p.shop_id,
        'approved': bool(p.approved),
        'locale': p.locale,
    }


def _as_aware(dt):
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def load_pending_invitation(session, code: str) -> ShopInvitation:
    """Return the pending, unexpired invitation for code or abort (404 unknown, 400 used or expired)."""
    inv = session.execute(select(ShopInvitation).where(ShopInvitation.invitation_code == code)).scalar_one_or_none()
    if not inv:
        abort(404, description='invitation not found')
    if inv.status != ShopInvitation.STATUS_PENDING:
        abort(400, description='invitation already used')
    if _as_aware(inv.expires_at) < utcnow():
        inv.status = ShopInvitation.STATUS_EXPIRED
        session.commit()
        abort(400, description='invitation expired')
    return inv


def redeem_invitation(inv: ShopInvitation, profile: Profile) -> None:
    """Attach profile to the invitation's shop (no commit)."""
    inv.status = ShopInvitation.STATUS_ACCEPTED
    inv.accepted_at = utcnow()
    profile.shop_id = inv.shop_id
    profile.approved = True


@iam_bp.post('/auth/signup')
def signup():
    data = json_body()
    require_fields(data, 'email', 'password')
    email = data['email'].strip().lower()
    if email == system_admin_email():
        abort(400, description='email reserved')
    session = get_db()
    if session.execute(select(Profile).where(Profile.email == email)).scalar_one_or_none():
        abort(400, description='email already registered')
    locale = data.get('locale') or DEFAULT_LOCALE
    validate_choice(locale, SUPPORTED_LOCALES, 'locale')
    inv = load_pending_invitation(session, data['invitation_code']) if data.get('invitation_code') else None
    profile = Profile(name=data.get('name'), email=email, phone=data.get('phone'),
                      role=Role.MECHANIC.value, approved=False, locale=locale)
    profile.set_password(data['password'])
    session.add(profile)
    if inv is not None:
        redeem_invitation(inv, profile)
    session.commit()
    return _profile_json(profile), 201


@iam_bp.post('/auth/login')
def login():
    data = json_body()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password')
    if not email or not password:
        abort(400, description='email & password required')
    session = get_db()
    user = session.execute(select(Profile).where(Profile.email == email)).scalar_one_or_none()
    if not user or not user.verify_password(password):
        abort(401, description='invalid credentials')
    perms = resolve_viewer_permissions(session, AuthContext(user.id, user.email))
    claims = {'email': user.email, 'role': perms.role.value, 'locale': user.locale}
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    token = create_access_token(identity=str(user.id), additional_claims=claims)
    return {'access_token': token}


@iam_bp.get('/auth/me')
@jwt_required()
def me():
    ctx = current_context()
    session = get_db()
    user = session.execute(select(Profile).where(Profile.id == ctx.user_id)).scalar_one_or_none()
    if not user:
        abort(404)
    body = _profile_json(user)
    body['permissions'] = resolve_viewer_permissions(session, ctx).as_dict()
    return body


@iam_bp.route('/profiles', methods=['GET', 'HEAD'])
@require_roles(Role.ADMIN)
def list_profiles():
    session = get_db()
    q = session.query(Profile)
    if request.args.get('role'):
        q = q.filter(Profile.role == request.args['role'])
    if request.args.get('shop_id'):
        q = q.filter(Profile.shop_id == request.args['shop_id'])
    return list_response(
        q, _profile_json,
        sort_fields={'id': Profile.id, 'email': Profile.email, 'created_at': Profile.created_at},
        tie_breaker=Profile.id,
    )


def _prefetch_profile(profile_id: int):
    p = get_db().execute(select(Profile).where(Profile.id == profile_id)).scalar_one_or_none()
    return _profile_json(p) if p else {}


@iam_bp.put('/profiles/<int:profile_id>')
@require_roles(Role.ADMIN)
@audit_log(
    'PROFILE.UPDATE',
    entity='Profile',
    entity_id_key='id',
    diff_keys=['role', 'shop_id', 'approved'],
    pre_fetch=lambda a, kw: _prefetch_profile(kw.get('profile_id')),
)
def update_profile(profile_id: int):
    session = get_db()
    p = session.execute(select(Profile).where(Profile.id == profile_id)).scalar_one_or_none()
    if not p:
        abort(404)
    data = json_body()
    if 'role' in data:
        p.role = validate_choice(data['role'], ALL_ROLES, 'role')
    if 'shop_id' in data:
        shop_id = data['shop_id']
        if shop_id is not None and not session.get(Shop, shop_id):
            abort(400, description='unknown shop')
        p.shop_id = shop_id
    if 'approved' in data:
        p.approved = bool(data['approved'])
    if 'locale' in data:
        p.locale = validate_choice(data['locale'], SUPPORTED_LOCALES, 'locale')
    session.commit()
    return _profile_json(p)
