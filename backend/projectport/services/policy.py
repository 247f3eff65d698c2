from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Any
from flask import abort, current_app, has_app_context
from sqlalchemy import select, false
from sqlalchemy.exc import SQLAlchemyError
from projectport.constants.roles import Role
from projectport.models.profile import Profile
from projectport.services.session import AuthContext, current_context

log = logging.getLogger(__name__)

DEFAULT_SYSTEM_ADMIN_EMAIL = 'admin@projectport.com'


@dataclass(frozen=True)
class ViewerPermissions:
    role: Role = Role.MECHANIC
    shop_id: Optional[str] = None

    @property
    def can_see_all_jobs(self) -> bool:
        return self.role.is_staff

    @property
    def is_staff(self) -> bool:
        return self.role.is_staff

    @classmethod
    def pending(cls) -> 'ViewerPermissions':
        """Value to use while the profile lookup has not resolved yet: sees nothing."""
        return cls(Role.MECHANIC, None)

    def as_dict(self):
        return {'role': self.role.value, 'shop_id': self.shop_id, 'can_see_all_jobs': self.can_see_all_jobs}


def system_admin_email() -> str:
    """Reserved address that always resolves to admin; signup refuses it, only the seed script creates it."""
    if has_app_context():
        return (current_app.config.get('SYSTEM_ADMIN_EMAIL') or DEFAULT_SYSTEM_ADMIN_EMAIL).lower()
    return DEFAULT_SYSTEM_ADMIN_EMAIL


def resolve_viewer_permissions(session, ctx: Optional[AuthContext]) -> ViewerPermissions:
    """Derive role and shop for a viewer from its profile row.

    Never raises: no viewer, no profile or a failed lookup all resolve to the fail-closed default.
    """
    if ctx is None:
        return ViewerPermissions.pending()
    if ctx.email and ctx.email == system_admin_email():
        return ViewerPermissions(Role.ADMIN, None)
    try:
        profile = session.execute(select(Profile).where(Profile.id == ctx.user_id)).scalar_one_or_none()
    except SQLAlchemyError:
        log.exception('Error fetching permissions for user %s', ctx.user_id)
        return ViewerPermissions.pending()
    if profile is None:
        return ViewerPermissions.pending()
    if profile.email == system_admin_email():
        return ViewerPermissions(Role.ADMIN, None)
    return ViewerPermissions(Role.parse(profile.role), profile.shop_id)


def visible_shop_ids(permissions: ViewerPermissions) -> Optional[List[str]]:
    """Single policy decision behind every job filter.

    None means unrestricted, an empty list means nothing is visible.
    """
    role = permissions.role
    if role is Role.ADMIN or role is Role.SUPPORT:
        return None
    elif role is Role.MECHANIC:
        if not permissions.shop_id:
            return []
        return [permissions.shop_id]
    raise AssertionError(f'unhandled role {role!r}')


def _job_shop_id(job: Any):
    if isinstance(job, dict):
        return job.get('shop_id')
    return getattr(job, 'shop_id', None)


def filter_jobs(permissions: ViewerPermissions, jobs: Sequence[Any]) -> List[Any]:
    """Return the subset of jobs the viewer may see, preserving order."""
    allowed = visible_shop_ids(permissions)
    if allowed is None:
        return list(jobs)
    if not allowed:
        return []
    return [j for j in jobs if _job_shop_id(j) in allowed]


def scope_jobs_query(query, model_shop_column, permissions: ViewerPermissions):
    """Apply the same visibility rule as filter_jobs to a SQLAlchemy query."""
    allowed = visible_shop_ids(permissions)
    if allowed is None:
        return query
    if not allowed:
        return query.filter(false())
    return query.filter(model_shop_column.in_(allowed))


def assert_job_visible(permissions: ViewerPermissions, job) -> None:
    if not filter_jobs(permissions, [job]):
        abort(403, description='Shop access denied')


def assert_shop_access(permissions: ViewerPermissions, shop_id: Optional[str]) -> None:
    allowed = visible_shop_ids(permissions)
    if allowed is None:
        return
    if shop_id not in allowed:
        abort(403, description='Shop access denied')


def current_permissions() -> ViewerPermissions:
    """Resolve the permissions of the authenticated viewer from its profile."""
    from projectport import get_db
    return resolve_viewer_permissions(get_db(), current_context())


def has_role(permissions: ViewerPermissions, roles: Iterable[Role]) -> bool:
    return permissions.role in set(roles)
