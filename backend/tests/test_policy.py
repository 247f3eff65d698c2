import pytest
from types import SimpleNamespace
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import Forbidden
from projectport import get_db
from projectport.constants.roles import Role
from projectport.models.job import Job
from projectport.services.policy import (
    ViewerPermissions, filter_jobs, visible_shop_ids, resolve_viewer_permissions, scope_jobs_query,
    assert_job_visible,
)
from projectport.services.session import AuthContext
from tests.test_utils_seed import ensure_profile, ensure_shop, create_job

JOBS = [
    {'id': 1, 'job_id': 'JOB-1', 'shop_id': 'SHOP-1'},
    {'id': 2, 'job_id': 'JOB-2', 'shop_id': 'SHOP-2'},
    {'id': 3, 'job_id': 'JOB-3', 'shop_id': 'SHOP-1'},
    {'id': 4, 'job_id': 'JOB-4', 'shop_id': None},
]


@pytest.mark.parametrize('role', [Role.ADMIN, Role.SUPPORT])
def test_staff_see_everything(role):
    perms = ViewerPermissions(role, None)
    assert perms.can_see_all_jobs
    assert filter_jobs(perms, JOBS) == JOBS
    assert visible_shop_ids(perms) is None


def test_mechanic_sees_only_own_shop_in_order():
    perms = ViewerPermissions(Role.MECHANIC, 'SHOP-1')
    assert [j['job_id'] for j in filter_jobs(perms, JOBS)] == ['JOB-1', 'JOB-3']
    other = ViewerPermissions(Role.MECHANIC, 'SHOP-2')
    assert [j['job_id'] for j in filter_jobs(other, JOBS)] == ['JOB-2']


def test_mechanic_without_shop_sees_nothing():
    perms = ViewerPermissions(Role.MECHANIC, None)
    assert not perms.can_see_all_jobs
    assert filter_jobs(perms, JOBS) == []
    assert visible_shop_ids(perms) == []


def test_pending_permissions_fail_closed():
    assert filter_jobs(ViewerPermissions.pending(), JOBS) == []


def test_filter_accepts_objects_and_empty_input():
    objs = [SimpleNamespace(shop_id='SHOP-1', n=1), SimpleNamespace(shop_id='SHOP-9', n=2)]
    assert [o.n for o in filter_jobs(ViewerPermissions(Role.MECHANIC, 'SHOP-1'), objs)] == [1]
    assert filter_jobs(ViewerPermissions(Role.ADMIN), []) == []


def test_filter_never_leaks_other_shops():
    for shop in ('SHOP-1', 'SHOP-2', 'SHOP-X'):
        perms = ViewerPermissions(Role.MECHANIC, shop)
        assert all(j['shop_id'] == shop for j in filter_jobs(perms, JOBS))


def test_role_parse_falls_back_to_mechanic():
    assert Role.parse('ADMIN') is Role.ADMIN
    assert Role.parse('support') is Role.SUPPORT
    assert Role.parse('owner') is Role.MECHANIC
    assert Role.parse(None) is Role.MECHANIC


def test_resolve_from_profile(app_context):
    shop = ensure_shop('Policy Shop')
    mech = ensure_profile('policy_mech@example.com', 'mechanic', shop.id)
    sup = ensure_profile('policy_support@example.com', 'support')
    odd = ensure_profile('policy_odd@example.com', 'owner')
    session = get_db()
    assert resolve_viewer_permissions(session, AuthContext(mech.id, mech.email)) == ViewerPermissions(Role.MECHANIC, shop.id)
    assert resolve_viewer_permissions(session, AuthContext(sup.id, sup.email)).role is Role.SUPPORT
    assert resolve_viewer_permissions(session, AuthContext(odd.id, odd.email)) == ViewerPermissions(Role.MECHANIC, None)


def test_resolve_without_viewer_or_profile(app_context):
    session = get_db()
    assert resolve_viewer_permissions(session, None) == ViewerPermissions.pending()
    assert resolve_viewer_permissions(session, AuthContext(999999, 'ghost@example.com')) == ViewerPermissions.pending()


def test_system_admin_email_is_always_admin(app_context):
    admin_email = app_context.config['SYSTEM_ADMIN_EMAIL']
    p = ensure_profile(admin_email, 'mechanic')
    perms = resolve_viewer_permissions(get_db(), AuthContext(p.id, admin_email))
    assert perms == ViewerPermissions(Role.ADMIN, None)
    # email claim missing: the profile row still identifies the system admin
    assert resolve_viewer_permissions(get_db(), AuthContext(p.id)).role is Role.ADMIN


def test_resolve_lookup_failure_yields_default(app_context):
    class BoomSession:
        def execute(self, *a, **k):
            raise SQLAlchemyError('down')
    assert resolve_viewer_permissions(BoomSession(), AuthContext(1, 'x@example.com')) == ViewerPermissions.pending()


def test_scope_query_matches_filter(app_context):
    s1 = ensure_shop('Scope Shop One')
    s2 = ensure_shop('Scope Shop Two')
    j1 = create_job(s1.id)
    j2 = create_job(s2.id)
    session = get_db()
    ids = {j1.id, j2.id}
    for perms in (ViewerPermissions(Role.ADMIN), ViewerPermissions(Role.MECHANIC, s1.id), ViewerPermissions(Role.MECHANIC, None)):
        scoped = {j.id for j in scope_jobs_query(session.query(Job), Job.shop_id, perms).all() if j.id in ids}
        filtered = {j.id for j in filter_jobs(perms, [j1, j2])}
        assert scoped == filtered


def test_assert_job_visible(app_context):
    assert_job_visible(ViewerPermissions(Role.SUPPORT), {'shop_id': 'SHOP-2'})
    with pytest.raises(Forbidden):
        assert_job_visible(ViewerPermissions(Role.MECHANIC, 'SHOP-1'), {'shop_id': 'SHOP-2'})
