"""Idempotent seed script for the portal: admin, support and mechanic profiles plus a demo shop.

Usage:
    python backend/scripts/seed_portal.py             # seed normally
    python backend/scripts/seed_portal.py --show      # print profiles after seeding
    python backend/scripts/seed_portal.py --dry-run   # run logic then rollback (no DB changes)
"""
from __future__ import annotations
import os, sys, argparse, textwrap
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from projectport import create_app, get_db  # type: ignore
from projectport.models.profile import Base, Profile
from projectport.models.shop import Shop
from projectport.utils.ids import generate_shop_id, generate_shop_identifier
from seeds.demo_portal import DEMO_SHOPS, DEMO_PROFILES


def ensure_shops(session):
    shops = []
    created = 0
    for entry in DEMO_SHOPS:
        shop = session.execute(select(Shop).where(Shop.name == entry['name'])).scalar_one_or_none()
        if not shop:
            shop = Shop(id=generate_shop_id(), unique_identifier=generate_shop_identifier(entry['name'], entry['region']), **entry)
            session.add(shop)
            created += 1
        shops.append(shop)
    session.flush()
    return shops, created


def ensure_profiles(session, shops, admin_email):
    password = os.getenv('SEED_PASSWORD', 'ChangeMe123!')
    created = 0
    for role, entry in DEMO_PROFILES.items():
        email = entry['email'] or admin_email
        if session.execute(select(Profile).where(Profile.email == email)).scalar_one_or_none():
            continue
        profile = Profile(name=entry['name'], email=email, role=role, approved=True)
        if entry.get('shop') is not None:
            profile.shop_id = shops[entry['shop']].id
        profile.set_password(password)
        session.add(profile)
        created += 1
        print(f"[INFO] Created {role} profile {email} with temporary password.")
    return created


def print_profiles(session):
    rows = session.execute(select(Profile).order_by(Profile.id)).scalars().all()
    if not rows:
        print('[INFO] No profiles present.')
        return
    w = max(len(p.email) for p in rows)
    print(f"{'Email'.ljust(w)} | Role     | Shop")
    print('-' * (w + 30))
    for p in rows:
        print(f"{p.email.ljust(w)} | {p.role.ljust(8)} | {p.shop_id or '-'}")


def parse_args():
    p = argparse.ArgumentParser(
        description='Seed portal demo data',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_portal.py\n  dry run: seed_portal.py --dry-run\n""")
    )
    p.add_argument('--show', action='store_true', help='Print profiles after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    return p.parse_args()


def main():
    args = parse_args()
    app = create_app()
    with app.app_context():
        session = get_db()
        # bootstrap schema when migrations have not been run yet; prefer `alembic upgrade head`
        Base.metadata.create_all(session.get_bind())
        try:
            shops, created_s = ensure_shops(session)
            created_p = ensure_profiles(session, shops, app.config['SYSTEM_ADMIN_EMAIL'])
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) Shops would create: {created_s}, Profiles would create: {created_p}")
            else:
                session.commit()
                print(f"[DONE] Shops created: {created_s}, Profiles created: {created_p}")
            if args.show:
                print_profiles(session)
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()


if __name__ == '__main__':
    main()
