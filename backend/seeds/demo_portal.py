"""Demo data for a fresh portal database (single source of truth for scripts/seed_portal.py)."""

DEMO_SHOPS = [
    {
        'name': 'Gangnam Moto Works',
        'region': 'Seoul',
        'district': 'Gangnam-gu',
        'employee_count': 4,
        'services': ['Oil Change', 'Brake Service', 'Tire Replacement'],
        'business_phone': '02-555-0101',
    },
]

# Profiles keyed by role; the admin email is taken from SYSTEM_ADMIN_EMAIL at seed time.
DEMO_PROFILES = {
    'admin': {'name': 'Portal Admin', 'email': None},
    'support': {'name': 'Support Desk', 'email': 'support@projectport.com'},
    'mechanic': {'name': 'Demo Mechanic', 'email': 'mechanic@projectport.com', 'shop': 0},
}
