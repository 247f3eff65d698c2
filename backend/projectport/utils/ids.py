"""Human friendly identifiers shown to shop staff and customers."""
from __future__ import annotations
import re
import secrets
import string
import time

_BASE36 = string.digits + string.ascii_lowercase
_TRACKING_ALPHABET = string.ascii_uppercase + string.digits


def to_base36(n: int) -> str:
    if n < 0:
        raise ValueError('negative value')
    if n == 0:
        return '0'
    out = []
    while n:
        n, rem = divmod(n, 36)
        out.append(_BASE36[rem])
    return ''.join(reversed(out))


def _random_base36(length: int) -> str:
    return ''.join(secrets.choice(_BASE36) for _ in range(length))


def _timestamp36() -> str:
    return to_base36(int(time.time() * 1000))


def generate_shop_id() -> str:
    return f'SHOP-{_timestamp36()}{_random_base36(4)}'.upper()


def generate_job_id() -> str:
    return f'JOB-{_timestamp36()}{_random_base36(3)}'.upper()


def generate_tracking_id(length: int = 8) -> str:
    return ''.join(secrets.choice(_TRACKING_ALPHABET) for _ in range(length))


def generate_invitation_code() -> str:
    return _random_base36(13)


def _clean(part: str) -> str:
    return re.sub(r'[^a-zA-Z0-9]', '', part.strip())[:5].upper()


def generate_shop_identifier(name: str, region: str) -> str:
    """NAME-REGION-XXXXX, each of the first two parts cut to five alphanumerics."""
    return f'{_clean(name)}-{_clean(region)}-{_random_base36(5).upper()}'


__all__ = [
    'to_base36', 'generate_shop_id', 'generate_job_id', 'generate_tracking_id',
    'generate_invitation_code', 'generate_shop_identifier',
]
