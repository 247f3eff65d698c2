import re
import pytest
from werkzeug.exceptions import BadRequest
from projectport.utils.fsm import TransitionValidator, JOB_LIFECYCLE, TICKET_LIFECYCLE
from projectport.utils.ids import (
    to_base36, generate_shop_id, generate_job_id, generate_tracking_id, generate_invitation_code, generate_shop_identifier,
)
from projectport.utils.listing import normalize_pagination, compute_etag
from projectport.sync.toasts import ToastQueue


def test_transition_validator_allows_valid():
    fsm = TransitionValidator({'A': {'B'}, 'B': set()})
    assert fsm.assert_can_transition('A', 'B') is True
    assert fsm.is_terminal('B')


def test_transition_validator_blocks_invalid(app_context):
    fsm = TransitionValidator({'A': {'B'}, 'B': set()})
    with pytest.raises(BadRequest):
        fsm.assert_can_transition('A', 'C')


def test_job_and_ticket_lifecycles():
    assert JOB_LIFECYCLE.allowed('pending') == {'in-progress', 'on-hold'}
    assert JOB_LIFECYCLE.allowed('in-progress') == {'on-hold', 'completed'}
    assert JOB_LIFECYCLE.allowed('on-hold') == {'in-progress'}
    assert JOB_LIFECYCLE.is_terminal('completed')
    assert TICKET_LIFECYCLE.can_transition('open', 'in_progress')
    assert TICKET_LIFECYCLE.can_transition('in_progress', 'closed')
    assert not TICKET_LIFECYCLE.can_transition('closed', 'open')


def test_identifiers():
    assert to_base36(0) == '0' and to_base36(35) == 'z' and to_base36(36) == '10'
    assert re.fullmatch(r'SHOP-[0-9A-Z]+', generate_shop_id())
    assert re.fullmatch(r'JOB-[0-9A-Z]+', generate_job_id())
    assert re.fullmatch(r'[A-Z0-9]{8}', generate_tracking_id())
    assert re.fullmatch(r'[0-9a-z]{13}', generate_invitation_code())
    assert re.fullmatch(r'GANGN-SEOUL-[0-9A-Z]{5}', generate_shop_identifier('Gangnam Moto', 'Seoul'))


def test_normalize_pagination():
    assert normalize_pagination(None, None) == (50, 0)
    assert normalize_pagination('500', '-1') == (200, 0)
    assert normalize_pagination('0', '3') == (1, 3)
    with pytest.raises(ValueError):
        normalize_pagination('x', None)


def test_etag_depends_on_page_content():
    a = compute_etag([1, 2], 2, 50, 0, '2026-01-01T00:00:00Z')
    assert a == compute_etag([1, 2], 2, 50, 0, '2026-01-01T00:00:00Z')
    assert a != compute_etag([1, 3], 2, 50, 0, '2026-01-01T00:00:00Z')
    assert a != compute_etag([1, 2], 2, 50, 0, '2026-01-02T00:00:00Z')


def test_toast_queue_is_bounded():
    q = ToastQueue(limit=2)
    q.info('a'); q.success('b'); q.error('c')
    assert [t.message for t in q.items] == ['b', 'c']
    assert q.last.level == 'error'
    q.clear()
    assert len(q) == 0
