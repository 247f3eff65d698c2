from projectport import get_db
from projectport.models.support_ticket import TicketMessage
from projectport.sync.unread_tickets import UnreadTicketsCounter, fetch_unread_tickets_count
from tests.test_utils_seed import ensure_profile, create_ticket


def test_mechanic_counts_own_open_tickets(app_context):
    me = ensure_profile('tickets_count_mech@example.com')
    create_ticket(me, 'mine open')
    create_ticket(me, 'mine closed', status='closed')
    assert fetch_unread_tickets_count(get_db(), me.id) == 1
    assert fetch_unread_tickets_count(get_db(), None) == 0


def test_staff_count_every_open_ticket(app_context):
    sup = ensure_profile('tickets_count_support@example.com', 'support')
    before = fetch_unread_tickets_count(get_db(), sup.id)
    create_ticket(ensure_profile('tickets_count_other@example.com'), 'someone else')
    assert fetch_unread_tickets_count(get_db(), sup.id) == before + 1


def test_counter_refetches_on_ticket_and_message_changes(app_context, feed):
    me = ensure_profile('tickets_live@example.com')
    counter = UnreadTicketsCounter(get_db(), feed, me.id)
    assert counter.start() == 0
    t = create_ticket(me, 'live')
    feed.dispatch()
    assert counter.count == 1
    session = get_db()
    session.add(TicketMessage(ticket_id=t.id, sender_id=me.id, content='more', is_from_support=False))
    session.commit()
    assert feed.dispatch() == 1
    t.status = 'closed'
    session.commit()
    feed.dispatch()
    assert counter.count == 0
    counter.stop()
    create_ticket(me, 'after stop')
    feed.dispatch()
    assert counter.count == 0


def test_start_after_drop_resubscribes(app_context, feed):
    me = ensure_profile('tickets_restart@example.com')
    counter = UnreadTicketsCounter(get_db(), feed, me.id)
    counter.start()
    feed.drop_connections()
    counter.start()
    assert len(feed.subscriptions) == 2
    create_ticket(me, 'seen after restart')
    feed.dispatch()
    assert counter.count == 1
    counter.stop()
