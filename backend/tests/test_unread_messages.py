from sqlalchemy.exc import SQLAlchemyError
from projectport import get_db
from projectport.sync.unread_messages import UnreadMessagesCounter, fetch_unread_messages_count, subscribe_to_message_updates
from tests.test_utils_seed import ensure_profile, send_message


def test_fetch_counts_only_unread_for_recipient(app_context):
    me = ensure_profile('unread_fetch@example.com')
    other = ensure_profile('unread_fetch_other@example.com')
    send_message(other, me)
    send_message(other, me)
    send_message(other, me, is_read=True)
    send_message(me, other)
    assert fetch_unread_messages_count(get_db(), me.id) == 2
    assert fetch_unread_messages_count(get_db(), None) == 0


def test_fetch_failure_is_zero(app_context):
    class BoomSession:
        def execute(self, *a, **k):
            raise SQLAlchemyError('down')
    assert fetch_unread_messages_count(BoomSession(), 1) == 0


def test_subscribe_without_user_is_noop(feed):
    assert subscribe_to_message_updates(feed, None, lambda: None, lambda: None) is None
    assert feed.subscriptions == ()


def test_counter_follows_inserts_and_read_transitions(app_context, feed):
    me = ensure_profile('unread_live@example.com')
    other = ensure_profile('unread_live_other@example.com')
    changes = []
    counter = UnreadMessagesCounter(get_db(), feed, me.id, on_change=changes.append)
    assert counter.start() == 0
    assert counter.subscribed

    m = send_message(other, me)
    send_message(other, other)  # someone else's inbox
    feed.dispatch()
    assert counter.count == 1

    session = get_db()
    m.is_read = True
    session.commit()
    feed.dispatch()
    assert counter.count == 0

    m.is_read = False
    session.commit()
    feed.dispatch()
    assert counter.count == 1
    assert changes == [1, 0, 1]
    counter.stop()


def test_counter_never_goes_negative(app_context, feed):
    me = ensure_profile('unread_clamp@example.com')
    m = send_message(None, me)
    counter = UnreadMessagesCounter(get_db(), feed, me.id)
    counter.start()
    counter.count = 0  # local view out of sync with the server
    m.is_read = True
    get_db().commit()
    feed.dispatch()
    assert counter.count == 0
    counter.stop()


def test_drop_and_reconnect_recounts(app_context, feed):
    me = ensure_profile('unread_reconnect@example.com')
    counter = UnreadMessagesCounter(get_db(), feed, me.id)
    counter.start()
    feed.drop_connections()
    assert not counter.subscribed
    send_message(None, me)
    send_message(None, me)
    feed.dispatch()
    # missed while disconnected
    assert counter.count == 0
    assert counter.reconnect() == 2
    assert counter.subscribed
    send_message(None, me)
    feed.dispatch()
    assert counter.count == 3
    counter.stop()


def test_stopped_counter_ignores_events(app_context, feed):
    me = ensure_profile('unread_stopped@example.com')
    counter = UnreadMessagesCounter(get_db(), feed, me.id)
    counter.start()
    counter.stop()
    send_message(None, me)
    feed.dispatch()
    assert counter.count == 0


def test_start_after_drop_resubscribes(app_context, feed):
    me = ensure_profile('unread_restart@example.com')
    counter = UnreadMessagesCounter(get_db(), feed, me.id)
    counter.start()
    feed.drop_connections()
    counter.start()
    assert counter.subscribed
    send_message(None, me)
    feed.dispatch()
    assert counter.count == 1
    counter.stop()
