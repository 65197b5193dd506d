"""
Tests for the notification scheduler.

Tests cover:
- Receipt failures are reported, not raised
- Each follow-up leg fires independently
- A failing leg does not stop the other one
- Sent callbacks and shutdown of pending legs
"""

import asyncio
import threading

from order_notifier.notifications import (
    CONFIRMATION_MESSAGE,
    DELIVERY_MESSAGE,
    NotificationScheduler,
)

ADDRESS = "551187654321@c.us"


def run(coro):
    return asyncio.run(coro)


class TestReceipt:

    def test_receipt_sent(self, messaging):
        scheduler = NotificationScheduler(messaging)

        assert run(scheduler.send_receipt(1, ADDRESS, "receipt text")) is True
        assert messaging.sent == [(ADDRESS, "receipt text")]

    def test_receipt_failure_returns_false(self, messaging):
        messaging.fail_markers.add("receipt")
        scheduler = NotificationScheduler(messaging)

        assert run(scheduler.send_receipt(1, ADDRESS, "receipt text")) is False
        assert messaging.sent == []


class TestFollowUps:

    def test_both_legs_fire(self, messaging):
        sent_flags = []
        scheduler = NotificationScheduler(
            messaging,
            confirmation_delay=0,
            delivery_delay=0.01,
            on_sent=lambda order_id, leg: sent_flags.append((order_id, leg)),
        )

        async def scenario():
            scheduler.schedule_follow_ups(7, ADDRESS)
            assert scheduler.pending_count == 2
            await scheduler.wait_idle()

        run(scenario())

        assert messaging.sent == [(ADDRESS, CONFIRMATION_MESSAGE), (ADDRESS, DELIVERY_MESSAGE)]
        assert sorted(sent_flags) == [(7, "confirmation"), (7, "delivery")]
        assert scheduler.pending_count == 0

    def test_confirmation_failure_does_not_block_delivery(self, messaging):
        messaging.fail_markers.add("PEDIDO CONFIRMADO")
        sent_flags = []
        scheduler = NotificationScheduler(
            messaging,
            confirmation_delay=0,
            delivery_delay=0.01,
            on_sent=lambda order_id, leg: sent_flags.append(leg),
        )

        async def scenario():
            scheduler.schedule_follow_ups(7, ADDRESS)
            await scheduler.wait_idle()

        run(scenario())

        assert messaging.sent == [(ADDRESS, DELIVERY_MESSAGE)]
        assert sent_flags == ["delivery"]

    def test_callback_failure_is_isolated(self, messaging):
        def broken_callback(order_id, leg):
            raise RuntimeError("database down")

        scheduler = NotificationScheduler(
            messaging, confirmation_delay=0, delivery_delay=0, on_sent=broken_callback
        )

        async def scenario():
            scheduler.schedule_follow_ups(7, ADDRESS)
            await scheduler.wait_idle()

        run(scenario())

        assert len(messaging.sent) == 2

    def test_orders_are_independent(self, messaging):
        scheduler = NotificationScheduler(messaging, confirmation_delay=0, delivery_delay=0)

        async def scenario():
            scheduler.schedule_follow_ups(1, "551111111111@c.us")
            scheduler.schedule_follow_ups(2, "552222222222@c.us")
            assert scheduler.pending_count == 4
            await scheduler.wait_idle()

        run(scenario())

        recipients = sorted(address for address, _ in messaging.sent)
        assert recipients == ["551111111111@c.us"] * 2 + ["552222222222@c.us"] * 2

    def test_shutdown_drops_pending_legs(self, messaging):
        scheduler = NotificationScheduler(messaging, confirmation_delay=60, delivery_delay=60)

        async def scenario():
            scheduler.schedule_follow_ups(7, ADDRESS)
            await asyncio.sleep(0)
            await scheduler.shutdown()

        run(scenario())

        assert messaging.sent == []
        assert scheduler.pending_count == 0

    def test_sent_callback_runs_off_the_event_loop(self, messaging):
        callback_threads = []
        scheduler = NotificationScheduler(
            messaging,
            confirmation_delay=0,
            delivery_delay=0,
            on_sent=lambda order_id, leg: callback_threads.append(threading.get_ident()),
        )

        async def scenario():
            scheduler.schedule_follow_ups(7, ADDRESS)
            await scheduler.wait_idle()
            return threading.get_ident()

        loop_thread = run(scenario())

        assert len(callback_threads) == 2
        assert loop_thread not in callback_threads
