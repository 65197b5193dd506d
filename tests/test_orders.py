"""
Tests for OrderOrchestrator outside the HTTP layer.

Storage calls must not run on the event loop thread, so a slow database
does not hold up other requests or pending notification timers.
"""

import asyncio
import threading
import time

from order_notifier import orders
from order_notifier.notifications import NotificationScheduler
from order_notifier.orders import OrderOrchestrator


def make_orchestrator(session_gate, messaging) -> OrderOrchestrator:
    scheduler = NotificationScheduler(messaging, confirmation_delay=60, delivery_delay=60)
    return OrderOrchestrator(session_gate=session_gate, messaging=messaging, scheduler=scheduler)


class TestStorageOffEventLoop:

    def test_slow_save_does_not_block_loop(self, db, messaging, session_gate, order_body, monkeypatch):
        save_threads = []

        def slow_save(db, **kwargs):
            save_threads.append(threading.get_ident())
            time.sleep(0.2)
            return 41

        monkeypatch.setattr(orders, "save_order", slow_save)
        orchestrator = make_orchestrator(session_gate, messaging)

        async def scenario():
            ticks = 0

            async def ticker():
                nonlocal ticks
                while True:
                    await asyncio.sleep(0.01)
                    ticks += 1

            ticking = asyncio.create_task(ticker())
            order_id = await orchestrator.create_order(db, order_body)
            ticking.cancel()
            await orchestrator.scheduler.shutdown()
            return order_id, ticks, threading.get_ident()

        order_id, ticks, loop_thread = asyncio.run(scenario())

        assert order_id == 41
        assert save_threads and save_threads[0] != loop_thread
        assert ticks >= 5

    def test_history_and_identify_off_loop(self, db, messaging, session_gate, monkeypatch):
        store_threads = []

        def fake_history(db, phone, limit=20):
            store_threads.append(threading.get_ident())
            return []

        def fake_customer(db, phone):
            store_threads.append(threading.get_ident())
            return None

        monkeypatch.setattr(orders, "fetch_order_history", fake_history)
        monkeypatch.setattr(orders, "fetch_customer", fake_customer)
        orchestrator = make_orchestrator(session_gate, messaging)

        async def scenario():
            history = await orchestrator.order_history(db, "11987654321")
            identified = await orchestrator.identify_customer(db, "11987654321")
            return history, identified, threading.get_ident()

        history, identified, loop_thread = asyncio.run(scenario())

        assert history == []
        assert identified["is_new"] is True
        assert len(store_threads) == 2
        assert loop_thread not in store_threads
