import os
import sys
import threading
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from timer_service import IntervalTimerSource, ManualTimerSource, TimerSubscription


class ManualTimerSourceTest(unittest.TestCase):
    def test_fire_delivers_to_active_subscriptions(self) -> None:
        source = ManualTimerSource()
        calls = []
        first = source.schedule(1.0, calls.append)
        second = source.schedule(1.0, calls.append)
        self.assertEqual(source.fire(2), 4)
        second.cancel()
        self.assertEqual(source.fire(), 1)
        self.assertEqual(calls, [first, second, first, second, first])
        self.assertEqual(source.active_subscriptions, [first])

    def test_subscription_created_while_firing_waits(self) -> None:
        source = ManualTimerSource()
        seen = []

        def callback(sub: TimerSubscription) -> None:
            seen.append(sub)
            sub.cancel()
            source.schedule(1.0, callback)

        source.schedule(1.0, callback)
        self.assertEqual(source.fire(), 1)
        self.assertEqual(len(seen), 1)
        self.assertEqual(source.fire(3), 3)
        self.assertEqual(len(source.active_subscriptions), 1)

    def test_cancelled_subscription_does_not_fire(self) -> None:
        calls = []
        sub = TimerSubscription(1.0, calls.append)
        sub.cancel()
        sub.fire()
        self.assertFalse(sub.active)
        self.assertEqual(calls, [])


class IntervalTimerSourceTest(unittest.TestCase):
    def test_fires_until_cancelled(self) -> None:
        source = IntervalTimerSource()
        fired = threading.Event()
        calls = []

        def callback(sub: TimerSubscription) -> None:
            calls.append(sub)
            if len(calls) >= 3:
                sub.cancel()
                fired.set()

        source.schedule(0.01, callback)
        self.assertTrue(fired.wait(2.0))
        self.assertEqual(len(calls), 3)

    def test_failing_callback_keeps_running(self) -> None:
        source = IntervalTimerSource()
        done = threading.Event()
        calls = []

        def callback(sub: TimerSubscription) -> None:
            calls.append(sub)
            if len(calls) == 1:
                raise RuntimeError("boom")
            sub.cancel()
            done.set()

        with self.assertLogs("timer_service", level="ERROR"):
            source.schedule(0.01, callback)
            self.assertTrue(done.wait(2.0))

    def test_rejects_non_positive_interval(self) -> None:
        with self.assertRaises(ValueError):
            IntervalTimerSource().schedule(0, lambda sub: None)


if __name__ == "__main__":
    unittest.main()
