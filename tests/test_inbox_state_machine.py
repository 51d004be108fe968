from __future__ import annotations

import threading
import time
import unittest

from inbox.intents import Intent, classify_intent
from inbox.sender_locks import SenderLocks
from inbox.state_machine import STEP_DONE, first_step, is_forward, next_step


class InboxStateMachineTest(unittest.TestCase):
    def test_step_order(self) -> None:
        self.assertEqual(first_step(), "ente")
        self.assertEqual(next_step("ente"), "importo")
        self.assertEqual(next_step("importo"), "iban")
        self.assertEqual(next_step("iban"), "scadenza")
        self.assertEqual(next_step("scadenza"), STEP_DONE)
        with self.assertRaises(ValueError):
            next_step("done")

    def test_steps_never_regress(self) -> None:
        self.assertTrue(is_forward("ente", "importo"))
        self.assertTrue(is_forward("iban", "iban"))
        self.assertTrue(is_forward("scadenza", STEP_DONE))
        self.assertFalse(is_forward("iban", "importo"))
        self.assertFalse(is_forward("ente", "unknown"))


class IntentTest(unittest.TestCase):
    def test_control_phrases(self) -> None:
        self.assertEqual(classify_intent("Bolletta"), Intent.TRIGGER)
        self.assertEqual(classify_intent("bill enel"), Intent.TRIGGER)
        self.assertEqual(classify_intent("ANNULLA"), Intent.CANCEL)
        self.assertEqual(classify_intent("stop!"), Intent.CANCEL)
        self.assertEqual(classify_intent("nessuna scadenza"), Intent.NO_DUE_DATE)

    def test_ordinary_values(self) -> None:
        self.assertEqual(classify_intent("Acme Energy"), Intent.SLOT_VALUE)
        self.assertEqual(classify_intent("bollettino postale"), Intent.SLOT_VALUE)
        self.assertEqual(classify_intent("non annullare"), Intent.SLOT_VALUE)
        self.assertEqual(classify_intent(None), Intent.SLOT_VALUE)


class SenderLocksTest(unittest.TestCase):
    def test_entries_are_released(self) -> None:
        locks = SenderLocks()
        with locks.hold("a"):
            self.assertEqual(locks.active_count(), 1)
        self.assertEqual(locks.active_count(), 0)

    def test_same_sender_is_serialized(self) -> None:
        locks = SenderLocks()
        inside = 0
        overlaps: list[int] = []
        guard = threading.Lock()

        def worker() -> None:
            nonlocal inside
            with locks.hold("a"):
                with guard:
                    inside += 1
                    overlaps.append(inside)
                time.sleep(0.01)
                with guard:
                    inside -= 1

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(max(overlaps), 1)
        self.assertEqual(locks.active_count(), 0)


if __name__ == "__main__":
    unittest.main()
