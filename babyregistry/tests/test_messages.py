import unittest

from babyregistry.db import InMemoryStore, MessageRecord
from babyregistry.errors import DuplicateMessage, InvalidInput, NotFound
from babyregistry.messages import MessageService


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class MessageServiceTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryStore()
        self.clock = FakeClock()
        self.service = MessageService(self.store, clock=self.clock)

    def test_resubmission_by_identity_updates_in_place(self):
        first = self.service.submit_message("Ann", "hi", browser_id="b1")
        self.clock.advance(60)
        second = self.service.submit_message("Annie", "hello there", browser_id="b1")

        self.assertEqual(second.id, first.id)
        self.assertEqual(len(self.store.messages), 1)
        stored = self.store.get_message(first.id)
        self.assertEqual((stored.name, stored.message), ("Annie", "hello there"))
        self.assertEqual(stored.created_at, self.clock.now)

    def test_upsert_keeps_submission_id_unless_replaced(self):
        self.service.submit_message("Ann", "hi", browser_id="b1", submission_id="s1")
        updated = self.service.submit_message("Ann", "hi again", browser_id="b1")
        self.assertEqual(updated.submission_id, "s1")
        updated = self.service.submit_message(
            "Ann", "third", browser_id="b1", submission_id="s2"
        )
        self.assertEqual(updated.submission_id, "s2")

    def test_upsert_does_not_take_another_records_submission_id(self):
        own = self.service.submit_message("Bob", "yo", browser_id="b2", submission_id="s0")
        other = self.service.submit_message(
            "Ann", "hi", browser_id="b1", submission_id="tok"
        )
        updated = self.service.submit_message(
            "Bob", "edited", browser_id="b2", submission_id="tok"
        )
        self.assertEqual(updated.id, own.id)
        self.assertEqual(updated.message, "edited")
        self.assertEqual(updated.submission_id, "s0")
        holders = [m for m in self.store.messages.values() if m.submission_id == "tok"]
        self.assertEqual([m.id for m in holders], [other.id])

    def test_duplicate_within_window(self):
        first = self.service.submit_message(" Ann", "hi ", browser_id="b1")
        self.clock.advance(9.5)
        with self.assertRaises(DuplicateMessage) as ctx:
            self.service.submit_message("Ann", "hi", browser_id="b2")
        self.assertEqual(ctx.exception.existing.id, first.id)
        self.assertEqual(len(self.store.messages), 1)

    def test_identical_message_after_window_is_new(self):
        self.service.submit_message("Ann", "hi", browser_id="b1")
        self.clock.advance(10)
        second = self.service.submit_message("Ann", "hi", browser_id="b2")
        self.assertEqual(len(self.store.messages), 2)
        self.assertEqual(second.browser_id, "b2")

    def test_submission_id_is_idempotent_across_identities(self):
        first = self.service.submit_message(
            "Ann", "hi", browser_id="b1", submission_id="tok"
        )
        self.clock.advance(120)
        again = self.service.submit_message(
            "Ann", "hi", browser_id="b2", submission_id="tok"
        )
        self.assertEqual(again.id, first.id)
        self.assertEqual(len(self.store.messages), 1)

    def test_messages_without_identity_are_not_upserted(self):
        self.service.submit_message("Ann", "one")
        self.service.submit_message("Ann", "two")
        self.assertEqual(len(self.store.messages), 2)

    def test_validation(self):
        with self.assertRaises(InvalidInput) as ctx:
            self.service.submit_message(None, "hi", browser_id="b1")
        self.assertEqual(ctx.exception.message, "Name and message are required")
        with self.assertRaises(InvalidInput) as ctx:
            self.service.submit_message("Ann", " \t ", browser_id="b1")
        self.assertEqual(ctx.exception.message, "Name and message cannot be empty")
        self.assertEqual(self.store.messages, {})

    def test_list_is_newest_first(self):
        self.service.submit_message("Ann", "first", browser_id="b1")
        self.clock.advance(1)
        self.service.submit_message("Bob", "second", browser_id="b2")
        self.assertEqual(
            [m.name for m in self.service.list_messages()], ["Bob", "Ann"]
        )

    def test_retract_and_admin_delete(self):
        mine = self.service.submit_message("Ann", "hi", browser_id="b1")
        other = self.service.submit_message("Bob", "yo", browser_id="b2")

        self.service.retract_message("b1")
        self.assertIsNone(self.store.get_message(mine.id))
        with self.assertRaises(NotFound):
            self.service.retract_message("b1")

        self.service.delete_message(other.id)
        self.assertEqual(self.store.messages, {})
        with self.assertRaises(NotFound):
            self.service.delete_message(other.id)

    def test_check_message(self):
        self.assertFalse(self.service.check_message("b1").has)
        record = self.service.submit_message("Ann", "hi", browser_id="b1")
        status = self.service.check_message("b1")
        self.assertTrue(status.has)
        self.assertEqual(status.message.id, record.id)

    def test_clear_all(self):
        self.service.submit_message("Ann", "hi", browser_id="b1")
        self.service.submit_message("Bob", "yo", browser_id="b2")
        self.assertEqual(self.service.clear_all(), 2)
        self.assertEqual(self.service.list_messages(), [])


class RacingMessageStore(InMemoryStore):
    """Misses the identity's record on the first update, as a concurrent request would."""

    def __init__(self):
        super().__init__()
        self.miss_next_update = False

    def update_message_for_browser(self, browser_id, **kwargs):
        if self.miss_next_update:
            self.miss_next_update = False
            return None
        return super().update_message_for_browser(browser_id, **kwargs)


class InsertRaceTests(unittest.TestCase):
    def test_lost_race_on_identity_becomes_update(self):
        store = RacingMessageStore()
        store.insert_message(MessageRecord(name="Ann", message="hi", browser_id="b1"))
        service = MessageService(store)

        store.miss_next_update = True
        result = service.submit_message("Ann", "edited", browser_id="b1")

        self.assertEqual(len(store.messages), 1)
        self.assertEqual(result.message, "edited")


if __name__ == "__main__":
    unittest.main()
