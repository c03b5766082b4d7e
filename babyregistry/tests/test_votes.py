import random
import threading
import unittest

from babyregistry.db import InMemoryStore, MessageRecord, VoteCounts, VoteRecord
from babyregistry.errors import AlreadyVoted, InvalidInput, NotFound
from babyregistry.votes import VoteService


class RacingStore(InMemoryStore):
    """Reports "no vote yet" once, as a concurrent request would have seen."""

    def __init__(self):
        super().__init__()
        self.hide_next_lookup = False

    def get_vote(self, browser_id):
        if self.hide_next_lookup:
            self.hide_next_lookup = False
            return None
        return super().get_vote(browser_id)


class VoteServiceTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryStore()
        self.service = VoteService(self.store)

    def test_vote_then_check(self):
        counts = self.service.submit_vote("b1", "girl")
        self.assertEqual(counts, VoteCounts(boy=0, girl=1))
        status = self.service.check_voted("b1")
        self.assertTrue(status.voted)
        self.assertEqual(status.vote_type, "girl")

    def test_second_vote_is_rejected_without_mutation(self):
        self.service.submit_vote("b1", "boy")
        with self.assertRaises(AlreadyVoted) as ctx:
            self.service.submit_vote("b1", "girl")
        self.assertEqual(ctx.exception.vote_type, "boy")
        self.assertEqual(ctx.exception.counts.total, 1)
        self.assertEqual(self.service.check_voted("b1").vote_type, "boy")
        self.assertEqual(self.service.get_counts().total, 1)

    def test_total_is_sum_of_choices(self):
        rng = random.Random(7)
        for i in range(200):
            browser_id = f"b{rng.randint(0, 60)}"
            try:
                self.service.submit_vote(browser_id, rng.choice(["boy", "girl"]))
            except AlreadyVoted:
                pass
            if rng.random() < 0.1:
                try:
                    self.service.retract_vote(browser_id)
                except NotFound:
                    pass
            counts = self.service.get_counts()
            self.assertEqual(counts.total, counts.boy + counts.girl)
            self.assertEqual(counts.total, len(self.store.votes))

    def test_retract_decrements_total_by_one(self):
        self.service.submit_vote("b1", "boy")
        self.service.submit_vote("b2", "boy")
        before = self.service.get_counts().total
        after = self.service.retract_vote("b1")
        self.assertEqual(after.total, before - 1)
        self.assertFalse(self.service.check_voted("b1").voted)

        with self.assertRaises(NotFound):
            self.service.retract_vote("b1")

    def test_invalid_input(self):
        with self.assertRaises(InvalidInput):
            self.service.submit_vote("b1", "maybe")
        with self.assertRaises(InvalidInput):
            self.service.submit_vote("   ", "boy")
        with self.assertRaises(InvalidInput):
            self.service.check_voted(None)
        self.assertEqual(self.store.votes, {})

    def test_lost_insert_race_reports_already_voted(self):
        store = RacingStore()
        service = VoteService(store)
        service.submit_vote("b1", "boy")

        store.hide_next_lookup = True
        with self.assertRaises(AlreadyVoted) as ctx:
            service.submit_vote("b1", "girl")
        self.assertEqual(ctx.exception.vote_type, "boy")
        self.assertEqual(len(store.votes), 1)

    def test_clear_all(self):
        self.service.submit_vote("b1", "boy")
        self.service.submit_vote("b2", "girl")
        self.assertEqual(self.service.clear_all(), VoteCounts())
        self.assertEqual(self.service.get_counts().total, 0)


class VoteCountsTests(unittest.TestCase):
    def test_percentages(self):
        self.assertEqual(VoteCounts().percentages(), {"boy": 0, "girl": 0})
        self.assertEqual(
            VoteCounts(boy=1, girl=2).percentages(), {"boy": 33, "girl": 67}
        )
        self.assertEqual(VoteCounts(boy=3, girl=0).as_dict()["total"], 3)


class InMemoryLockingTests(unittest.TestCase):
    def test_point_reads_wait_for_writers(self):
        store = InMemoryStore()
        store.insert_vote(VoteRecord(browser_id="b1", vote_type="boy"))
        message = store.insert_message(MessageRecord(name="Ann", message="hi"))
        results = []

        def read():
            results.append(store.get_vote("b1"))
            results.append(store.get_message(message.id))

        with store._lock:
            reader = threading.Thread(target=read)
            reader.start()
            reader.join(timeout=0.2)
            self.assertTrue(reader.is_alive())
            self.assertEqual(results, [])
        reader.join(timeout=5)
        self.assertEqual(results[0].vote_type, "boy")
        self.assertEqual(results[1].id, message.id)


if __name__ == "__main__":
    unittest.main()
