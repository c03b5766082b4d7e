import argparse
import unittest
from unittest.mock import MagicMock

import requests

from babyregistry import cli
from babyregistry.client import ApiError, RegistryClient, ServerUnreachable
from babyregistry.db import VoteCounts


def fake_response(status_code, payload):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.json.return_value = payload
    return response


class FixedIdentity:
    def __init__(self, browser_id="browser_1_abc"):
        self.browser_id = browser_id
        self.forgotten = False

    def get_identity(self):
        return self.browser_id

    def forget(self):
        self.forgotten = True
        return True


class RegistryClientTests(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.client = RegistryClient(
            "http://api.test/", FixedIdentity(), session=self.session
        )

    def sent(self, index=-1):
        return self.session.request.call_args_list[index]

    def test_vote_success(self):
        self.session.request.return_value = fake_response(
            200, {"success": True, "boy": 1, "girl": 0, "total": 1}
        )
        outcome = self.client.vote("boy")
        self.assertEqual(outcome.counts, VoteCounts(boy=1, girl=0))
        self.assertFalse(outcome.already_voted)

        args, kwargs = self.sent()
        self.assertEqual(args, ("POST", "http://api.test/api/votes"))
        self.assertEqual(
            kwargs["json"], {"voteType": "boy", "browserId": "browser_1_abc"}
        )

    def test_already_voted_resyncs_instead_of_raising(self):
        self.session.request.return_value = fake_response(
            400,
            {
                "error": "You have already voted",
                "boy": 2,
                "girl": 3,
                "total": 5,
                "voteType": "girl",
            },
        )
        outcome = self.client.vote("boy")
        self.assertTrue(outcome.already_voted)
        self.assertEqual(outcome.vote_type, "girl")
        self.assertEqual(outcome.counts.total, 5)

    def test_server_error_text_is_surfaced(self):
        self.session.request.return_value = fake_response(
            404, {"error": "No vote found to delete"}
        )
        with self.assertRaises(ApiError) as ctx:
            self.client.retract_vote()
        self.assertEqual(ctx.exception.message, "No vote found to delete")
        self.assertEqual(ctx.exception.status_code, 404)

    def test_unreachable_server_gets_actionable_hint(self):
        self.session.request.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(ServerUnreachable) as ctx:
            self.client.get_counts()
        self.assertIn("server is running", str(ctx.exception))

    def test_message_retry_reuses_submission_id(self):
        self.session.request.side_effect = [
            requests.ConnectionError("reset"),
            fake_response(200, {"success": True, "message": {"id": "m1"}}),
        ]
        message = self.client.post_message("Ann", "hi")
        self.assertEqual(message, {"id": "m1"})

        first = self.sent(0)[1]["json"]
        second = self.sent(1)[1]["json"]
        self.assertEqual(first["submissionId"], second["submissionId"])
        self.assertEqual(first["browserId"], "browser_1_abc")

    def test_message_retry_gives_up(self):
        self.session.request.side_effect = requests.Timeout("slow")
        with self.assertRaises(ServerUnreachable):
            self.client.post_message("Ann", "hi", retries=1)
        self.assertEqual(self.session.request.call_count, 2)

    def test_login_attaches_admin_key(self):
        self.session.request.side_effect = [
            fake_response(200, {"success": True, "adminKey": "k"}),
            fake_response(200, {"success": True, "message": "Message deleted successfully"}),
        ]
        self.assertEqual(self.client.login("a@example.com", "pw"), "k")
        self.client.delete_message("m1")
        args, kwargs = self.sent()
        self.assertEqual(args, ("DELETE", "http://api.test/api/messages/m1"))
        self.assertEqual(kwargs["headers"], {"x-admin-key": "k"})


class CliTests(unittest.TestCase):
    def test_counts_include_percentages(self):
        client = MagicMock()
        client.get_counts.return_value = VoteCounts(boy=1, girl=3)
        result = cli.run(argparse.Namespace(command="counts"), client)
        self.assertEqual(result["total"], 4)
        self.assertEqual(result["percentages"], {"boy": 25, "girl": 75})

    def test_parser_and_reset_identity(self):
        args = cli.build_parser().parse_args(["reset-identity"])
        client = RegistryClient("http://api.test", FixedIdentity(), session=MagicMock())
        self.assertEqual(cli.run(args, client), {"forgotten": True})

    def test_main_reports_unreachable_server(self):
        original = cli.RegistryClient
        fake = MagicMock()
        fake.return_value.get_counts.side_effect = ServerUnreachable(
            "http://api.test", requests.ConnectionError()
        )
        cli.RegistryClient = fake
        self.addCleanup(setattr, cli, "RegistryClient", original)
        self.assertEqual(cli.main(["--url", "http://api.test", "counts"]), 2)


if __name__ == "__main__":
    unittest.main()
