"""
Command line client for the registry API.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional, Sequence

from babyregistry.client import ApiError, RegistryClient, ServerUnreachable
from babyregistry.identity import IdentityProvider

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Baby registry API client")
    parser.add_argument(
        "--url",
        default="http://localhost:8000",
        help="Base URL of the registry API",
    )
    parser.add_argument(
        "--identity-file",
        default=None,
        help="Where the browser id is kept (default: ~/.babyregistry/identity.json)",
    )
    parser.add_argument("--admin-key", default=None, help="Admin key for privileged calls")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("counts", help="Show vote counts and percentages")
    vote = sub.add_parser("vote", help="Cast this identity's vote")
    vote.add_argument("choice", choices=["boy", "girl"])
    sub.add_parser("unvote", help="Retract this identity's vote")
    sub.add_parser("messages", help="List guestbook messages")
    post = sub.add_parser("post", help="Post or update this identity's message")
    post.add_argument("name")
    post.add_argument("text")
    sub.add_parser("unpost", help="Retract this identity's message")
    login = sub.add_parser("login", help="Exchange admin credentials for the admin key")
    login.add_argument("email")
    login.add_argument("password")
    delete = sub.add_parser("delete-message", help="Delete any message (admin)")
    delete.add_argument("message_id")
    sub.add_parser("reset-identity", help="Forget the stored browser id")
    return parser


def run(args: argparse.Namespace, client: RegistryClient) -> object:
    if args.command == "counts":
        counts = client.get_counts()
        return {**counts.as_dict(), "percentages": counts.percentages()}
    if args.command == "vote":
        outcome = client.vote(args.choice)
        result = {**outcome.counts.as_dict(), "voteType": outcome.vote_type}
        if outcome.already_voted:
            result["alreadyVoted"] = True
        return result
    if args.command == "unvote":
        return client.retract_vote().as_dict()
    if args.command == "messages":
        return client.list_messages()
    if args.command == "post":
        return client.post_message(args.name, args.text)
    if args.command == "unpost":
        return {"message": client.retract_message()}
    if args.command == "login":
        return {"adminKey": client.login(args.email, args.password)}
    if args.command == "delete-message":
        client.delete_message(args.message_id)
        return {"deleted": args.message_id}
    if args.command == "reset-identity":
        return {"forgotten": client.identity.forget()}
    raise ValueError(f"unknown command: {args.command}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.WARNING)
    args = build_parser().parse_args(argv)
    client = RegistryClient(
        args.url,
        IdentityProvider(args.identity_file),
        admin_key=args.admin_key,
    )
    try:
        result = run(args, client)
    except ServerUnreachable as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except ApiError as exc:
        print(f"Error ({exc.status_code}): {exc.message}", file=sys.stderr)
        return 1
    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
