#!/usr/bin/env python3
"""eipbot CLI - run the pre-merge rewrite or the merge action for one pull request

Usage:
    python -m eipbot premerge --repo ethereum/EIPs --pr 1234 [--merging]
    python -m eipbot merge --repo ethereum/EIPs --pr 1234
"""

import argparse
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from .config import Settings
from .exceptions import EipBotError
from .github_client import GitHubClient
from .logging_config import configure_logging, correlation_id_var, setup_structured_logging
from .merge import perform_merge_action, pre_merge_changes
from .models import RepositoryRef

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="eipbot",
        description="eipbot - number, normalize and merge proposal pull requests",
    )
    parser.add_argument(
        "--log-format", choices=["text", "json"], default="text", help="Log output format"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    for name, help_text in (
        ("premerge", "Number and normalize the pull request's proposals"),
        ("merge", "Finalize numbering, enable auto-merge and approve"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--repo", required=True, help="Canonical repository as owner/name")
        sub.add_argument("--pr", type=int, required=True, help="Pull request number")
        if name == "premerge":
            sub.add_argument(
                "--merging", action="store_true", help="Assign final numbers to drafts too"
            )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        settings = Settings()
    except ValidationError as e:
        print(f"eipbot: invalid configuration\n{e}", file=sys.stderr)
        return 1

    if args.log_format == "json":
        setup_structured_logging(settings.log_level)
    else:
        configure_logging(settings.log_level)

    try:
        repository = RepositoryRef.parse(args.repo)
    except ValueError as e:
        parser.error(str(e))

    correlation_id_var.set(f"{repository}#{args.pr}")
    client = GitHubClient(settings)

    try:
        files = client.list_pull_request_files(repository, args.pr)
        if args.command == "premerge":
            changed = pre_merge_changes(
                client, settings, repository, args.pr, files, is_merging=args.merging
            )
            logger.info(f"[CLI] #{args.pr} {'rewritten' if changed else 'already canonical'}")
        else:
            perform_merge_action(client, settings, repository, args.pr, files)
    except EipBotError as e:
        logger.error(f"[CLI] {args.command} failed for {repository}#{args.pr}: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
