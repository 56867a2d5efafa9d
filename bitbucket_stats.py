#!/usr/bin/env python3
"""
Bitbucket Open Pull Request Statistics Tool

This tool collects the open pull requests of every repository listed in
repositories.list and reports:
- Open PRs per assignee (first reviewer), with max open time and average size
- Open PRs per repository

The full aggregated data is also saved as JSON for downstream use.

Usage:
    python bitbucket_stats.py [options]

Environment Variables (may also be set in a .env file):
    BITBUCKET_WORKSPACE: Workspace that owns the repositories (required)
    BITBUCKET_EMAIL: Atlassian account email (required)
    BITBUCKET_API_TOKEN: API token for the account (required)

Examples:
    python bitbucket_stats.py
    python bitbucket_stats.py --repositories team.list --output team-stats.json
"""

import argparse
import logging
import sys
from datetime import datetime
from typing import List, Optional

from dotenv import load_dotenv

from bitbucket_client import (
    BitbucketClient,
    BitbucketConfigurationError,
    BitbucketConnectionError,
    load_credentials_from_env,
    setup_logging,
)
from console_reporter import print_report
from json_reporter import DEFAULT_OUTPUT_FILE, JSONReporter
from pr_stats import StatsAggregator, StatsReport, load_repositories


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description='Report open Bitbucket pull requests per assignee and repository',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  BITBUCKET_WORKSPACE    Workspace that owns the repositories (required)
  BITBUCKET_EMAIL        Atlassian account email (required)
  BITBUCKET_API_TOKEN    API token for the account (required)
        """
    )

    parser.add_argument(
        '--repositories', '-r',
        type=str,
        default=None,
        help=('Repository list file (default: repositories.list next to this program; '
              'required when running the installed bitbucket-stats command)')
    )

    parser.add_argument(
        '--output', '-o',
        type=str,
        default=DEFAULT_OUTPUT_FILE,
        help=f'Output JSON file path (default: {DEFAULT_OUTPUT_FILE})'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    parser.add_argument(
        '--quiet', '-q',
        action='store_true',
        help='Suppress all output except errors'
    )

    return parser.parse_args(argv)


def collect_stats(client: BitbucketClient, repositories: List[str],
                  now: Optional[datetime] = None) -> StatsReport:
    """
    Fetch and aggregate open pull requests repository by repository.

    A repository whose fetch fails contributes an empty entry. A repository
    whose records fail to aggregate keeps whatever was folded before the
    failure. Neither stops the loop.

    Args:
        client: Connected Bitbucket client
        repositories: Repository slugs in processing order
        now: Reference time for open-day calculations

    Returns:
        StatsReport covering every listed repository
    """
    logger = logging.getLogger(__name__)
    aggregator = StatsAggregator(now=now)

    for repo in repositories:
        logger.info(f"Processing repository: {repo}")

        try:
            result = client.fetch_pull_requests(repo)
            if not result.ok:
                logger.debug(f"Skipping PRs for {repo}: {result.reason}")
            aggregator.add_pull_requests(repo, result.pull_requests)
        except Exception as e:
            logger.error(f"Error processing repository {repo}: {e}")
            aggregator.add_repository(repo)

    return aggregator.report


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main application entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_arguments(argv)

    if args.debug:
        log_level = "DEBUG"
    elif args.quiet:
        log_level = "ERROR"
    else:
        log_level = "INFO"

    setup_logging(log_level, args.verbose)
    logger = logging.getLogger(__name__)

    load_dotenv()

    try:
        credentials = load_credentials_from_env()
    except BitbucketConfigurationError as e:
        print(str(e), file=sys.stderr)
        return 1

    try:
        client = BitbucketClient(credentials)

        logger.info("Collecting Bitbucket PR statistics...")
        if not client.test_connection():
            raise BitbucketConnectionError("Failed to connect to Bitbucket API")

        repositories = load_repositories(args.repositories)
        report = collect_stats(client, repositories)

        if not args.quiet:
            print_report(report)

        output_file = JSONReporter(args.output).generate_report(report)

        if not args.quiet:
            print(f"\n📊 Raw data saved to: {output_file}")

        logger.info("Stats collection completed successfully")
        return 0

    except KeyboardInterrupt:
        print("\n\n⚠️  Stats collection interrupted by user")
        return 1

    except Exception as e:
        logger.error(f"Error: {e}", exc_info=args.debug)
        return 1


if __name__ == "__main__":
    sys.exit(main())
