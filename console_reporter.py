"""
Console rendering of open pull request statistics.
"""

from typing import List

from pr_stats import StatsReport


RULE_WIDTH = 60
SECTION_RULE_WIDTH = 40


def format_report(report: StatsReport) -> List[str]:
    """
    Render a StatsReport as console lines.

    Assignees are ranked by PR count and repositories by open PRs, both
    descending; ties keep the order in which they were first seen.
    Repositories without open PRs are left out of the breakdown.

    Args:
        report: Aggregated statistics

    Returns:
        Lines of the report, without trailing newlines
    """
    lines = [
        "",
        "=" * RULE_WIDTH,
        "BITBUCKET PULL REQUEST STATISTICS",
        "=" * RULE_WIDTH,
        "",
        f"Total Open PRs: {report.total_prs}",
        "",
        "📝 PR ASSIGNMENTS:",
        "-" * SECTION_RULE_WIDTH,
    ]

    sorted_assignees = sorted(
        report.assignee_stats.items(),
        key=lambda item: item[1].count,
        reverse=True
    )

    for assignee, stats in sorted_assignees:
        lines.append(f"{assignee}:")
        lines.append(f"  • PRs assigned: {stats.count}")
        lines.append(f"  • Max open time: {stats.max_open_days} days")
        lines.append(f"  • Avg PR size: {stats.average_size} lines")
        lines.append("")

    lines.extend([
        "",
        "📁 REPOSITORY BREAKDOWN:",
        "-" * SECTION_RULE_WIDTH,
    ])

    sorted_repos = sorted(
        ((repo, stats) for repo, stats in report.repository_stats.items() if stats.open_prs > 0),
        key=lambda item: item[1].open_prs,
        reverse=True
    )

    for repo, stats in sorted_repos:
        lines.append(f"{repo}: {stats.open_prs} open PRs")

    return lines


def print_report(report: StatsReport) -> None:
    """Print the rendered report to stdout."""
    for line in format_report(report):
        print(line)
