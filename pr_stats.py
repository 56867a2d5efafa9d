"""
Open pull request statistics aggregation.

This module turns raw Bitbucket pull request dictionaries into typed records
and folds them, repository by repository, into per-assignee and
per-repository statistics.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Any, Optional, Union

from dateutil import parser as date_parser


UNASSIGNED = 'Unassigned'
UNKNOWN_SUBMITTER = 'Unknown'
REPOSITORY_LIST_FILE = 'repositories.list'

SECONDS_PER_DAY = timedelta(days=1).total_seconds()


class PRStatsError(Exception):
    """Custom exception for pull request statistics errors."""
    pass


@dataclass(frozen=True)
class BitbucketUser:
    """A pull request author or reviewer as returned by Bitbucket."""
    display_name: Optional[str] = None
    username: Optional[str] = None
    nickname: Optional[str] = None

    @classmethod
    def from_api(cls, data: Optional[Dict[str, Any]]) -> Optional['BitbucketUser']:
        if not isinstance(data, dict):
            return None
        return cls(
            display_name=data.get('display_name'),
            username=data.get('username'),
            nickname=data.get('nickname'),
        )

    @property
    def handle(self) -> Optional[str]:
        return self.username or self.nickname


def resolve_display_name(user: Optional[BitbucketUser], default: str) -> str:
    """
    Resolve the name a user is reported under.

    Falls back from display name to handle to ``default``.
    """
    if user is None:
        return default
    return user.display_name or user.handle or default


@dataclass
class PullRequestRecord:
    """The fields of a Bitbucket pull request the statistics depend on."""
    title: str
    author: BitbucketUser
    created_on: datetime
    url: str
    reviewers: List[BitbucketUser] = field(default_factory=list)
    additions: int = 0
    deletions: int = 0

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'PullRequestRecord':
        """
        Build a record from a pull request dictionary.

        Args:
            data: One entry of the ``values`` list of the pull request endpoint

        Returns:
            PullRequestRecord with missing line counts defaulted to zero

        Raises:
            PRStatsError: If the author, creation timestamp or web link is
                missing, the timestamp cannot be parsed, the first reviewer is
                not an object or a line count is not an integer
        """
        if not isinstance(data, dict):
            raise PRStatsError(f"Pull request must be an object, got {type(data).__name__}")

        pr_id = data.get('id', 'unknown')

        author = BitbucketUser.from_api(data.get('author'))
        if author is None:
            raise PRStatsError(f"PR #{pr_id} is missing its author")

        created_on = data.get('created_on')
        if not created_on:
            raise PRStatsError(f"PR #{pr_id} is missing created_on")
        try:
            created = date_parser.isoparse(created_on)
        except (TypeError, ValueError) as e:
            raise PRStatsError(f"PR #{pr_id} has an invalid created_on {created_on!r}: {e}")
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)

        url = ((data.get('links') or {}).get('html') or {}).get('href')
        if not url:
            raise PRStatsError(f"PR #{pr_id} is missing its web link")

        raw_reviewers = data.get('reviewers') or []
        if not isinstance(raw_reviewers, list):
            raise PRStatsError(f"PR #{pr_id} has invalid reviewers")
        if raw_reviewers and not isinstance(raw_reviewers[0], dict):
            raise PRStatsError(f"PR #{pr_id} has an invalid first reviewer")
        reviewers = [
            reviewer for reviewer in
            (BitbucketUser.from_api(item) for item in raw_reviewers)
            if reviewer is not None
        ]

        return cls(
            title=data.get('title') or '',
            author=author,
            created_on=created,
            url=url,
            reviewers=reviewers,
            additions=_line_count(data, 'additions', pr_id),
            deletions=_line_count(data, 'deletions', pr_id),
        )

    @property
    def assignee(self) -> str:
        # Only the first reviewer counts as the assignee
        if not self.reviewers:
            return UNASSIGNED
        return resolve_display_name(self.reviewers[0], UNASSIGNED)

    @property
    def submitter(self) -> str:
        return resolve_display_name(self.author, UNKNOWN_SUBMITTER)

    @property
    def size(self) -> int:
        return calculate_pr_size(self.additions, self.deletions)

    def open_days(self, now: datetime) -> int:
        return calculate_open_days(self.created_on, now)


def _line_count(data: Dict[str, Any], key: str, pr_id: Any) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise PRStatsError(f"PR #{pr_id} has a non-integer {key} count {value!r}")
    return value


def calculate_pr_size(additions: Optional[int], deletions: Optional[int]) -> int:
    """Total changed lines; missing counts are treated as zero."""
    return max(0, int(additions or 0) + int(deletions or 0))


def calculate_open_days(created_on: datetime, now: datetime) -> int:
    """
    Whole days a pull request has been open, rounded up.

    The absolute difference is used so clock skew between the provider and
    this machine never yields a negative age.
    """
    elapsed = abs((now - created_on).total_seconds())
    return math.ceil(elapsed / SECONDS_PER_DAY)


@dataclass
class AssigneeStats:
    """Running totals for one assignee."""
    count: int = 0
    max_open_days: int = 0
    total_size: int = 0
    prs: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def average_size(self) -> int:
        if self.count == 0:
            return 0
        # Round half up
        return (2 * self.total_size + self.count) // (2 * self.count)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'count': self.count,
            'maxOpenDays': self.max_open_days,
            'totalSize': self.total_size,
            'prs': list(self.prs),
        }


@dataclass
class RepositoryStats:
    """Open pull requests collected for one repository."""
    open_prs: int = 0
    prs: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'openPRs': self.open_prs,
            'prs': list(self.prs),
        }


@dataclass
class StatsReport:
    """Aggregated statistics for one run."""
    total_prs: int = 0
    assignee_stats: Dict[str, AssigneeStats] = field(default_factory=dict)
    repository_stats: Dict[str, RepositoryStats] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form, keyed the way downstream consumers read it."""
        return {
            'assigneeStats': {
                name: stats.to_dict() for name, stats in self.assignee_stats.items()
            },
            'totalPRs': self.total_prs,
            'repositoryStats': {
                repo: stats.to_dict() for repo, stats in self.repository_stats.items()
            },
        }


class StatsAggregator:
    """
    Folds pull request records into a StatsReport.

    Repositories and records are processed in the order they are added.
    Summaries are appended in that order; ranking is left to the reporter.
    """

    def __init__(self, now: Optional[datetime] = None):
        """
        Initialize an empty aggregator.

        Args:
            now: Reference time for open-day calculations. Defaults to the
                current UTC time.
        """
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        self.now = now
        self.report = StatsReport()
        self.logger = logging.getLogger(__name__)

    def add_repository(self, repo_name: str) -> RepositoryStats:
        """Return the stats entry for a repository, creating it if needed."""
        stats = self.report.repository_stats.get(repo_name)
        if stats is None:
            stats = RepositoryStats()
            self.report.repository_stats[repo_name] = stats
        return stats

    def _upsert_assignee(self, assignee: str) -> AssigneeStats:
        stats = self.report.assignee_stats.get(assignee)
        if stats is None:
            stats = AssigneeStats()
            self.report.assignee_stats[assignee] = stats
        return stats

    def add_pull_request(self, repo_name: str, record: PullRequestRecord) -> None:
        """
        Fold one pull request into the assignee and repository totals.

        Args:
            repo_name: Repository the pull request belongs to
            record: Parsed pull request
        """
        assignee = record.assignee
        open_days = record.open_days(self.now)
        size = record.size

        assignee_stats = self._upsert_assignee(assignee)
        assignee_stats.count += 1
        assignee_stats.max_open_days = max(assignee_stats.max_open_days, open_days)
        assignee_stats.total_size += size
        assignee_stats.prs.append({
            'title': record.title,
            'repo': repo_name,
            'openDays': open_days,
            'size': size,
            'url': record.url
        })

        repo_stats = self.add_repository(repo_name)
        repo_stats.open_prs += 1
        repo_stats.prs.append({
            'title': record.title,
            'assignee': assignee,
            'submitter': record.submitter,
            'openDays': open_days,
            'size': size,
            'url': record.url
        })

        self.report.total_prs += 1

    def add_pull_requests(self, repo_name: str, pull_requests: List[Dict[str, Any]]) -> int:
        """
        Register a repository and fold its raw pull request dictionaries.

        The repository entry exists even when ``pull_requests`` is empty.
        Records folded before a malformed one stay in the totals.

        Args:
            repo_name: Repository the pull requests belong to
            pull_requests: Raw pull request dictionaries, in provider order

        Returns:
            Number of pull requests folded

        Raises:
            PRStatsError: If a record is malformed
        """
        self.add_repository(repo_name)

        for data in pull_requests:
            self.add_pull_request(repo_name, PullRequestRecord.from_api(data))

        self.logger.debug(f"Folded {len(pull_requests)} PRs from {repo_name}")
        return len(pull_requests)


def default_repository_list_path() -> Path:
    """Location of the repository list, next to this program."""
    return Path(__file__).resolve().parent / REPOSITORY_LIST_FILE


def load_repositories(path: Optional[Union[str, Path]] = None) -> List[str]:
    """
    Read repository slugs, one per line.

    Blank lines are ignored and surrounding whitespace is stripped.
    Duplicate lines are kept and each is processed separately.

    Args:
        path: List file to read. Defaults to ``repositories.list`` next to
            this program.

    Returns:
        Repository slugs in file order

    Raises:
        FileNotFoundError: If the list file does not exist
    """
    list_path = Path(path) if path else default_repository_list_path()

    if not list_path.is_file():
        raise FileNotFoundError(f"{list_path.name} file not found")

    content = list_path.read_text(encoding='utf-8')
    repositories = [line.strip() for line in content.splitlines() if line.strip()]

    logging.getLogger(__name__).info(f"Loaded {len(repositories)} repositories from {list_path}")
    return repositories
