"""
Bitbucket API client for open pull request statistics.

This module provides credential loading from the environment and a client
for the two Bitbucket Cloud endpoints the stats tool needs: a workspace
connectivity probe and the open pull request listing for a repository.
"""

import os
import logging
import requests
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any


REQUIRED_ENV_VARS = (
    'BITBUCKET_WORKSPACE',
    'BITBUCKET_EMAIL',
    'BITBUCKET_API_TOKEN',
)


class BitbucketAPIError(Exception):
    """Custom exception for Bitbucket API related errors."""
    pass


class BitbucketConfigurationError(BitbucketAPIError):
    """Exception raised when required Bitbucket settings are missing."""
    pass


class BitbucketConnectionError(BitbucketAPIError):
    """Exception raised when the workspace cannot be reached."""
    pass


@dataclass(frozen=True)
class BitbucketCredentials:
    """Static credentials for the Bitbucket API."""
    workspace: str
    email: str
    api_token: str


@dataclass
class RepositoryFetchResult:
    """
    Outcome of fetching open pull requests for one repository.

    A failed fetch is not an exception: it carries an empty record list and
    the reason, so the caller can skip the repository and keep going.
    """
    repository: str
    pull_requests: List[Dict[str, Any]] = field(default_factory=list)
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.reason is None

    @classmethod
    def success(cls, repository: str, pull_requests: List[Dict[str, Any]]) -> 'RepositoryFetchResult':
        return cls(repository=repository, pull_requests=list(pull_requests))

    @classmethod
    def empty(cls, repository: str, reason: str) -> 'RepositoryFetchResult':
        return cls(repository=repository, pull_requests=[], reason=reason)


def load_credentials_from_env() -> BitbucketCredentials:
    """
    Read Bitbucket credentials from environment variables.

    Returns:
        BitbucketCredentials built from BITBUCKET_WORKSPACE, BITBUCKET_EMAIL
        and BITBUCKET_API_TOKEN

    Raises:
        BitbucketConfigurationError: If any of the three variables is unset or empty
    """
    values = {name: os.environ.get(name) for name in REQUIRED_ENV_VARS}

    if not all(values.values()):
        lines = ["Missing required environment variables:"]
        lines.extend(f"- {name}" for name in REQUIRED_ENV_VARS)
        raise BitbucketConfigurationError("\n".join(lines))

    return BitbucketCredentials(
        workspace=values['BITBUCKET_WORKSPACE'],
        email=values['BITBUCKET_EMAIL'],
        api_token=values['BITBUCKET_API_TOKEN'],
    )


class BitbucketClient:
    """
    Client for the Bitbucket Cloud REST API.

    Requests are authenticated with HTTP basic auth (account email and API
    token) and issued sequentially through a single session.
    """

    BASE_URL = "https://api.bitbucket.org/2.0"
    PULL_REQUEST_PAGE_SIZE = 50

    def __init__(self, credentials: BitbucketCredentials):
        """
        Initialize Bitbucket client with static credentials.

        Args:
            credentials: Workspace, account email and API token

        Raises:
            BitbucketConfigurationError: If credentials are missing
        """
        if credentials is None or not (credentials.workspace and credentials.email and credentials.api_token):
            raise BitbucketConfigurationError("Bitbucket credentials are required")

        self.workspace = credentials.workspace
        self.session = requests.Session()
        self.session.auth = (credentials.email, credentials.api_token)
        self.session.headers.update({
            'Accept': 'application/json',
            'Content-Type': 'application/json',
            'User-Agent': 'Bitbucket-PR-Stats/1.0'
        })

        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _error_message(response: requests.Response) -> Optional[str]:
        """Extract the provider's error message from a response body, if any."""
        try:
            body = response.json()
        except ValueError:
            return None

        if not isinstance(body, dict):
            return None

        error = body.get('error')
        if isinstance(error, dict):
            return error.get('message')
        return None

    def test_connection(self) -> bool:
        """
        Check that the workspace is reachable with the configured credentials.

        Returns:
            True if the probe request succeeded, False otherwise
        """
        url = f"{self.BASE_URL}/repositories/{self.workspace}"

        try:
            response = self.session.get(url, params={'pagelen': 1})
        except requests.RequestException as e:
            self.logger.error(f"✗ Failed to connect to workspace: {self.workspace} ({e})")
            return False

        if 200 <= response.status_code < 300:
            self.logger.info(f"✓ Connected to workspace: {self.workspace}")
            return True

        self.logger.error(f"✗ Failed to connect to workspace: {self.workspace}")
        self.logger.error(f"Status: {response.status_code}")
        self.logger.error(f"Message: {self._error_message(response) or 'Unknown error'}")
        return False

    def fetch_pull_requests(self, repo_name: str) -> RepositoryFetchResult:
        """
        Fetch the first page of open pull requests for a repository.

        Args:
            repo_name: Repository slug within the workspace

        Returns:
            RepositoryFetchResult with the raw pull request dictionaries, or an
            empty result carrying the reason the repository was skipped
        """
        url = f"{self.BASE_URL}/repositories/{self.workspace}/{repo_name}/pullrequests"
        params = {
            'state': 'OPEN',
            'pagelen': self.PULL_REQUEST_PAGE_SIZE
        }

        try:
            response = self.session.get(url, params=params)
        except requests.RequestException as e:
            self.logger.error(f"API Error for {repo_name}: {e}")
            return RepositoryFetchResult.empty(repo_name, f"Request failed: {e}")

        if response.status_code == 404:
            self.logger.warning(f"Repository not found: {repo_name}")
            return RepositoryFetchResult.empty(repo_name, "Repository not found")

        if response.status_code == 400:
            message = self._error_message(response) or 'Invalid request'
            self.logger.warning(f"Bad request for repository {repo_name}: {message}")
            return RepositoryFetchResult.empty(repo_name, f"Bad request: {message}")

        if not 200 <= response.status_code < 300:
            self.logger.error(f"API Error for {repo_name}: {response.status_code} - {response.text}")
            return RepositoryFetchResult.empty(repo_name, f"API request failed: {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            self.logger.error(f"API Error for {repo_name}: invalid JSON response ({e})")
            return RepositoryFetchResult.empty(repo_name, "Invalid JSON response")

        values = body.get('values', []) if isinstance(body, dict) else None
        if not isinstance(values, list):
            self.logger.error(f"API Error for {repo_name}: unexpected response shape")
            return RepositoryFetchResult.empty(repo_name, "Unexpected response shape")

        self.logger.debug(f"Fetched {len(values)} open PRs from {repo_name}")
        return RepositoryFetchResult.success(repo_name, values)


def setup_logging(level: str = "INFO", verbose: bool = False) -> None:
    """
    Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        verbose: Include logger name and source location in each line
    """
    if verbose:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'
    else:
        log_format = '%(asctime)s - %(levelname)s - %(message)s'

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=log_format,
        datefmt='%Y-%m-%d %H:%M:%S'
    )
