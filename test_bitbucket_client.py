"""
Unit tests for Bitbucket API client.

This module contains tests for credential loading, the connectivity probe
and the per-repository open pull request fetch, including the degraded
outcomes for missing repositories and API failures.
"""

import os
import logging
import pytest
from unittest.mock import Mock, patch
import requests

from bitbucket_client import (
    BitbucketClient,
    BitbucketCredentials,
    BitbucketConfigurationError,
    RepositoryFetchResult,
    load_credentials_from_env,
)


FULL_ENV = {
    'BITBUCKET_WORKSPACE': 'acme',
    'BITBUCKET_EMAIL': 'dev@acme.test',
    'BITBUCKET_API_TOKEN': 'secret-token'
}


def make_response(status_code, json_data=None, text=''):
    """Build a mock requests.Response."""
    response = Mock()
    response.status_code = status_code
    response.text = text
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response


class TestCredentialsFromEnvironment:
    """Test cases for reading credentials from environment variables."""

    @patch.dict(os.environ, FULL_ENV, clear=True)
    def test_all_variables_present(self):
        """Test credentials are built from the three variables."""
        credentials = load_credentials_from_env()

        assert credentials == BitbucketCredentials('acme', 'dev@acme.test', 'secret-token')

    @pytest.mark.parametrize('missing', sorted(FULL_ENV))
    def test_missing_variable_lists_all_three(self, missing):
        """Test that any missing variable fails and names every required one."""
        env = {k: v for k, v in FULL_ENV.items() if k != missing}

        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(BitbucketConfigurationError) as exc_info:
                load_credentials_from_env()

        message = str(exc_info.value)
        assert message.startswith("Missing required environment variables:")
        for name in FULL_ENV:
            assert f"- {name}" in message

    @patch.dict(os.environ, dict(FULL_ENV, BITBUCKET_API_TOKEN=''), clear=True)
    def test_empty_variable_is_missing(self):
        """Test that an empty value is treated as unset."""
        with pytest.raises(BitbucketConfigurationError):
            load_credentials_from_env()


class TestBitbucketClient:
    """Test cases for BitbucketClient initialization."""

    def test_init_with_credentials(self):
        """Test session is set up with basic auth and JSON headers."""
        client = BitbucketClient(BitbucketCredentials('acme', 'dev@acme.test', 'secret-token'))

        assert client.workspace == 'acme'
        assert client.session.auth == ('dev@acme.test', 'secret-token')
        assert client.session.headers['Accept'] == 'application/json'
        assert client.session.headers['Content-Type'] == 'application/json'

    def test_init_without_credentials(self):
        """Test that missing credentials raise a configuration error."""
        with pytest.raises(BitbucketConfigurationError, match="Bitbucket credentials are required"):
            BitbucketClient(None)


    def test_init_with_empty_credential_field(self):
        """Test that credentials with an empty field are rejected."""
        with pytest.raises(BitbucketConfigurationError, match="Bitbucket credentials are required"):
            BitbucketClient(BitbucketCredentials('acme', 'dev@acme.test', ''))


class TestConnection:
    """Test cases for the workspace connectivity probe."""

    def setup_method(self):
        """Set up test client for each test method."""
        self.client = BitbucketClient(BitbucketCredentials('acme', 'dev@acme.test', 'secret-token'))

    @patch('requests.Session.get')
    def test_connection_success(self, mock_get):
        """Test that a 2xx response reports a working connection."""
        mock_get.return_value = make_response(200, {'values': []})

        assert self.client.test_connection() is True
        mock_get.assert_called_once_with(
            "https://api.bitbucket.org/2.0/repositories/acme",
            params={'pagelen': 1}
        )

    @patch('requests.Session.get')
    def test_connection_failure_logs_status_and_message(self, mock_get, caplog):
        """Test that a failed probe logs the status and provider message."""
        mock_get.return_value = make_response(401, {'error': {'message': 'Invalid credentials'}})

        with caplog.at_level(logging.ERROR):
            assert self.client.test_connection() is False

        assert "Failed to connect to workspace: acme" in caplog.text
        assert "Status: 401" in caplog.text
        assert "Message: Invalid credentials" in caplog.text

    @patch('requests.Session.get')
    def test_connection_failure_without_message(self, mock_get, caplog):
        """Test fallback message when the error body is not JSON."""
        mock_get.return_value = make_response(503, ValueError("no json"))

        with caplog.at_level(logging.ERROR):
            assert self.client.test_connection() is False

        assert "Message: Unknown error" in caplog.text

    @patch('requests.Session.get')
    def test_connection_network_error(self, mock_get, caplog):
        """Test that transport errors are reported as a failed probe, not raised."""
        mock_get.side_effect = requests.ConnectionError("Connection refused")

        with caplog.at_level(logging.ERROR):
            assert self.client.test_connection() is False

        assert "Failed to connect to workspace: acme" in caplog.text


class TestFetchPullRequests:
    """Test cases for fetching open pull requests of one repository."""

    def setup_method(self):
        """Set up test client for each test method."""
        self.client = BitbucketClient(BitbucketCredentials('acme', 'dev@acme.test', 'secret-token'))

    @patch('requests.Session.get')
    def test_fetch_success(self, mock_get):
        """Test that the values of the first page are returned."""
        values = [{'id': 1, 'title': 'Add login'}, {'id': 2, 'title': 'Fix logout'}]
        mock_get.return_value = make_response(200, {'values': values, 'next': 'https://example/next'})

        result = self.client.fetch_pull_requests('web-app')

        assert result.ok
        assert result.repository == 'web-app'
        assert result.pull_requests == values
        mock_get.assert_called_once_with(
            "https://api.bitbucket.org/2.0/repositories/acme/web-app/pullrequests",
            params={'state': 'OPEN', 'pagelen': 50}
        )

    @patch('requests.Session.get')
    def test_fetch_success_without_values(self, mock_get):
        """Test that a body without values yields no pull requests."""
        mock_get.return_value = make_response(200, {})

        result = self.client.fetch_pull_requests('web-app')

        assert result.ok
        assert result.pull_requests == []

    @patch('requests.Session.get')
    def test_fetch_not_found(self, mock_get, caplog):
        """Test that a 404 is a warning and an empty result."""
        mock_get.return_value = make_response(404, {'error': {'message': 'Not found'}})

        with caplog.at_level(logging.WARNING):
            result = self.client.fetch_pull_requests('ghost')

        assert not result.ok
        assert result.pull_requests == []
        assert result.reason == "Repository not found"
        assert "Repository not found: ghost" in caplog.text
        assert any(r.levelno == logging.WARNING for r in caplog.records)

    @patch('requests.Session.get')
    def test_fetch_bad_request(self, mock_get, caplog):
        """Test that a 400 is a warning carrying the provider message."""
        mock_get.return_value = make_response(400, {'error': {'message': 'Invalid slug'}})

        with caplog.at_level(logging.WARNING):
            result = self.client.fetch_pull_requests('bad slug')

        assert result.pull_requests == []
        assert "Bad request for repository bad slug: Invalid slug" in caplog.text

    @patch('requests.Session.get')
    def test_fetch_bad_request_default_message(self, mock_get, caplog):
        """Test the fallback text for a 400 without an error body."""
        mock_get.return_value = make_response(400, ValueError("no json"))

        with caplog.at_level(logging.WARNING):
            result = self.client.fetch_pull_requests('bad')

        assert result.reason == "Bad request: Invalid request"

    @patch('requests.Session.get')
    def test_fetch_server_error(self, mock_get, caplog):
        """Test that other statuses are logged as errors and degrade to empty."""
        mock_get.return_value = make_response(500, {}, text='Internal Server Error')

        with caplog.at_level(logging.ERROR):
            result = self.client.fetch_pull_requests('web-app')

        assert result.pull_requests == []
        assert result.reason == "API request failed: 500"
        assert "API Error for web-app: 500" in caplog.text

    @patch('requests.Session.get')
    def test_fetch_network_error(self, mock_get):
        """Test that transport errors degrade to an empty result."""
        mock_get.side_effect = requests.Timeout("timed out")

        result = self.client.fetch_pull_requests('web-app')

        assert not result.ok
        assert result.pull_requests == []

    @patch('requests.Session.get')
    def test_fetch_unexpected_shape(self, mock_get):
        """Test that a non-list values field is rejected."""
        mock_get.return_value = make_response(200, {'values': 'oops'})

        result = self.client.fetch_pull_requests('web-app')

        assert result.reason == "Unexpected response shape"
        assert result.pull_requests == []


class TestRepositoryFetchResult:
    """Test cases for the per-repository fetch result."""

    def test_success_copies_records(self):
        """Test that a success result owns its record list."""
        records = [{'id': 1}]
        result = RepositoryFetchResult.success('repo', records)
        records.append({'id': 2})

        assert result.ok
        assert result.pull_requests == [{'id': 1}]

    def test_empty_carries_reason(self):
        """Test that an empty result is not ok and keeps its reason."""
        result = RepositoryFetchResult.empty('repo', 'Repository not found')

        assert not result.ok
        assert result.pull_requests == []
        assert result.reason == 'Repository not found'
