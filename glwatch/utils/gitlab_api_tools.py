# Entrius 2025
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests

from glwatch.classes import MergeRequest, MergeRequestState, Pipeline, Project, Todo, TodoPage, User
from glwatch.constants import (
    DEFAULT_GITLAB_API_URL,
    DEFAULT_REQUEST_TIMEOUT,
    LIST_PAGE_SIZE,
    MAX_LIST_PAGES,
    NEXT_PAGE_HEADER,
    RATE_LIMIT_MIN_REMAINING,
    TODOS_TOTAL_HEADER,
)
from glwatch.exceptions import TransientFetchError
from glwatch.utils.utils import parse_int

logger = logging.getLogger(__name__)


@dataclass
class RateLimitInfo:
    """Represents GitLab API rate limit information extracted from response headers."""

    limit: int  # Maximum requests allowed in the current window
    remaining: int  # Requests remaining in current window
    reset_timestamp: int  # Unix timestamp when the rate limit resets

    @property
    def is_exceeded(self) -> bool:
        """Check if rate limit has been exceeded."""
        return self.remaining == 0

    def __str__(self) -> str:
        return f"RateLimit(remaining={self.remaining}/{self.limit}, reset={self.reset_timestamp})"


def parse_rate_limit_headers(response: requests.Response) -> Optional[RateLimitInfo]:
    """
    Parse GitLab API rate limit information from response headers.

    Args:
        response: The HTTP response from GitLab API

    Returns:
        RateLimitInfo object if headers are present, None otherwise
    """
    headers = response.headers
    limit = parse_int(headers.get('RateLimit-Limit'), 0)
    remaining = parse_int(headers.get('RateLimit-Remaining'), 0)
    reset_timestamp = parse_int(headers.get('RateLimit-Reset'), 0)

    if limit == 0 and reset_timestamp == 0:
        return None

    return RateLimitInfo(limit=limit, remaining=remaining, reset_timestamp=reset_timestamp)


def check_preemptive_rate_limit(response: requests.Response) -> None:
    """
    Log a warning when the remaining request budget runs low.

    Requests are never delayed here; polling loops run at their fixed interval.

    Args:
        response: The HTTP response from GitLab API
    """
    rate_limit_info = parse_rate_limit_headers(response)

    if rate_limit_info:
        if rate_limit_info.remaining <= RATE_LIMIT_MIN_REMAINING:
            logger.warning(
                f"Approaching GitLab API rate limit: {rate_limit_info.remaining} requests remaining, "
                f"resets at {rate_limit_info.reset_timestamp}"
            )
        elif rate_limit_info.remaining <= rate_limit_info.limit * 0.1:
            logger.info(f"GitLab API rate limit status: {rate_limit_info.remaining}/{rate_limit_info.limit} remaining")


def normalize_endpoint(endpoint: str) -> str:
    """Strip trailing slashes so paths can be appended with a single '/'.

    Args:
        endpoint (str): GitLab API root, e.g. 'https://gitlab.example.com/api/v4/'

    Returns:
        str: Endpoint without trailing slash
    """
    return endpoint.rstrip('/')


def make_headers(token: str) -> Dict[str, str]:
    """Build standard GitLab HTTP headers for a personal access token.

    Args:
        token (str): GitLab personal access token
    Returns:
        Dict[str, str]: Mapping of HTTP header names to values.
    """
    return {
        "PRIVATE-TOKEN": token,
        "Accept": "application/json",
    }


class GitLabClient:
    """Snapshot client for the GitLab REST v4 API.

    Every call performs exactly one request. Failures of any kind surface as
    TransientFetchError so that polling loops can retry on their next tick.
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_GITLAB_API_URL,
        token: str = '',
        timeout: int = DEFAULT_REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = normalize_endpoint(endpoint)
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(make_headers(token))

    def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        url = f"{self.endpoint}{path}"
        try:
            response = self.session.request(method, url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransientFetchError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            raise TransientFetchError(
                f"{method} {path} failed with status {response.status_code}",
                status_code=response.status_code,
            )

        check_preemptive_rate_limit(response)
        return response

    def _json(self, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise TransientFetchError(f"Could not decode GitLab response from {response.url}: {e}") from e

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._json(self._request('GET', path, params=params))

    def _get_all_pages(self, path: str, params: Optional[Dict[str, Any]] = None) -> Tuple[List[Any], requests.Response]:
        """GET every page of a list endpoint by following the X-Next-Page header.

        Args:
            path (str): Endpoint path relative to the API root
            params (Optional[Dict[str, Any]]): Query parameters sent with every page

        Returns:
            Tuple[List[Any], requests.Response]: Items of all pages, and the first page's response
                (GitLab repeats its X-Total header on every page)
        """
        items: List[Any] = []
        first_response = None
        page = 1

        for _ in range(MAX_LIST_PAGES):
            response = self._request('GET', path, params={**(params or {}), 'per_page': LIST_PAGE_SIZE, 'page': page})
            if first_response is None:
                first_response = response
            items.extend(self._json(response))

            page = parse_int(response.headers.get(NEXT_PAGE_HEADER))
            if not page:
                return items, first_response

        logger.warning(f"Stopped paging {path} after {MAX_LIST_PAGES} pages ({len(items)} items)")
        return items, first_response

    # -------------------------------------------------------------------------
    # Watch queries
    # -------------------------------------------------------------------------

    def list_merge_requests(self, author_id: int, state: str = MergeRequestState.OPENED.value) -> List[MergeRequest]:
        """List merge requests authored by a user, across all projects.

        Args:
            author_id (int): GitLab numeric user id
            state (str): Merge request state filter

        Returns:
            List[MergeRequest]: Snapshots of every page, in the order GitLab returned them
        """
        data, _ = self._get_all_pages('/merge_requests', params={'scope': 'all', 'state': state, 'author_id': author_id})
        return [MergeRequest.from_gitlab_response(item) for item in data]

    def get_merge_request(self, project_id: int, iid: int) -> MergeRequest:
        """Fetch the current snapshot of a single merge request."""
        data = self._get(f'/projects/{project_id}/merge_requests/{iid}')
        return MergeRequest.from_gitlab_response(data)

    def get_latest_pipeline(self, project_id: int, branch: str) -> Optional[Pipeline]:
        """Fetch the most recent pipeline for a branch.

        Args:
            project_id (int): Project holding the branch (the MR source project)
            branch (str): Branch name

        Returns:
            Optional[Pipeline]: The latest pipeline, or None if the branch has none yet
        """
        data = self._get(f'/projects/{project_id}/pipelines', params={'ref': branch, 'per_page': 1})
        if not data:
            return None
        return Pipeline.from_gitlab_response(data[0])

    def list_todos(self) -> TodoPage:
        """Fetch every pending todo and the total count from the X-Total header."""
        data, response = self._get_all_pages('/todos')
        items = [Todo.from_gitlab_response(item) for item in data]
        total_count = parse_int(response.headers.get(TODOS_TOTAL_HEADER), len(items))
        return TodoPage(items=items, total_count=total_count)

    # -------------------------------------------------------------------------
    # Lookups and mutations
    # -------------------------------------------------------------------------

    def fetch_user(self, username: str) -> Optional[User]:
        """Resolve a username to a User, or None if no such user exists."""
        data = self._get('/users', params={'username': username})
        if not data:
            return None
        return User.from_gitlab_response(data[0])

    def fetch_users(self, usernames: Iterable[str]) -> List[User]:
        """Resolve several usernames, skipping unknown ones."""
        users = []
        for username in usernames:
            user = self.fetch_user(username)
            if user is None:
                logger.warning(f"GitLab user not found: {username}")
                continue
            users.append(user)
        return users

    def fetch_project(self, project_id: int) -> Project:
        return Project.from_gitlab_response(self._get(f'/projects/{project_id}'))

    def merge(self, project_id: int, iid: int) -> MergeRequest:
        """Accept (merge) a merge request and return its new snapshot."""
        response = self._request('PUT', f'/projects/{project_id}/merge_requests/{iid}/merge')
        return MergeRequest.from_gitlab_response(self._json(response))

    def mark_todo_as_done(self, todo_id: int) -> None:
        self._request('POST', f'/todos/{todo_id}/mark_as_done')

    def mark_all_todos_as_done(self) -> None:
        self._request('POST', '/todos/mark_as_done')
