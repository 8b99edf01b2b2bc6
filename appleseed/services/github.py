"""
GitHub REST API client — search, profiles, fork/branch/file/PR, PR comments.

Every request goes through the 'github' circuit breaker. Non-2xx responses and
transport errors surface as GitHubError.
"""
import base64
import logging
import re
from typing import Any, Dict, List

import requests

from appleseed.config import GITHUB_API_URL

logger = logging.getLogger('services.github')

REPO_URL_RE = re.compile(r'github\.com/([^/]+)/([^/]+)')
PR_URL_RE = re.compile(r'github\.com/([^/]+)/([^/]+)/pull/(\d+)')


class GitHubError(Exception):
    """A GitHub API call failed."""
    def __init__(self, message, status_code=None):
        self.status_code = status_code
        super().__init__(message)


def parse_repo_url(url):
    """'https://github.com/owner/repo(.git)' → (owner, repo), or None."""
    match = REPO_URL_RE.search(url or '')
    if not match:
        return None
    repo = match.group(2)
    if repo.endswith('.git'):
        repo = repo[:-4]
    return match.group(1), repo


def parse_pr_url(url):
    """PR html_url → (owner, repo, number), or None."""
    match = PR_URL_RE.search(url or '')
    if not match:
        return None
    return match.group(1), match.group(2), int(match.group(3))


class GitHubClient:
    """Thin typed wrapper over the endpoints the pipeline uses."""

    def __init__(self, token=None, api_url=None, session=None, breaker=None, timeout=30):
        self.api_url = (api_url or GITHUB_API_URL).rstrip('/')
        self.timeout = timeout
        self.breaker = breaker
        self.session = session or requests.Session()
        self.session.headers.update({
            'Accept': 'application/vnd.github+json',
            'X-GitHub-Api-Version': '2022-11-28',
            'User-Agent': 'appleseed',
        })
        if token:
            self.session.headers['Authorization'] = f'Bearer {token}'

    # ── Transport ─────────────────────────────────────────────────────

    def _send(self, method, path, **kwargs):
        url = f"{self.api_url}{path}"
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise GitHubError(f"{method} {path} failed: {e}") from e
        if response.status_code >= 400:
            try:
                detail = response.json().get('message', response.text)
            except ValueError:
                detail = response.text
            raise GitHubError(
                f"{method} {path} returned {response.status_code}: {detail}",
                status_code=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    def _request(self, method, path, **kwargs):
        if self.breaker is None:
            return self._send(method, path, **kwargs)
        return self.breaker.call(self._send, method, path, **kwargs)

    # ── Search + users ────────────────────────────────────────────────

    def search_repositories(self, query, per_page=30, page=1) -> List[Dict[str, Any]]:
        """Repository search, most recently updated first."""
        data = self._request('GET', '/search/repositories', params={
            'q': query,
            'per_page': per_page,
            'page': page,
            'sort': 'updated',
            'order': 'desc',
        })
        return data.get('items', [])

    def get_user(self, username) -> Dict[str, Any]:
        return self._request('GET', f'/users/{username}')

    def get_authenticated_user(self) -> str:
        """Login of the token owner; doubles as the auth check."""
        return self._request('GET', '/user')['login']

    def check_auth(self) -> bool:
        try:
            self.get_authenticated_user()
            return True
        except Exception as e:
            logger.warning("GitHub auth check failed: %s", e)
            return False

    # ── Fork / branch / file ──────────────────────────────────────────

    def fork_repository(self, owner, repo) -> Dict[str, Any]:
        return self._request('POST', f'/repos/{owner}/{repo}/forks')

    def create_branch(self, owner, repo, branch, from_ref='main'):
        """Create branch from from_ref, falling back to master when main is missing."""
        try:
            ref = self._request('GET', f'/repos/{owner}/{repo}/git/ref/heads/{from_ref}')
        except GitHubError:
            if from_ref == 'main':
                return self.create_branch(owner, repo, branch, from_ref='master')
            raise
        sha = ref['object']['sha']
        return self._request('POST', f'/repos/{owner}/{repo}/git/refs', json={
            'ref': f'refs/heads/{branch}',
            'sha': sha,
        })

    def create_file(self, owner, repo, path, content, message, branch):
        encoded = base64.b64encode(content.encode('utf-8')).decode('ascii')
        return self._request('PUT', f'/repos/{owner}/{repo}/contents/{path}', json={
            'message': message,
            'content': encoded,
            'branch': branch,
        })

    # ── Pull requests ─────────────────────────────────────────────────

    def open_pull_request(self, owner, repo, title, body, head, base='main') -> Dict[str, Any]:
        """Returns {'number', 'html_url'}."""
        data = self._request('POST', f'/repos/{owner}/{repo}/pulls', json={
            'title': title,
            'body': body,
            'head': head,
            'base': base,
        })
        return {'number': data['number'], 'html_url': data['html_url']}

    def list_pull_request_comments(self, owner, repo, number) -> List[Dict[str, Any]]:
        """Conversation comments on the PR, in API order."""
        return self._request('GET', f'/repos/{owner}/{repo}/issues/{number}/comments',
                             params={'per_page': 100})

    def post_pull_request_comment(self, owner, repo, number, body) -> Dict[str, Any]:
        return self._request('POST', f'/repos/{owner}/{repo}/issues/{number}/comments',
                             json={'body': body})

    def get_pull_request_state(self, owner, repo, number) -> Dict[str, Any]:
        """{'state': 'open'|'closed', 'merged': bool}."""
        data = self._request('GET', f'/repos/{owner}/{repo}/pulls/{number}')
        return {'state': data.get('state'), 'merged': bool(data.get('merged'))}


def repo_from_search_item(item, matched_query) -> Dict[str, Any]:
    """Search API item → stored MatchedRepo dict."""
    return {
        'name': item.get('name'),
        'full_name': item.get('full_name'),
        'url': item.get('html_url'),
        'stars': item.get('stargazers_count') or 0,
        'description': item.get('description'),
        'language': item.get('language'),
        'last_updated': item.get('updated_at'),
        'matched_query': matched_query,
    }

