"""GitHub plugin.

Lists repositories, issues and pull requests, and creates issues, pull
requests and comments through the GitHub REST API. Creating things acts on
the user's behalf, so the tool requires approval.

Run by the host as `python -m toolhost.extensions.github`. The token is
read from GITHUB_TOKEN.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from toolhost.contract import Tool, ToolResult, schema_bytes
from toolhost.errors import ToolError, validation_error
from toolhost.plugin import serve
from toolhost.validation import decode_input, input_properties

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
USER_AGENT = "toolhost/0.1 (GitHub Plugin)"
DEFAULT_TIMEOUT = 30.0
PAGE_SIZE = 20
SEARCH_PAGE_SIZE = 10

ACTIONS = ("repos", "issues", "prs", "issue", "pr", "create_issue", "create_pr", "search", "comment")
STATES = ("open", "closed", "all")


class GitHubAPIError(Exception):
    """Raised when the GitHub API answers with an error status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"HTTP {status_code}: {body}")
        self.status_code = status_code
        self.body = body


@dataclass
class GitHubInput:
    action: str = field(
        default="",
        metadata={
            "description": (
                "Action: repos (list), issues (list), prs (list), issue (get one), "
                "pr (get one), create_issue, create_pr, search, comment"
            ),
            "enum": ACTIONS,
        },
    )
    owner: str = field(default="", metadata={"description": "Repository owner (user or org)"})
    repo: str = field(default="", metadata={"description": "Repository name"})
    number: int = field(default=0, metadata={"description": "Issue or PR number"})
    title: str = field(default="", metadata={"description": "Title for new issue or PR"})
    body: str = field(
        default="", metadata={"description": "Body content for issue, PR, or comment"}
    )
    labels: str = field(default="", metadata={"description": "Comma-separated labels"})
    state: str = field(default="", metadata={"description": "Filter by state", "enum": STATES})
    query: str = field(default="", metadata={"description": "Search query"})
    base: str = field(default="", metadata={"description": "Base branch for PR"})
    head: str = field(default="", metadata={"description": "Head branch for PR"})


def _require(params: GitHubInput, *names: str) -> None:
    """Raise a validation error naming the first missing argument."""
    missing = [n for n in names if not getattr(params, n)]
    if missing:
        verb = "is" if len(names) == 1 else "are"
        raise validation_error(f"{', '.join(names)} {verb} required", missing[0])


def _label_names(item: dict[str, Any]) -> list[str]:
    return [label.get("name", "") for label in item.get("labels") or []]


def _login(item: dict[str, Any]) -> str:
    return (item.get("user") or {}).get("login", "")


class GitHubTool(Tool):
    """GitHub REST API tool."""

    def __init__(
        self,
        token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        base_url: str = GITHUB_API_URL,
    ) -> None:
        """Initialize the tool with a reusable HTTP client.

        Args:
            token: API token; falls back to GITHUB_TOKEN at call time.
            timeout: Request timeout in seconds.
            base_url: API root.
        """
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            headers={
                "User-Agent": USER_AGENT,
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": GITHUB_API_VERSION,
            },
            follow_redirects=True,
            timeout=timeout,
        )
        self._actions: dict[str, Callable[[str, GitHubInput], str]] = {
            "repos": self._list_repos,
            "issues": self._list_issues,
            "prs": self._list_prs,
            "issue": self._get_issue,
            "pr": self._get_pr,
            "create_issue": self._create_issue,
            "create_pr": self._create_pr,
            "search": self._search,
            "comment": self._add_comment,
        }

    def close(self) -> None:
        """Close the HTTP client and release resources."""
        self._client.close()

    def name(self) -> str:
        return "github"

    def description(self) -> str:
        return (
            "Interact with GitHub API: list repos, issues, PRs, "
            "create issues/PRs, and search."
        )

    def schema(self) -> bytes:
        return schema_bytes(
            {
                "type": "object",
                "properties": input_properties(GitHubInput),
                "required": ["action"],
            }
        )

    def requires_approval(self) -> bool:
        return True

    def execute(self, payload: Any) -> ToolResult:
        """Run one GitHub action.

        Every failure, including HTTP errors, is reported as an error
        result rather than raised.
        """
        try:
            params = decode_input(GitHubInput, payload)
        except ToolError as err:
            return ToolResult(f"Failed to parse input: {err.message}", is_error=True)

        token = self._token or os.environ.get("GITHUB_TOKEN", "")
        if not token:
            return ToolResult("GITHUB_TOKEN not set", is_error=True)

        action = self._actions.get(params.action)
        if action is None:
            return ToolResult(f"Unknown action: {params.action}", is_error=True)

        try:
            return ToolResult(action(token, params))
        except ToolError as err:
            return ToolResult(err.message, is_error=True)
        except GitHubAPIError as e:
            return ToolResult(str(e), is_error=True)
        except httpx.TimeoutException:
            return ToolResult("Request timed out", is_error=True)
        except httpx.HTTPError as e:
            logger.warning("GitHub request failed: %s", e)
            return ToolResult(f"Request failed: {e}", is_error=True)

    def _request(
        self,
        token: str,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        response = self._client.request(
            method,
            self._base_url + endpoint,
            params=params,
            json=json_body,
            headers={"Authorization": f"Bearer {token}"},
        )
        if response.status_code >= 400:
            raise GitHubAPIError(response.status_code, response.text)
        return response.json()

    def _list_repos(self, token: str, params: GitHubInput) -> str:
        endpoint = f"/users/{params.owner}/repos" if params.owner else "/user/repos"
        repos = self._request(
            token, "GET", endpoint, params={"sort": "updated", "per_page": PAGE_SIZE}
        )

        lines = [f"Repositories ({len(repos)}):", ""]
        for r in repos:
            visibility = "private" if r.get("private") else "public"
            lines.append(
                f"- {r.get('full_name', '')} [{visibility}] ({r.get('stargazers_count', 0)} stars)"
            )
            if r.get("description"):
                lines.append(f"  {r['description']}")
        return "\n".join(lines)

    def _list_issues(self, token: str, params: GitHubInput) -> str:
        _require(params, "owner", "repo")
        issues = self._request(
            token,
            "GET",
            f"/repos/{params.owner}/{params.repo}/issues",
            params={"state": params.state or "open", "per_page": PAGE_SIZE},
        )

        lines = [f"Issues for {params.owner}/{params.repo} ({len(issues)}):", ""]
        for i in issues:
            labels = _label_names(i)
            suffix = f" [{', '.join(labels)}]" if labels else ""
            lines.append(f"#{i.get('number')} {i.get('title', '')}{suffix}")
            lines.append(f"  by @{_login(i)}")
        return "\n".join(lines)

    def _list_prs(self, token: str, params: GitHubInput) -> str:
        _require(params, "owner", "repo")
        prs = self._request(
            token,
            "GET",
            f"/repos/{params.owner}/{params.repo}/pulls",
            params={"state": params.state or "open", "per_page": PAGE_SIZE},
        )

        lines = [f"Pull Requests for {params.owner}/{params.repo} ({len(prs)}):", ""]
        for p in prs:
            head = (p.get("head") or {}).get("ref", "")
            base = (p.get("base") or {}).get("ref", "")
            lines.append(f"#{p.get('number')} {p.get('title', '')}")
            lines.append(f"  {head} -> {base} by @{_login(p)}")
        return "\n".join(lines)

    def _get_issue(self, token: str, params: GitHubInput) -> str:
        _require(params, "owner", "repo", "number")
        issue = self._request(
            token, "GET", f"/repos/{params.owner}/{params.repo}/issues/{params.number}"
        )

        lines = [
            f"Issue #{issue.get('number')}: {issue.get('title', '')}",
            f"State: {issue.get('state', '')} | Author: @{_login(issue)} "
            f"| Comments: {issue.get('comments', 0)}",
        ]
        labels = _label_names(issue)
        if labels:
            lines.append(f"Labels: {', '.join(labels)}")
        lines.append("")
        lines.append(issue.get("body") or "")
        return "\n".join(lines)

    def _get_pr(self, token: str, params: GitHubInput) -> str:
        _require(params, "owner", "repo", "number")
        pr = self._request(
            token, "GET", f"/repos/{params.owner}/{params.repo}/pulls/{params.number}"
        )

        head = (pr.get("head") or {}).get("ref", "")
        base = (pr.get("base") or {}).get("ref", "")
        lines = [
            f"PR #{pr.get('number')}: {pr.get('title', '')}",
            f"{head} -> {base} by @{_login(pr)}",
            f"State: {pr.get('state', '')} | +{pr.get('additions', 0)}/-{pr.get('deletions', 0)} "
            f"| Comments: {pr.get('comments', 0)}",
        ]
        # null while GitHub is still computing it
        mergeable = pr.get("mergeable")
        if mergeable is not None:
            lines.append("Mergeable: Yes" if mergeable else "Mergeable: No (conflicts)")
        lines.append("")
        lines.append(pr.get("body") or "")
        return "\n".join(lines)

    def _create_issue(self, token: str, params: GitHubInput) -> str:
        _require(params, "owner", "repo", "title")
        body: dict[str, Any] = {"title": params.title, "body": params.body}
        if params.labels:
            body["labels"] = [label.strip() for label in params.labels.split(",") if label.strip()]

        issue = self._request(
            token, "POST", f"/repos/{params.owner}/{params.repo}/issues", json_body=body
        )
        return f"Created issue #{issue.get('number')}: {issue.get('html_url', '')}"

    def _create_pr(self, token: str, params: GitHubInput) -> str:
        _require(params, "owner", "repo", "title", "head", "base")
        pr = self._request(
            token,
            "POST",
            f"/repos/{params.owner}/{params.repo}/pulls",
            json_body={
                "title": params.title,
                "body": params.body,
                "head": params.head,
                "base": params.base,
            },
        )
        return f"Created PR #{pr.get('number')}: {pr.get('html_url', '')}"

    def _search(self, token: str, params: GitHubInput) -> str:
        _require(params, "query")
        result = self._request(
            token,
            "GET",
            "/search/repositories",
            params={"q": params.query, "per_page": SEARCH_PAGE_SIZE},
        )

        lines = [
            f"Search results for '{params.query}' ({result.get('total_count', 0)} total):",
            "",
        ]
        for r in result.get("items") or []:
            language = r.get("language") or "unknown"
            lines.append(
                f"- {r.get('full_name', '')} [{language}] ({r.get('stargazers_count', 0)} stars)"
            )
            if r.get("description"):
                lines.append(f"  {r['description']}")
        return "\n".join(lines)

    def _add_comment(self, token: str, params: GitHubInput) -> str:
        _require(params, "owner", "repo", "number", "body")
        comment = self._request(
            token,
            "POST",
            f"/repos/{params.owner}/{params.repo}/issues/{params.number}/comments",
            json_body={"body": params.body},
        )
        return f"Added comment: {comment.get('html_url', '')}"


def main() -> None:
    logging.basicConfig(stream=sys.stderr, level=logging.WARNING)
    timeout = float(os.environ.get("TOOLHOST_HTTP_TIMEOUT", DEFAULT_TIMEOUT))
    serve(GitHubTool(timeout=timeout))


if __name__ == "__main__":
    main()
