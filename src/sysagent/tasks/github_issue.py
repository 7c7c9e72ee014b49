"""GitHub issue creation via the REST API."""

from __future__ import annotations

from typing import Any

import httpx

from sysagent.tasks.base import SystemTask

GITHUB_API_URL = "https://api.github.com"


class GitHubIssueTask(SystemTask):
    """Create one issue using the configured personal access token."""

    task_type = "github_create_issue"

    async def execute(self, job_id: int, params: dict[str, Any]) -> None:
        title = str(params.get("title") or "").strip()
        body = params.get("body") or ""
        labels = params.get("labels") or []
        repo = str(params.get("repo") or "").strip() or self.settings.github_default_repo.strip()

        if not title:
            await self.fail_job(job_id, "Missing required parameter: title")
            return

        if not repo:
            await self.fail_job(job_id, "Missing required parameter: repo (and no default configured)")
            return

        pat = self.settings.github_pat
        if not pat:
            await self.fail_job(job_id, "GitHub Personal Access Token not configured in settings")
            return

        payload: dict[str, Any] = {"title": title}
        if body:
            payload["body"] = body
        if labels and isinstance(labels, list):
            payload["labels"] = labels

        try:
            resp = await self.request(
                "POST",
                f"{GITHUB_API_URL}/repos/{repo}/issues",
                headers={
                    "Authorization": f"token {pat}",
                    "Accept": "application/vnd.github.v3+json",
                    "User-Agent": "sysagent",
                },
                json=payload,
                timeout=30,
            )
        except httpx.HTTPError as e:
            await self.fail_job(job_id, f"GitHub API request failed: {e}")
            return

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if resp.status_code != 201:
            message = data.get("message") or "Unknown error"
            await self.fail_job(job_id, f"GitHub API error ({resp.status_code}): {message}")
            return

        await self.complete_job(job_id, {
            "issue_url": data.get("url", ""),
            "issue_number": data.get("number", 0),
            "html_url": data.get("html_url", ""),
            "repo": repo,
            "title": title,
        })
