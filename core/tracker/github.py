import re
from typing import Any, Dict, Iterable, List, Optional

import httpx

from core.contracts.models import (
    CreatedComment,
    CreatedIssue,
    IssueLite,
    Label,
    ModelInfo,
    ProjectInfo,
    ProjectStatus,
    UserInfo,
)
from utils.errors import TrackerError
from utils.logger import logger

MODELS_CATALOG_URL = "https://models.github.ai/catalog/models"
ISSUE_QUALIFIER = re.compile(r"\bis:(issue|pull-request)\b")

SEARCH_ISSUES_QUERY = """
query($searchQuery: String!, $first: Int!) {
  search(type: ISSUE, query: $searchQuery, first: $first) {
    edges { node { ... on Issue { number title url state updatedAt } } }
  }
}
"""

PROJECT_QUERY = """
query($login: String!, $number: Int!) {
  organization(login: $login) { projectV2(number: $number) { id title shortDescription number } }
}
"""

ISSUE_NODE_QUERY = """
query($owner: String!, $repo: String!, $number: Int!) {
  repository(owner: $owner, name: $repo) { issue(number: $number) { id } }
}
"""

ADD_PROJECT_ITEM_MUTATION = """
mutation($projectId: ID!, $contentId: ID!) {
  addProjectV2ItemById(input: { projectId: $projectId, contentId: $contentId }) { item { id } }
}
"""

PROJECT_FIELDS_QUERY = """
query($projectId: ID!) {
  node(id: $projectId) {
    ... on ProjectV2 {
      fields(first: 50) { nodes { ... on ProjectV2SingleSelectField { id name options { id name } } } }
    }
  }
}
"""

SET_FIELD_VALUE_MUTATION = """
mutation($projectId: ID!, $itemId: ID!, $fieldId: ID!, $optionId: String!) {
  updateProjectV2ItemFieldValue(
    input: { projectId: $projectId, itemId: $itemId, fieldId: $fieldId, value: { singleSelectOptionId: $optionId } }
  ) { projectV2Item { id } }
}
"""


def map_github_error(status_code: int) -> str:
    if status_code == 401:
        return "Unauthorized: token invalid or expired"
    if status_code == 403:
        return "Forbidden: token lacks required repository permissions"
    if status_code == 404:
        return "Not found: repository or resource inaccessible with this token"
    if status_code == 422:
        return "Unprocessable: invalid query or payload"
    return "GitHub API request failed"


def build_search_query(owner: str, repo: str, query: str) -> str:
    search_query = f"repo:{owner}/{repo} {query} in:title,body"
    if not ISSUE_QUALIFIER.search(search_query):
        search_query += " is:issue"
    return search_query


def parse_model_catalog(raw: Any) -> List[ModelInfo]:
    """Accepts either a bare list of entries or an object with a `models` list."""
    if isinstance(raw, dict):
        raw = raw.get("models")
    if not isinstance(raw, list):
        return []

    models = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        model_id = entry.get("id") or entry.get("slug") or entry.get("name")
        if not model_id:
            continue
        label = entry.get("displayName") or entry.get("name") or entry.get("id") or entry.get("slug")
        models.append(ModelInfo(id=str(model_id).strip(), label=str(label).strip()))
    return models


class GitHubClient:
    """
    Thin client for the GitHub REST and GraphQL endpoints the notes
    workflow needs. Every call requires a token.
    """

    def __init__(
        self,
        token: Optional[str],
        api_url: str = "https://api.github.com",
        timeout_sec: int = 20,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not token:
            raise TrackerError("Missing token")
        self.client = httpx.Client(
            base_url=api_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": "quick-notes-app",
            },
            timeout=timeout_sec,
            transport=transport,
        )

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self.client.request(method, url, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.debug(f"GitHub API {method} {url} returned {status}: {e.response.text}")
            raise TrackerError(map_github_error(status), status_code=status) from e
        except httpx.RequestError as e:
            raise TrackerError(f"Failed to request GitHub API: {e}") from e

    def graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        response = self._request("POST", "/graphql", json={"query": query, "variables": variables})
        payload = response.json()
        errors = payload.get("errors")
        if errors:
            messages = "; ".join(str(err.get("message", err)) for err in errors)
            raise TrackerError(f"GraphQL error: {messages}", status_code=422)
        return payload.get("data") or {}

    def get_authenticated_user(self) -> UserInfo:
        data = self._request("GET", "/user").json()
        return UserInfo(
            login=data["login"],
            name=data.get("name"),
            email=data.get("email") or None,
            avatar_url=data.get("avatar_url"),
        )

    def list_labels(self, owner: str, repo: str) -> List[Label]:
        labels: List[Label] = []
        url: Optional[str] = f"/repos/{owner}/{repo}/labels"
        params: Optional[Dict[str, Any]] = {"per_page": 100}
        while url:
            response = self._request("GET", url, params=params)
            for label in response.json():
                labels.append(Label(name=label["name"], color=label["color"], description=label.get("description")))
            url = response.links.get("next", {}).get("url")
            params = None  # the next link already carries the query string
        return labels

    def search_issues(self, owner: str, repo: str, query: str, first: int = 5) -> List[IssueLite]:
        variables = {"searchQuery": build_search_query(owner, repo, query), "first": first}
        try:
            data = self.graphql(SEARCH_ISSUES_QUERY, variables)
        except TrackerError as e:
            if e.status_code == 422:
                raise TrackerError("Invalid search query.", status_code=422) from e
            raise

        issues = []
        for edge in (data.get("search") or {}).get("edges") or []:
            node = (edge or {}).get("node")
            if not node:
                continue
            issues.append(IssueLite(
                number=node["number"],
                title=node["title"],
                url=node["url"],
                state=node.get("state"),
                updated_at=node.get("updatedAt"),
            ))
        return issues

    def create_issue(self, owner: str, repo: str, title: str, body: str, labels: Iterable[str] = ()) -> CreatedIssue:
        data = self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues",
            json={"title": title, "body": body, "labels": list(labels)},
        ).json()
        return CreatedIssue(number=data["number"], url=data["html_url"], title=data["title"])

    def add_assignees(self, owner: str, repo: str, issue_number: int, assignees: Iterable[str]) -> None:
        self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/assignees",
            json={"assignees": list(assignees)},
        )

    def add_comment(self, owner: str, repo: str, issue_number: int, body: str) -> CreatedComment:
        data = self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            json={"body": body},
        ).json()
        return CreatedComment(id=data["id"], url=data["html_url"], created_at=data["created_at"])

    def fetch_project(self, org: str, number: int) -> ProjectInfo:
        data = self.graphql(PROJECT_QUERY, {"login": org, "number": number})
        project = (data.get("organization") or {}).get("projectV2")
        if not project:
            raise TrackerError("Project not found", status_code=404)
        return ProjectInfo(
            id=project["id"],
            name=project.get("title") or "Untitled Project",
            body=project.get("shortDescription") or None,
            number=project.get("number"),
        )

    def get_issue_node_id(self, owner: str, repo: str, issue_number: int) -> Optional[str]:
        data = self.graphql(ISSUE_NODE_QUERY, {"owner": owner, "repo": repo, "number": issue_number})
        issue = (data.get("repository") or {}).get("issue") or {}
        return issue.get("id")

    def add_item_to_project(self, project_id: str, content_id: str) -> Optional[str]:
        data = self.graphql(ADD_PROJECT_ITEM_MUTATION, {"projectId": project_id, "contentId": content_id})
        item = (data.get("addProjectV2ItemById") or {}).get("item") or {}
        return item.get("id")

    def set_project_status(self, project_id: str, item_id: str, status: ProjectStatus) -> bool:
        """
        Sets the item's single-select "Status" field.

        Returns:
            False when the project has no Status field or no matching option.
        """
        data = self.graphql(PROJECT_FIELDS_QUERY, {"projectId": project_id})
        fields = (((data.get("node") or {}).get("fields") or {}).get("nodes")) or []
        field = next((f for f in fields if f and f.get("name") == "Status" and f.get("options")), None)
        if field is None:
            logger.warning("Project has no single-select Status field.")
            return False

        wanted = status.option_name.lower()
        option = next((o for o in field["options"] if o["name"].lower() == wanted), None)
        if option is None:
            logger.warning(f"Project Status field has no option named '{status.option_name}'.")
            return False

        self.graphql(SET_FIELD_VALUE_MUTATION, {
            "projectId": project_id,
            "itemId": item_id,
            "fieldId": field["id"],
            "optionId": option["id"],
        })
        return True

    def fetch_model_catalog(self) -> List[ModelInfo]:
        response = self._request("GET", MODELS_CATALOG_URL, headers={"Accept": "application/json"})
        return parse_model_catalog(response.json())

    def close(self) -> None:
        self.client.close()
