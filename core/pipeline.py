import json
from typing import Iterable, List, Optional

from config.logic import resolve_token
from config.models import Config
from core.contracts.models import (
    CreatedComment,
    CreatedIssue,
    FormattingSession,
    ModelInfo,
    NoteBody,
    ProjectStatus,
    UserInfo,
)
from core.contracts.provider import LLMProvider
from core.formatter.controller import FormatterController, SessionListener, validate_request
from core.formatter.jinja_formatter import Jinja2Formatter, utc_timestamp
from core.llm.prompts import AVAILABLE_MODELS, build_messages
from core.llm.router import get_provider
from core.tracker.github import GitHubClient
from utils.cache import Cache
from utils.errors import ConfigError, TrackerError
from utils.logger import logger

MODEL_CATALOG_CACHE_KEY = "models-catalog"


class NoteCapture:
    """
    The notes workflow: optional model formatting, then posting the note to
    GitHub as an issue or a comment, optionally linked to a project board.
    """

    def __init__(
        self,
        config: Config,
        token: Optional[str] = None,
        provider: Optional[LLMProvider] = None,
        tracker: Optional[GitHubClient] = None,
    ):
        """
        Args:
            config: The configuration object.
            token: GitHub token; resolved from the config or environment when omitted.
            provider: Chat-completion provider; created from `config.model` when omitted.
            tracker: GitHub client; created from `config.github` when omitted.
        """
        self.config = config
        self.token = token if token is not None else resolve_token(config)
        self._provider = provider
        self._tracker = tracker
        self.controller: Optional[FormatterController] = None
        self.formatter = Jinja2Formatter(
            template_dir=config.formatter.template_dir,
            issue_template=config.formatter.issue_template,
            comment_template=config.formatter.comment_template,
        )
        self.cache = Cache(
            cache_dir=config.cache.directory,
            ttl_sec=config.cache.ttl_sec,
        ) if config.cache.enabled else None

    @property
    def provider(self) -> LLMProvider:
        if self._provider is None:
            api_key = self.token if self.config.model.provider == "github" else None
            self._provider = get_provider(self.config.model, api_key=api_key)
        return self._provider

    @property
    def tracker(self) -> GitHubClient:
        if self._tracker is None:
            self._tracker = GitHubClient(
                self.token,
                api_url=self.config.github.api_url,
                timeout_sec=self.config.github.timeout_sec,
            )
        return self._tracker

    @property
    def owner(self) -> str:
        return self.config.github.owner

    @property
    def repo(self) -> str:
        return self.config.github.repo

    # Formatting -----------------------------------------------------------

    def make_controller(self, on_update: Optional[SessionListener] = None) -> FormatterController:
        # Without a token the controller rejects start() before touching the provider.
        provider = self.provider if self.token else None
        self.controller = FormatterController(
            provider,
            self.token,
            system_prompt=self.config.formatter.system_prompt,
            max_input_chars=self.config.formatter.max_input_chars,
            on_update=on_update,
        )
        return self.controller

    async def format_notes(self, text: str, on_update: Optional[SessionListener] = None) -> FormattingSession:
        """Streams `text` through the model, publishing every session update."""
        logger.info(f"Formatting notes with '{self.config.model.provider}' model '{self.config.model.name}'...")
        controller = self.controller or self.make_controller()
        controller.on_update = on_update
        return await controller.start(text)

    async def format_notes_once(self, text: str) -> str:
        """Formats `text` with a single non-streaming request."""
        validate_request(self.token, text, self.config.formatter.max_input_chars)
        messages = build_messages(text, self.config.formatter.system_prompt)
        markdown = await self.provider.generate(messages)
        logger.info("Received formatted notes from model.")
        return markdown

    # Posting --------------------------------------------------------------

    def current_user(self) -> Optional[UserInfo]:
        """The token's user, or None when the profile cannot be read."""
        try:
            return self.tracker.get_authenticated_user()
        except TrackerError as e:
            # Fine-grained tokens without user scope cannot read the profile.
            logger.warning(f"Could not get user info: {e}")
            return None

    def _note(self, body: str, user: Optional[UserInfo], labels: Iterable[str] = ()) -> NoteBody:
        author = user.display_name if user else "Unknown User"
        return NoteBody(body=body, author=author, timestamp=utc_timestamp(), labels=list(labels))

    def submit_issue(
        self,
        title: str,
        body: str,
        labels: Iterable[str] = (),
        project_status: Optional[ProjectStatus] = None,
    ) -> CreatedIssue:
        if not title or not title.strip() or not body or not body.strip():
            raise TrackerError("Title and body are required", status_code=400)

        status = self._resolve_project_status(project_status)
        labels = list(labels)
        user = self.current_user()
        full_body = self.formatter.format_issue(self._note(body, user, labels))
        issue = self.tracker.create_issue(self.owner, self.repo, title.strip(), full_body, labels)
        logger.info(f"Created issue #{issue.number}: {issue.url}")

        self._self_assign(issue.number, user)
        self._link_to_project(issue.number, status)
        return issue

    def submit_comment(
        self,
        issue_number: int,
        body: str,
        project_status: Optional[ProjectStatus] = None,
    ) -> CreatedComment:
        if not issue_number or not body or not body.strip():
            raise TrackerError("Issue number and body are required", status_code=400)

        status = self._resolve_project_status(project_status)
        full_body = self.formatter.format_comment(self._note(body, self.current_user()))
        comment = self.tracker.add_comment(self.owner, self.repo, issue_number, full_body)
        logger.info(f"Added comment to #{issue_number}: {comment.url}")

        self._link_to_project(issue_number, status)
        return comment

    def _self_assign(self, issue_number: int, user: Optional[UserInfo]) -> None:
        if user is None:
            return
        try:
            self.tracker.add_assignees(self.owner, self.repo, issue_number, [user.login])
        except TrackerError as e:
            logger.warning(f"Could not self-assign issue #{issue_number}: {e}")

    def _resolve_project_status(self, project_status: Optional[ProjectStatus]) -> Optional[ProjectStatus]:
        if project_status is not None:
            return project_status
        configured = self.config.github.project_status
        if not configured:
            return None
        try:
            return ProjectStatus(configured)
        except ValueError:
            raise ConfigError(
                f"Unknown project status '{configured}'. "
                f"Use one of: {[s.value for s in ProjectStatus]}"
            )

    def _link_to_project(self, issue_number: int, status: Optional[ProjectStatus]) -> None:
        """Adds the issue to the configured project board and sets its Status. Best effort."""
        org = self.config.github.project_org
        number = self.config.github.project_number
        if not org or not number:
            return
        try:
            project = self.tracker.fetch_project(org, number)
            content_id = self.tracker.get_issue_node_id(self.owner, self.repo, issue_number)
            if not content_id:
                logger.warning(f"Issue #{issue_number} has no node id; not adding it to the project.")
                return
            item_id = self.tracker.add_item_to_project(project.id, content_id)
            logger.info(f"Added issue #{issue_number} to project '{project.name}'.")
            if status and item_id:
                self.tracker.set_project_status(project.id, item_id, status)
        except TrackerError as e:
            logger.warning(f"Failed to add issue #{issue_number} to project: {e}")

    # Catalog --------------------------------------------------------------

    def list_models(self) -> List[ModelInfo]:
        """The public model catalog, falling back to the curated list."""
        if self.cache:
            cached = self.cache.get(MODEL_CATALOG_CACHE_KEY)
            if cached:
                return [ModelInfo(**m) for m in json.loads(cached)]

        try:
            models = self.tracker.fetch_model_catalog()
        except TrackerError as e:
            logger.warning(f"Using curated fallback models (catalog unavailable): {e}")
            return list(AVAILABLE_MODELS)

        if not models:
            logger.warning("Model catalog was empty; using curated fallback models.")
            return list(AVAILABLE_MODELS)

        if self.cache:
            self.cache.set(MODEL_CATALOG_CACHE_KEY, json.dumps([m.model_dump() for m in models]))
        return models

    def close(self) -> None:
        """Closes the GitHub client, if one was created."""
        if self._tracker is not None:
            self._tracker.close()

    async def aclose(self) -> None:
        """Closes the model provider's client. Must run on the loop that used it."""
        if self._provider is not None and hasattr(self._provider, "aclose"):
            await self._provider.aclose()

