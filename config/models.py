from pydantic import BaseModel, Field
from typing import Optional, Dict, Any

DEFAULT_MODEL_ID = "openai/gpt-4.1"


class ModelConfig(BaseModel):
    provider: str = "github"
    name: str = DEFAULT_MODEL_ID
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    org: Optional[str] = Field(None, description="GitHub org used for org-scoped model inference")
    timeout_sec: int = 60
    stream: bool = True
    temperature: float = 0.2
    top_p: float = 1.0
    parameters: Dict[str, Any] = Field(default_factory=dict)

class GitHubConfig(BaseModel):
    token: Optional[str] = None
    token_env_var: str = "GITHUB_TOKEN"
    api_url: str = "https://api.github.com"
    owner: str = "github"
    repo: str = "solutions-engineering"
    timeout_sec: int = 20
    project_org: Optional[str] = Field(None, description="Organization owning the ProjectV2 board")
    project_number: Optional[int] = Field(None, description="ProjectV2 number to link new items to")
    project_status: Optional[str] = Field(None, description="in-progress, no-status or done")

class FormatterConfig(BaseModel):
    template_dir: Optional[str] = None
    issue_template: str = "issue.md.j2"
    comment_template: str = "comment.md.j2"
    system_prompt: Optional[str] = None
    max_input_chars: int = Field(8000, description="Reject notes longer than this before formatting")

class CacheConfig(BaseModel):
    enabled: bool = Field(True, description="Whether to cache the model catalog")
    ttl_sec: int = Field(86400, description="Cache time-to-live in seconds")
    directory: str = Field("~/.cache/quicknotes", description="Cache directory")


class Config(BaseModel):
    model: ModelConfig = Field(default_factory=ModelConfig, description="Chat-completion model settings")
    github: GitHubConfig = Field(default_factory=GitHubConfig, description="GitHub repository and project settings")
    formatter: FormatterConfig = Field(default_factory=FormatterConfig, description="Note formatting settings")
    cache: CacheConfig = Field(default_factory=CacheConfig, description="Cache settings")
