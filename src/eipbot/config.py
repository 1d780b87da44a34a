"""Configuration module for eipbot settings.

Every component takes an explicit ``Settings`` instance; only the CLI builds
one from the environment.
"""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="EIPBOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # GITHUB_TOKEN is what Actions exports, so accept it without the prefix too
    github_token: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("EIPBOT_GITHUB_TOKEN", "GITHUB_TOKEN")
    )
    api_url: str = "https://api.github.com"
    graphql_url: str = "https://api.github.com/graphql"
    request_timeout: float = 30.0

    # Repository layout
    document_dir: str = "EIPS"
    asset_dir: str = "assets"

    # Fixed messages written by the bot
    temp_branch_prefix: str = "eipbot"
    commit_message: str = "Commit from EIP-Bot"
    merge_commit_body: str = "Merged by EIP-Bot."
    approval_message: str = "All Reviewers Have Approved; Performing Automatic Merge..."

    # Concurrency for blob creation and tree walking
    max_workers: int = 8

    # Per pull request serialization
    serialize_invocations: bool = True
    lock_dir: str = ".eipbot/locks"

    log_level: str = "INFO"
