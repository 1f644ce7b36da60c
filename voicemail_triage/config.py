"""
Configuration module for the voicemail triage pipeline.

Handles all configuration through environment variables with secure defaults.
Credentials are never stored in code; per-tenant overrides for the service
desk connection live in the tenant registry file.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# Load environment variables from .env file
load_dotenv()


@dataclass(frozen=True)
class LLMConfig:
    """Configuration for the completion API (OpenAI compatible)."""
    
    api_key: str = field(
        default_factory=lambda: os.getenv("OPENAI_API_KEY", "")
    )
    api_base_url: Optional[str] = field(
        default_factory=lambda: os.getenv("OPENAI_API_BASE", None)
    )
    model: str = field(
        default_factory=lambda: os.getenv("LLM_MODEL", "gpt-4o-mini")
    )
    temperature: float = field(
        default_factory=lambda: float(os.getenv("LLM_TEMPERATURE", "0.1"))
    )
    max_tokens: int = field(
        default_factory=lambda: int(os.getenv("LLM_MAX_TOKENS", "500"))
    )
    max_retries: int = field(
        default_factory=lambda: int(os.getenv("LLM_MAX_RETRIES", "3"))
    )
    # Per-call timeout in seconds
    request_timeout: float = field(
        default_factory=lambda: float(os.getenv("LLM_REQUEST_TIMEOUT", "30"))
    )


@dataclass(frozen=True)
class TicketingConfig:
    """Configuration for the service desk REST API."""
    
    base_url: str = field(
        default_factory=lambda: os.getenv("JIRA_BASE_URL", "")
    )
    email: str = field(
        default_factory=lambda: os.getenv("JIRA_EMAIL", "")
    )
    api_token: str = field(
        default_factory=lambda: os.getenv("JIRA_API_TOKEN", "")
    )
    service_desk_id: str = field(
        default_factory=lambda: os.getenv("SERVICE_DESK_ID", "2")
    )
    
    # Request timeout in seconds
    request_timeout: int = field(
        default_factory=lambda: int(os.getenv("REQUEST_TIMEOUT", "30"))
    )
    
    def with_overrides(self, **overrides: Optional[str]) -> "TicketingConfig":
        """
        Return a copy with tenant-specific values applied.
        
        Empty or missing overrides keep the environment value.
        """
        values = {key: value for key, value in overrides.items() if value}
        return replace(self, **values)


@dataclass(frozen=True)
class StorageConfig:
    """Configuration for the file-backed tenant registry and issue ledger."""
    
    tenants_file: Path = field(
        default_factory=lambda: Path(os.getenv("TENANTS_FILE", "./tenants.yaml"))
    )
    ledger_file: Optional[Path] = field(
        default_factory=lambda: (
            Path(os.environ["LEDGER_FILE"]) if os.getenv("LEDGER_FILE") else None
        )
    )
    # Seconds to wait for the registry and ledger file locks
    lock_timeout: float = field(
        default_factory=lambda: float(os.getenv("LOCK_TIMEOUT", "30"))
    )


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration aggregating all config sections."""
    
    llm: LLMConfig = field(default_factory=LLMConfig)
    ticketing: TicketingConfig = field(default_factory=TicketingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    
    # Logging level
    log_level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO")
    )
    
    def validate(self) -> list[str]:
        """
        Validate configuration and return list of errors.
        
        Returns:
            List of validation error messages (empty if valid).
        """
        errors = []
        
        if not self.llm.api_key:
            errors.append("OPENAI_API_KEY is required for transcript processing")
        
        if not self.ticketing.base_url:
            errors.append("JIRA_BASE_URL is required")
        if not self.ticketing.email:
            errors.append("JIRA_EMAIL is required")
        if not self.ticketing.api_token:
            errors.append("JIRA_API_TOKEN is required")
        
        if not self.storage.tenants_file.exists():
            errors.append(f"TENANTS_FILE not found: {self.storage.tenants_file}")
        
        return errors


def get_config() -> AppConfig:
    """
    Get application configuration.
    
    Returns:
        AppConfig instance with all settings loaded from environment.
    """
    return AppConfig()
