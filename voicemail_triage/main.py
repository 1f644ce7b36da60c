"""
Main entry point for the voicemail triage pipeline.

Runs one voicemail through the pipeline for one tenant:
1. Load configuration and the tenant registry
2. Read the event payload (JSON file, stdin, or raw text)
3. Process the transcript into a service desk ticket
4. Print the result as JSON
"""

import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

import click

from .committer import IssueLedger
from .config import AppConfig, get_config
from .errors import PipelineError
from .llm_client import CompletionClient
from .models import PipelineResult
from .pipeline import PipelineCoordinator
from .quota import YamlTenantStore
from .ticketing import TicketingClient


def setup_logging(level: str) -> None:
    """
    Configure application logging.
    
    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            # stdout carries the JSON result
            logging.StreamHandler(sys.stderr),
        ],
    )
    
    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Configuration is incomplete."""
    pass


def validate_config(config: AppConfig) -> None:
    """
    Validate configuration before running.
    
    Raises:
        ConfigurationError: If configuration is invalid.
    """
    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        raise ConfigurationError(
            f"Configuration validation failed with {len(errors)} error(s)"
        )


def load_event(event_file: Optional[Path], text: Optional[str]) -> Any:
    """Read the event payload from a JSON file, stdin ('-') or raw text."""
    if text is not None:
        return text
    if event_file is None:
        raise click.UsageError("Provide either --event or --text")
    
    raw = sys.stdin.read() if str(event_file) == "-" else event_file.read_text(encoding="utf-8")
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        # Plain-text transcript files are accepted as-is
        return raw


async def run_pipeline(
    config: AppConfig,
    tenant_id: str,
    event: Any,
    issue_key: Optional[str] = None,
) -> PipelineResult:
    """
    Process one voicemail for one tenant.
    
    Args:
        config: Application configuration.
        tenant_id: Tenant identifier in the registry.
        event: Event payload or raw transcript.
        issue_key: Existing issue to update.
    
    Returns:
        The pipeline result.
    """
    store = YamlTenantStore(config.storage.tenants_file, lock_timeout=config.storage.lock_timeout)
    tenant = store.get_tenant(tenant_id)
    if not tenant.service_desk_id:
        tenant = tenant.model_copy(update={"service_desk_id": config.ticketing.service_desk_id})
    
    ticketing_config = config.ticketing.with_overrides(
        base_url=tenant.base_url,
        email=tenant.email,
        api_token=tenant.api_token,
        service_desk_id=tenant.service_desk_id,
    )
    
    completion = CompletionClient(config.llm)
    ledger = IssueLedger(config.storage.ledger_file, lock_timeout=config.storage.lock_timeout)
    
    async with TicketingClient(ticketing_config) as ticketing:
        coordinator = PipelineCoordinator(completion, ticketing, store, ledger)
        return await coordinator.process_transcript(event, tenant, issue_key=issue_key)


@click.command()
@click.option(
    "--tenant",
    "tenant_id",
    help="Tenant identifier from the tenant registry",
)
@click.option(
    "--event",
    "event_file",
    type=click.Path(dir_okay=False, path_type=Path, allow_dash=True),
    help="Event payload JSON file ('-' for stdin)",
)
@click.option(
    "--text",
    help="Raw transcript text instead of an event payload",
)
@click.option(
    "--issue-key",
    help="Update this existing issue instead of creating a new one",
)
@click.option(
    "--tenants-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Override TENANTS_FILE",
)
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug logging",
)
@click.option(
    "--validate-only",
    is_flag=True,
    default=False,
    help="Only validate configuration without running the pipeline",
)
def main(
    tenant_id: Optional[str],
    event_file: Optional[Path],
    text: Optional[str],
    issue_key: Optional[str],
    tenants_file: Optional[Path],
    debug: bool,
    validate_only: bool,
) -> None:
    """
    Voicemail triage.
    
    Turns a voicemail transcript into a service desk ticket using
    LLM-based summarization, routing and field filling.
    """
    try:
        config = get_config()
        
        if tenants_file:
            config = replace(config, storage=replace(config.storage, tenants_file=tenants_file))
        if debug:
            config = replace(config, log_level="DEBUG")
        
        setup_logging(config.log_level)
        
        if validate_only:
            logger.info("Validating configuration...")
            validate_config(config)
            logger.info("Configuration is valid!")
            return
        
        if not tenant_id:
            raise click.UsageError("--tenant is required")
        
        validate_config(config)
        event = load_event(event_file, text)
        result = asyncio.run(run_pipeline(config, tenant_id, event, issue_key=issue_key))
        
        click.echo(result.model_dump_json(indent=2, exclude_none=True))
        if not result.success:
            sys.exit(1)
    
    except click.UsageError:
        raise
    except ConfigurationError as e:
        click.echo(f"Configuration invalid: {e}", err=True)
        sys.exit(1)
    except PipelineError as e:
        result = PipelineResult.failed(e.kind, str(e))
        click.echo(result.model_dump_json(indent=2, exclude_none=True))
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nOperation cancelled by user", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        if debug:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
