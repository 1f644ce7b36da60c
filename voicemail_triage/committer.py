"""
Ticket commit and issue bookkeeping.

TicketCommitter turns a synthesized ticket into a service desk create or
update call. IssueLedger remembers which issue belongs to which external
conversation so a re-delivered event updates its ticket instead of
creating a second one.
"""

import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml
from filelock import FileLock, Timeout

from .errors import StorageError
from .models import Priority, RequestType
from .quota import DEFAULT_LOCK_TIMEOUT
from .ticketing import TicketingClient


logger = logging.getLogger(__name__)


class TicketCommitter:
    """Issue create/update calls for one service desk."""
    
    def __init__(self, ticketing: TicketingClient, service_desk_id: str):
        self._ticketing = ticketing
        self._service_desk_id = service_desk_id
    
    @staticmethod
    def request_field_values(
        request_type: RequestType,
        field_values: dict[str, Any],
        priority: Priority,
    ) -> dict[str, Any]:
        """Field values sent on create, with priority set when the type declares it."""
        values = dict(field_values)
        if request_type.find_field("priority") is not None:
            values["priority"] = {"name": priority.value}
        return values
    
    async def create(
        self,
        request_type: RequestType,
        field_values: dict[str, Any],
        priority: Priority,
    ) -> str:
        """
        Create a new request.
        
        Returns:
            The issue key assigned by the service desk.
        
        Raises:
            TicketingServiceError: If the service desk rejects the call.
        """
        return await self._ticketing.create_request(
            self._service_desk_id,
            request_type.id,
            self.request_field_values(request_type, field_values, priority),
        )
    
    async def update(self, issue_key: str, summary: str, description: str) -> str:
        """
        Re-target an existing issue with a new summary and description.
        
        Raises:
            TicketingServiceError: If the service desk rejects the call.
        """
        await self._ticketing.update_request(issue_key, summary, description)
        return issue_key


class IssueLedger:
    """
    Mapping of (tenant, conversation) to issue key.
    
    Kept in memory and, when a path is given, mirrored to a YAML file that
    other processes may share. Lookups re-read the file; records merge into
    the current file contents under ``<file>.lock``.
    """
    
    def __init__(self, path: Optional[Path] = None, lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
        self._path = Path(path) if path else None
        self._entries: dict[str, dict[str, str]] = {}
        self._lock: Optional[FileLock] = None
        if self._path:
            self._lock = FileLock(
                str(self._path.with_name(f"{self._path.name}.lock")),
                timeout=lock_timeout,
                thread_local=False,
            )
            with self._locked():
                self._reload()
            logger.debug(f"Loaded issue ledger from {self._path}")
    
    @contextmanager
    def _locked(self) -> Iterator[None]:
        try:
            self._lock.acquire()
        except Timeout as e:
            raise StorageError(f"Timed out waiting for lock on {self._path}") from e
        try:
            yield
        finally:
            self._lock.release()
    
    def _reload(self) -> None:
        if not self._path.exists():
            return
        try:
            with self._path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise StorageError(f"Could not read issue ledger {self._path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Issue ledger {self._path} is not a mapping")
        
        for tenant, issues in data.items():
            tenant_entries = self._entries.setdefault(str(tenant), {})
            tenant_entries.update({str(k): str(v) for k, v in (issues or {}).items()})
    
    def _write(self) -> None:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            delete=False,
            dir=self._path.parent,
            prefix=f".{self._path.name}.tmp.",
        ) as tmp_file:
            yaml.safe_dump(self._entries, tmp_file, sort_keys=True)
            tmp_path = tmp_file.name
        
        try:
            os.replace(tmp_path, self._path)
        except OSError:
            os.unlink(tmp_path)
            raise
    
    def lookup(self, tenant_id: str, conversation_id: Optional[str]) -> Optional[str]:
        if not conversation_id:
            return None
        if self._path:
            with self._locked():
                self._reload()
        return self._entries.get(tenant_id, {}).get(conversation_id)
    
    def record(self, tenant_id: str, conversation_id: Optional[str], issue_key: str) -> None:
        """
        Remember the issue for a conversation.
        
        Raises:
            StorageError: If the ledger file could not be updated.
        """
        if not conversation_id:
            return
        if not self._path:
            self._entries.setdefault(tenant_id, {})[conversation_id] = issue_key
            return
        
        with self._locked():
            self._reload()
            tenant_entries = self._entries.setdefault(tenant_id, {})
            if tenant_entries.get(conversation_id) == issue_key:
                return
            tenant_entries[conversation_id] = issue_key
            try:
                self._write()
            except OSError as e:
                raise StorageError(f"Could not write issue ledger {self._path}: {e}") from e
        
        logger.info(f"Recorded issue {issue_key} for conversation {conversation_id}")
