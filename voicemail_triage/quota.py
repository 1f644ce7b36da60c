"""
Per-tenant ticket quota.

Stores own the TenantQuota records and the per-tenant locks; QuotaGuard is
the per-run view the pipeline uses to check the ceiling before a create
and to consume one unit after it.
"""

import asyncio
import logging
import os
import tempfile
from collections import defaultdict
from contextlib import asynccontextmanager, contextmanager, nullcontext
from pathlib import Path
from typing import AsyncIterator, Iterator, Optional

import yaml
from filelock import FileLock, Timeout

from .errors import PipelineError, QuotaRaceError, StorageError
from .models import TenantContext, TenantQuota


logger = logging.getLogger(__name__)


DEFAULT_LOCK_TIMEOUT = 30.0


class TenantNotFoundError(PipelineError):
    """The tenant is not known to the store."""
    pass


class QuotaStore:
    """
    Base class for quota stores.
    
    Subclasses implement ``_load`` and ``_save``. Reads and the conditional
    increment run inside ``_exclusive()``; ``hold()`` serializes a whole
    check, commit and increment window for one tenant.
    """
    
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
    
    def lock_for(self, tenant_id: str) -> asyncio.Lock:
        """In-process lock serializing quota-consuming work for one tenant."""
        return self._locks[tenant_id]
    
    @asynccontextmanager
    async def hold(self, tenant_id: str) -> AsyncIterator[None]:
        async with self.lock_for(tenant_id):
            yield
    
    def _exclusive(self):
        return nullcontext()
    
    def _load(self, tenant_id: str) -> TenantQuota:
        raise NotImplementedError
    
    def _save(self, tenant_id: str, quota: TenantQuota) -> None:
        raise NotImplementedError
    
    async def get(self, tenant_id: str) -> TenantQuota:
        with self._exclusive():
            return self._load(tenant_id)
    
    async def increment_atomically(self, tenant_id: str) -> TenantQuota:
        """
        Add one used ticket if the tenant is still under its ceiling.
        
        Raises:
            QuotaRaceError: If the ceiling was reached in the meantime.
            StorageError: If the new count could not be persisted.
        """
        with self._exclusive():
            current = self._load(tenant_id)
            if not current.can_create():
                raise QuotaRaceError(
                    f"Tenant {tenant_id} reached {current.max_tickets} tickets before increment"
                )
            updated = current.model_copy(update={"tickets_used": current.tickets_used + 1})
            try:
                self._save(tenant_id, updated)
            except OSError as e:
                raise StorageError(f"Could not persist quota for tenant {tenant_id}: {e}") from e
        
        logger.debug(
            f"Tenant {tenant_id} quota: {updated.tickets_used}/{updated.max_tickets}"
        )
        return updated


class InMemoryQuotaStore(QuotaStore):
    """Quota store kept in process memory."""
    
    def __init__(self, quotas: Optional[dict[str, TenantQuota]] = None):
        super().__init__()
        self._quotas: dict[str, TenantQuota] = dict(quotas or {})
    
    def _load(self, tenant_id: str) -> TenantQuota:
        try:
            return self._quotas[tenant_id]
        except KeyError:
            raise TenantNotFoundError(f"Unknown tenant: {tenant_id}") from None
    
    def _save(self, tenant_id: str, quota: TenantQuota) -> None:
        self._quotas[tenant_id] = quota


class YamlTenantStore(QuotaStore):
    """
    Tenant registry backed by a YAML file shared between processes.
    
    Expected layout::
    
        tenants:
          - id: acme
            name: Acme Corp
            service_desk_id: "2"
            subscription:
              max_tickets: 100
              tickets_used: 0
    
    Every quota read and increment re-reads the file under ``<file>.lock``.
    Counters are written back through a temporary file and ``os.replace``.
    ``hold()`` additionally takes ``<file>.<tenant>.lock`` so runs in other
    processes wait for the tenant's create to finish.
    """
    
    def __init__(self, path: Path, lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
        super().__init__()
        self._path = Path(path)
        self._lock_timeout = lock_timeout
        self._registry_lock = FileLock(
            str(self._lock_path("lock")), timeout=lock_timeout, thread_local=False
        )
        self._document: dict = {}
        self._tenants: dict[str, dict] = {}
        with self._exclusive():
            self._reload()
        logger.info(f"Loaded {len(self._tenants)} tenants from {self._path}")
    
    def _lock_path(self, suffix: str) -> Path:
        return self._path.with_name(f"{self._path.name}.{suffix}")
    
    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        try:
            self._registry_lock.acquire()
        except Timeout as e:
            raise StorageError(f"Timed out waiting for lock on {self._path}") from e
        try:
            yield
        finally:
            self._registry_lock.release()
    
    @asynccontextmanager
    async def hold(self, tenant_id: str) -> AsyncIterator[None]:
        async with self.lock_for(tenant_id):
            tenant_lock = FileLock(
                str(self._lock_path(f"{tenant_id}.lock")),
                timeout=self._lock_timeout,
                thread_local=False,
            )
            try:
                await asyncio.to_thread(tenant_lock.acquire)
            except Timeout as e:
                raise StorageError(
                    f"Timed out waiting for quota lock of tenant {tenant_id}"
                ) from e
            try:
                yield
            finally:
                tenant_lock.release()
    
    def _reload(self) -> None:
        try:
            with self._path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise StorageError(f"Could not read tenant registry {self._path}: {e}") from e
        
        self._document = data if isinstance(data, dict) else {}
        entries = self._document.get("tenants") or []
        self._tenants = {}
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("id"):
                logger.warning(f"Skipping malformed tenant entry: {entry!r}")
                continue
            self._tenants[str(entry["id"])] = entry
    
    def _write(self) -> None:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            delete=False,
            dir=self._path.parent,
            prefix=f".{self._path.name}.tmp.",
        ) as tmp_file:
            yaml.safe_dump(self._document, tmp_file, sort_keys=False)
            tmp_path = tmp_file.name
        
        try:
            os.replace(tmp_path, self._path)
        except OSError:
            os.unlink(tmp_path)
            raise
    
    def _entry(self, tenant_id: str) -> dict:
        try:
            return self._tenants[tenant_id]
        except KeyError:
            raise TenantNotFoundError(f"Unknown tenant: {tenant_id}") from None
    
    def get_tenant(self, tenant_id: str) -> TenantContext:
        entry = self._entry(tenant_id)
        return TenantContext(
            tenant_id=tenant_id,
            name=entry.get("name", ""),
            service_desk_id=entry.get("service_desk_id", ""),
            base_url=entry.get("base_url"),
            email=entry.get("email"),
            api_token=entry.get("api_token"),
        )
    
    def _load(self, tenant_id: str) -> TenantQuota:
        self._reload()
        subscription = self._entry(tenant_id).get("subscription") or {}
        return TenantQuota(
            tickets_used=int(subscription.get("tickets_used", 0)),
            max_tickets=int(subscription.get("max_tickets", 100)),
        )
    
    def _save(self, tenant_id: str, quota: TenantQuota) -> None:
        entry = self._entry(tenant_id)
        subscription = dict(entry.get("subscription") or {})
        subscription["tickets_used"] = quota.tickets_used
        subscription["max_tickets"] = quota.max_tickets
        entry["subscription"] = subscription
        self._write()


class QuotaGuard:
    """
    Per-run quota gate for one tenant.
    
    ``can_create`` is a pure predicate over the last loaded quota.
    ``increment`` may run at most once per guard, after a successful create.
    """
    
    def __init__(self, store: QuotaStore, tenant_id: str):
        self._store = store
        self._tenant_id = tenant_id
        self._quota: Optional[TenantQuota] = None
        self._incremented = False
    
    @property
    def quota(self) -> Optional[TenantQuota]:
        return self._quota
    
    @property
    def incremented(self) -> bool:
        return self._incremented
    
    @asynccontextmanager
    async def hold(self) -> AsyncIterator["QuotaGuard"]:
        """Serialize the check, commit and increment window for the tenant."""
        async with self._store.hold(self._tenant_id):
            yield self
    
    async def load(self) -> TenantQuota:
        self._quota = await self._store.get(self._tenant_id)
        return self._quota
    
    def can_create(self) -> bool:
        if self._quota is None:
            raise RuntimeError("Quota must be loaded before it is checked")
        return self._quota.can_create()
    
    async def increment(self) -> TenantQuota:
        """
        Consume one ticket of quota.
        
        Raises:
            RuntimeError: If called a second time for the same run.
            QuotaRaceError: If the store refuses the conditional increment.
            StorageError: If the store could not persist the new count.
        """
        if self._incremented:
            raise RuntimeError(f"Quota already incremented for tenant {self._tenant_id}")
        self._incremented = True
        self._quota = await self._store.increment_atomically(self._tenant_id)
        return self._quota
