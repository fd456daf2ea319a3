"""The explicit handle every operation receives.

A ``SyncContext`` owns the settings, the metadata database, the SSOT store
and the shared HTTP client. Build one at startup and close it at shutdown::

    async with SyncContext(Settings.load()) as ctx:
        engine = ctx.engine("command")
        await engine.discover()
"""

from __future__ import annotations

import logging

import httpx

from cfgsync import __version__
from cfgsync.config import Settings
from cfgsync.kinds import KindDescriptor, descriptor_for
from cfgsync.models import RateLimitInfo, ResourceKind
from cfgsync.registry.repos import RepoRegistry
from cfgsync.remote.fetcher import RepositoryFetcher
from cfgsync.remote.github import TOKEN_SETTING, GitHubApi, mask_token
from cfgsync.store.database import Database
from cfgsync.store.ssot import SsotStore

logger = logging.getLogger(__name__)

USER_AGENT = f"cfgsync/{__version__}"


class SyncContext:
    """Shared state for one process: store handles and network client."""

    def __init__(
        self,
        settings: Settings | None = None,
        db: Database | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings or Settings.load()
        self.db = db or Database(self.settings.database_path)
        self.ssot = SsotStore(self.settings.data_root)
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT}, follow_redirects=True
        )
        self.api = GitHubApi(self.client, self.settings, token=self.github_token)
        self.fetcher = RepositoryFetcher(self.client, self.settings)
        self.repos = RepoRegistry(self.db)
        self._engines: dict[ResourceKind, object] = {}

    async def __aenter__(self) -> SyncContext:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
        self.db.close()

    def engine(self, kind: ResourceKind | str | KindDescriptor):
        """The ``ResourceEngine`` for one kind (created on first use)."""
        from cfgsync.sync.engine import ResourceEngine

        descriptor = kind if isinstance(kind, KindDescriptor) else descriptor_for(kind)
        if descriptor.kind not in self._engines:
            self._engines[descriptor.kind] = ResourceEngine(self, descriptor)
        return self._engines[descriptor.kind]

    # -- GitHub token ---------------------------------------------------------

    @property
    def github_token(self) -> str:
        return self.settings.github_token or self.db.get_setting(TOKEN_SETTING) or ""

    def set_token(self, token: str | None) -> None:
        """Store (or clear, with an empty value) the GitHub token."""
        if token:
            self.db.set_setting(TOKEN_SETTING, token)
        else:
            self.db.delete_setting(TOKEN_SETTING)
        self.api.token = self.github_token

    def masked_token(self) -> str:
        return mask_token(self.github_token)

    async def validate_token(self, token: str | None = None) -> RateLimitInfo:
        return await self.api.validate_token(token if token is not None else self.github_token)
