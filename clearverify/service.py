"""Process-level wiring for the verification core.

``build_verifier`` creates the shared collaborators (HTTP client, credential
broker, adapters, result cache and signer) and hands them to a
``FallbackOrchestrator``. The returned ``Verifier`` owns their lifecycle:
the cache sweeper starts on creation, and ``close`` stops it, forgets
cached credentials and closes the HTTP client.
"""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

import httpx

from . import config
from .adapters import EDITransport, build_adapters
from .auth import CredentialBroker
from .cache import ResultCache
from .models import EligibilityQuery, VerificationOutcome
from .orchestrator import FallbackOrchestrator
from .providers import ProviderDirectory, default_directory
from .signing import HMACSigner, Signer

logger = logging.getLogger(__name__)


class Verifier:
    """Running verification core. Use as a context manager."""

    def __init__(
        self,
        orchestrator: FallbackOrchestrator,
        broker: CredentialBroker,
        cache: ResultCache,
        client: httpx.Client,
    ) -> None:
        self.orchestrator = orchestrator
        self.broker = broker
        self.cache = cache
        self.client = client
        self._closed = False

    @property
    def directory(self) -> ProviderDirectory:
        return self.orchestrator.directory

    def verify(self, query: EligibilityQuery) -> VerificationOutcome:
        return self.orchestrator.verify(query)

    def verify_batch(
        self,
        queries: Sequence[EligibilityQuery],
        max_workers: int = config.BATCH_WORKERS,
    ) -> list[VerificationOutcome]:
        return self.orchestrator.verify_batch(queries, max_workers)

    def close(self) -> None:
        if self._closed:
            return
        self.cache.shutdown()
        self.cache.clear()
        self.broker.clear()
        self.client.close()
        self._closed = True
        logger.info("Verifier closed")

    def __enter__(self) -> "Verifier":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def build_verifier(
    directory: ProviderDirectory | None = None,
    secrets: Mapping[str, str] | None = None,
    signer: Signer | None = None,
    client: httpx.Client | None = None,
    edi_transport: EDITransport | None = None,
    cache: ResultCache | None = None,
    start_sweeper: bool = True,
) -> Verifier:
    """Wire a verifier from defaults and environment configuration.

    Args:
        directory: Provider profiles (bundled providers.yaml if omitted)
        secrets: Credential source (os.environ if omitted)
        signer: Integrity signer (HMACSigner from CLEARVERIFY_SIGNING_KEY if omitted)
        client: Shared HTTP client (created if omitted)
        edi_transport: X12 delivery channel (HTTPS if omitted)
        cache: Result cache (created with configured TTL if omitted)
        start_sweeper: Start the background cache sweep job

    Raises:
        ValueError: If no signer is given and the signing key is not set
        ProviderConfigError: If the provider table is invalid
    """
    if directory is None:
        directory = default_directory()
    signer = signer or HMACSigner.from_env()
    client = client or httpx.Client(
        timeout=httpx.Timeout(config.REQUEST_TIMEOUT, connect=10.0),
        follow_redirects=True,
    )

    broker = CredentialBroker(secrets=secrets, client=client)
    adapters = build_adapters(broker, client, edi_transport=edi_transport)
    if cache is None:
        cache = ResultCache()
    if start_sweeper:
        cache.start()

    orchestrator = FallbackOrchestrator(
        directory=directory,
        adapters=adapters,
        cache=cache,
        signer=signer,
    )
    logger.info(f"Verifier ready with {len(directory)} providers")
    return Verifier(orchestrator, broker, cache, client)
