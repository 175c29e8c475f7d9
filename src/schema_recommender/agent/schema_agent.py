"""Schema Agent - control plane for the schema generation pipeline."""

import hashlib
import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional, Protocol

from ..config.loader import Config, RetryPolicy
from ..errors import (
    ProviderError,
    ProviderTimeoutError,
    SchemaGenerationError,
    SynthesisError,
)
from ..models.page_content import WebsiteProfile
from ..models.schema_result import (
    CacheEntry,
    GeneratedSchema,
    GenerationRequest,
    GenerationResult,
    ProviderStatus,
    SchemaDraft,
    ValidationResult,
)
from ..tools.classify_tool import classify_content
from ..tools.fetch_tool import ContentFetcher, build_fetcher
from ..tools.providers import SchemaProvider, build_provider_registry
from ..tools.retry import Deadline, with_retry
from ..tools.template_tool import synthesize_fallback_schema, synthesize_last_resort
from ..tools.validate_tool import accept_synthesized, review_draft

logger = logging.getLogger(__name__)


NO_PROVIDER = "none"
FALLBACK_PROVIDER = "Fallback synthesis"
PROVIDER_RETRY_BACKOFF_SECONDS = 1.0
PROVIDER_RETRY_MAX_BACKOFF_SECONDS = 5.0


class ResultCache(Protocol):
    """Storage for generation results keyed by content fingerprint."""

    def get(self, key: str) -> Optional[CacheEntry]: ...

    def set(self, key: str, entry: CacheEntry) -> None: ...

    def evict(self, key: str) -> None: ...


class InMemoryResultCache:
    """TTL cache. Expired entries are evicted when looked up."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.timestamp >= self.ttl_seconds:
                del self._entries[key]
                return None
            return entry

    def set(self, key: str, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[key] = entry

    def evict(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)


def fingerprint(url: str, text: str, profile: WebsiteProfile, text_chars: int) -> str:
    """Cache key over url, the first text_chars of text and the website profile."""
    payload = json.dumps(
        {
            "url": url,
            "text": text[:text_chars],
            "profile": profile.model_dump(by_alias=True),
        },
        sort_keys=True,
        ensure_ascii=False,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class SchemaAgent:
    """
    Schema Agent orchestrates schema generation for one page.
    Fetches content when none is given, classifies it, asks providers in
    priority order and reconciles their output into validated schemas.
    """

    def __init__(
        self,
        config: Config,
        providers: Optional[list[SchemaProvider]] = None,
        fetcher: Optional[ContentFetcher] = None,
        cache: Optional[ResultCache] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.providers = sorted(
            providers if providers is not None else build_provider_registry(config),
            key=lambda p: p.priority,
        )
        self._fetcher = fetcher
        self._clock = clock
        self.cache = cache or InMemoryResultCache(config.generation.cache_ttl_seconds, clock=clock)

    @property
    def fetcher(self) -> ContentFetcher:
        if self._fetcher is None:
            self._fetcher = build_fetcher(self.config)
        return self._fetcher

    def generate_schemas(
        self,
        url: str,
        website_profile: Optional[WebsiteProfile] = None,
        page_text: Optional[str] = None,
        existing_structured_data: Optional[list[str]] = None,
    ) -> GenerationResult:
        """
        Generate schemas for url.
        page_text=None fetches the page (FetchError propagates). Returns an
        empty list only when no candidate type was detected; otherwise at
        least one schema, or SchemaGenerationError.
        """
        gen = self.config.generation
        start = time.monotonic()
        deadline = Deadline(gen.overall_deadline_seconds)
        profile = website_profile or WebsiteProfile()

        if page_text is None:
            content = self.fetcher.fetch_page_content(url, deadline)
            page_text = content.main_text
            if existing_structured_data is None:
                existing_structured_data = list(content.existing_structured_data)
        existing = existing_structured_data or []

        key = fingerprint(url, page_text, profile, gen.fingerprint_text_chars)
        entry = self.cache.get(key)
        if entry is not None:
            logger.info("Cache hit for %s (provider: %s)", url, entry.provider)
            return self._finish(
                entry.schemas,
                entry.validation_results,
                entry.provider,
                entry.processing_time_ms,
                entry.candidate_types,
                cached=True,
            )

        candidates = classify_content(page_text, url)
        logger.info("Candidate types for %s: %s", url, candidates)

        if not candidates:
            schemas: list[GeneratedSchema] = []
            results: list[ValidationResult] = []
            provider_name = NO_PROVIDER
        else:
            request = GenerationRequest(
                url=url,
                website_profile=profile,
                main_text=page_text,
                existing_structured_data=existing,
                candidate_types=candidates,
            )
            schemas, results, provider_name = self._run_providers(request, deadline)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        self.cache.set(
            key,
            CacheEntry(
                schemas=schemas,
                provider=provider_name,
                processing_time_ms=elapsed_ms,
                validation_results=results,
                candidate_types=candidates,
                timestamp=self._clock(),
            ),
        )
        return self._finish(schemas, results, provider_name, elapsed_ms, candidates)

    def _finish(
        self,
        schemas: list[GeneratedSchema],
        results: list[ValidationResult],
        provider_name: str,
        elapsed_ms: int,
        candidates: list[str],
        cached: bool = False,
    ) -> GenerationResult:
        """Cut to max_schemas, keeping a valid schema in the output when there is one."""
        limit = self.config.generation.max_schemas
        kept_schemas, kept_results = list(schemas[:limit]), list(results[:limit])
        if kept_schemas and not any(s.is_valid for s in kept_schemas):
            for i, schema in enumerate(schemas[limit:], start=limit):
                if schema.is_valid:
                    kept_schemas[-1], kept_results[-1] = schema, results[i]
                    break
        return GenerationResult(
            schemas=kept_schemas,
            provider=provider_name,
            processing_time_ms=elapsed_ms,
            validation_results=kept_results,
            candidate_types=candidates,
            cached=cached,
        )

    def _call_provider(
        self, provider: SchemaProvider, request: GenerationRequest, deadline: Deadline
    ) -> list[SchemaDraft]:
        """Run provider.generate in a worker thread and stop waiting at its timeout."""
        timeout = deadline.bound(provider.timeout_seconds)
        if timeout <= 0:
            raise ProviderTimeoutError(f"{provider.name}: no time left before the deadline")

        policy = RetryPolicy(
            max_attempts=max(provider.retries, 1),
            backoff_seconds=PROVIDER_RETRY_BACKOFF_SECONDS,
            max_backoff_seconds=PROVIDER_RETRY_MAX_BACKOFF_SECONDS,
        )
        provider_deadline = Deadline(timeout)
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="provider")
        try:
            future = executor.submit(
                with_retry,
                policy,
                lambda: provider.generate(request),
                retry_on=(ProviderError,),
                deadline=provider_deadline,
            )
            try:
                return future.result(timeout=timeout)
            except FutureTimeoutError:
                future.cancel()
                raise ProviderTimeoutError(
                    f"{provider.name} timed out after {timeout:.3f}s"
                ) from None
        finally:
            # Do not join a worker that is still blocked in the provider
            executor.shutdown(wait=False)

    def _review(
        self, drafts: list[SchemaDraft], request: GenerationRequest
    ) -> tuple[list[GeneratedSchema], list[ValidationResult]]:
        schemas: list[GeneratedSchema] = []
        results: list[ValidationResult] = []
        for draft in drafts[: request.expected_count]:
            schema, result = review_draft(draft, request.target_types)
            schemas.append(schema)
            results.append(result)

        if not any(s.is_valid for s in schemas):
            top = request.candidate_types[0]
            logger.warning("No valid schema from provider, synthesizing %s", top)
            try:
                fallback = synthesize_fallback_schema(top, request.main_text, request.website_profile)
            except SynthesisError as e:
                logger.warning("Could not synthesize %s: %s", top, e)
            else:
                schema, result = accept_synthesized(
                    top, fallback, f"Minimal {top} schema built from the page text"
                )
                schemas.append(schema)
                results.append(result)
        return schemas, results

    def _run_providers(
        self, request: GenerationRequest, deadline: Deadline
    ) -> tuple[list[GeneratedSchema], list[ValidationResult], str]:
        last_error: Optional[BaseException] = None

        for provider in self.providers:
            if deadline.expired():
                logger.warning("Overall deadline reached, skipping remaining providers")
                last_error = last_error or ProviderTimeoutError("Overall deadline reached")
                break
            if not provider.is_available():
                logger.debug("Skipping %s: not configured", provider.name)
                continue

            logger.info("Generating schemas for %s with %s", request.url, provider.name)
            try:
                drafts = self._call_provider(provider, request, deadline)
            except ProviderError as e:
                logger.warning("%s failed: %s", provider.name, e)
                last_error = e
                continue
            except Exception as e:
                logger.exception("%s raised an unexpected error: %s", provider.name, e)
                last_error = e
                continue

            if not drafts:
                logger.warning("%s returned no schemas", provider.name)
                last_error = ProviderError(f"{provider.name} returned no schemas")
                continue

            schemas, results = self._review(drafts, request)
            logger.info(
                "%s produced %d schemas (%d valid)",
                provider.name, len(schemas), sum(s.is_valid for s in schemas),
            )
            return schemas, results, provider.name

        if not self.config.generation.enable_fallback:
            raise SchemaGenerationError(last_error)

        logger.warning("All providers failed for %s, using last-resort synthesis", request.url)
        try:
            schema_dict = synthesize_last_resort(request.main_text, request.website_profile)
        except SynthesisError as e:
            logger.error("Last-resort synthesis failed: %s", e)
            raise SchemaGenerationError(last_error) from e

        schema, result = accept_synthesized(
            "BlogPosting", schema_dict, "Fallback BlogPosting schema built from the page text"
        )
        return [schema], [result], FALLBACK_PROVIDER

    def test_providers(self) -> list[ProviderStatus]:
        """Probe every provider with a minimal request."""
        probe = GenerationRequest(
            url="https://example.com",
            main_text="Test content\nA short page used to check provider availability.",
            candidate_types=["BlogPosting"],
        )
        statuses: list[ProviderStatus] = []
        for provider in self.providers:
            status = ProviderStatus(
                name=provider.name,
                priority=provider.priority,
                available=provider.is_available(),
            )
            if status.available:
                try:
                    drafts = self._call_provider(provider, probe, Deadline.never())
                    status.working = bool(drafts)
                    if not drafts:
                        status.error = "No schemas returned"
                except Exception as e:
                    status.error = f"{type(e).__name__}: {e}"
            else:
                status.error = "Not configured"
            statuses.append(status)
        return statuses
