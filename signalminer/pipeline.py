import asyncio
import dataclasses
import functools
import logging
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .analyzers.base import (
    AnalysisItem,
    Entity,
    InsightResult,
    LanguageResult,
    SentimentResult,
    TopicResult,
)
from .analyzers.entities import EntityExtractor, deduplicate
from .analyzers.insights import PainPointExtractor
from .analyzers.language import LanguageIdentifier
from .analyzers.normalizer import TextNormalizer
from .analyzers.sentiment import DEFAULT_LANGUAGE, SentimentAnalyzer
from .analyzers.topics import TopicExtractor
from .backends import get_entity_backend, get_translator
from .batch import BatchRunner, is_failure
from .config import PipelineOptions
from .errors import ConfigurationError, ExternalCapabilityError, InvalidInput
from .sources import extract_items
from .storage import JsonSourceStore, ResultStore, SourceResultStore, get_result_store

logger = logging.getLogger(__name__)

RECEIVED = "received"
NORMALIZED = "normalized"
LANGUAGE_RESOLVED = "language_resolved"
ENTITIES_EXTRACTED = "entities_extracted"
SENTIMENT_SCORED = "sentiment_scored"
TOPICS_EXTRACTED = "topics_extracted"
INSIGHTS_EXTRACTED = "insights_extracted"
PERSISTED = "persisted"


@dataclass(frozen=True)
class ProcessingMetadata:
    processed_at: str
    duration_ms: float
    stages: Tuple[str, ...]
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AnalysisResult:
    result_id: str
    original_text: str
    cleaned_text: str
    language: LanguageResult
    entities: Tuple[Entity, ...]
    sentiment: SentimentResult
    topics: Optional[TopicResult]
    item: AnalysisItem
    metadata: ProcessingMetadata
    insights: Optional[InsightResult] = None
    persisted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result_id": self.result_id,
            "original_text": self.original_text,
            "cleaned_text": self.cleaned_text,
            "language": self.language.to_dict(),
            "entities": [e.to_dict() for e in self.entities],
            "sentiment": self.sentiment.to_dict(),
            "topics": self.topics.to_dict() if self.topics is not None else None,
            "item": self.item.to_dict(),
            "insights": self.insights.to_dict() if self.insights is not None else None,
            "metadata": dataclasses.asdict(self.metadata),
            "persisted": self.persisted,
        }


@dataclass(frozen=True)
class CollectionSummary:
    job_id: str
    project_id: Optional[str]
    source_count: int
    fragment_count: int
    processed_count: int
    failed_count: int
    linked_count: int
    results: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in dataclasses.fields(self) if f.name != "results"}
        data["results"] = [r.to_dict() for r in self.results]
        return data


class Pipeline:
    """
    signalminer analysis pipeline.

    Stages per item:
      1. Normalize : raw text to cleaned text via TextNormalizer
      2. Language  : detection and optional translation via LanguageIdentifier
      3. Entities  : pattern, gazetteer and optional external entities
      4. Sentiment : context aware lexicon scoring via SentimentAnalyzer
      5. Topics    : topic tables and n-grams (perform_topic_modeling only)
      6. Insights  : pain points and desires (extract_insights only)
      7. Persist   : ResultStore.save (save_results only)

    Every stage runs for every item; empty input produces placeholders
    rather than skipping a stage. Language detection reads the normalized
    text; entities, sentiment, topics and insights read the processed text
    (the normalized text, or its translation with use_translated_text), so
    entity offsets point into that text.

    Usage:
        p = Pipeline.from_config(load_config())
        results = p.run(["Great phone, fast shipping!"])

    Translation, external entity extraction and store calls run in the
    loop's default executor; everything else is in-process.
    """

    def __init__(
        self,
        normalizer: Optional[TextNormalizer] = None,
        language_identifier: Optional[LanguageIdentifier] = None,
        entity_extractor: Optional[EntityExtractor] = None,
        sentiment_analyzer: Optional[SentimentAnalyzer] = None,
        topic_extractor: Optional[TopicExtractor] = None,
        insight_extractor: Optional[PainPointExtractor] = None,
        batch_runner: Optional[BatchRunner] = None,
        result_store: Optional[ResultStore] = None,
        source_store: Optional[SourceResultStore] = None,
        options: Optional[PipelineOptions] = None,
    ):
        self.options = options or PipelineOptions()
        self.normalizer = normalizer or TextNormalizer()
        self.language_identifier = language_identifier or LanguageIdentifier()
        self.entity_extractor = entity_extractor or EntityExtractor()
        self.sentiment_analyzer = sentiment_analyzer or SentimentAnalyzer()
        self.topic_extractor = topic_extractor or TopicExtractor(self.normalizer)
        self.insight_extractor = insight_extractor or PainPointExtractor(
            self.sentiment_analyzer, self.normalizer, self.language_identifier
        )
        self.batch_runner = batch_runner or BatchRunner(self.options.batch)
        self.result_store = result_store
        self.source_store = source_store

    @classmethod
    def from_config(cls, config: Dict[str, Any], **overrides) -> "Pipeline":
        """Build a pipeline with default components from a load_config() dict."""
        language_config = config.get("language", {})
        entity_config = config.get("entities", {})
        storage_config = config.get("storage", {})

        try:
            translator = get_translator(language_config.get("translator", "passthrough"))
            backend = None
            if entity_config.get("backend"):
                backend = get_entity_backend(
                    entity_config["backend"], entity_config.get("backend_config")
                )
            result_store = None
            if storage_config.get("results"):
                result_store = get_result_store(storage_config["results"], storage_config)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        source_store = None
        if storage_config.get("source_dir"):
            source_store = JsonSourceStore(storage_config["source_dir"])

        options = PipelineOptions.from_config(config)
        components = dict(
            language_identifier=LanguageIdentifier(
                translator=translator, min_tokens=language_config.get("min_tokens", 3)
            ),
            entity_extractor=EntityExtractor(backend=backend),
            batch_runner=BatchRunner(options.batch),
            result_store=result_store,
            source_store=source_store,
            options=options,
        )
        components.update(overrides)
        return cls(**components)

    async def process_one(self, item, options: Optional[PipelineOptions] = None) -> AnalysisResult:
        """
        Analyze a single item (an AnalysisItem or a plain string).

        Raises InvalidInput for non-text items, UnsupportedLanguage for an
        unknown translate_to target, and ExternalCapabilityError when
        persistence is required and the store fails.
        """
        options = options or self.options
        item = self._as_item(item)
        loop = asyncio.get_running_loop()
        started = time.perf_counter()
        stages: List[str] = [RECEIVED]
        text = item.text

        cleaned = self.normalizer.normalize(text, options.normalize)
        stages.append(NORMALIZED)

        if options.translate_to:
            language = await loop.run_in_executor(
                None,
                self.language_identifier.resolve,
                cleaned,
                options.translate_to,
                options.use_translated_text,
            )
        else:
            language = self.language_identifier.resolve(cleaned)
        stages.append(LANGUAGE_RESOLVED)
        processed = language.processed_text

        entities = self.entity_extractor.extract_builtin(processed) if processed else []
        if processed and self.entity_extractor.backend is not None:
            external = await loop.run_in_executor(
                None, self.entity_extractor.extract_external, processed
            )
            entities.extend(external)
        entities = deduplicate(entities)
        stages.append(ENTITIES_EXTRACTED)

        sentiment = self.sentiment_analyzer.analyze(
            processed,
            language=self._sentiment_language(language, options),
            domain=options.domain,
        )
        stages.append(SENTIMENT_SCORED)

        topics = None
        if options.perform_topic_modeling:
            topics = self.topic_extractor.extract_topics(processed, options.domain)
            stages.append(TOPICS_EXTRACTED)

        insights = None
        if options.extract_insights:
            insights = self.insight_extractor.extract(
                processed, language=sentiment.language, domain=options.domain or sentiment.domain
            )
            stages.append(INSIGHTS_EXTRACTED)

        result = AnalysisResult(
            result_id=str(uuid.uuid4()),
            original_text=text,
            cleaned_text=cleaned,
            language=language,
            entities=tuple(entities),
            sentiment=sentiment,
            topics=topics,
            insights=insights,
            item=item,
            metadata=ProcessingMetadata(
                processed_at=datetime.now(timezone.utc).isoformat(),
                duration_ms=round((time.perf_counter() - started) * 1000, 3),
                stages=tuple(stages),
                options=options.to_dict(),
            ),
        )
        logger.debug(
            f"Processed item {item.source_id or result.result_id}: "
            f"{language.language}, {sentiment.label} ({sentiment.score}), {len(entities)} entities"
        )

        if options.save_results:
            result = await self._persist(result, options)
        return result

    def _as_item(self, item) -> AnalysisItem:
        if isinstance(item, str):
            return AnalysisItem(text=item)
        if isinstance(item, AnalysisItem) and isinstance(item.text, str):
            return item
        raise InvalidInput(f"Cannot analyze {type(getattr(item, 'text', item)).__name__}, expected text")

    def _sentiment_language(self, language: LanguageResult, options: PipelineOptions) -> str:
        if options.language:
            return options.language
        if options.use_translated_text and language.translated_text is not None:
            return options.translate_to
        if language.language in self.sentiment_analyzer.lexicons:
            return language.language
        return DEFAULT_LANGUAGE

    async def _persist(self, result: AnalysisResult, options: PipelineOptions) -> AnalysisResult:
        if self.result_store is None:
            logger.debug("No result store configured, keeping result in memory")
            return result

        loop = asyncio.get_running_loop()
        metadata = dataclasses.replace(result.metadata, stages=result.metadata.stages + (PERSISTED,))
        persisted = dataclasses.replace(result, persisted=True, metadata=metadata)
        try:
            stored_id = await loop.run_in_executor(None, self.result_store.save, persisted)
        except Exception as e:
            if options.persistence_required:
                raise ExternalCapabilityError(self.result_store.name, str(e)) from e
            logger.warning(f"Could not save result {result.result_id}: {e}")
            return result

        if stored_id and stored_id != persisted.result_id:
            persisted = dataclasses.replace(persisted, result_id=stored_id)
        return persisted

    async def process_batch(
        self,
        items: Sequence[Any],
        options: Optional[PipelineOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[Any]:
        """
        Run process_one over items through the batch runner.

        Returns one entry per item, in input order: an AnalysisResult, or
        an ItemFailure for items that raised.
        """
        options = options or self.options
        processor = functools.partial(self.process_one, options=options)
        return await self.batch_runner.run(items, processor, options.batch, cancel_event)

    async def process_source_collection(
        self, job_id: str, options: Optional[PipelineOptions] = None
    ) -> CollectionSummary:
        """
        Fetch the source results of a collection job, analyze every text
        fragment they contain, and link the created results back to their
        source results.
        """
        if self.source_store is None:
            raise ConfigurationError("No source result store configured")

        options = options or self.options
        if self.result_store is not None and not options.save_results:
            options = dataclasses.replace(options, save_results=True)

        loop = asyncio.get_running_loop()
        sources = await loop.run_in_executor(None, self.source_store.fetch_results_for_job, job_id)
        if not sources:
            logger.warning(f"No source results found for job {job_id}")
            return CollectionSummary(
                job_id=job_id,
                project_id=options.project_id,
                source_count=0,
                fragment_count=0,
                processed_count=0,
                failed_count=0,
                linked_count=0,
            )

        items = extract_items(sources)
        logger.info(f"Job {job_id}: {len(sources)} source result(s), {len(items)} fragment(s)")

        results = await self.process_batch(items, options)
        failed = sum(1 for r in results if is_failure(r))
        linked = await self._link(results, options)

        logger.info(
            f"Job {job_id} done: {len(results) - failed} processed, {failed} failed, {linked} linked"
        )
        return CollectionSummary(
            job_id=job_id,
            project_id=options.project_id,
            source_count=len(sources),
            fragment_count=len(items),
            processed_count=len(results) - failed,
            failed_count=failed,
            linked_count=linked,
            results=results,
        )

    async def _link(self, results: List[Any], options: PipelineOptions) -> int:
        if self.result_store is None:
            return 0

        groups: Dict[str, List[str]] = defaultdict(list)
        for result in results:
            if is_failure(result) or not result.persisted:
                continue
            if result.item.source_result_id is not None:
                groups[result.item.source_result_id].append(result.result_id)

        loop = asyncio.get_running_loop()
        linked = 0
        for source_result_id, result_ids in groups.items():
            try:
                await loop.run_in_executor(
                    None, self.result_store.link_results, source_result_id, result_ids
                )
            except Exception as e:
                if options.persistence_required:
                    raise ExternalCapabilityError(self.result_store.name, str(e)) from e
                logger.warning(f"Could not link results to source result {source_result_id}: {e}")
                continue
            linked += len(result_ids)
        return linked

    def run(self, items: Sequence[Any], options: Optional[PipelineOptions] = None) -> List[Any]:
        """Synchronous wrapper for process_batch()."""
        return asyncio.run(self.process_batch(items, options))
