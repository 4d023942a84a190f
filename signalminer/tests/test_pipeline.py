import asyncio
import dataclasses

import pytest

from signalminer.backends import BaseEntityBackend, BaseTranslator
from signalminer.config import BatchOptions, PipelineOptions
from signalminer.storage import InMemoryResultStore, InMemorySourceStore

BASE_STAGES = (
    "received",
    "normalized",
    "language_resolved",
    "entities_extracted",
    "sentiment_scored",
)

FAST = BatchOptions(rate_limit=None)


class DutchTranslator(BaseTranslator):
    name = "dutch"

    @classmethod
    def is_available(cls) -> bool:
        return True

    def translate(self, text, source, target):
        return "Dit product is niet goed"


class FailingStore(InMemoryResultStore):
    name = "failing"

    def save(self, result):
        raise IOError("disk full")


class FailingLinkStore(InMemoryResultStore):
    name = "failing-links"

    def link_results(self, source_result_id, result_ids):
        raise IOError("links unavailable")


class BrandBackend(BaseEntityBackend):
    name = "brands"

    @classmethod
    def is_available(cls) -> bool:
        return True

    def extract(self, text):
        brand = self.config.get("brand", "")
        start = text.find(brand) if brand else -1
        if start < 0:
            return []
        return [{"text": brand, "type": "PRODUCT", "start": start, "end": start + len(brand)}]


def _options(**kwargs):
    kwargs.setdefault("batch", FAST)
    return PipelineOptions(**kwargs)


def _process(pipeline, item, options=None):
    return asyncio.run(pipeline.process_one(item, options))


class TestProcessOne:
    def test_stages_recorded(self):
        from signalminer.pipeline import Pipeline

        result = _process(Pipeline(), "The camera is excellent and the battery is great")
        assert result.metadata.stages == BASE_STAGES
        assert result.sentiment.label == "positive"
        assert result.persisted is False
        assert result.metadata.duration_ms >= 0

    def test_topics_stage_when_enabled(self):
        from signalminer.pipeline import Pipeline

        result = _process(
            Pipeline(), "Fast shipping and the delivery box was sturdy", _options(perform_topic_modeling=True)
        )
        assert result.metadata.stages == BASE_STAGES + ("topics_extracted",)
        assert result.topics is not None
        assert result.topics.topics[0].name == "shipping"

    def test_topics_absent_by_default(self):
        from signalminer.pipeline import Pipeline

        assert _process(Pipeline(), "Nice product").topics is None

    def test_insights_stage_when_enabled(self):
        from signalminer.pipeline import Pipeline

        options = _options(language="en", extract_insights=True, perform_topic_modeling=True)
        result = _process(Pipeline(), "The delivery was terrible. Maybe add better packaging", options)
        assert result.metadata.stages == BASE_STAGES + ("topics_extracted", "insights_extracted")
        assert result.insights.language == "en"
        assert [p.text for p in result.insights.pain_points] == ["the delivery was terrible"]
        assert result.insights.pain_points[0].category == "delivery"
        assert len(result.insights.desires) == 1
        assert result.to_dict()["insights"]["sentence_count"] == 2

    def test_insights_absent_by_default(self):
        from signalminer.pipeline import Pipeline

        result = _process(Pipeline(), "The delivery was terrible", _options(language="en"))
        assert result.insights is None
        assert result.to_dict()["insights"] is None

    def test_empty_text_runs_every_stage(self):
        from signalminer.pipeline import Pipeline

        result = _process(Pipeline(), "", _options(perform_topic_modeling=True, extract_insights=True))
        assert result.metadata.stages == BASE_STAGES + ("topics_extracted", "insights_extracted")
        assert result.entities == ()
        assert result.sentiment.label == "neutral"
        assert result.sentiment.score == 0
        assert result.topics.topics == []
        assert result.insights.pain_points == []
        assert result.insights.available
        assert result.language.language == "unknown"

    def test_entities_and_cleaned_text(self):
        from signalminer.analyzers.base import EntityType
        from signalminer.pipeline import Pipeline

        text = "<b>Samsung</b> support was great, mail help@shop.com"
        result = _process(Pipeline(), text)
        assert result.original_text == text
        assert result.cleaned_text == "samsung support was great, mail"
        assert result.language.processed_text == result.cleaned_text
        assert [e.type for e in result.entities] == [EntityType.ORGANIZATION]
        org = result.entities[0]
        assert result.cleaned_text[org.start:org.end] == "samsung"

    def test_analysis_reads_normalized_text(self):
        from signalminer.analyzers.sentiment import SentimentAnalyzer
        from signalminer.pipeline import Pipeline

        result = _process(
            Pipeline(), "<b>Great</b> phone, <i>terrible</i> battery", _options(language="en")
        )
        expected = SentimentAnalyzer().analyze(result.cleaned_text)
        assert result.sentiment.word_count == 2
        assert result.sentiment.score == expected.score
        assert result.sentiment.positive_count == 1
        assert result.sentiment.negative_count == 1

    def test_analysis_item_is_kept(self):
        from signalminer.analyzers.base import AnalysisItem
        from signalminer.pipeline import Pipeline

        item = AnalysisItem(text="Love it", source_type="amazon_review", source_id="r1")
        result = _process(Pipeline(), item)
        assert result.item is item

    @pytest.mark.parametrize("value", [None, 42])
    def test_non_text_raises(self, value):
        from signalminer.errors import InvalidInput
        from signalminer.pipeline import Pipeline

        with pytest.raises(InvalidInput):
            _process(Pipeline(), value)

    def test_forced_sentiment_language(self):
        from signalminer.pipeline import Pipeline

        result = _process(Pipeline(), "Dit is niet goed", _options(language="nl"))
        assert result.sentiment.language == "nl"
        assert result.sentiment.label == "negative"

    def test_detected_language_picks_lexicon(self):
        from signalminer.pipeline import Pipeline

        text = "Ik ben heel blij met dit product, de bezorging was snel en de kwaliteit is goed"
        result = _process(Pipeline(), text)
        assert result.language.language == "nl"
        assert result.sentiment.language == "nl"

    def test_translated_text_is_analyzed(self):
        from signalminer.analyzers.language import LanguageIdentifier
        from signalminer.pipeline import Pipeline

        pipeline = Pipeline(language_identifier=LanguageIdentifier(translator=DutchTranslator()))
        options = _options(translate_to="nl", use_translated_text=True)
        result = _process(pipeline, "This product is really good and I like it very much", options)
        assert result.language.language == "en"
        assert result.language.translated_text == "Dit product is niet goed"
        assert result.sentiment.language == "nl"
        assert result.sentiment.label == "negative"

    def test_unsupported_target_language_raises(self):
        from signalminer.errors import UnsupportedLanguage
        from signalminer.pipeline import Pipeline

        with pytest.raises(UnsupportedLanguage):
            _process(Pipeline(), "Some text to translate here", _options(translate_to="klingon"))

    def test_to_dict_is_json_ready(self):
        import json

        from signalminer.pipeline import Pipeline

        result = _process(
            Pipeline(), "Great phone from Samsung, visit https://x.com", _options(language="en")
        )
        data = json.loads(json.dumps(result.to_dict()))
        assert data["sentiment"]["label"] == "positive"
        assert {e["type"] for e in data["entities"]} == {"ORGANIZATION"}
        assert "https" not in data["cleaned_text"]
        assert data["metadata"]["stages"][-1] == "sentiment_scored"


class TestPersistence:
    def test_saved_result(self):
        from signalminer.pipeline import Pipeline

        store = InMemoryResultStore()
        result = _process(Pipeline(result_store=store), "Good value", _options(save_results=True))
        assert result.persisted
        assert result.metadata.stages[-1] == "persisted"
        assert result.result_id in store.results

    def test_stored_copy_is_marked_persisted(self, tmp_path):
        import json

        from signalminer.pipeline import Pipeline
        from signalminer.storage import JsonResultStore

        store = JsonResultStore(tmp_path)
        result = _process(Pipeline(result_store=store), "Good value", _options(save_results=True))
        stored = json.loads((tmp_path / f"{result.result_id}.json").read_text(encoding="utf-8"))
        assert stored["persisted"] is True
        assert stored["metadata"]["stages"][-1] == "persisted"
        assert stored == json.loads(json.dumps(result.to_dict()))

    def test_no_store_keeps_result_in_memory(self):
        from signalminer.pipeline import Pipeline

        result = _process(Pipeline(), "Good value", _options(save_results=True))
        assert not result.persisted
        assert result.result_id

    def test_store_failure_is_logged(self):
        from signalminer.pipeline import Pipeline

        result = _process(Pipeline(result_store=FailingStore()), "Good value", _options(save_results=True))
        assert not result.persisted
        assert "persisted" not in result.metadata.stages

    def test_store_failure_propagates_when_required(self):
        from signalminer.errors import ExternalCapabilityError
        from signalminer.pipeline import Pipeline

        options = _options(save_results=True, persistence_required=True)
        with pytest.raises(ExternalCapabilityError) as exc:
            _process(Pipeline(result_store=FailingStore()), "Good value", options)
        assert exc.value.capability == "failing"


class TestBatch:
    def test_failing_item_scenario(self):
        from signalminer.batch import is_failure
        from signalminer.pipeline import AnalysisResult, Pipeline

        results = Pipeline(options=_options()).run(["Great product", None, "Awful service"])
        assert len(results) == 3
        assert isinstance(results[0], AnalysisResult)
        assert isinstance(results[2], AnalysisResult)
        assert is_failure(results[1])
        assert results[1].item is None
        assert results[0].sentiment.label == "positive"
        assert results[2].sentiment.label == "negative"

    def test_options_per_call(self):
        from signalminer.pipeline import Pipeline

        results = Pipeline().run(["Good", "Bad"], _options(perform_topic_modeling=True))
        assert all(r.topics is not None for r in results)


def _amazon_result(result_id="r1", job_id="job1"):
    from signalminer.sources import SourceResult

    return SourceResult(
        id=result_id,
        platform="amazon",
        job_id=job_id,
        payload={
            "asin": "B00X",
            "reviews": [
                {"id": "a1", "title": "Great", "content": "Works perfectly", "rating": 5},
                {"id": "a2", "title": "Bad", "content": "Broke after a week", "rating": 1},
            ],
        },
    )


class TestSourceCollection:
    def test_collection_summary(self):
        from signalminer.pipeline import Pipeline
        from signalminer.sources import SourceResult

        sources = InMemorySourceStore(
            [_amazon_result(), SourceResult(id="r2", platform="myspace", job_id="job1")]
        )
        store = InMemoryResultStore()
        pipeline = Pipeline(result_store=store, source_store=sources, options=_options(project_id="p1"))

        summary = asyncio.run(pipeline.process_source_collection("job1"))
        assert summary.job_id == "job1"
        assert summary.project_id == "p1"
        assert summary.source_count == 2
        assert summary.fragment_count == 2
        assert summary.processed_count == 2
        assert summary.failed_count == 0
        assert summary.linked_count == 2
        assert len(store.results) == 2
        assert sorted(store.links["r1"]) == sorted(r.result_id for r in summary.results)

    def test_results_carry_source_metadata(self):
        from signalminer.pipeline import Pipeline

        pipeline = Pipeline(
            result_store=InMemoryResultStore(),
            source_store=InMemorySourceStore([_amazon_result()]),
            options=_options(),
        )
        summary = asyncio.run(pipeline.process_source_collection("job1"))
        first = summary.results[0]
        assert first.item.source_type == "amazon_review"
        assert first.item.source_result_id == "r1"
        assert first.item.metadata["product_id"] == "B00X"

    def test_empty_job(self):
        from signalminer.pipeline import Pipeline

        pipeline = Pipeline(source_store=InMemorySourceStore(), options=_options())
        summary = asyncio.run(pipeline.process_source_collection("missing"))
        assert summary.source_count == 0
        assert summary.processed_count == 0
        assert summary.results == []

    def test_missing_source_store(self):
        from signalminer.errors import ConfigurationError
        from signalminer.pipeline import Pipeline

        with pytest.raises(ConfigurationError):
            asyncio.run(Pipeline().process_source_collection("job1"))

    def test_link_failure_is_logged(self):
        from signalminer.pipeline import Pipeline

        pipeline = Pipeline(
            result_store=FailingLinkStore(),
            source_store=InMemorySourceStore([_amazon_result()]),
            options=_options(),
        )
        summary = asyncio.run(pipeline.process_source_collection("job1"))
        assert summary.processed_count == 2
        assert summary.linked_count == 0

    def test_summary_to_dict(self):
        from signalminer.pipeline import Pipeline

        pipeline = Pipeline(
            result_store=InMemoryResultStore(),
            source_store=InMemorySourceStore([_amazon_result()]),
            options=_options(),
        )
        data = asyncio.run(pipeline.process_source_collection("job1")).to_dict()
        assert data["fragment_count"] == 2
        assert len(data["results"]) == 2


class TestFromConfig:
    def test_defaults(self):
        from signalminer.config import DEFAULT_CONFIG
        from signalminer.pipeline import Pipeline

        pipeline = Pipeline.from_config(DEFAULT_CONFIG)
        assert isinstance(pipeline.result_store, InMemoryResultStore)
        assert pipeline.source_store is None
        assert pipeline.options.batch.concurrency == 5
        assert pipeline.language_identifier.translator.name == "passthrough"

    def test_json_stores(self, tmp_path):
        import copy

        from signalminer.config import DEFAULT_CONFIG
        from signalminer.pipeline import Pipeline
        from signalminer.storage import JsonResultStore, JsonSourceStore

        config = copy.deepcopy(DEFAULT_CONFIG)
        config["storage"] = {
            "results": "json",
            "output_dir": str(tmp_path / "out"),
            "source_dir": str(tmp_path),
        }
        pipeline = Pipeline.from_config(config)
        assert isinstance(pipeline.result_store, JsonResultStore)
        assert isinstance(pipeline.source_store, JsonSourceStore)

    def test_unknown_translator(self):
        import copy

        from signalminer.config import DEFAULT_CONFIG
        from signalminer.errors import ConfigurationError
        from signalminer.pipeline import Pipeline

        config = copy.deepcopy(DEFAULT_CONFIG)
        config["language"]["translator"] = "nope"
        with pytest.raises(ConfigurationError):
            Pipeline.from_config(config)

    def test_overrides(self):
        from signalminer.config import DEFAULT_CONFIG
        from signalminer.pipeline import Pipeline

        store = InMemoryResultStore()
        pipeline = Pipeline.from_config(DEFAULT_CONFIG, result_store=store)
        assert pipeline.result_store is store

    def test_options_round_trip(self):
        options = _options(domain="finance")
        assert dataclasses.asdict(options)["domain"] == "finance"
        assert options.to_dict()["batch"]["rate_limit"] is None

    def test_registered_entity_backend(self):
        import copy

        from signalminer.analyzers.base import EntityType
        from signalminer.backends import register_entity_backend
        from signalminer.config import DEFAULT_CONFIG
        from signalminer.pipeline import Pipeline

        register_entity_backend("brands", BrandBackend)
        config = copy.deepcopy(DEFAULT_CONFIG)
        config["entities"] = {"backend": "brands", "backend_config": {"brand": "novabud"}}
        pipeline = Pipeline.from_config(config)
        assert isinstance(pipeline.entity_extractor.backend, BrandBackend)

        result = _process(pipeline, "My Novabud earbuds arrived broken", _options(language="en"))
        products = [e for e in result.entities if e.type == EntityType.PRODUCT]
        assert [e.text for e in products] == ["novabud"]
        assert products[0].method.value == "external"
        assert result.cleaned_text[products[0].start:products[0].end] == "novabud"

    def test_unknown_entity_backend(self):
        import copy

        from signalminer.config import DEFAULT_CONFIG
        from signalminer.errors import ConfigurationError
        from signalminer.pipeline import Pipeline

        config = copy.deepcopy(DEFAULT_CONFIG)
        config["entities"]["backend"] = "missing"
        with pytest.raises(ConfigurationError, match="missing"):
            Pipeline.from_config(config)
