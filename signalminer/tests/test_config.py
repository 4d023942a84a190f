import pytest

from signalminer.config import (
    CONFIG_ENV_VAR,
    DEFAULT_CONFIG,
    BatchOptions,
    NormalizeOptions,
    PipelineOptions,
    RateLimit,
    load_config,
)
from signalminer.errors import ConfigurationError


class TestLoadConfig:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        config = load_config()
        assert config == DEFAULT_CONFIG
        assert config is not DEFAULT_CONFIG

    def test_yaml_is_merged_over_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "batch:\n  concurrency: 2\n  rate_limit:\n    calls: 3\npipeline:\n  domain: finance\n",
            encoding="utf-8",
        )
        config = load_config(path)
        assert config["batch"]["concurrency"] == 2
        assert config["batch"]["batch_size"] == 10
        assert config["batch"]["rate_limit"] == {"calls": 3, "interval_ms": 1000}
        assert config["pipeline"]["domain"] == "finance"
        assert DEFAULT_CONFIG["batch"]["concurrency"] == 5

    def test_env_var(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        path.write_text("storage:\n  results: json\n", encoding="utf-8")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert load_config()["storage"]["results"] == "json"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(path) == DEFAULT_CONFIG

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("batch: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path)


class TestOptions:
    def test_from_dict_ignores_unknown_keys(self):
        options = NormalizeOptions.from_dict({"remove_numbers": True, "colour": "blue"})
        assert options.remove_numbers
        assert options.lowercase

    def test_batch_options_from_dict(self):
        options = BatchOptions.from_dict({"concurrency": 2, "rate_limit": {"calls": 4, "interval_ms": 50}})
        assert options.concurrency == 2
        assert options.rate_limit == RateLimit(4, 50)

    def test_rate_limit_parse(self):
        assert RateLimit.parse("5/200") == RateLimit(calls=5, interval_ms=200)

    @pytest.mark.parametrize("value", ["abc", "5", "x/100", "0/100"])
    def test_rate_limit_parse_invalid(self, value):
        with pytest.raises(ConfigurationError):
            RateLimit.parse(value)

    def test_invalid_batch_size(self):
        with pytest.raises(ConfigurationError):
            BatchOptions(batch_size=0)

    def test_pipeline_options_from_config(self):
        config = {
            "normalizer": {"remove_stopwords": True},
            "pipeline": {"perform_topic_modeling": True, "extract_insights": True, "project_id": "p1"},
            "batch": {"batch_size": 3},
        }
        options = PipelineOptions.from_config(config)
        assert options.normalize.remove_stopwords
        assert options.perform_topic_modeling
        assert options.extract_insights
        assert options.project_id == "p1"
        assert options.batch.batch_size == 3
        assert options.batch.rate_limit == RateLimit()

    def test_pipeline_options_from_defaults(self):
        options = PipelineOptions.from_config(DEFAULT_CONFIG)
        assert options == PipelineOptions()

    def test_options_are_frozen(self):
        import dataclasses

        with pytest.raises(dataclasses.FrozenInstanceError):
            PipelineOptions().domain = "finance"
