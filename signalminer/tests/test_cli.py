import json

import pytest


@pytest.fixture(autouse=True)
def no_config_env(monkeypatch):
    monkeypatch.delenv("SIGNALMINER_CONFIG", raising=False)


class TestParser:
    def test_subcommands(self):
        from signalminer.cli.main import create_parser

        parser = create_parser()
        args = parser.parse_args(["batch", "-i", "in", "--rate", "5/100", "--concurrency", "2"])
        assert args.command == "batch"
        assert args.rate == "5/100"
        assert args.concurrency == 2

    def test_analyze_needs_text_or_input(self):
        from signalminer.cli.main import create_parser

        with pytest.raises(SystemExit):
            create_parser().parse_args(["analyze"])

    def test_no_command_prints_help(self, capsys):
        from signalminer.cli.main import main

        assert main([]) == 0
        assert "signalminer" in capsys.readouterr().out


class TestAnalyze:
    def test_text_to_stdout(self, capsys):
        from signalminer.cli.main import main

        assert main(["analyze", "-t", "The support team was great"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["original_text"] == "The support team was great"
        assert data["sentiment"]["label"] == "positive"
        assert data["topics"] is None

    def test_text_with_topics(self, capsys):
        from signalminer.cli.main import main

        assert main(["analyze", "-t", "Fast shipping, the delivery was quick", "--topics"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["topics"]["topics"][0]["name"] == "shipping"

    def test_text_with_insights(self, capsys):
        from signalminer.cli.main import main

        assert main(["analyze", "-t", "The delivery was terrible", "--language", "en", "--insights"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["insights"]["pain_points"][0]["category"] == "delivery"
        assert data["metadata"]["stages"][-1] == "insights_extracted"

    def test_input_file_to_output_dir(self, tmp_path):
        from signalminer.cli.main import main

        src = tmp_path / "reviews.json"
        src.write_text(
            json.dumps({"items": ["Great value", {"text": "Terrible battery", "source_id": "b1"}]}),
            encoding="utf-8",
        )
        out = tmp_path / "out"
        assert main(["analyze", "-i", str(src), "-o", str(out)]) == 0

        saved = [json.loads(p.read_text(encoding="utf-8")) for p in out.glob("*.json")]
        assert len(saved) == 2
        assert {r["item"]["source_id"] for r in saved} == {"reviews:0", "b1"}

    def test_non_utf8_text_file(self, tmp_path, capsys):
        from signalminer.cli.main import main

        src = tmp_path / "note.txt"
        src.write_bytes("Très bon produit, livraison rapide et soignée".encode("latin-1"))
        assert main(["analyze", "-i", str(src)]) == 0
        data = json.loads(capsys.readouterr().out)
        assert len(data) == 1
        assert data[0]["original_text"].startswith("Tr")

    def test_empty_directory(self, tmp_path, capsys):
        from signalminer.cli.main import main

        assert main(["analyze", "-i", str(tmp_path)]) == 1
        assert "No .txt or .json inputs" in capsys.readouterr().out

    def test_config_file(self, tmp_path, capsys):
        from signalminer.cli.main import main

        config = tmp_path / "config.yaml"
        config.write_text("pipeline:\n  perform_topic_modeling: true\n", encoding="utf-8")
        assert main(["-c", str(config), "analyze", "-t", "Good price"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["topics"] is not None

    def test_failure_warnings_keep_stdout_json(self, tmp_path, capsys, caplog):
        from signalminer.cli.main import main

        config = tmp_path / "config.yaml"
        config.write_text("pipeline:\n  translate_to: xx\n", encoding="utf-8")
        assert main(["-c", str(config), "analyze", "-t", "The support team was great"]) == 1
        out = capsys.readouterr().out
        assert json.loads(out) == []
        assert "Warning" not in out
        assert any(
            r.levelname == "WARNING" and "Item 0 failed" in r.getMessage() for r in caplog.records
        )

    def test_bad_config_reports_error(self, tmp_path, capsys):
        from signalminer.cli.main import main

        assert main(["-c", str(tmp_path / "missing.yaml"), "analyze", "-t", "x"]) == 1
        assert capsys.readouterr().out.startswith("Error:")


class TestBatch:
    def test_batch_writes_results(self, tmp_path):
        from signalminer.cli.main import main

        src = tmp_path / "in"
        src.mkdir()
        (src / "a.txt").write_text("I love this phone", encoding="utf-8")
        (src / "b.txt").write_text("The screen cracked on day one", encoding="utf-8")
        (src / "ignored.csv").write_text("x,y", encoding="utf-8")
        out = tmp_path / "out"

        code = main(["batch", "-i", str(src), "-o", str(out), "--concurrency", "2", "--rate", "10/100"])
        assert code == 0
        assert len(list(out.glob("*.json"))) == 2
        assert not (out / "failures.json").exists()

    def test_invalid_rate(self, tmp_path, capsys):
        from signalminer.cli.main import main

        (tmp_path / "a.txt").write_text("fine", encoding="utf-8")
        assert main(["batch", "-i", str(tmp_path), "-o", str(tmp_path / "out"), "--rate", "fast"]) == 1
        assert "Invalid rate limit" in capsys.readouterr().out


class TestProcessJob:
    def test_job_summary_and_links(self, tmp_path):
        from signalminer.cli.main import main

        sources = tmp_path / "sources"
        sources.mkdir()
        (sources / "job7.json").write_text(
            json.dumps(
                {
                    "results": [
                        {
                            "id": "res1",
                            "platform": "reddit",
                            "payload": {
                                "posts": [{"id": "p1", "title": "Loving the new update"}],
                                "comments": [{"id": "c1", "body": "It crashes constantly"}],
                            },
                        }
                    ]
                }
            ),
            encoding="utf-8",
        )
        out = tmp_path / "out"

        assert main(["process-job", "-j", "job7", "-s", str(sources), "-o", str(out)]) == 0

        summary = json.loads((out / "job7_summary.json").read_text(encoding="utf-8"))
        assert summary["source_count"] == 1
        assert summary["fragment_count"] == 2
        assert summary["processed_count"] == 2
        assert summary["linked_count"] == 2
        assert "results" not in summary

        links = json.loads((out / "links.json").read_text(encoding="utf-8"))
        assert len(links["res1"]) == 2
        for result_id in links["res1"]:
            assert (out / f"{result_id}.json").exists()

    def test_unknown_job(self, tmp_path):
        from signalminer.cli.main import main

        assert main(["process-job", "-j", "nope", "-s", str(tmp_path), "-o", str(tmp_path / "out")]) == 1
