import asyncio
import json
import shutil
import time

import pytest
import requests

from openscraping import PersistenceError
from openscraping.batch_runner import BatchRunner
from openscraping.config import Defaults, Item
from openscraping.persistence import create_persistence_strategy
from openscraping.transformations import default_registry


@pytest.fixture
def pages_dir(tmp_path, fixtures_dir):
    """Copy the sample pages and schemas into a scratch directory."""
    pages = tmp_path / "pages"
    pages.mkdir()
    for name in ("www.bbc.com.html", "www.bbc.com.json", "www.ikea.com.html", "www.ikea.com.json"):
        shutil.copy(fixtures_dir / name, pages / name)
    return pages


class TestRunners:
    """Test suite for the batch runner."""

    @pytest.mark.asyncio
    async def test_batch_runner(self, tmp_path, pages_dir):
        """Test BatchRunner with sample data."""
        test_items = [
            Item(path=str(pages_dir / "www.bbc.com.html"), schema=str(pages_dir / "www.bbc.com.json")),
            Item(path=str(pages_dir / "www.ikea.com.html"), schema=str(pages_dir / "www.ikea.com.json"),
                 name="ikea"),
        ]

        output_dir = tmp_path / "output"
        persistence = create_persistence_strategy("file_per_document", str(output_dir))
        defaults = Defaults(threads=2)

        runner = BatchRunner(defaults, persistence)
        results = await runner.run(test_items)
        await persistence.finalize()

        assert [record.name for record in results] == ["www.bbc.com", "ikea"]
        stats = runner.get_stats()
        assert (stats.total, stats.success, stats.failed, stats.skipped) == (2, 2, 0, 0)

        ikea = json.loads((output_dir / "ikea.json").read_text(encoding="utf-8"))
        assert len(ikea["products"]) == 61
        bbc = json.loads((output_dir / "www.bbc.com.json").read_text(encoding="utf-8"))
        assert bbc["dateTime"] == "2015-12-24"

    @pytest.mark.asyncio
    async def test_each_document_gets_its_own_tree(self, tmp_path):
        """Pruning in one extraction never leaks into another extraction of the same file."""
        page = tmp_path / "page.html"
        page.write_text("<html><body><div id='c'>keep <script>drop()</script></div></body></html>", encoding="utf-8")
        schema = {
            "content": {"selector": "//div[@id='c']", "removeSelector": "//script", "transform": "trim"},
            "scripts": {"selector": "count(//script)"},
        }
        items = [Item(path=str(page), schema=schema, name=f"copy{i}") for i in range(4)]

        persistence = create_persistence_strategy("json_lines", str(tmp_path / "out"))
        runner = BatchRunner(Defaults(threads=4), persistence)
        results = await runner.run(items)

        assert len(results) == 4
        for record in results:
            assert record.result == {"content": "keep", "scripts": "0"}

    @pytest.mark.asyncio
    async def test_failures_are_counted(self, tmp_path, pages_dir):
        bad_schema = tmp_path / "bad.json"
        bad_schema.write_text('{"title": {"forceArray": true}}', encoding="utf-8")

        items = [
            Item(path=str(pages_dir / "www.bbc.com.html"), schema=str(bad_schema)),
            Item(path=str(tmp_path / "missing.html"), schema=str(pages_dir / "www.bbc.com.json")),
            Item(path=str(pages_dir / "www.ikea.com.html"), schema=str(pages_dir / "www.bbc.com.json")),
            Item(path=str(pages_dir / "www.bbc.com.html"), schema={"title": {"selector": "//h1", "transform": "x"}}),
        ]

        persistence = create_persistence_strategy("file_per_document", str(tmp_path / "out"))
        runner = BatchRunner(Defaults(threads=2), persistence)
        results = await runner.run(items)

        assert results == []
        stats = runner.get_stats()
        assert (stats.total, stats.success, stats.failed, stats.skipped) == (4, 0, 3, 1)

    @pytest.mark.asyncio
    async def test_custom_registry_and_prune_scope(self, tmp_path):
        page = tmp_path / "cards.html"
        page.write_text(
            "<html><body><div class='card'>a<em>x</em></div><div class='card'>b<em>y</em></div></body></html>",
            encoding="utf-8",
        )
        registry = default_registry()
        registry.register("upper", lambda value, options: value.upper())
        schema = {"cards": {"selector": "//div[@class='card']", "removeSelector": "./em", "transform": "upper"}}

        persistence = create_persistence_strategy("file_per_document", str(tmp_path / "out"))
        runner = BatchRunner(Defaults(threads=1), persistence, registry=registry)
        results = await runner.run([Item(path=str(page), schema=schema, pruneScope="match")])

        assert results[0].result == {"cards": ["A", "B"]}

    @pytest.mark.asyncio
    async def test_no_items(self, tmp_path):
        persistence = create_persistence_strategy("file_per_document", str(tmp_path))
        runner = BatchRunner(Defaults(), persistence)
        assert await runner.run([]) == []

    @pytest.mark.asyncio
    async def test_shared_schema_url_is_fetched_once_off_the_loop(self, tmp_path, pages_dir, monkeypatch):
        fetches = []

        def slow_failing_get(url, timeout):
            fetches.append(url)
            time.sleep(0.3)
            raise requests.ConnectionError("unreachable")

        monkeypatch.setattr("openscraping.schema.requests.get", slow_failing_get)

        gaps = []

        async def ticker():
            last = time.monotonic()
            while True:
                await asyncio.sleep(0.01)
                now = time.monotonic()
                gaps.append(now - last)
                last = now

        url = "https://example.com/schema.json"
        items = [
            Item(path=str(pages_dir / name), schema=url)
            for name in ("www.bbc.com.html", "www.ikea.com.html", "www.bbc.com.json")
        ]
        persistence = create_persistence_strategy("file_per_document", str(tmp_path / "out"))
        runner = BatchRunner(Defaults(threads=3), persistence)

        ticking = asyncio.create_task(ticker())
        try:
            results = await runner.run(items)
        finally:
            ticking.cancel()

        assert results == []
        assert fetches == [url]
        assert max(gaps) < 0.25
        stats = runner.get_stats()
        assert (stats.total, stats.success, stats.failed, stats.skipped) == (3, 0, 3, 0)

    @pytest.mark.asyncio
    async def test_lost_json_lines_records_count_as_failed(self, tmp_path, pages_dir):
        output_dir = tmp_path / "out"
        (output_dir / "results.jsonl").mkdir(parents=True)
        items = [Item(path=str(pages_dir / "www.bbc.com.html"), schema=str(pages_dir / "www.bbc.com.json"))]

        persistence = create_persistence_strategy("json_lines", str(output_dir))
        runner = BatchRunner(Defaults(), persistence)
        await runner.run(items)

        with pytest.raises(PersistenceError) as excinfo:
            await runner.finalize()

        assert excinfo.value.sources == [items[0].path]
        assert runner.get_results() == []
        assert persistence.get_saved_files() == []
        stats = runner.get_stats()
        assert (stats.total, stats.success, stats.failed, stats.skipped) == (1, 0, 1, 0)

    @pytest.mark.asyncio
    async def test_flush_failure_during_run(self, tmp_path, pages_dir):
        output_dir = tmp_path / "out"
        (output_dir / "results.jsonl").mkdir(parents=True)
        items = [
            Item(path=str(pages_dir / "www.bbc.com.html"), schema=str(pages_dir / "www.bbc.com.json")),
            Item(path=str(pages_dir / "www.ikea.com.html"), schema=str(pages_dir / "www.ikea.com.json")),
        ]

        persistence = create_persistence_strategy("json_lines", str(output_dir), buffer_size=1)
        runner = BatchRunner(Defaults(threads=1), persistence)
        results = await runner.run(items)
        await runner.finalize()

        assert results == []
        assert sorted(persistence.get_failed_sources()) == sorted(item.path for item in items)
        stats = runner.get_stats()
        assert (stats.success, stats.failed) == (0, 2)
