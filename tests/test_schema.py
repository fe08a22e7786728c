import json

import pytest

from openscraping import Rule, SchemaError, UnknownTransformationError, compile_schema, default_registry, load_schema
from openscraping.schema import check_transformations, iter_rules


class TestCompileSchema:
    """Test suite for schema normalization and validation."""

    def test_bare_expression_becomes_rule(self):
        schema = compile_schema({"title": "//h1"})
        rule = schema["title"]
        assert isinstance(rule, Rule)
        assert rule.selector == "//h1"
        assert rule.force_array is False
        assert rule.remove_selector is None
        assert rule.transform_chain == []
        assert rule.fields is None

    def test_rule_object(self):
        schema = compile_schema({
            "body": {
                "selector": "//div[@id='body']",
                "forceArray": True,
                "removeSelector": "//script",
                "transform": ["removeExtraWhitespace", "trim"],
                "options": {"format": "year"},
            }
        })
        rule = schema["body"]
        assert rule.force_array is True
        assert rule.remove_selector == "//script"
        assert rule.transform_chain == ["removeExtraWhitespace", "trim"]
        assert rule.options == {"format": "year"}

    def test_single_transform_name(self):
        rule = compile_schema({"t": {"selector": "//h1", "transform": "trim"}})["t"]
        assert rule.transform_chain == ["trim"]

    def test_nested_fields_are_normalized(self):
        schema = compile_schema({
            "products": {
                "selector": "//div[@class='product']",
                "fields": {
                    "title": ".//h2",
                    "price": {"selector": ".//span", "transform": "trim"},
                },
            }
        })
        fields = schema["products"].fields
        assert list(fields) == ["title", "price"]
        assert fields["title"].selector == ".//h2"
        assert fields["price"].transform_chain == ["trim"]

    def test_declaration_order_preserved(self):
        schema = compile_schema({"b": "//b", "a": "//a", "c": "//c"})
        assert list(schema) == ["b", "a", "c"]

    def test_legacy_underscore_form(self):
        schema = compile_schema({
            "products": {
                "_xpath": "//div[@class='product']",
                "_forceArray": True,
                "title": ".//h2",
                "price": {"_xpath": ".//span", "_transformations": ["trim"]},
            }
        })
        rule = schema["products"]
        assert rule.selector == "//div[@class='product']"
        assert rule.force_array is True
        assert list(rule.fields) == ["title", "price"]
        assert rule.fields["price"].transform_chain == ["trim"]

    def test_missing_selector(self):
        with pytest.raises(SchemaError, match="title"):
            compile_schema({"title": {"forceArray": True}})

    def test_invalid_xpath(self):
        with pytest.raises(SchemaError):
            compile_schema({"title": "//h1[@class="})

    def test_empty_selector(self):
        with pytest.raises(SchemaError):
            compile_schema({"title": "   "})

    def test_unknown_rule_key(self):
        with pytest.raises(SchemaError):
            compile_schema({"title": {"selector": "//h1", "forcearray": True}})

    def test_schema_must_be_mapping(self):
        with pytest.raises(SchemaError):
            compile_schema(["//h1"])

    def test_compiled_schema_passes_through(self):
        schema = compile_schema({"title": "//h1"})
        assert compile_schema(schema)["title"] is schema["title"]

    def test_iter_rules_is_depth_first(self):
        schema = compile_schema({
            "a": {"selector": "//a", "fields": {"b": ".//b"}},
            "c": "//c",
        })
        assert [rule.selector for rule in iter_rules(schema)] == ["//a", ".//b", "//c"]


class TestCheckTransformations:
    """Test suite for registry lookups of transform names."""

    def test_known_names(self):
        schema = compile_schema({"t": {"selector": "//h1", "transform": ["trim", "parseDate"]}})
        check_transformations(schema, default_registry())

    def test_unknown_nested_name(self):
        schema = compile_schema({
            "p": {"selector": "//p", "fields": {"x": {"selector": ".", "transform": "shout"}}}
        })
        with pytest.raises(UnknownTransformationError, match="shout"):
            check_transformations(schema, default_registry())

    def test_invalid_date_format(self):
        schema = compile_schema({
            "d": {"selector": "//time", "transform": "parseDate", "options": {"format": "fortnight"}}
        })
        with pytest.raises(SchemaError, match="fortnight"):
            check_transformations(schema, default_registry())

    def test_date_format_ignored_without_parse_date(self):
        schema = compile_schema({"d": {"selector": "//time", "transform": "trim", "options": {"format": "fortnight"}}})
        check_transformations(schema, default_registry())


class TestLoadSchema:
    """Test suite for loading schemas from files."""

    def test_load_from_file(self, fixtures_dir):
        schema = load_schema(fixtures_dir / "www.bbc.com.json")
        assert list(schema) == ["title", "dateTime", "body"]

    def test_load_inline_mapping(self):
        assert load_schema({"title": "//h1"})["title"].selector == "//h1"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_schema(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(SchemaError):
            load_schema(path)

    def test_load_from_url(self, monkeypatch):
        class FakeResponse:
            def raise_for_status(self):
                pass

            def json(self):
                return json.loads('{"title": "//h1"}')

        calls = []

        def fake_get(url, timeout):
            calls.append((url, timeout))
            return FakeResponse()

        monkeypatch.setattr("openscraping.schema.requests.get", fake_get)
        schema = load_schema("https://example.com/schema.json")
        assert schema["title"].selector == "//h1"
        assert calls == [("https://example.com/schema.json", 30)]
