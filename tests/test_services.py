"""Tests for libspot.services."""

from libspot.services import open_services, render_document_shell
from libspot.sources.browser import PlaywrightRenderer


class TestRenderDocumentShell:
    def test_default_template(self, facilities):
        html = render_document_shell(facilities)

        assert "<title>LibrarySpot</title>" in html
        assert "</head>" in html
        assert "Food, Agricultural, and Environmental Sciences Library" in html
        assert 'href="https://hsl-osu.libcal.com/spaces?lid=694&amp;gid=24674"' in html

    def test_custom_template_is_escaped(self, tmp_path, minimal_facilities):
        template = tmp_path / "shell.html"
        template.write_text("<head></head>{% for f in facilities %}<p>{{ f.name }}</p>{% endfor %}")

        html = render_document_shell(minimal_facilities, template)

        assert html == "<head></head><p>Alpha Library</p><p>Beta Library</p>"


class TestOpenServices:
    async def test_wires_shared_objects(self, test_settings, minimal_facilities):
        async with open_services(test_settings, facilities=minimal_facilities) as services:
            assert services.client.client is not None
            assert services.orchestrator.facilities == tuple(minimal_facilities)
            assert services.orchestrator.cache.ttl == test_settings.snapshot_ttl
            assert services.hours.cache.ttl == test_settings.hours_ttl
            assert services.bootstrap.cache.ttl == test_settings.bootstrap_ttl
            assert isinstance(services.orchestrator._rendered._renderer, PlaywrightRenderer)

        assert services.client.client is None

    async def test_loads_facilities_from_config_dir(self, test_settings):
        (test_settings.config_dir / "facilities.json").write_text(
            '{"facilities": [{"id": "solo", "kind": "rendered-widget", "name": "Solo",'
            ' "page_url": "https://solo.test", "fallback_hours": {"open": 8, "close": 20}}]}'
        )

        async with open_services(test_settings) as services:
            assert [f.id for f in services.facilities] == ["solo"]
