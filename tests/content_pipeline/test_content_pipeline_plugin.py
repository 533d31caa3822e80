import json

import pytest
from mkdocs.exceptions import PluginError

from blog_plugins.content_pipeline.plugin import ContentPipelinePlugin


def write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def post(title, day, author="ada", body="Body.\n"):
    return f"---\ntitle: {title}\ndate: {day}\nauthor: {author}\n---\n{body}"


class TestContentPipelinePlugin:
    """Drive the plugin through on_config and on_post_build against a temp project."""

    def setup_method(self):
        self.plugin = ContentPipelinePlugin()

    def make_project(self, tmp_path, site_url="https://example.com/"):
        content = tmp_path / "content"
        write(content / "authors.yml", "ada:\n  name: Ada Lovelace\n")
        write(content / "posts" / "june.md", post("June", "2023-06-16", body="Hi {{< cloud >}}\n"))
        write(content / "posts" / "august.md", post("August", "2023-08-28"))
        write(content / "newsletter" / "issue-1" / "index.md", post("Issue 1", "2023-07-01"))
        write(content / "posts" / "README.md", "not content\n")
        write(content / "notes.txt", "ignored\n")
        return {
            "config_file_path": str(tmp_path / "mkdocs.yml"),
            "site_dir": str(tmp_path / "site"),
            "site_url": site_url,
            "site_name": "Example",
        }

    def run(self, config, **options):
        options.setdefault("skip_basenames", ["README.md"])
        errors, warnings = self.plugin.load_config(options)
        assert errors == []
        self.plugin.on_config(config)
        self.plugin.on_post_build(config)

    def test_full_build(self, tmp_path):
        config = self.make_project(tmp_path)
        self.run(config)

        out = tmp_path / "site" / "blog"
        manifest = json.loads((out / "manifest.json").read_text(encoding="utf-8"))
        assert set(manifest["entries"]) == {
            "posts/june/",
            "posts/august/",
            "newsletter/issue-1/",
        }
        assert manifest["listings"]["authors/ada/"]["title"] == "Ada Lovelace"
        assert (out / "posts" / "june" / "index.html").exists()
        assert "https://example.com/blog/posts/august/" in (out / "feed.xml").read_text(
            encoding="utf-8"
        )
        assert (out / "sitemap.xml").exists()
        assert self.plugin.last_result.report.ok

    def test_rebuild_reuses_cache(self, tmp_path):
        config = self.make_project(tmp_path)
        self.run(config)
        self.plugin.on_config(config)
        self.plugin.on_post_build(config)
        report = self.plugin.last_result.report
        assert report.reused == 3
        assert report.rebuilt == 0

    def test_on_startup_is_defined(self):
        """MkDocs keeps plugin instances across serve rebuilds only with on_startup."""
        assert "on_startup" in ContentPipelinePlugin.__dict__
        self.plugin.on_startup(command="serve", dirty=False)

    def test_removed_component_invalidates_cache(self, tmp_path):
        config = self.make_project(tmp_path)
        write(tmp_path / "icons" / "rocket.svg", "<svg><path d='M0 0'/></svg>")
        write(
            tmp_path / "content" / "posts" / "launch.md",
            post("Launch", "2023-09-01", body="Lift off {{< rocket >}}\n"),
        )
        self.run(config, components_dir="icons")
        assert self.plugin.last_result.report.ok

        (tmp_path / "icons" / "rocket.svg").unlink()
        self.plugin.on_config(config)
        self.plugin.on_post_build(config)
        report = self.plugin.last_result.report
        (error,) = report.errors
        assert error.error == "UnknownComponent"
        assert error.slug == "launch"
        assert report.reused == 0

    def test_changed_authors_invalidate_cache(self, tmp_path):
        config = self.make_project(tmp_path)
        self.run(config)
        write(tmp_path / "content" / "authors.yml", "grace:\n  name: Grace Hopper\n")
        self.plugin.on_config(config)
        self.plugin.on_post_build(config)
        report = self.plugin.last_result.report
        assert report.reused == 0
        assert len(report.errors) == 3

    def test_no_site_url_skips_feed(self, tmp_path):
        config = self.make_project(tmp_path, site_url=None)
        self.run(config, output_dir="")
        out = tmp_path / "site"
        assert (out / "manifest.json").exists()
        assert not (out / "feed.xml").exists()

    def test_bad_document_is_reported_not_fatal(self, tmp_path, caplog):
        config = self.make_project(tmp_path)
        write(tmp_path / "content" / "posts" / "broken.md", post("Broken", "2023-01-01", author="zed"))
        self.run(config)
        (error,) = self.plugin.last_result.report.errors
        assert error.source_path == "posts/broken.md"
        assert "excluded posts/broken.md" in caplog.text

    def test_strict_mode_fails_on_bad_document(self, tmp_path):
        config = self.make_project(tmp_path)
        write(tmp_path / "content" / "posts" / "broken.md", "---\ntitle: Broken\n---\n")
        with pytest.raises(PluginError):
            self.run(config, strict=True)

    def test_duplicate_slug_aborts_build(self, tmp_path):
        config = self.make_project(tmp_path)
        write(tmp_path / "content" / "newsletter" / "june.md", post("June again", "2023-06-20"))
        with pytest.raises(PluginError) as excinfo:
            self.run(config)
        assert "june" in str(excinfo.value)
        assert not (tmp_path / "site" / "blog" / "manifest.json").exists()

    def test_missing_content_dir_warns(self, tmp_path, caplog):
        config = {
            "config_file_path": str(tmp_path / "mkdocs.yml"),
            "site_dir": str(tmp_path / "site"),
        }
        self.run(config)
        assert "content directory not found" in caplog.text
        assert self.plugin.last_result is None

    def test_bad_components_dir_file(self, tmp_path):
        config = self.make_project(tmp_path)
        write(tmp_path / "icons" / "cloud.svg", "<svg></svg>")
        with pytest.raises(PluginError):
            self.run(config, components_dir="icons")

    def test_collect_content_units(self, tmp_path):
        self.make_project(tmp_path)
        units = ContentPipelinePlugin.collect_content_units(
            tmp_path / "content", ["README.md"]
        )
        assert [u.source_path for u in units] == [
            "newsletter/issue-1/index.md",
            "posts/august.md",
            "posts/june.md",
        ]
