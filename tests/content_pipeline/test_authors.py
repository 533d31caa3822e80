import pytest

from blog_plugins.content_pipeline.authors import AuthorRegistry, load_authors


class TestAuthors:
    def test_mapping_forms(self):
        registry = AuthorRegistry.from_mapping(
            {
                "ada": {"name": "Ada Lovelace", "url": "https://example.com/ada"},
                "grace": "Grace Hopper",
                "linus": None,
            }
        )
        assert len(registry) == 3
        assert registry.get("ada").url == "https://example.com/ada"
        assert registry.display_name("grace") == "Grace Hopper"
        assert registry.display_name("linus") == "linus"
        assert registry.display_name("nobody") == "nobody"
        assert "nobody" not in registry

    def test_load_authors_file(self, tmp_path):
        path = tmp_path / "authors.yml"
        path.write_text("ada:\n  name: Ada Lovelace\n", encoding="utf-8")
        registry = load_authors(path)
        assert "ada" in registry
        assert registry.display_name("ada") == "Ada Lovelace"

    def test_missing_file_warns(self, tmp_path, caplog):
        assert load_authors(tmp_path / "authors.yml") is None
        assert "authors file not found" in caplog.text

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "authors.yml"
        path.write_text("- ada\n- grace\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_authors(path)
