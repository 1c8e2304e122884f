"""Unit and property tests for TemplateStore."""

import tempfile
from pathlib import Path

import pytest
from hypothesis import given, settings, strategies as st

from hookline.templates import InvalidTemplateKeyError, TemplateStore, is_valid_segment


@pytest.fixture
def store(tmp_path):
    return TemplateStore(tmp_path)


def _write(base: Path, relative: str, content: str) -> None:
    path = base / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


class TestResolve:
    def test_generic_template_found(self, store, tmp_path):
        _write(tmp_path, "generic/issues.md", "generic issue")

        assert store.resolve("acme/widgets", "issues") == "generic issue"

    def test_repository_template_wins(self, store, tmp_path):
        _write(tmp_path, "generic/issues.md", "generic issue")
        _write(tmp_path, "repos/acme/widgets/issues.md", "widgets issue")

        assert store.resolve("acme/widgets", "issues") == "widgets issue"

    def test_other_repository_gets_generic(self, store, tmp_path):
        _write(tmp_path, "generic/issues.md", "generic issue")
        _write(tmp_path, "repos/acme/widgets/issues.md", "widgets issue")

        assert store.resolve("acme/gadgets", "issues") == "generic issue"

    def test_missing_template_is_none(self, store):
        assert store.resolve("acme/widgets", "push") is None

    def test_organization_name_uses_generic(self, store, tmp_path):
        _write(tmp_path, "generic/organization.md", "org event")

        assert store.resolve("acme", "organization") == "org event"

    def test_projects_pseudo_repository_uses_generic(self, store, tmp_path):
        _write(tmp_path, "generic/projects_v2_item.md", "project item")

        assert store.resolve("GitHub Projects", "projects_v2_item") == "project item"

    def test_unsafe_event_type_is_none(self, store, tmp_path):
        _write(tmp_path, "secret.md", "outside generic")

        assert store.resolve("acme/widgets", "../secret") is None


class TestCrud:
    def test_save_and_get_generic(self, store, tmp_path):
        store.save_generic("issues", "Issue {{ issue.title }}")

        assert store.get_generic("issues") == "Issue {{ issue.title }}"
        assert (tmp_path / "generic" / "issues.md").is_file()

    def test_save_overwrites(self, store):
        store.save_generic("issues", "first")
        store.save_generic("issues", "second")

        assert store.get_generic("issues") == "second"

    def test_save_and_get_repository(self, store, tmp_path):
        store.save_repository("acme", "widgets", "push", "push text")

        assert store.get_repository("acme", "widgets", "push") == "push text"
        assert (tmp_path / "repos" / "acme" / "widgets" / "push.md").is_file()

    def test_save_leaves_no_temporary_files(self, store, tmp_path):
        store.save_generic("issues", "text")

        assert [p.name for p in (tmp_path / "generic").iterdir()] == ["issues.md"]

    def test_get_missing_is_none(self, store):
        assert store.get_generic("issues") is None
        assert store.get_repository("acme", "widgets", "issues") is None

    def test_delete(self, store):
        store.save_generic("issues", "text")

        assert store.delete_generic("issues") is True
        assert store.get_generic("issues") is None
        assert store.delete_generic("issues") is False

    def test_delete_repository(self, store):
        store.save_repository("acme", "widgets", "issues", "text")

        assert store.delete_repository("acme", "widgets", "issues") is True
        assert store.delete_repository("acme", "widgets", "issues") is False

    @pytest.mark.parametrize("segment", ["..", ".", "a/b", "", "bad key", "x\\y"])
    def test_unsafe_keys_rejected(self, store, segment):
        with pytest.raises(InvalidTemplateKeyError):
            store.save_generic(segment, "text")
        with pytest.raises(InvalidTemplateKeyError):
            store.get_repository(segment, "widgets", "issues")

    def test_list_templates(self, store):
        store.save_generic("push", "p")
        store.save_generic("issues", "i")
        store.save_repository("acme", "widgets", "issues", "w")

        assert store.list_templates() == {
            "generic": ["issues", "push"],
            "repos": {"acme/widgets": ["issues"]},
        }

    def test_list_templates_empty(self, store):
        assert store.list_templates() == {"generic": [], "repos": {}}


segment_strategy = st.from_regex(r"[a-z0-9_-]{1,12}", fullmatch=True)


class TestResolutionPrecedenceProperties:
    """For any owner, repo and event type, the most specific template wins."""

    @given(
        owner=segment_strategy,
        repo=segment_strategy,
        event_type=segment_strategy,
        has_generic=st.booleans(),
        has_repository=st.booleans(),
    )
    @settings(max_examples=100)
    def test_precedence(self, owner, repo, event_type, has_generic, has_repository):
        with tempfile.TemporaryDirectory() as tmp:
            store = TemplateStore(Path(tmp))
            if has_generic:
                store.save_generic(event_type, "generic")
            if has_repository:
                store.save_repository(owner, repo, event_type, "repository")

            result = store.resolve(f"{owner}/{repo}", event_type)

        if has_repository:
            assert result == "repository"
        elif has_generic:
            assert result == "generic"
        else:
            assert result is None

    @given(segment=st.text(max_size=20))
    @settings(max_examples=100)
    def test_valid_segments_have_no_path_separators(self, segment):
        if is_valid_segment(segment):
            assert "/" not in segment
            assert "\\" not in segment
            assert segment not in (".", "..")
