"""
Unit tests for AnnotationService and token id validation.

Tests cover:
- Token address grammar
- Creation checks and their order
- Versioning on update
- Lookups by token and by tag
"""

import pytest

from tagdb.errors import AnnotationError, AnnotationErrorReason
from tagdb.services import invalid_token_ids


class TestTokenIds:
    """Tests for the token address grammar."""

    @pytest.mark.parametrize("token_id", ["gen.1.1.1", "1-ne.2.3.10", "ps.119.176.12"])
    def test_valid(self, token_id):
        assert invalid_token_ids([token_id]) == []

    @pytest.mark.parametrize(
        "token_id",
        ["Gen.1.1.1", "gen.1.1", "gen.1.1.1.1", "gen 1.1.1", "gen.a.1.1", "", "gen.1.1.1 "],
    )
    def test_invalid(self, token_id):
        assert invalid_token_ids([token_id]) == [token_id]

    def test_reports_only_invalid(self):
        assert invalid_token_ids(["gen.1.1.1", "bad", "gen.1.1.2", "GEN.1.1.3"]) == [
            "bad",
            "GEN.1.1.3",
        ]


class TestAnnotationService:
    """Tests for AnnotationService against a real store."""

    @pytest.fixture
    def annotations(self, store):
        return store.annotations

    @pytest.mark.asyncio
    async def test_create_annotation(self, store, annotations):
        """A new annotation starts at version 1."""
        tag = await store.tags.create_tag("Faith")

        annotation = await annotations.create_annotation(
            tag.id, ["gen.1.1.2", "gen.1.1.1"], note="In the beginning"
        )

        assert annotation.version == 1
        assert annotation.user_id == "user-1"
        assert annotation.token_ids == ["gen.1.1.2", "gen.1.1.1"]
        assert annotation.created_at == annotation.last_modified
        assert await annotations.get_annotation(annotation.id) == annotation

    @pytest.mark.asyncio
    async def test_missing_tag_checked_first(self, annotations):
        """An unknown tag is reported even when tokens are also bad."""
        with pytest.raises(AnnotationError) as exc_info:
            await annotations.create_annotation("missing", [])

        assert exc_info.value.reason is AnnotationErrorReason.TAG_NOT_FOUND

    @pytest.mark.asyncio
    async def test_no_tokens(self, store, annotations):
        """At least one token is required."""
        tag = await store.tags.create_tag("Faith")

        with pytest.raises(AnnotationError) as exc_info:
            await annotations.create_annotation(tag.id, [])

        assert exc_info.value.reason is AnnotationErrorReason.NO_TOKENS

    @pytest.mark.asyncio
    async def test_invalid_tokens_listed(self, store, annotations):
        """Every malformed token is reported and nothing is written."""
        tag = await store.tags.create_tag("Faith")

        with pytest.raises(AnnotationError) as exc_info:
            await annotations.create_annotation(tag.id, ["gen.1.1.1", "Gen.1.1.2", "gen.1"])

        assert exc_info.value.reason is AnnotationErrorReason.INVALID_TOKENS
        assert exc_info.value.invalid_tokens == ["Gen.1.1.2", "gen.1"]
        assert exc_info.value.code == "InvalidTokens"
        assert await annotations.get_all_annotations() == []

    @pytest.mark.asyncio
    async def test_update_increments_version(self, store, annotations):
        """Each update bumps the version by one and never rewinds last_modified."""
        tag = await store.tags.create_tag("Faith")
        created = await annotations.create_annotation(tag.id, ["gen.1.1.1"])

        first = await annotations.update_annotation(created.id, note="first")
        second = await annotations.update_annotation(created.id, token_ids=["gen.1.1.1", "gen.1.1.2"])

        assert (first.version, second.version) == (2, 3)
        assert created.last_modified <= first.last_modified <= second.last_modified
        assert second.note == "first"
        assert second.token_ids == ["gen.1.1.1", "gen.1.1.2"]
        assert second.created_at == created.created_at
        assert await annotations.get_annotation(created.id) == second

    @pytest.mark.asyncio
    async def test_update_can_clear_note(self, store, annotations):
        """note=None removes the note."""
        tag = await store.tags.create_tag("Faith")
        created = await annotations.create_annotation(tag.id, ["gen.1.1.1"], note="draft")

        updated = await annotations.update_annotation(created.id, note=None)

        assert updated.note is None

    @pytest.mark.asyncio
    async def test_update_validates_tokens(self, store, annotations):
        """Replacement tokens follow the creation rules."""
        tag = await store.tags.create_tag("Faith")
        created = await annotations.create_annotation(tag.id, ["gen.1.1.1"])

        with pytest.raises(AnnotationError) as exc_info:
            await annotations.update_annotation(created.id, token_ids=[])
        assert exc_info.value.reason is AnnotationErrorReason.NO_TOKENS

        with pytest.raises(AnnotationError) as exc_info:
            await annotations.update_annotation(created.id, token_ids=["nope"])
        assert exc_info.value.reason is AnnotationErrorReason.INVALID_TOKENS

        assert (await annotations.get_annotation(created.id)).version == 1

    @pytest.mark.asyncio
    async def test_missing_annotation(self, annotations):
        """Unknown ids fail with NotFound."""
        for call in (
            annotations.get_annotation("missing"),
            annotations.update_annotation("missing", note="x"),
            annotations.delete_annotation("missing"),
        ):
            with pytest.raises(AnnotationError) as exc_info:
                await call
            assert exc_info.value.reason is AnnotationErrorReason.NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete_annotation(self, store, annotations):
        """A deleted annotation is gone, its tag stays."""
        tag = await store.tags.create_tag("Faith")
        created = await annotations.create_annotation(tag.id, ["gen.1.1.1"])

        await annotations.delete_annotation(created.id)

        assert await annotations.get_all_annotations() == []
        assert await store.tags.get_tag(tag.id) == tag

    @pytest.mark.asyncio
    async def test_lookups(self, store, annotations):
        """Token and tag lookups return exactly the matching annotations."""
        faith = await store.tags.create_tag("Faith")
        hope = await store.tags.create_tag("Hope")
        a1 = await annotations.create_annotation(faith.id, ["gen.1.1.1", "gen.1.1.2"])
        a2 = await annotations.create_annotation(hope.id, ["gen.1.1.10"])
        a3 = await annotations.create_annotation(hope.id, ["gen.1.1.2"])

        assert [a.id for a in await annotations.get_annotations_for_token("gen.1.1.1")] == [a1.id]
        assert {a.id for a in await annotations.get_annotations_for_token("gen.1.1.2")} == {
            a1.id,
            a3.id,
        }
        assert {a.id for a in await annotations.get_annotations_for_tag(hope.id)} == {
            a2.id,
            a3.id,
        }
        assert await annotations.get_annotations_for_token("exo.1.1.1") == []
