"""Tests for the prompt data model."""

import re
from datetime import datetime, timedelta, timezone

from promptbank.models import (
    DeviceInfo,
    Prompt,
    PromptMetadata,
    PromptVersion,
    extract_variables,
    merge_versions,
    new_prompt_id,
    parse_timestamp,
    prune_versions,
    record_edit,
)

DEVICE = DeviceInfo(device_id="abc123", device_name="Laptop (Linux)")


def make_version(version_id: str, minutes: int) -> PromptVersion:
    return PromptVersion(
        version_id=version_id,
        timestamp=datetime(2025, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes),
        device_id="d",
        device_name="D",
        title=f"title {version_id}",
        content="content",
        category="General",
    )


class TestIds:
    """Tests for prompt id generation."""

    def test_format(self):
        """Test ids look like prompt_<ms>_<9 base36 chars>."""
        assert re.fullmatch(r"prompt_\d{13}_[0-9a-z]{9}", new_prompt_id())

    def test_unique(self):
        """Test consecutive ids differ."""
        assert len({new_prompt_id() for _ in range(200)}) == 200


class TestExtractVariables:
    """Tests for template variable extraction."""

    def test_distinct_in_order(self):
        """Test duplicates are collapsed and order is preserved."""
        variables = extract_variables("{{language}} {{filename}} {{language}} {{topic}}")
        assert [v.name for v in variables] == ["language", "filename", "topic"]

    def test_type_inference(self):
        """Test variable types are inferred from names."""
        types = {v.name: v.type for v in extract_variables(
            "{{filename}} {{selectedText}} {{lang}} {{topic}}"
        )}
        assert types == {
            "filename": "filename",
            "selectedText": "selection",
            "lang": "language",
            "topic": "text",
        }

    def test_descriptions(self):
        """Test known variables get friendly descriptions."""
        variables = extract_variables("{{filename}} {{topic}}")
        assert variables[0].description == "Current file name"
        assert variables[1].description == "Variable: topic"

    def test_ignores_malformed(self):
        """Test single braces and spaces are not variables."""
        assert extract_variables("{name} {{ spaced }} {{}}") == []


class TestSerialization:
    """Tests for prompt JSON conversion."""

    def test_optional_fields_absent(self):
        """Test unset optional fields are omitted, not written as empty strings."""
        data = Prompt.create("T", "C").to_dict()
        assert "description" not in data
        assert "order" not in data
        assert "categoryOrder" not in data
        assert "lastUsed" not in data["metadata"]

    def test_round_trip_preserves_fields(self):
        """Test to_dict/from_dict keeps every field."""
        prompt = Prompt.create("Review", "Check {{filename}}", "Code", "Looks for bugs")
        prompt.order = 3
        prompt.category_order = 1
        prompt.versions = [make_version("v1", 0)]

        restored = Prompt.from_dict(prompt.to_dict())

        assert restored == prompt

    def test_empty_description_becomes_none(self):
        """Test legacy empty-string descriptions load as absent."""
        data = Prompt.create("T", "C").to_dict()
        data["description"] = ""
        assert Prompt.from_dict(data).description is None

    def test_parse_timestamp_variants(self):
        """Test ISO strings with Z, naive strings and epoch ms parse to UTC."""
        expected = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert parse_timestamp("2025-03-01T12:00:00Z") == expected
        assert parse_timestamp("2025-03-01T12:00:00") == expected
        assert parse_timestamp(int(expected.timestamp() * 1000)) == expected
        assert parse_timestamp(None) is None

    def test_metadata_defaults(self):
        """Test missing metadata falls back to defaults."""
        metadata = PromptMetadata.from_dict(None)
        assert metadata.usage_count == 0
        assert metadata.last_used is None


class TestRecordEdit:
    """Tests for editing with version history."""

    def test_appends_prior_snapshot(self):
        """Test the snapshot holds the content from before the edit."""
        prompt = Prompt.create("Old title", "Old body")
        edited = record_edit(prompt, DEVICE, title="New title", change_reason="rename")

        assert edited.title == "New title"
        assert len(edited.versions) == 1
        snapshot = edited.versions[0]
        assert snapshot.title == "Old title"
        assert snapshot.content == "Old body"
        assert snapshot.device_name == "Laptop (Linux)"
        assert snapshot.change_reason == "rename"

    def test_history_never_contains_live_content(self):
        """Test no snapshot equals the current content after several edits."""
        prompt = Prompt.create("T", "v0")
        for i in range(1, 4):
            prompt = record_edit(prompt, DEVICE, content=f"v{i}")

        assert [v.content for v in prompt.versions] == ["v0", "v1", "v2"]
        assert prompt.content not in [v.content for v in prompt.versions]

    def test_no_snapshot_for_unchanged_values(self):
        """Test re-applying the same values records nothing."""
        prompt = Prompt.create("T", "C")
        edited = record_edit(prompt, DEVICE, title="T", order=5)
        assert edited.versions == []
        assert edited.order == 5

    def test_refreshes_variables(self):
        """Test variables follow the new content."""
        prompt = Prompt.create("T", "{{a}}")
        edited = record_edit(prompt, DEVICE, content="{{b}} {{c}}")
        assert [v.name for v in edited.variables] == ["b", "c"]

    def test_prunes_history(self):
        """Test history is capped at max_versions, keeping the newest."""
        prompt = Prompt.create("T", "v0")
        for i in range(1, 6):
            prompt = record_edit(prompt, DEVICE, content=f"v{i}", max_versions=3)
        assert [v.content for v in prompt.versions] == ["v2", "v3", "v4"]

    def test_does_not_mutate_input(self):
        """Test the original prompt is left untouched."""
        prompt = Prompt.create("T", "C")
        record_edit(prompt, DEVICE, content="changed")
        assert prompt.content == "C"
        assert prompt.versions == []


class TestVersionMerge:
    """Tests for merging version histories."""

    def test_union_sorted_and_deduplicated(self):
        """Test histories merge by version id in timestamp order."""
        local = [make_version("a", 0), make_version("c", 20)]
        remote = [make_version("b", 10), make_version("c", 20)]
        merged = merge_versions(local, remote)
        assert [v.version_id for v in merged] == ["a", "b", "c"]

    def test_prune_keeps_newest(self):
        """Test pruning drops the oldest entries."""
        versions = [make_version(str(i), i) for i in range(12)]
        assert [v.version_id for v in prune_versions(versions, 10)] == [
            str(i) for i in range(2, 12)
        ]
