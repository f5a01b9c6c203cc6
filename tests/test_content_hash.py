"""Tests for content hashing."""

from promptbank.models import Prompt, PromptMetadata
from promptbank.sync.content_hash import compute_content_hash, matches_hash

HELLO_WORLD_HASH = "f239b3accd73901eb39dd94d0f622d86b62cba9bb0e003ad7541b1a91af8aa87"


def make_prompt(title="Hello", content="World", category="General", **kwargs) -> Prompt:
    return Prompt(id=kwargs.pop("id", "p1"), title=title, content=content, category=category, **kwargs)


class TestComputeContentHash:
    """Tests for compute_content_hash."""

    def test_known_digest(self):
        """Test the digest matches the canonical compact JSON form."""
        assert compute_content_hash(make_prompt()) == HELLO_WORLD_HASH

    def test_hex_format(self):
        """Test the digest is 64 lowercase hex characters."""
        digest = compute_content_hash(make_prompt())
        assert len(digest) == 64
        assert digest == digest.lower()
        int(digest, 16)

    def test_whitespace_trimmed(self):
        """Test surrounding whitespace does not change the hash."""
        padded = make_prompt(title="  Hello\n", content="\tWorld  ", category=" General ")
        assert compute_content_hash(padded) == HELLO_WORLD_HASH

    def test_inner_whitespace_matters(self):
        """Test whitespace inside the text does change the hash."""
        assert compute_content_hash(make_prompt(content="Wor ld")) != HELLO_WORLD_HASH

    def test_ignores_non_content_fields(self):
        """Test id, description, order, metadata and history are excluded."""
        other = make_prompt(
            id="different",
            description="desc",
            order=7,
            category_order=2,
            metadata=PromptMetadata(usage_count=42),
        )
        assert compute_content_hash(other) == HELLO_WORLD_HASH

    def test_each_field_counts(self):
        """Test title, content and category each affect the hash."""
        hashes = {
            compute_content_hash(make_prompt(title="Hello!")),
            compute_content_hash(make_prompt(content="World!")),
            compute_content_hash(make_prompt(category="Code")),
            HELLO_WORLD_HASH,
        }
        assert len(hashes) == 4

    def test_empty_category_equals_missing(self):
        """Test a None category hashes like an empty one."""
        assert compute_content_hash(make_prompt(category=None)) == compute_content_hash(
            make_prompt(category="")
        )

    def test_non_ascii_stable(self):
        """Test non-ASCII text hashes deterministically."""
        first = compute_content_hash(make_prompt(title="Café", content="naïve {{x}}", category=""))
        second = compute_content_hash(make_prompt(title="Café", content="naïve {{x}}", category=""))
        assert first == second
        assert first != compute_content_hash(make_prompt(title="Cafe", content="naive {{x}}", category=""))


class TestHashHelpers:
    """Tests for the hash helper functions."""

    def test_matches_hash(self):
        """Test matches_hash compares against a known digest."""
        assert matches_hash(make_prompt(), HELLO_WORLD_HASH)
        assert not matches_hash(make_prompt(title="Bye"), HELLO_WORLD_HASH)
