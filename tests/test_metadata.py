"""Tests for off-chain metadata sanitization."""

from launchpad_indexer.app.domain.metadata import (
    MAX_DESCRIPTION_LENGTH,
    MAX_NAME_LENGTH,
    MAX_SYMBOL_LENGTH,
    TokenMetadata,
    sanitize_text,
)


class TestSanitizeText:
    def test_strips_script_blocks_and_tags(self) -> None:
        assert sanitize_text("<script>alert(1)</script><b>Moon</b> coin") == "Moon coin"

    def test_strips_js_scheme_and_handlers(self) -> None:
        cleaned = sanitize_text('javascript:alert(1) onclick=steal()')
        assert "javascript:" not in cleaned
        assert "onclick=" not in cleaned

    def test_plain_text_untouched(self) -> None:
        assert sanitize_text("  A fair launch.  ") == "A fair launch."


class TestTokenMetadata:
    def test_fields_truncated(self) -> None:
        metadata = TokenMetadata.from_document(
            {
                "name": "n" * 500,
                "symbol": "s" * 500,
                "description": "d" * 5000,
            }
        )
        assert metadata is not None
        assert len(metadata.name) == MAX_NAME_LENGTH
        assert len(metadata.symbol) == MAX_SYMBOL_LENGTH
        assert len(metadata.description) == MAX_DESCRIPTION_LENGTH

    def test_social_links_filtered(self) -> None:
        metadata = TokenMetadata.from_document(
            {
                "social": {
                    "twitter": "https://x.com/token",
                    "telegram": "javascript:alert(1)",
                    "website": "https://token.example",
                    "myspace": "https://myspace.com/token",
                }
            }
        )
        assert metadata is not None
        assert metadata.social == {"twitter": "https://x.com/token", "website": "https://token.example"}

    def test_unsafe_image_dropped(self) -> None:
        metadata = TokenMetadata.from_document({"image": "javascript:alert(1)"})
        assert metadata is not None
        assert metadata.image is None

    def test_ipfs_image_kept(self) -> None:
        metadata = TokenMetadata.from_document({"image": "ipfs://QmImage"})
        assert metadata is not None
        assert metadata.image == "ipfs://QmImage"

    def test_non_object_document(self) -> None:
        assert TokenMetadata.from_document(["not", "an", "object"]) is None

    def test_unknown_keys_dropped_from_document(self) -> None:
        metadata = TokenMetadata.from_document({"name": "Moon", "attributes": [1, 2]})
        assert metadata is not None
        assert metadata.to_document() == {"name": "Moon", "social": {}}
