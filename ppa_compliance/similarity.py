"""
similarity.py — Pluggable grouping strategies for duplicate detection.

The duplicate-procurement rule only asks a detector for a grouping key per
description; records sharing a key are candidate duplicates. Swapping in a
stronger technique means implementing another SimilarityDetector.
"""

from abc import ABC, abstractmethod

STOP_WORDS = frozenset(
    ["the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by"]
)


class SimilarityDetector(ABC):
    """Maps a procurement description to a grouping key."""

    @abstractmethod
    def group_key(self, description: str) -> str:
        raise NotImplementedError


class KeywordSimilarityDetector(SimilarityDetector):
    """Groups descriptions by their leading significant keywords.

    Tokens are lower-cased and split on whitespace; tokens of `min_length`
    characters or fewer and stop words are dropped. The first `key_size`
    survivors joined by '-' form the key. No stemming or synonym handling,
    so paraphrased titles will not match.

    Descriptions with no significant tokens all share the empty key.
    """

    def __init__(
        self,
        key_size: int = 3,
        min_length: int = 3,
        stop_words: frozenset[str] = STOP_WORDS,
    ) -> None:
        self.key_size = key_size
        self.min_length = min_length
        self.stop_words = stop_words

    def extract_keywords(self, description: str) -> list[str]:
        return [
            word
            for word in description.lower().split()
            if len(word) > self.min_length and word not in self.stop_words
        ]

    def group_key(self, description: str) -> str:
        return "-".join(self.extract_keywords(description)[: self.key_size])
