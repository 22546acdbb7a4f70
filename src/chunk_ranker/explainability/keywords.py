# explainability/keywords.py
"""
Explain why two chunks are related.

Lexical heuristics only (no LLM): shared keywords, shared bigram/trigram
phrases, and a categorical reason label.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List

# Common English stopwords
STOPWORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "has", "have",
    "he", "in", "is", "it", "its", "of", "on", "or", "that", "the", "to", "was",
    "were", "will", "with", "this", "but", "they", "had", "what", "when", "where",
    "who", "which", "can", "could", "would", "should", "their", "there", "been",
    "being", "do", "does", "did", "doing", "these", "those", "then", "than",
    "so", "if", "not", "no", "nor", "only", "own", "same", "such", "too", "very",
    "just", "also", "any", "each", "few", "more", "most", "other", "some", "all",
    "both", "into", "out", "up", "down", "about", "after", "before", "over", "under",
    "again", "further", "once", "here", "why", "how", "our", "your", "my", "his", "her",
    "am", "him", "me", "we", "you", "she", "us", "them",
})

UNIGRAM_MIN_LENGTH = 3
NGRAM_MIN_LENGTH = 2

BIGRAM_WEIGHT = 2
TRIGRAM_WEIGHT = 3

# determine_reason_label thresholds (score is a distance)
VERY_SIMILAR_MAX_DISTANCE = 0.3
VERY_SIMILAR_MIN_JACCARD = 0.3
RELATED_MAX_DISTANCE = 0.5
RELATED_MIN_JACCARD = 0.15

_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9\s]")


class ReasonLabel(str, Enum):
    """Why two chunks are considered related."""

    SAME_DOC = "same_doc"
    VERY_SIMILAR = "very_similar"
    RELATED_TOPIC = "related_topic"
    LOOSELY_RELATED = "loosely_related"


@dataclass
class ChunkExplanation:
    """Human-readable justification for a chunk relationship."""

    shared_keywords: List[str] = field(default_factory=list)  # at most 5
    shared_phrases: List[str] = field(default_factory=list)  # at most 3
    reason_label: ReasonLabel = ReasonLabel.LOOSELY_RELATED

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization."""
        return {
            "shared_keywords": list(self.shared_keywords),
            "shared_phrases": list(self.shared_phrases),
            "reason_label": self.reason_label.value,
        }


def tokenize(text: str, min_length: int = UNIGRAM_MIN_LENGTH) -> List[str]:
    """
    Lowercase, replace non-alphanumerics with spaces, split, and drop
    short words and stopwords.
    """
    cleaned = _NON_ALPHANUMERIC.sub(" ", text.lower())
    return [
        word for word in cleaned.split()
        if len(word) >= min_length and word not in STOPWORDS
    ]


def word_frequency(text: str) -> Counter:
    return Counter(tokenize(text))


def ngrams(text: str, n: int) -> List[str]:
    """Consecutive n-word sequences, built from the relaxed (min length 2) tokenizer."""
    words = tokenize(text, NGRAM_MIN_LENGTH)
    return [" ".join(words[i:i + n]) for i in range(len(words) - n + 1)]


def ngram_frequency(text: str, n: int) -> Counter:
    return Counter(ngrams(text, n))


def find_shared_keywords(text1: str, text2: str, max_count: int = 5) -> List[str]:
    """
    Keywords present in both texts.

    Ranked by combined frequency (descending), then alphabetically.
    """
    freq1 = word_frequency(text1)
    freq2 = word_frequency(text2)

    shared = [(word, count + freq2[word]) for word, count in freq1.items() if word in freq2]
    shared.sort(key=lambda item: (-item[1], item[0]))

    return [word for word, _ in shared[:max_count]]


def find_shared_phrases(text1: str, text2: str, max_count: int = 3) -> List[str]:
    """
    Bigrams and trigrams present in both texts.

    Bigrams score 2x their combined frequency, trigrams 3x. Ties keep
    discovery order (bigrams before trigrams).
    """
    phrases = []

    for n, weight in ((2, BIGRAM_WEIGHT), (3, TRIGRAM_WEIGHT)):
        freq1 = ngram_frequency(text1, n)
        freq2 = ngram_frequency(text2, n)
        for phrase, count in freq1.items():
            if phrase in freq2:
                phrases.append((phrase, (count + freq2[phrase]) * weight))

    phrases.sort(key=lambda item: -item[1])
    return [phrase for phrase, _ in phrases[:max_count]]


def jaccard_similarity(text1: str, text2: str) -> float:
    """|intersection| / |union| over unique tokens; 0.0 when both are empty."""
    words1 = set(tokenize(text1))
    words2 = set(tokenize(text2))
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


def determine_reason_label(
    text1: str,
    text2: str,
    is_same_document: bool,
    similarity_score: float,
) -> ReasonLabel:
    """
    Categorize a chunk relationship.

    similarity_score is a distance (lower = more similar), matching the
    rest of the pipeline.
    """
    if is_same_document:
        return ReasonLabel.SAME_DOC

    jaccard = jaccard_similarity(text1, text2)

    if similarity_score < VERY_SIMILAR_MAX_DISTANCE and jaccard > VERY_SIMILAR_MIN_JACCARD:
        return ReasonLabel.VERY_SIMILAR

    if similarity_score < RELATED_MAX_DISTANCE or jaccard > RELATED_MIN_JACCARD:
        return ReasonLabel.RELATED_TOPIC

    return ReasonLabel.LOOSELY_RELATED


def explain_chunk_similarity(
    source_text: str,
    target_text: str,
    is_same_document: bool,
    similarity_score: float,
) -> ChunkExplanation:
    """Keywords, phrases and reason label for a pair of chunks."""
    return ChunkExplanation(
        shared_keywords=find_shared_keywords(source_text, target_text),
        shared_phrases=find_shared_phrases(source_text, target_text),
        reason_label=determine_reason_label(
            source_text, target_text, is_same_document, similarity_score
        ),
    )
