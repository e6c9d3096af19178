"""
Term-frequency code extraction without a language model.

Used for sources whose extraction batch failed, and for runs without any
language model configured. Candidate labels are the most frequent bigrams
and keywords of a source (sklearn CountVectorizer with English stop words);
a label becomes a code only if at least one sentence of the source contains
it, and those sentences become its verbatim excerpts.
"""

import logging
import re

import numpy as np
from sklearn.feature_extraction.text import CountVectorizer

from theme_engine.coding.config import CodingConfig
from theme_engine.coding.schemas import Code, Source

logger = logging.getLogger(__name__)

_SENTENCE_END = re.compile(r"[.!?]+")
_PURE_NUMBER = re.compile(r"^\d+$")


class LocalCodeExtractor:
    """
    Extracts codes from a source by keyword and bigram frequency.

    Usage:
        >>> extractor = LocalCodeExtractor()
        >>> codes = extractor.extract(Source(id="s1", text="..."))
    """

    def __init__(self, config: CodingConfig | None = None):
        self._config = config or CodingConfig()

    def _segment_sentences(self, text: str) -> list[str]:
        """Split text into sentences, keeping each as a verbatim substring."""
        sentences = []
        for piece in _SENTENCE_END.split(text):
            sentence = piece.strip()
            if len(sentence) > self._config.local_min_sentence_length:
                sentences.append(sentence)
        return sentences

    def _top_terms(self, text: str, ngram: int, top_n: int) -> list[str]:
        """Most frequent n-grams of ``text`` after stop-word removal."""
        if top_n <= 0:
            return []
        min_len = self._config.local_min_word_length
        vectorizer = CountVectorizer(
            stop_words="english",
            ngram_range=(ngram, ngram),
            token_pattern=rf"(?u)\b[a-zA-Z][a-zA-Z0-9\-]{{{min_len - 1},}}\b",
            lowercase=True,
        )
        try:
            counts = vectorizer.fit_transform([text])
        except ValueError:
            # Empty vocabulary: nothing left after stop-word removal
            return []

        scores = np.asarray(counts.sum(axis=0)).flatten()
        terms = vectorizer.get_feature_names_out()
        # Stable ordering: count descending, then term
        order = sorted(range(len(terms)), key=lambda i: (-scores[i], terms[i]))
        return [terms[i] for i in order if not _PURE_NUMBER.match(terms[i])][:top_n]

    def _find_excerpts(self, label: str, sentences: list[str]) -> list[str]:
        label_lower = label.lower()
        excerpts = []
        for sentence in sentences:
            if label_lower in sentence.lower():
                excerpts.append(sentence[: self._config.local_max_excerpt_chars])
                if len(excerpts) >= self._config.local_excerpts_per_code:
                    break
        return excerpts

    def extract(self, source: Source) -> list[Code]:
        """
        Extract codes from a single source.

        Args:
            source: Source document.

        Returns:
            Codes with at least one verbatim excerpt each (possibly empty).
        """
        sentences = self._segment_sentences(source.text)
        if not sentences:
            return []

        labels = self._top_terms(source.text, 2, self._config.local_top_bigrams)
        labels += self._top_terms(source.text, 1, self._config.local_top_keywords)

        codes: list[Code] = []
        seen: set[str] = set()
        for label in labels:
            excerpts = self._find_excerpts(label, sentences)
            if not excerpts:
                # No evidence in the text
                continue

            formatted = label.title()
            code_id = Code.generate_code_id(source.id, formatted)
            if code_id in seen:
                continue
            seen.add(code_id)

            title = source.title[:50] + ("..." if len(source.title) > 50 else "")
            where = f' in "{title}"' if title else ""
            codes.append(
                Code(
                    id=code_id,
                    label=formatted,
                    description=f'Pattern identified through frequency analysis: "{formatted}"{where}',
                    excerpts=tuple(excerpts),
                    source_id=source.id,
                    metadata={"extraction": "local"},
                )
            )

        logger.debug("Local extraction produced %d codes for %s", len(codes), source.id)
        return codes
