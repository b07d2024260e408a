"""
Coverage Gap Analysis (TF-IDF differential).

Compares how strongly each term features across the whole question bank with
how strongly it features in the questions the learner has actually
attempted. A term that matters corpus-wide but barely appears in the
attempted set marks a topic the learner has not practiced.

Weights follow the textbook definition: tf = count / document length,
idf = ln(N / document frequency). Terms present in every document therefore
weigh zero.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from loguru import logger
from scipy import sparse
from sklearn.feature_extraction.text import CountVectorizer

from src.hlpe.models import AnalysisSnapshot

MIN_CORPUS_WEIGHT = 0.01
USER_RATIO = 0.1
GAP_LIMIT = 5

# Lower-case, then every run of word characters is a token.
TOKEN_PATTERN = r"\w+"


@dataclass
class KnowledgeGap:
    """An under-practiced term and how far the learner lags the corpus."""

    topic: str
    gap_score: float


def term_weights(documents: list[str], attempted: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray] | None:
    """
    Average TF-IDF weight per term over the corpus and over attempted documents.

    Returns:
        (terms, corpus_avg, user_avg), or None when the corpus has no tokens
    """
    vectorizer = CountVectorizer(lowercase=True, token_pattern=TOKEN_PATTERN)
    try:
        counts = vectorizer.fit_transform(documents)
    except ValueError:
        # Raised for an empty vocabulary (no document has a single token)
        return None

    n_docs = counts.shape[0]
    lengths = np.asarray(counts.sum(axis=1), dtype=float).ravel()
    lengths[lengths == 0] = 1.0
    doc_freq = np.asarray((counts > 0).sum(axis=0), dtype=float).ravel()
    idf = np.log(n_docs / doc_freq)

    tfidf = (sparse.diags(1.0 / lengths) @ counts @ sparse.diags(idf)).tocsr()

    corpus_avg = np.asarray(tfidf.sum(axis=0)).ravel() / n_docs
    n_attempted = int(attempted.sum())
    if n_attempted:
        user_avg = np.asarray(tfidf[np.flatnonzero(attempted)].sum(axis=0)).ravel() / n_attempted
    else:
        user_avg = np.zeros_like(corpus_avg)

    return vectorizer.get_feature_names_out(), corpus_avg, user_avg


def find_knowledge_gaps(
    snapshot: AnalysisSnapshot,
    min_corpus_weight: float = MIN_CORPUS_WEIGHT,
    user_ratio: float = USER_RATIO,
    limit: int = GAP_LIMIT,
) -> list[KnowledgeGap] | None:
    """
    Find terms the learner's attempted questions under-sample.

    A term is a gap when its corpus average exceeds ``min_corpus_weight`` and
    the attempted average is below ``user_ratio`` of the corpus average.

    Returns:
        Up to ``limit`` gaps by descending gap score, or None for an empty bank
    """
    questions = snapshot.questions
    if not questions:
        return None

    documents = [q.document for q in questions]
    attempted = np.array([q.is_attempted for q in questions], dtype=bool)

    weights = term_weights(documents, attempted)
    if weights is None:
        logger.debug("Gap analysis skipped: question bank has no tokens")
        return None
    terms, corpus_avg, user_avg = weights

    flagged = np.flatnonzero((corpus_avg > min_corpus_weight) & (user_avg < corpus_avg * user_ratio))
    gaps = [KnowledgeGap(topic=str(terms[i]), gap_score=float(corpus_avg[i] - user_avg[i])) for i in flagged]
    gaps.sort(key=lambda g: g.gap_score, reverse=True)

    logger.debug("Gap analysis: {} of {} terms flagged", len(gaps), len(terms))
    return gaps[:limit]
