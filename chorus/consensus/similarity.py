"""Textual similarity used to measure agreement between answers."""

from __future__ import annotations

from collections.abc import Callable

from chorus.scoring import tokenize

Similarity = Callable[[str, str], float]


def token_overlap(a: str, b: str) -> float:
    """Jaccard overlap of the lowercase word tokens of two texts.

    Two empty texts are identical (1.0); one empty text shares nothing.
    """
    left = set(tokenize(a))
    right = set(tokenize(b))
    if not left and not right:
        return 1.0
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


def agreement_matrix(contents: list[str], similarity: Similarity = token_overlap) -> list[list[float]]:
    """Symmetric matrix of pairwise similarity with 1.0 on the diagonal."""
    n = len(contents)
    matrix = [[1.0] * n for _ in range(n)]
    for i in range(n):
        for j in range(i + 1, n):
            value = max(0.0, min(1.0, similarity(contents[i], contents[j])))
            matrix[i][j] = value
            matrix[j][i] = value
    return matrix


def mean_agreement(matrix: list[list[float]]) -> float:
    """Mean of the off-diagonal entries.

    A single answer agrees with itself (1.0); no answers means no
    agreement (0.0).
    """
    n = len(matrix)
    if n == 0:
        return 0.0
    if n == 1:
        return 1.0
    total = sum(matrix[i][j] for i in range(n) for j in range(i + 1, n))
    return total / (n * (n - 1) / 2)
