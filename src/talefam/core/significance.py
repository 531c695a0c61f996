"""
Alignment p-values under a symbol-frequency null model.

The null model draws each position of a random sequence independently
from the empirical symbol frequencies of a population. For a reference
sequence the engine computes the distribution of the (gap-free) alignment
cost of such a random sequence and reports the log10 probability that the
cost falls below an observed threshold.

All probabilities are kept in natural-log space internally; public
results are log10 values, where ``0`` means probability one and ``-inf``
probability zero.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence

import numpy as np

from talefam.core.alignment import CostModel
from talefam.core.constants import COST_MERGE_TOLERANCE, LN10
from talefam.core.exceptions import EmptyItemListError, UnknownSymbolError
from talefam.models.items import Item

logger = logging.getLogger(__name__)

_LN2 = math.log(2.0)


def log1mexp(x: float) -> float:
    """
    Compute ``log(1 - exp(x))`` for ``x <= 0`` without cancellation.

    ``x >= 0`` maps to ``-inf`` (probability zero of the complement) and
    ``-inf`` maps to ``0``.
    """
    if x == -math.inf:
        return 0.0
    if x >= 0.0:
        return -math.inf
    if x > -_LN2:
        return math.log(-math.expm1(x))
    return math.log1p(-math.exp(x))


def combine_independent(log10_pvalues: Iterable[float]) -> float:
    """
    Combine p-values of independent events as ``1 - prod(1 - p_i)``.

    Args:
        log10_pvalues: log10 p-values of the single events.

    Returns:
        log10 of the probability that at least one event occurs.
    """
    total = 0.0
    for value in log10_pvalues:
        total += log1mexp(value * LN10)
    return log1mexp(total) / LN10


def _logsumexp(values: np.ndarray) -> float:
    if values.size == 0:
        return -math.inf
    return float(np.logaddexp.reduce(values))


class AlignmentPValues:
    """
    Significance engine for alignment costs.

    Symbol frequencies start from a pseudo-count of one per alphabet symbol
    (divided by the alphabet size) and add the observed counts of the
    population. For each symbol ``s`` the engine stores the distinct costs
    ``cost(s, t)`` over the alphabet, together with the log of the summed
    frequency of all ``t`` reaching that cost.

    Args:
        population: Items the symbol frequencies are estimated from.
        costs: Substitution cost model.
        alphabet: Symbols random sequences are drawn from. Defaults to the symbols of
            the population.
        precision: Costs within this distance are merged while
            convolving cost distributions.
    """

    def __init__(
        self,
        population: Sequence[Item],
        costs: CostModel,
        alphabet: Iterable[str] | None = None,
        precision: float = COST_MERGE_TOLERANCE,
    ) -> None:
        if alphabet is None:
            symbols = sorted({s for item in population for s in item.rvds})
        else:
            symbols = sorted(set(alphabet))
        if not symbols:
            raise EmptyItemListError("estimate symbol frequencies")

        self.alphabet: tuple[str, ...] = tuple(symbols)
        self.precision = precision
        self._symbol_index = {s: i for i, s in enumerate(self.alphabet)}

        counts = np.full(len(self.alphabet), 1.0 / len(self.alphabet))
        for item in population:
            for symbol in item.rvds:
                index = self._symbol_index.get(symbol)
                if index is None:
                    raise UnknownSymbolError(symbol, self.alphabet)
                counts[index] += 1.0
        self.frequencies: np.ndarray = counts / counts.sum()

        self._costs = costs
        self._distributions: dict[str, tuple[np.ndarray, np.ndarray]] = {}
        for symbol in self.alphabet:
            self.cost_distribution(symbol)

        logger.debug(
            f"Significance engine over {len(self.alphabet)} symbols "
            f"from {len(population)} items"
        )

    def cost_distribution(self, symbol: str) -> tuple[np.ndarray, np.ndarray]:
        """
        Distinct costs for ``symbol`` and their natural-log probabilities.

        Symbols outside the alphabet (e.g. from query items) are scored
        against the same population frequencies, so querying them never
        changes the null model.
        """
        if symbol not in self._distributions:
            by_cost: dict[float, float] = {}
            for other, freq in zip(self.alphabet, self.frequencies):
                c = float(self._costs.cost(symbol, other))
                by_cost[c] = by_cost.get(c, 0.0) + float(freq)
            values = sorted(by_cost)
            self._distributions[symbol] = (
                np.array(values, dtype=np.float64),
                np.log([by_cost[v] for v in values]),
            )
        return self._distributions[symbol]

    def _merge(self, scores: np.ndarray, log_probs: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Sort by score and merge runs within ``precision`` of the run's first score."""
        order = np.argsort(scores, kind="stable")
        scores = scores[order]
        log_probs = log_probs[order]

        merged_scores: list[float] = []
        merged_probs: list[float] = []
        start = 0
        n = len(scores)
        while start < n:
            end = start + 1
            while end < n and scores[end] - scores[start] < self.precision:
                end += 1
            merged_scores.append(float(scores[start]))
            merged_probs.append(_logsumexp(log_probs[start:end]))
            start = end
        return np.array(merged_scores), np.array(merged_probs)

    def log10_pvalue(
        self,
        symbols: Sequence[str],
        cost_threshold: float,
        base_score: float = 0.0,
    ) -> float:
        """
        log10 probability that a random sequence aligns to ``symbols`` at
        a cost below ``cost_threshold``.

        Args:
            symbols: Reference symbol sequence.
            cost_threshold: Observed cost; only strictly smaller costs count.
            base_score: Cost added up front (e.g. for terminal gaps).

        Returns:
            log10 p-value, ``0.0`` for an infinite threshold and ``-inf``
            when no achievable cost lies below the threshold.
        """
        if cost_threshold == math.inf:
            return 0.0

        scores = np.array([base_score], dtype=np.float64)
        log_probs = np.zeros(1, dtype=np.float64)
        for symbol in symbols:
            values, probs = self.cost_distribution(symbol)
            scores, log_probs = self._merge(
                (scores[:, None] + values[None, :]).ravel(),
                (log_probs[:, None] + probs[None, :]).ravel(),
            )
            if scores.size == 0:
                return -math.inf

        return _logsumexp(log_probs[scores < cost_threshold]) / LN10

    def log10_pvalue_pair(
        self,
        a: Item,
        b: Item,
        observed_cost: float,
        extra_gap_opening: float,
        extra_gap_extension: float,
    ) -> float:
        """
        log10 p-value of aligning two items of possibly different lengths.

        The shorter item is slid over every offset of the longer one. Each
        offset pays the terminal gap costs needed to cover the length
        difference. The p-values of the longer item's windows and of the
        shorter item itself, at each offset, are combined as independent
        events.
        """
        short, long = (a, b) if len(a) <= len(b) else (b, a)
        offsets = len(long) - len(short) + 1

        total = 0.0
        for i in range(offsets):
            base = (offsets - 1) * extra_gap_extension
            if offsets > 1 and i > 0:
                base += extra_gap_opening
            if offsets > 1 and i < offsets - 1:
                base += extra_gap_opening
            window = long.rvds[i : i + len(short)]
            p = self.log10_pvalue(window, observed_cost, base)
            q = self.log10_pvalue(short.rvds, observed_cost, base)
            total += log1mexp(p * LN10) + log1mexp(q * LN10)

        return log1mexp(total) / LN10
