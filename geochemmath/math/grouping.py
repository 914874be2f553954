"""
Correlation-driven variable grouping for geochemmath.

Suggests sets of strongly inter-correlated variables as PCA candidates.
The variance figures are heuristic estimates from the mean correlation;
no decomposition is run here, so any suggestion should be confirmed with
`run_pca`.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np

from geochemmath.math.named_matrix import NamedMatrix

logger = logging.getLogger(__name__)


DEFAULT_GROUP_THRESHOLD = 0.6
MIN_GROUP_SIZE = 3
MAX_GROUP_SIZE = 6
MAX_SUGGESTIONS = 3
MIN_PC2_VARIANCE = 10.0


@dataclass(frozen=True)
class VariableGroupSuggestion:
    """A candidate variable set for PCA with its heuristic scores."""

    variables: tuple
    average_correlation: float
    pc1_variance: float
    pc2_variance: float
    estimated_variance: float
    confidence: float
    reason: str

    @property
    def rank_score(self) -> float:
        return self.estimated_variance * 0.7 + self.average_correlation * 100 * 0.3

    def to_dict(self) -> Dict[str, Any]:
        return {
            'variables': list(self.variables),
            'average_correlation': self.average_correlation,
            'pc1_variance': self.pc1_variance,
            'pc2_variance': self.pc2_variance,
            'estimated_variance': self.estimated_variance,
            'confidence': self.confidence,
            'reason': self.reason
        }


def _abs_lookup(corr_matrix: Union[NamedMatrix, Any],
                variable_names: Sequence[str]) -> Dict[str, Dict[str, float]]:
    """
    Build a name-keyed |r| lookup restricted to known variables.

    A NamedMatrix is looked up by name; a plain array is read positionally
    against `variable_names`.
    """
    if isinstance(corr_matrix, NamedMatrix):
        known = [name for name in variable_names if name in corr_matrix]
        return {a: {b: abs(float(corr_matrix.get(a, b))) for b in known} for a in known}

    values = np.array(corr_matrix, dtype=float)
    if values.ndim != 2:
        return {}
    size = min(values.shape[0], values.shape[1], len(variable_names))
    names = list(variable_names)[:size]
    return {a: {b: abs(float(values[i, j])) for j, b in enumerate(names)} for i, a in enumerate(names)}


def greedy_groups(lookup: Dict[str, Dict[str, float]],
                  variable_names: Sequence[str],
                  threshold: float) -> List[List[str]]:
    """
    Partition variables into groups in a single greedy pass.

    Each ungrouped variable seeds a group; later ungrouped variables join
    it when their mean |r| to every current member is at least `threshold`.

    Args:
        lookup: Name-keyed |r| values
        variable_names: Variables in input order
        threshold: Minimum mean |r| for absorption

    Returns:
        All groups, including ones too small to suggest
    """
    names = [name for name in dict.fromkeys(variable_names) if name in lookup]
    used = set()
    groups = []

    for i, seed in enumerate(names):
        if seed in used:
            continue
        group = [seed]
        used.add(seed)

        for candidate in names[i + 1:]:
            if candidate in used:
                continue
            avg = np.mean([lookup[member][candidate] for member in group])
            if avg >= threshold:
                group.append(candidate)
                used.add(candidate)

        groups.append(group)

    return groups


def _member_strength(lookup: Dict[str, Dict[str, float]], name: str, group: Sequence[str]) -> float:
    others = [lookup[name][other] for other in group if other != name]
    return float(np.mean(others)) if others else 0.0


def _mean_pairwise(lookup: Dict[str, Dict[str, float]], names: Sequence[str]) -> float:
    values = [lookup[a][b] for i, a in enumerate(names) for b in names[i + 1:]]
    return float(np.mean(values)) if values else 0.0


def build_suggestion(lookup: Dict[str, Dict[str, float]],
                     group: Sequence[str]) -> Optional[VariableGroupSuggestion]:
    """
    Score one group, or return None when it should not be suggested.

    Args:
        lookup: Name-keyed |r| values
        group: Group members

    Returns:
        VariableGroupSuggestion or None
    """
    if len(group) < MIN_GROUP_SIZE:
        return None

    ranked = sorted(group, key=lambda name: _member_strength(lookup, name, group), reverse=True)
    selected = ranked[:MAX_GROUP_SIZE]

    avg = _mean_pairwise(lookup, selected)
    pc1 = min(avg * 50 + 40, 80.0)
    pc2 = max(30 - avg * 15, 10.0)
    if pc2 < MIN_PC2_VARIANCE:
        return None

    confidence = (0.4 * min(avg, 1.0)
                  + 0.4 * min(pc2 / 30, 1.0)
                  + 0.2 * min((len(selected) - 2) / 4, 1.0))

    reason = (f"{len(selected)} variables are strongly correlated (mean |r|={avg:.2f}); "
              f"PC1 is expected to explain about {pc1:.0f}% and PC2 about {pc2:.0f}% of the variance.")

    return VariableGroupSuggestion(
        variables=tuple(selected),
        average_correlation=avg,
        pc1_variance=pc1,
        pc2_variance=pc2,
        estimated_variance=pc1 + pc2,
        confidence=confidence,
        reason=reason
    )


def suggest_pca_groups(corr_matrix: Union[NamedMatrix, Any],
                       variable_names: Sequence[str],
                       threshold: float = DEFAULT_GROUP_THRESHOLD) -> List[VariableGroupSuggestion]:
    """
    Suggest up to three variable groups worth running PCA on.

    Args:
        corr_matrix: Correlation matrix (NamedMatrix, or an array ordered
            like `variable_names`)
        variable_names: Candidate variables in input order; names missing
            from the matrix are ignored
        threshold: Minimum mean |r| for a variable to join a group

    Returns:
        Suggestions by descending rank score (empty if none qualify)
    """
    lookup = _abs_lookup(corr_matrix, variable_names)
    groups = greedy_groups(lookup, variable_names, threshold)

    suggestions = [s for s in (build_suggestion(lookup, g) for g in groups) if s is not None]
    suggestions.sort(key=lambda s: s.rank_score, reverse=True)

    logger.debug(f"Formed {len(groups)} groups, {len(suggestions)} qualify for suggestion")
    return suggestions[:MAX_SUGGESTIONS]
