"""
Accuracy Validator
Scores an ML prediction and a rule-based prediction against ground truth.
"""

from typing import Iterable, Tuple

import numpy as np
from sklearn.metrics import mean_absolute_error

from healthcast.models import AccuracyComparison, BatchComparisonReport, Winner
from healthcast.utils.config import TIE_TOLERANCE
from healthcast.utils.errors import InvalidFeatureError


def accuracy_percent(prediction: float, ground_truth: float) -> float:
    """
    ``max(0, 100 - error / truth * 100)``.

    A ground truth of zero has no relative error: an exact zero prediction
    scores 100, anything else scores 0.
    """
    if ground_truth < 0:
        raise InvalidFeatureError(f"ground truth cannot be negative, got {ground_truth}")
    error = abs(prediction - ground_truth)
    if ground_truth == 0:
        return 100.0 if error == 0 else 0.0
    return max(0.0, 100.0 - error * 100.0 / ground_truth)


def select_winner(ml_accuracy: float, rule_accuracy: float, tie_tolerance: float = None) -> Winner:
    if tie_tolerance is None:
        tie_tolerance = TIE_TOLERANCE
    if abs(ml_accuracy - rule_accuracy) < tie_tolerance:
        return Winner.TIE
    return Winner.ML if ml_accuracy > rule_accuracy else Winner.RULE_BASED


def compare(ground_truth: float, ml_prediction: float, rule_based_prediction: float,
            tie_tolerance: float = None, context: dict = None) -> AccuracyComparison:
    """
    Compares both predictors against ground truth.

    Args:
        ground_truth: Reference value (>= 0)
        ml_prediction: Value predicted by the trained model
        rule_based_prediction: Value predicted by the rule engine
        tie_tolerance: Accuracy points within which the result is a Tie
        context: Optional descriptive fields carried into the result

    Returns:
        AccuracyComparison
    """
    ml_accuracy = accuracy_percent(ml_prediction, ground_truth)
    rule_accuracy = accuracy_percent(rule_based_prediction, ground_truth)
    return AccuracyComparison(
        ground_truth=ground_truth,
        ml_prediction=ml_prediction,
        rule_based_prediction=rule_based_prediction,
        ml_error=abs(ml_prediction - ground_truth),
        rule_error=abs(rule_based_prediction - ground_truth),
        ml_accuracy_percent=ml_accuracy,
        rule_accuracy_percent=rule_accuracy,
        winner=select_winner(ml_accuracy, rule_accuracy, tie_tolerance),
        context=dict(context or {}),
    )


def summarize(comparisons: Iterable[AccuracyComparison], failures: list = None) -> BatchComparisonReport:
    """Aggregates individual comparisons; the overall winner is decided on mean accuracy."""
    comparisons = list(comparisons)
    if comparisons:
        mean_ml = float(np.mean([c.ml_accuracy_percent for c in comparisons]))
        mean_rule = float(np.mean([c.rule_accuracy_percent for c in comparisons]))
        truths = [c.ground_truth for c in comparisons]
        ml_error = float(mean_absolute_error(truths, [c.ml_prediction for c in comparisons]))
        rule_error = float(mean_absolute_error(truths, [c.rule_based_prediction for c in comparisons]))
    else:
        mean_ml = mean_rule = ml_error = rule_error = 0.0

    if mean_ml > mean_rule:
        overall = Winner.ML
    elif mean_rule > mean_ml:
        overall = Winner.RULE_BASED
    else:
        overall = Winner.TIE

    return BatchComparisonReport(
        comparisons=comparisons,
        mean_ml_accuracy=mean_ml,
        mean_rule_accuracy=mean_rule,
        ml_wins=sum(1 for c in comparisons if c.winner == Winner.ML),
        rule_wins=sum(1 for c in comparisons if c.winner == Winner.RULE_BASED),
        ties=sum(1 for c in comparisons if c.winner == Winner.TIE),
        overall_winner=overall,
        failures=list(failures or []),
        mean_ml_error=ml_error,
        mean_rule_error=rule_error,
    )


def compare_batch(rows: Iterable[Tuple[float, float, float]], tie_tolerance: float = None) -> BatchComparisonReport:
    """
    Runs ``compare`` over (ground_truth, ml, rule_based) triples.

    Rows that fail validation are reported in ``failures`` instead of aborting
    the batch.
    """
    comparisons, failures = [], []
    for index, (truth, ml, rule) in enumerate(rows):
        try:
            comparisons.append(compare(truth, ml, rule, tie_tolerance))
        except InvalidFeatureError as e:
            failures.append({'index': index, 'kind': e.kind, 'message': e.message})
    return summarize(comparisons, failures)
