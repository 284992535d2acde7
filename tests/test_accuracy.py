import math

import numpy as np
import pytest

from solarsat.analytics.accuracy import (
    confusion_matrix,
    evaluate,
    kappa,
    overall_accuracy,
)
from solarsat.core.errors import EmptyResultError, EmptyValidationError
from solarsat.ingestion.sampling import split_samples
from solarsat.modeling.pipelines import train_classifier


def test_confusion_matrix_rows_are_actual():
    actual = [1, 1, 1, 2]
    predicted = [1, 2, 2, 2]
    matrix = confusion_matrix(actual, predicted)
    assert matrix.index.name == "actual"
    assert matrix.columns.name == "predicted"
    assert matrix.loc[1, 2] == 2
    assert matrix.loc[2, 1] == 0
    assert matrix.to_numpy().sum() == 4


def test_confusion_matrix_includes_predicted_only_class():
    matrix = confusion_matrix([1, 1], [1, 2])
    assert list(matrix.index) == [1, 2]
    assert list(matrix.columns) == [1, 2]


def test_accuracy_is_trace_over_total():
    matrix = confusion_matrix([1, 1, 2, 2, 2], [1, 2, 2, 2, 1])
    assert overall_accuracy(matrix) == np.trace(matrix.to_numpy()) / 5


def test_kappa_perfect_balanced():
    matrix = confusion_matrix([1, 1, 2, 2], [1, 1, 2, 2])
    assert kappa(matrix) == pytest.approx(1.0)


def test_kappa_chance_agreement_is_zero():
    matrix = confusion_matrix([1, 1, 2, 2], [1, 2, 1, 2])
    assert kappa(matrix) == pytest.approx(0.0)


def test_kappa_known_value():
    # Po = 0.7, Pe = 0.5 * 0.6 + 0.5 * 0.4 = 0.5 -> kappa = 0.4
    actual = [1] * 5 + [2] * 5
    predicted = [1, 1, 1, 1, 2, 1, 1, 2, 2, 2]
    assert kappa(confusion_matrix(actual, predicted)) == pytest.approx(0.4)


def test_kappa_undefined_when_single_class():
    assert math.isnan(kappa(confusion_matrix([1, 1], [1, 1])))


def test_evaluate_end_to_end(samples):
    split = split_samples(samples, 0.8, seed=4)
    model = train_classifier(split.training, ["B2", "B8", "B11", "B12"], n_trees=25, seed=4)
    result = evaluate(model, split.validation)

    assert len(result.predictions) == len(split.validation)
    assert "classification" in result.predictions.columns
    assert result.accuracy == pytest.approx(
        np.trace(result.confusion.to_numpy()) / result.confusion.to_numpy().sum()
    )
    assert result.accuracy > 0.9
    assert set(result.producers_accuracy) == set(result.confusion.index)
    payload = result.to_dict()
    assert payload["validation_rows"] == len(split.validation)


def test_evaluate_empty_validation(samples):
    model = train_classifier(samples, ["B2", "B8"], n_trees=5, seed=0)
    with pytest.raises(EmptyValidationError):
        evaluate(model, samples.iloc[0:0])
    assert issubclass(EmptyValidationError, EmptyResultError)
