"""
Trainer tests: output kinds, validation hold-out, cancellation and divergence.
"""

import numpy as np
import pytest
import torch

from healthcast.ml_models.network import NetworkSpec, NetworkTrainer, OutputKind
from healthcast.utils.errors import (InsufficientDataError, InvalidFeatureError, TrainingCancelled,
                                     TrainingFailure)


def linear_problem(n=64, seed=0):
    rng = np.random.default_rng(seed)
    x = rng.normal(size=(n, 3))
    y = (x @ np.array([[1.5], [-2.0], [0.5]])) + 0.3
    return x, y


def trainer_for(kind, output_width=1, seed=11):
    spec = NetworkSpec(input_width=3, output_width=output_width, hidden_sizes=(16, 8), output_kind=kind)
    return NetworkTrainer(spec, seed=seed)


class TestFit:

    def test_insufficient_data_checked_first(self):
        """Sample count is checked before shapes."""
        trainer = trainer_for(OutputKind.LINEAR)
        with pytest.raises(InsufficientDataError) as exc:
            trainer.fit(trainer.build(), np.zeros((3, 99)), np.zeros((3, 1)), min_samples=5)
        assert exc.value.available == 3
        assert exc.value.required == 5

    def test_shape_mismatch(self):
        """Features of the wrong width are rejected."""
        trainer = trainer_for(OutputKind.LINEAR)
        with pytest.raises(InvalidFeatureError):
            trainer.fit(trainer.build(), np.zeros((10, 4)), np.zeros((10, 1)))

    def test_validation_split_holds_out_tail(self):
        """The trailing fifth is held out for validation."""
        x, y = linear_problem(10)
        trainer = trainer_for(OutputKind.LINEAR)
        metrics = trainer.fit(trainer.build(), x, y, epochs=3, batch_size=4)
        assert metrics.samples_used == 8
        assert metrics.validation_samples == 2
        assert metrics.epochs_trained == 3
        assert len(metrics.history) == 3
        assert metrics.validation_mae is not None

    def test_loss_decreases(self):
        """Training reduces the loss on a linear problem."""
        x, y = linear_problem()
        trainer = trainer_for(OutputKind.LINEAR)
        metrics = trainer.fit(trainer.build(), x, y, epochs=60, batch_size=8)
        assert metrics.history[-1].loss < metrics.history[0].loss

    def test_progress_callback(self):
        """One progress event per epoch, ending at 100%."""
        x, y = linear_problem(20)
        trainer = trainer_for(OutputKind.LINEAR)
        events = []
        trainer.fit(trainer.build(), x, y, epochs=4, on_epoch_end=events.append)
        assert [e.epoch for e in events] == [1, 2, 3, 4]
        assert events[-1].progress_percent == 100.0


class TestOutputKinds:

    def test_non_negative(self):
        """Rectified output never goes below zero."""
        x, y = linear_problem(32)
        trainer = trainer_for(OutputKind.NON_NEGATIVE)
        model = trainer.build()
        trainer.fit(model, x, y, epochs=3)
        for row in x:
            assert NetworkTrainer.predict(model, row)[0] >= 0.0

    def test_probability(self):
        """Sigmoid output stays in [0, 1]."""
        x, _ = linear_problem(32)
        y = (np.random.default_rng(1).uniform(size=(32, 4)))
        trainer = trainer_for(OutputKind.PROBABILITY, output_width=4)
        model = trainer.build()
        trainer.fit(model, x, y, epochs=3)
        out = NetworkTrainer.predict(model, x[0])
        assert out.shape == (4,)
        assert np.all((out >= 0) & (out <= 1))


class TestAbort:

    def test_cancellation_between_epochs(self):
        """A stop request ends training after the current epoch."""
        x, y = linear_problem(20)
        trainer = trainer_for(OutputKind.LINEAR)
        seen = []
        with pytest.raises(TrainingCancelled) as exc:
            trainer.fit(trainer.build(), x, y, epochs=50,
                        on_epoch_end=seen.append, should_stop=lambda: len(seen) >= 2)
        assert exc.value.epoch == 2
        assert exc.value.kind == 'training_cancelled'

    def test_divergence_is_reported(self):
        """A non-finite loss aborts with diagnostics."""
        x, y = linear_problem(20)
        trainer = trainer_for(OutputKind.LINEAR)

        def broken_loss():
            return lambda pred, target: torch.mean((pred - target) ** 2) * float('nan')

        trainer._loss_fn = broken_loss
        with pytest.raises(TrainingFailure) as exc:
            trainer.fit(trainer.build(), x, y, epochs=5)
        assert exc.value.diagnostics['epoch'] == 1
        assert exc.value.diagnostics['last_finite_loss'] is None
