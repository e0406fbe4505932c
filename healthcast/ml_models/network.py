"""
Feed-Forward Network Trainer
One trainer for every scenario, parameterized by layer sizes and output kind.

Output kinds:
    LINEAR        identity output, mean-squared error (unbounded / normalized targets)
    NON_NEGATIVE  rectified output, mean-squared error (counts)
    PROBABILITY   sigmoid output, binary cross-entropy (multi-label probabilities)
"""

import math
import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import torch
from torch import nn

from healthcast.utils.errors import InsufficientDataError, InvalidFeatureError, TrainingCancelled, TrainingFailure
from healthcast.utils.logger import get_logger

logger = get_logger(__name__)


class OutputKind(str, Enum):
    LINEAR = 'linear'
    NON_NEGATIVE = 'non_negative'
    PROBABILITY = 'probability'


@dataclass(frozen=True)
class NetworkSpec:
    input_width: int
    output_width: int
    hidden_sizes: Tuple[int, ...] = (64, 128, 64, 32)
    output_kind: OutputKind = OutputKind.LINEAR
    dropout: Tuple[float, ...] = ()
    learning_rate: float = 1e-3

    def dropout_after(self, layer_index: int) -> float:
        if layer_index < len(self.dropout):
            return self.dropout[layer_index]
        return 0.0

    def to_dict(self) -> dict:
        data = asdict(self)
        data['output_kind'] = self.output_kind.value
        data['hidden_sizes'] = list(self.hidden_sizes)
        data['dropout'] = list(self.dropout)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'NetworkSpec':
        return cls(
            input_width=int(data['input_width']),
            output_width=int(data['output_width']),
            hidden_sizes=tuple(data['hidden_sizes']),
            output_kind=OutputKind(data['output_kind']),
            dropout=tuple(data.get('dropout', ())),
            learning_rate=float(data.get('learning_rate', 1e-3)),
        )


@dataclass(frozen=True)
class EpochProgress:
    epoch: int
    epochs: int
    loss: float
    mae: float
    validation_loss: Optional[float] = None
    validation_mae: Optional[float] = None

    @property
    def progress_percent(self) -> float:
        return round(self.epoch / self.epochs * 100, 1)

    def to_dict(self) -> dict:
        data = asdict(self)
        data['progress_percent'] = self.progress_percent
        return data


@dataclass(frozen=True)
class TrainingMetrics:
    final_loss: float
    final_mae: float
    validation_loss: Optional[float]
    validation_mae: Optional[float]
    training_seconds: float
    epochs_trained: int
    samples_used: int
    validation_samples: int
    history: List[EpochProgress] = field(default_factory=list)

    def to_dict(self, include_history: bool = False) -> dict:
        data = {
            'final_loss': self.final_loss,
            'final_mae': self.final_mae,
            'validation_loss': self.validation_loss,
            'validation_mae': self.validation_mae,
            'training_seconds': self.training_seconds,
            'epochs_trained': self.epochs_trained,
            'samples_used': self.samples_used,
            'validation_samples': self.validation_samples,
        }
        if include_history:
            data['history'] = [p.to_dict() for p in self.history]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'TrainingMetrics':
        return cls(
            final_loss=data['final_loss'],
            final_mae=data['final_mae'],
            validation_loss=data.get('validation_loss'),
            validation_mae=data.get('validation_mae'),
            training_seconds=data['training_seconds'],
            epochs_trained=data['epochs_trained'],
            samples_used=data['samples_used'],
            validation_samples=data.get('validation_samples', 0),
        )


class FeedForwardNetwork(nn.Module):
    def __init__(self, spec: NetworkSpec):
        super().__init__()
        layers = []
        width = spec.input_width
        for i, size in enumerate(spec.hidden_sizes):
            layers.append(nn.Linear(width, size))
            layers.append(nn.ReLU())
            rate = spec.dropout_after(i)
            if rate > 0:
                layers.append(nn.Dropout(rate))
            width = size
        layers.append(nn.Linear(width, spec.output_width))

        if spec.output_kind == OutputKind.NON_NEGATIVE:
            layers.append(nn.ReLU())
        elif spec.output_kind == OutputKind.PROBABILITY:
            layers.append(nn.Sigmoid())

        self.layers = nn.Sequential(*layers)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.layers(x)


class NetworkTrainer:
    """
    Builds, trains and queries a FeedForwardNetwork.

    Training holds out the trailing ``validation_split`` fraction of the
    examples (they never update weights) and reshuffles the remainder every
    epoch. Callers hand in already-normalized arrays.
    """

    def __init__(self, spec: NetworkSpec, seed: int = None):
        self.spec = spec
        self.seed = seed

    def build(self) -> FeedForwardNetwork:
        if self.seed is not None:
            torch.manual_seed(self.seed)
        return FeedForwardNetwork(self.spec)

    def _loss_fn(self):
        if self.spec.output_kind == OutputKind.PROBABILITY:
            return nn.BCELoss()
        return nn.MSELoss()

    def _check_arrays(self, features: np.ndarray, targets: np.ndarray):
        if features.ndim != 2 or features.shape[1] != self.spec.input_width:
            raise InvalidFeatureError(
                f"Expected features of shape (n, {self.spec.input_width}), got {features.shape}"
            )
        if targets.ndim != 2 or targets.shape[1] != self.spec.output_width:
            raise InvalidFeatureError(
                f"Expected targets of shape (n, {self.spec.output_width}), got {targets.shape}"
            )
        if features.shape[0] != targets.shape[0]:
            raise InvalidFeatureError(f"{features.shape[0]} feature rows but {targets.shape[0]} target rows")
        if not (np.all(np.isfinite(features)) and np.all(np.isfinite(targets))):
            raise InvalidFeatureError("Training data contains non-finite values")

    def fit(self,
            model: FeedForwardNetwork,
            features,
            targets,
            epochs: int = 100,
            batch_size: int = 32,
            validation_split: float = 0.2,
            min_samples: int = 1,
            on_epoch_end: Callable[[EpochProgress], None] = None,
            should_stop: Callable[[], bool] = None) -> TrainingMetrics:
        """
        Trains ``model`` in place.

        Args:
            model: Network returned by build()
            features: Normalized feature matrix (n, input_width)
            targets: Target matrix (n, output_width)
            epochs: Passes over the training portion
            batch_size: Mini-batch size
            validation_split: Trailing fraction held out for evaluation
            min_samples: Minimum number of examples, checked before anything else
            on_epoch_end: Called with an EpochProgress after every epoch
            should_stop: Polled between epochs; returning True cancels the run

        Returns:
            TrainingMetrics for the finished run
        """
        x = np.asarray(features, dtype=np.float32)
        y = np.asarray(targets, dtype=np.float32)
        n_samples = x.shape[0] if x.ndim else 0
        if n_samples < min_samples:
            raise InsufficientDataError(n_samples, min_samples)
        self._check_arrays(x, y)
        if epochs < 1 or batch_size < 1:
            raise InvalidFeatureError("epochs and batch_size must be positive")

        n_val = int(n_samples * validation_split) if 0 < validation_split < 1 else 0
        if n_samples - n_val < 1:
            n_val = 0
        x_train, y_train = x[:n_samples - n_val], y[:n_samples - n_val]
        x_val, y_val = x[n_samples - n_val:], y[n_samples - n_val:]

        generator = torch.Generator()
        if self.seed is not None:
            generator.manual_seed(self.seed)
        dataset = torch.utils.data.TensorDataset(torch.from_numpy(x_train), torch.from_numpy(y_train))
        loader = torch.utils.data.DataLoader(dataset, batch_size=batch_size, shuffle=True, generator=generator)

        criterion = self._loss_fn()
        optimizer = torch.optim.Adam(model.parameters(), lr=self.spec.learning_rate)

        history = []
        start = time.time()
        last_finite_loss = None
        for epoch in range(1, epochs + 1):
            if should_stop is not None and should_stop():
                raise TrainingCancelled(epoch - 1)

            model.train()
            total_loss, total_abs, seen = 0.0, 0.0, 0
            for batch_x, batch_y in loader:
                optimizer.zero_grad()
                pred = model(batch_x)
                loss = criterion(pred, batch_y)
                loss.backward()
                optimizer.step()

                size = batch_x.shape[0]
                total_loss += loss.item() * size
                total_abs += torch.abs(pred.detach() - batch_y).mean().item() * size
                seen += size

            epoch_loss = total_loss / seen
            epoch_mae = total_abs / seen
            if not math.isfinite(epoch_loss):
                raise TrainingFailure(
                    f"Training diverged at epoch {epoch}",
                    {'epoch': epoch, 'last_finite_loss': last_finite_loss},
                )
            last_finite_loss = epoch_loss

            val_loss, val_mae = None, None
            if n_val:
                val_loss, val_mae = self.evaluate(model, x_val, y_val)

            progress = EpochProgress(epoch, epochs, epoch_loss, epoch_mae, val_loss, val_mae)
            history.append(progress)
            if on_epoch_end is not None:
                on_epoch_end(progress)
            if epoch % 10 == 0 or epoch == epochs:
                logger.debug(f"Epoch {epoch}/{epochs} - loss: {epoch_loss:.4f} - mae: {epoch_mae:.4f}")

            if should_stop is not None and epoch < epochs and should_stop():
                raise TrainingCancelled(epoch)

        model.eval()
        last = history[-1]
        return TrainingMetrics(
            final_loss=last.loss,
            final_mae=last.mae,
            validation_loss=last.validation_loss,
            validation_mae=last.validation_mae,
            training_seconds=round(time.time() - start, 3),
            epochs_trained=len(history),
            samples_used=n_samples - n_val,
            validation_samples=n_val,
            history=history,
        )

    def evaluate(self, model: FeedForwardNetwork, features, targets):
        """Returns (loss, mae) on held-out data without touching the weights."""
        x = torch.from_numpy(np.asarray(features, dtype=np.float32))
        y = torch.from_numpy(np.asarray(targets, dtype=np.float32))
        model.eval()
        with torch.no_grad():
            pred = model(x)
            loss = self._loss_fn()(pred, y).item()
            mae = torch.abs(pred - y).mean().item()
        return loss, mae

    @staticmethod
    def predict(model: FeedForwardNetwork, normalized_features: Sequence[float]) -> np.ndarray:
        """Single-example forward pass. Returns the raw output vector."""
        x = torch.from_numpy(np.asarray(normalized_features, dtype=np.float32).reshape(1, -1))
        model.eval()
        with torch.no_grad():
            out = model(x)
        return out.numpy()[0].astype(np.float64)
