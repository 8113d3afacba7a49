"""
Optimizer base class.

`Optimizer` owns everything that is shared between update rules:

- the worker pool that runs per-sample forward/backward passes (`fit`,
  `predict`)
- the `GradientAccumulator` the workers insert into
- the `step()` template: finiteness checks, optional gradient clipping and L2
  normalization, dispatch to the update rule, the parameter NaN guard, then
  `apply` and weight clipping
- metric reporting

Subclasses implement `_delta(index, layer, weights_grad, biases_grad)`, which
turns averaged gradients into the deltas `Layer.apply` subtracts.

Failure policy
--------------
- Data errors (`DataError`) are raised before any worker starts.
- If any worker fails, every worker is still joined, the accumulator is
  cleared, and the first failure (in sample order) is re-raised. No partial
  batch is ever stepped on.
- `step()` checks every layer's tentative update before touching anything.
  If one would leave a parameter non-finite, no layer is updated, no
  optimizer state (moments, `t`) advances, and `NumericalInstabilityError`
  is raised.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np

from ...config import load_settings
from ...domain._errors import (
    ConfigurationError,
    DataError,
    NotCompiledError,
    NumericalInstabilityError,
)
from ...domain._layer import Gradient
from ...domain._optimizers import IOptimizer
from .._layer import Layer
from .._losses import LossFunction, get_loss
from ..metrics._reporter import Metric, MetricsReporter
from ..models._sequential import Sequential
from ..tensor._tensor import Tensor
from ._gradient_accumulator import GradientAccumulator

logger = logging.getLogger(__name__)


@dataclass
class FitOutput:
    """
    Result of one `Optimizer.fit` call.

    Attributes
    ----------
    outputs : list[Tensor]
        Network output of every sample (detached leaf tensors), in input order.
    loss : float
        Mean per-sample loss.
    accuracy : float
        Fraction of samples whose prediction matches the label, in `[0, 1]`.
    """

    outputs: List[Tensor] = field(default_factory=list)
    loss: float = 0.0
    accuracy: float = 0.0


@dataclass
class _SampleResult:
    output: Tensor
    loss: float
    correct: bool


def is_correct(predicted: Tensor, label: Tensor) -> bool:
    """
    Arg-max match for multi-value outputs; 0.5 threshold for single values.
    """
    p = predicted.value.reshape(-1)
    y = label.value.reshape(-1)
    if p.size == 1:
        return bool((p[0] >= 0.5) == (y[0] >= 0.5))
    return int(np.argmax(p)) == int(np.argmax(y))


class Optimizer(IOptimizer):
    """
    Shared machinery of every optimizer.

    Parameters
    ----------
    graph : Sequential
        Compiled graph whose layers are optimized.
    learning_rate : float, optional
        Step size. Must be positive.
    l2_normalize : bool, optional
        Scale every averaged gradient to unit L2 norm before the update rule.
    weight_clip : float | None, optional
        Clamp parameters to `[-weight_clip, weight_clip]` after each update.
    gradient_clip : float | None, optional
        Clamp averaged gradients to `[-gradient_clip, gradient_clip]`.
    workers : int | None, optional
        Thread-pool size. Defaults to `Settings.workers`.
    metrics_reporter : MetricsReporter | None, optional
        Receives loss/accuracy after `fit` and the gradient norm after `step`.
    """

    def __init__(
        self,
        graph: Sequential,
        *,
        learning_rate: float = 0.001,
        l2_normalize: bool = False,
        weight_clip: Optional[float] = None,
        gradient_clip: Optional[float] = None,
        workers: Optional[int] = None,
        metrics_reporter: Optional[MetricsReporter] = None,
    ) -> None:
        if not isinstance(graph, Sequential):
            raise TypeError(f"Optimizer expects a Sequential graph, got {type(graph)!r}")
        if float(learning_rate) <= 0.0:
            raise ValueError(f"learning_rate must be > 0, got {learning_rate}")
        for name, value in (("weight_clip", weight_clip), ("gradient_clip", gradient_clip)):
            if value is not None and float(value) <= 0.0:
                raise ValueError(f"{name} must be > 0 when set, got {value}")

        self.graph = graph
        self.learning_rate = float(learning_rate)
        self.l2_normalize = bool(l2_normalize)
        self.weight_clip = None if weight_clip is None else float(weight_clip)
        self.gradient_clip = None if gradient_clip is None else float(gradient_clip)
        self.workers = int(workers) if workers is not None else load_settings().workers
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        self.metrics_reporter = metrics_reporter
        self.accumulator = GradientAccumulator(
            shapes=lambda: [layer.parameter_sizes() for layer in self.graph]
        )
        self.t = 0

    # ------------------------------------------------------------------
    # Batch execution
    # ------------------------------------------------------------------
    def predict(self, data: Sequence[Any]) -> List[Tensor]:
        """
        Run inference on a batch in the worker pool.

        The graph is switched to inference mode for the duration of the call.
        """
        self._require_compiled()
        inputs = self._inputs(data)
        modes = [layer.is_training for layer in self.graph]
        self.graph.eval()
        try:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                return list(pool.map(lambda x: self.graph.forward(x).detached(), inputs))
        finally:
            for layer, mode in zip(self.graph, modes):
                layer.train(mode)

    def fit(
        self,
        data: Sequence[Any],
        labels: Sequence[Any],
        loss_function: Union[LossFunction, str],
        validation: bool = False,
    ) -> FitOutput:
        """
        Run forward, loss and backward for a batch and accumulate gradients.

        Parameters
        ----------
        data : Sequence
            Inputs, each convertible to a Tensor of the graph's input size.
        labels : Sequence
            Targets, each holding as many values as the graph's output.
        loss_function : LossFunction | str
            Loss instance or registry name.
        validation : bool, optional
            When True, only outputs and loss are computed; nothing is
            accumulated and metrics are reported as `val_*`.

        Returns
        -------
        FitOutput
            Outputs, mean loss and accuracy of the batch.

        Raises
        ------
        DataError
            If the batch is empty, the counts differ, or a sample has the
            wrong size.
        """
        self._require_compiled()
        loss_fn = get_loss(loss_function) if isinstance(loss_function, str) else loss_function

        if len(data) != len(labels):
            raise DataError(
                f"Got {len(data)} inputs but {len(labels)} labels; counts must match."
            )
        if len(data) == 0:
            raise DataError("Cannot fit an empty batch.")

        inputs = self._inputs(data)
        targets = [Tensor(y) for y in labels]
        expected = self.graph.output_size.count
        for i, y in enumerate(targets):
            if y.value.size != expected:
                raise DataError(
                    f"Label {i} has {y.value.size} values; the network outputs {expected}."
                )

        def run(sample: tuple[Tensor, Tensor]) -> _SampleResult:
            x, y = sample
            out = self.graph.forward(x)
            loss = loss_fn.calculate(out, y)
            if not validation:
                delta = loss_fn.derivative(out, y)
                self.accumulator.insert(out.gradients(delta))
            return _SampleResult(out.detached(), loss, is_correct(out, y))

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = [pool.submit(run, s) for s in zip(inputs, targets)]
        # The pool's exit joins every worker before results are inspected.
        errors = [f.exception() for f in futures]
        first = next((e for e in errors if e is not None), None)
        if first is not None:
            if not validation:
                self.accumulator.clear()
            logger.error("Batch abandoned: %s", first)
            raise first

        results = [f.result() for f in futures]
        loss = float(np.mean([r.loss for r in results]))
        accuracy = float(np.mean([r.correct for r in results]))

        if self.metrics_reporter is not None:
            if validation:
                self.metrics_reporter.update(
                    {Metric.VAL_LOSS: loss, Metric.VAL_ACCURACY: accuracy}
                )
            else:
                self.metrics_reporter.update({Metric.LOSS: loss, Metric.ACCURACY: accuracy})

        return FitOutput([r.output for r in results], loss, accuracy)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------
    def step(self) -> None:
        """
        Apply one update from the accumulated gradients.

        The step runs in two phases. Every layer's delta and resulting
        parameters are computed and checked first; only when all of them are
        finite are the optimizer state and the layers updated. A failed step
        leaves parameters, optimizer state and `t` untouched.

        Raises
        ------
        NumericalInstabilityError
            If an averaged gradient is non-finite, or an update would leave a
            parameter non-finite (after weight clipping).
        ConfigurationError
            If the gradients do not cover every layer.
        """
        self._require_compiled()
        gradients = self.accumulator.accumulate()
        layers = self.graph.layers
        self._prepare(layers)

        if len(gradients.weights) != len(layers):
            raise ConfigurationError(
                f"Accumulated gradients cover {len(gradients.weights)} layers; "
                f"the graph has {len(layers)}."
            )
        for i, (gw, gb) in enumerate(zip(gradients.weights, gradients.biases)):
            if not (gw.is_finite() and gb.is_finite()):
                raise NumericalInstabilityError(f"averaged gradients of layer {i}")

        squared = 0.0
        planned: List[Tuple[Layer, Gradient]] = []
        for i, layer in enumerate(layers):
            gw, gb = gradients.weights[i], gradients.biases[i]
            if self.gradient_clip is not None:
                gw.clip(self.gradient_clip)
                gb.clip(self.gradient_clip)
            if self.l2_normalize:
                gw, gb = gw.l2_normalized(), gb.l2_normalized()
            squared += gw.norm() ** 2 + gb.norm() ** 2

            if layer.trainable and layer.uses_optimizer:
                delta = self._delta(i, layer, gw, gb)
            else:
                delta = Gradient(gw, gb)

            weights, biases = layer.updated_parameters(delta)
            if not (self._finite_after_clip(weights) and self._finite_after_clip(biases)):
                logger.error("Step rejected: layer %d (%s) would become non-finite", i, layer.kind)
                raise NumericalInstabilityError(f"parameters of layer {i} ({layer.kind})")
            planned.append((layer, delta))

        self._commit()
        for layer, delta in planned:
            layer.apply(delta, self.learning_rate)
            self.clip(layer)

        self.t += 1
        if self.metrics_reporter is not None:
            self.metrics_reporter.update({Metric.GRADIENT_NORM: float(np.sqrt(squared))})

    def _prepare(self, layers: Sequence[Layer]) -> None:
        """Hook run before each step; subclasses sync per-layer state here."""

    def _delta(self, index: int, layer: Layer, weights: Tensor, biases: Tensor) -> Gradient:
        """
        Turn averaged gradients into the deltas `Layer.apply` subtracts.

        Must not mutate optimizer state: state changes are staged and written
        by `_commit`, which only runs once every layer's update is valid.
        """
        raise NotImplementedError

    def _commit(self) -> None:
        """Hook run once a step has been validated, before any layer changes."""

    def _finite_after_clip(self, arr: np.ndarray) -> bool:
        if self.weight_clip is not None:
            arr = np.clip(arr, -self.weight_clip, self.weight_clip)
        return bool(np.all(np.isfinite(arr)))

    def clip(self, layer: Layer) -> None:
        """Clamp a layer's parameters to `weight_clip`, when configured."""
        if self.weight_clip is None:
            return
        layer.weights.clip(self.weight_clip)
        layer.biases.clip(self.weight_clip)

    def zero_gradients(self) -> None:
        self.accumulator.clear()

    def reset(self) -> None:
        """Zero the step counter and drop pending gradients."""
        self.t = 0
        self.accumulator.clear()

    # ------------------------------------------------------------------
    def _require_compiled(self) -> None:
        if not self.graph.is_compiled:
            raise NotCompiledError("Sequential")

    def _inputs(self, data: Sequence[Any]) -> List[Tensor]:
        shape = self.graph.input_size.value_shape
        inputs = [x if isinstance(x, Tensor) else Tensor(x) for x in data]
        for i, x in enumerate(inputs):
            if x.value.shape != shape:
                raise DataError(
                    f"Input {i} has shape {x.shape}; the network expects "
                    f"{self.graph.input_size.as_list()}."
                )
        return inputs
