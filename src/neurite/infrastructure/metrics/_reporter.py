"""
Training metric reporting.

Optimizers push scalar metrics to a `MetricsReporter` as they are produced
(batch loss/accuracy after `fit`, gradient norm after `step`). A reporter
records every value and forwards it to an optional `receive` callback, which
is how a training-loop driver observes progress without polling.

Design goals
------------
- No dependency on tensors, devices, or layers
- Safe to update from worker threads
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Union

Number = Union[int, float]


class Metric(Enum):
    """
    Names of the metrics optimizers report.
    """

    LOSS = "loss"
    ACCURACY = "accuracy"
    VAL_LOSS = "val_loss"
    VAL_ACCURACY = "val_accuracy"
    GRADIENT_NORM = "gradient_norm"


@dataclass
class MetricsReporter:
    """
    Recorder and dispatcher for training metrics.

    Attributes
    ----------
    receive : Callable[[Dict[Metric, float]], None] | None
        Called with the metrics of every `update` call.
    history : Dict[Metric, List[float]]
        Every value reported so far, in order.
    """

    receive: Optional[Callable[[Dict[Metric, float]], None]] = None
    history: Dict[Metric, List[float]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def update(self, metrics: Mapping[Union[Metric, str], Number]) -> None:
        """
        Record metrics and forward them to `receive`.

        Parameters
        ----------
        metrics : Mapping[Metric | str, Number]
            Metric values; string keys are converted to `Metric`.
        """
        values = {Metric(k): float(v) for k, v in metrics.items()}
        with self._lock:
            for k, v in values.items():
                self.history.setdefault(k, []).append(v)
        if self.receive is not None:
            self.receive(values)

    def last(self) -> Dict[Metric, float]:
        """
        Return the most recent value of every recorded metric.
        """
        with self._lock:
            return {k: vs[-1] for k, vs in self.history.items() if vs}

    def clear(self) -> None:
        with self._lock:
            self.history.clear()
