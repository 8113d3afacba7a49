"""
neurite: a small CPU neural-network framework built on numpy.

Importing the package registers every built-in layer kind, so
`Sequential.from_config` can rebuild any graph made of them.
"""

import logging

from .config import Settings, configure_logging, load_settings
from .domain._errors import (
    ConfigurationError,
    DataError,
    NeuriteError,
    NotCompiledError,
    NumericalInstabilityError,
    ShapeMismatchError,
)
from .domain._layer import Gradient
from .domain.device._device_protocol import ActivationKind, Padding
from .domain.types._tensor_size import TensorSize
from .infrastructure.tensor._tensor import Tensor, TensorGradient
from .infrastructure.devices import CPU, get_device
from .infrastructure._layer import Layer
from .infrastructure.fully_connected._dense import Dense
from .infrastructure.convolution._conv2d_module import Conv2d
from .infrastructure.convolution.transpose._conv2d_transpose_module import TransConv2d
from .infrastructure.pooling._pooling_module import AvgPool, MaxPool
from .infrastructure._activations import (
    LeakyReLu,
    ReLu,
    SeLu,
    Sigmoid,
    Softmax,
    Swish,
    Tanh,
)
from .infrastructure.reshape._reshape_module import Flatten, Reshape
from .infrastructure.layers._batchnorm import BatchNormalize
from .infrastructure.layers._layernorm import LayerNormalize
from .infrastructure.layers._dropout import Dropout
from .infrastructure.normalization._batch_normalizer import BatchNormalizer
from .infrastructure.models._sequential import Sequential
from .infrastructure._losses import (
    BinaryCrossEntropy,
    CrossEntropy,
    CrossEntropySoftmax,
    LossFunction,
    MeanSquaredError,
    get_loss,
)
from .infrastructure.metrics._reporter import Metric, MetricsReporter
from .infrastructure.optimizers import (
    SGD,
    Adam,
    FitOutput,
    GradientAccumulator,
    MomentState,
    Optimizer,
)
from .infrastructure.serialization._serialization_core import (
    layer_from_config,
    layer_to_config,
    register_layer,
    registered_layers,
)
from .infrastructure.serialization._serialization_weights import (
    extract_state_payload,
    load_state_payload_,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    "ActivationKind",
    "Adam",
    "AvgPool",
    "BatchNormalize",
    "BatchNormalizer",
    "BinaryCrossEntropy",
    "CPU",
    "ConfigurationError",
    "Conv2d",
    "CrossEntropy",
    "CrossEntropySoftmax",
    "DataError",
    "Dense",
    "Dropout",
    "FitOutput",
    "Flatten",
    "Gradient",
    "GradientAccumulator",
    "Layer",
    "LayerNormalize",
    "LeakyReLu",
    "LossFunction",
    "MaxPool",
    "MeanSquaredError",
    "Metric",
    "MetricsReporter",
    "MomentState",
    "NeuriteError",
    "NotCompiledError",
    "NumericalInstabilityError",
    "Optimizer",
    "Padding",
    "ReLu",
    "Reshape",
    "SGD",
    "SeLu",
    "Sequential",
    "Settings",
    "ShapeMismatchError",
    "Sigmoid",
    "Softmax",
    "Swish",
    "Tanh",
    "Tensor",
    "TensorGradient",
    "TensorSize",
    "TransConv2d",
    "configure_logging",
    "extract_state_payload",
    "get_device",
    "get_loss",
    "layer_from_config",
    "layer_to_config",
    "load_settings",
    "load_state_payload_",
    "register_layer",
    "registered_layers",
]
