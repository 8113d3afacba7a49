from typing import Any, Callable, NamedTuple, Sequence, TYPE_CHECKING
from dataclasses import dataclass, field

if TYPE_CHECKING:  # pragma: no cover
    from ._tensor import Tensor


class BackwardResult(NamedTuple):
    """
    Output of a node's backward function.

    Attributes
    ----------
    input_gradients : Sequence[Tensor]
        Gradients with respect to each parent, in the same order as
        `Context.parents`.
    other_gradients : Sequence[Tensor]
        Gradients with respect to the producing layer's own parameters, as
        `(weight_gradient, bias_gradient)`. Parameterless operations return
        empty tensors (or an empty sequence).
    """

    input_gradients: Sequence["Tensor"]
    other_gradients: Sequence["Tensor"]


BackwardFn = Callable[["Tensor"], BackwardResult]


@dataclass
class Context:
    """
    Graph node attached to a Tensor produced by a layer.

    A `Context` records the information required to compute gradients for the
    operation that produced its tensor.

    Attributes
    ----------
    op : str
        Tag naming the producing operation (usually the layer kind, e.g.
        "Dense", "MaxPool"). Used for debugging and graph summaries.
    backward_fn : Callable[[Tensor], BackwardResult]
        Maps the gradient with respect to the output (`grad_out`) to the
        gradients with respect to each parent and to the layer parameters.
    parents : Sequence[Tensor]
        The tensors this output was computed from. Set when the layer links
        the output with `Tensor.set_graph`.
    saved_tensors : list[Tensor]
        Tensors explicitly saved during the forward pass for use in backward
        (e.g. masks, cached intermediates).
    saved_meta : dict[str, Any]
        Non-tensor metadata required for backward (e.g. arg-max indices,
        padding offsets).

    Notes
    -----
    Children reference parents but parents never reference children, so graphs
    are acyclic and a traversal never revisits shared mutable state.
    """

    op: str
    backward_fn: BackwardFn
    parents: Sequence["Tensor"] = field(default_factory=tuple)
    saved_tensors: list["Tensor"] = field(default_factory=list)
    saved_meta: dict[str, Any] = field(default_factory=dict)

    def save_for_backward(self, *tensors: "Tensor") -> None:
        """
        Save tensors for use during the backward computation.

        Parameters
        ----------
        *tensors : Tensor
            Any number of tensors to be stored in `saved_tensors`.
        """
        self.saved_tensors.extend(tensors)

    def backpropagate(self, grad_out: "Tensor") -> BackwardResult:
        """
        Run the backward function and normalize its result.

        Parameters
        ----------
        grad_out : Tensor
            Upstream gradient with respect to this node's output.

        Returns
        -------
        BackwardResult
            The backward function's result. A plain `(inputs, others)` tuple is
            accepted and converted.
        """
        result = self.backward_fn(grad_out)
        if isinstance(result, BackwardResult):
            return result
        inputs, others = result
        return BackwardResult(tuple(inputs), tuple(others))
