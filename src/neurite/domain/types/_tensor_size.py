"""
Tensor size descriptor.

Every tensor in neurite is three dimensional. Sizes are reported in
`(columns, rows, depth)` order, which is the order layers declare their
`input_size` / `output_size` in. Storage order is `(depth, rows, columns)`;
`TensorSize.value_shape` performs the conversion.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple


@dataclass(frozen=True)
class TensorSize:
    """
    Immutable `(columns, rows, depth)` size of a 3D tensor.

    Parameters
    ----------
    columns : int
        Width of each depth slice.
    rows : int
        Height of each depth slice.
    depth : int
        Number of depth slices (channels).
    """

    columns: int = 0
    rows: int = 0
    depth: int = 0

    def __post_init__(self) -> None:
        for name in ("columns", "rows", "depth"):
            value = getattr(self, name)
            if int(value) < 0:
                raise ValueError(f"TensorSize.{name} must be >= 0, got {value}")
            object.__setattr__(self, name, int(value))

    @classmethod
    def from_shape(cls, shape: Sequence[int]) -> "TensorSize":
        """
        Build a size from a `[columns, rows, depth]` shape list.

        Missing trailing entries default to 1 (or 0 for an empty shape).
        """
        dims = [int(d) for d in shape]
        if not dims:
            return cls(0, 0, 0)
        while len(dims) < 3:
            dims.append(1)
        if len(dims) > 3:
            raise ValueError(f"TensorSize supports at most 3 dimensions, got {dims}")
        return cls(*dims)

    @property
    def value_shape(self) -> Tuple[int, int, int]:
        """Storage shape `(depth, rows, columns)` of a tensor with this size."""
        return (self.depth, self.rows, self.columns)

    @property
    def count(self) -> int:
        """Total number of scalars."""
        return self.columns * self.rows * self.depth

    def as_list(self) -> list[int]:
        return [self.columns, self.rows, self.depth]

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.columns, self.rows, self.depth)

    def is_empty(self) -> bool:
        return self.count == 0
