"""Raster arena and TensorRef handles.

Every raster produced by a pipeline stage is allocated from a single
contiguous Arena owned by the World. Components never hold arrays
directly; they hold a TensorRef (offset, shape, dtype) and resolve it with
``arena.view(ref)``. A stage that produces a new raster allocates a fresh
buffer, so handing a TensorRef to the next stage transfers ownership
without copying.

Resetting the arena bumps its generation counter. Any TensorRef created
before the reset is stale and can no longer be viewed, which makes
accidental reuse of a previous run's rasters fail loudly.

Example:
    >>> arena = Arena(size_bytes=1 << 20)
    >>> ref = arena.alloc_tensor((10, 10, 5), np.float32)
    >>> arena.view(ref).shape
    (10, 10, 5)
    >>> arena.reset()
    >>> # arena.view(ref)  # ValueError: stale ref
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np


@dataclass(frozen=True)
class TensorRef:
    """Lightweight handle pointing to raster data in an Arena.

    Attributes:
        offset: Byte offset into arena buffer
        shape: Array dimensions, (rows, cols) or (rows, cols, channels)
        dtype: NumPy data type
        strides: Byte strides for each dimension
        generation: Arena generation counter (for staleness detection)
    """

    offset: int
    shape: tuple[int, ...]
    dtype: np.dtype[Any]
    strides: tuple[int, ...]
    generation: int

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise ValueError(f"offset must be non-negative, got {self.offset}")
        if len(self.shape) != len(self.strides):
            raise ValueError(
                f"shape and strides must have same length: "
                f"shape={self.shape}, strides={self.strides}"
            )
        if self.generation < 0:
            raise ValueError(f"generation must be non-negative, got {self.generation}")

    @property
    def ndim(self) -> int:
        """Number of dimensions."""
        return len(self.shape)

    @property
    def size(self) -> int:
        """Total number of elements."""
        return int(np.prod(self.shape))

    @property
    def nbytes(self) -> int:
        """Total number of bytes spanned by the tensor."""
        if self.size == 0:
            return 0
        last_offset = sum((s - 1) * st for s, st in zip(self.shape, self.strides))
        return last_offset + self.dtype.itemsize


class Arena:
    """Contiguous memory allocator with bump allocation strategy.

    Attributes:
        size: Total arena size in bytes
        offset: Current allocation offset (bump pointer)
        generation: Incremented on reset() to invalidate old TensorRefs
    """

    def __init__(self, size_bytes: int):
        if size_bytes <= 0:
            raise ValueError(f"size_bytes must be positive, got {size_bytes}")

        self._buffer = bytearray(size_bytes)
        self._size = size_bytes
        self._offset = 0
        self._generation = 0

    @property
    def size(self) -> int:
        """Total arena size in bytes."""
        return self._size

    @property
    def offset(self) -> int:
        """Current allocation offset (bytes used)."""
        return self._offset

    @property
    def generation(self) -> int:
        """Current generation counter."""
        return self._generation

    @property
    def available(self) -> int:
        """Remaining bytes available for allocation."""
        return self._size - self._offset

    def reset(self) -> None:
        """Reset arena for reuse. Invalidates all existing TensorRefs."""
        self._offset = 0
        self._generation += 1

    def alloc_tensor(
        self,
        shape: tuple[int, ...],
        dtype: np.dtype[Any] | type | str,
    ) -> TensorRef:
        """Allocate a C-contiguous tensor in the arena.

        Args:
            shape: Tensor dimensions
            dtype: NumPy data type

        Returns:
            TensorRef handle to the allocated (zero-initialised on first use) tensor

        Raises:
            ValueError: If allocation would exceed arena size
        """
        dt = np.dtype(dtype)
        shape = tuple(int(s) for s in shape)

        nbytes = int(np.prod(shape)) * dt.itemsize

        # Align offset to dtype alignment
        alignment = dt.alignment
        aligned_offset = (self._offset + alignment - 1) // alignment * alignment

        end_offset = aligned_offset + nbytes
        if end_offset > self._size:
            raise ValueError(
                f"Arena out of memory: need {nbytes} bytes at offset {aligned_offset}, "
                f"but arena size is {self._size} (available: {self.available})"
            )

        strides = []
        stride = dt.itemsize
        for dim_size in reversed(shape):
            strides.append(stride)
            stride *= dim_size
        strides.reverse()

        ref = TensorRef(
            offset=aligned_offset,
            shape=shape,
            dtype=dt,
            strides=tuple(strides),
            generation=self._generation,
        )
        self._offset = end_offset
        return ref

    def view(self, ref: TensorRef) -> np.ndarray:
        """Get a NumPy array view of a TensorRef (zero-copy).

        Raises:
            ValueError: If TensorRef is stale (from previous generation)
        """
        if ref.generation != self._generation:
            raise ValueError(
                f"Stale TensorRef: arena was reset (current generation {self._generation}, "
                f"ref is from generation {ref.generation})"
            )

        end_offset = ref.offset + ref.nbytes
        if end_offset > self._size:
            raise ValueError(
                f"TensorRef out of bounds: offset={ref.offset}, nbytes={ref.nbytes}, "
                f"arena size={self._size}"
            )

        return np.ndarray(
            shape=ref.shape,
            dtype=ref.dtype,
            buffer=self._buffer,
            offset=ref.offset,
            strides=ref.strides,
        )

    def copy_tensor(self, arr: np.ndarray) -> TensorRef:
        """Allocate tensor and copy data from array."""
        arr = np.asarray(arr)
        ref = self.alloc_tensor(arr.shape, arr.dtype)
        self.view(ref)[...] = arr
        return ref

    def __repr__(self) -> str:
        return (
            f"Arena(size={self._size}, offset={self._offset}, "
            f"generation={self._generation}, available={self.available})"
        )
