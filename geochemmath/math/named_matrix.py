"""
Named Matrix implementation for geochemmath.

A matrix with named rows and columns, used for correlation matrices and
PCA loadings. Instances are treated as immutable: every operation that
changes data returns a new NamedMatrix.
"""

from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd


class NamedMatrix:
    """
    A matrix with named rows and columns backed by a pandas DataFrame.
    """

    def __init__(self,
                 matrix: Optional[Union[np.ndarray, pd.DataFrame, Sequence[Sequence[float]]]] = None,
                 rownames: Optional[List[Any]] = None,
                 colnames: Optional[List[Any]] = None):
        """
        Initialize a NamedMatrix.

        Args:
            matrix: Matrix data (numpy array, nested lists or DataFrame)
            rownames: List of row names
            colnames: List of column names
        """
        if matrix is None:
            self._matrix = pd.DataFrame(index=rownames or [], columns=colnames or [], dtype=float)
        elif isinstance(matrix, pd.DataFrame):
            self._matrix = matrix.astype(float).copy()
            if rownames is not None:
                self._matrix.index = list(rownames)
            if colnames is not None:
                self._matrix.columns = list(colnames)
        else:
            values = np.array(matrix, dtype=float)
            if values.ndim != 2:
                raise ValueError(f"NamedMatrix needs 2-D data, got {values.ndim}-D")
            rows = list(rownames) if rownames is not None else list(range(values.shape[0]))
            cols = list(colnames) if colnames is not None else list(range(values.shape[1]))
            self._matrix = pd.DataFrame(values, index=rows, columns=cols)

    @property
    def matrix(self) -> pd.DataFrame:
        """Get a copy of the underlying DataFrame."""
        return self._matrix.copy()

    @property
    def values(self) -> np.ndarray:
        """Get a copy of the matrix as a numpy array."""
        return self._matrix.to_numpy(dtype=float, copy=True)

    @property
    def shape(self):
        return self._matrix.shape

    def rownames(self) -> List[Any]:
        """Get the list of row names."""
        return list(self._matrix.index)

    def colnames(self) -> List[Any]:
        """Get the list of column names."""
        return list(self._matrix.columns)

    def get(self, row: Any, col: Any) -> float:
        """
        Get a single value by row and column name.

        Args:
            row: Row name
            col: Column name

        Returns:
            The value
        """
        if row not in self._matrix.index:
            raise KeyError(f"Row name '{row}' not found")
        if col not in self._matrix.columns:
            raise KeyError(f"Column name '{col}' not found")
        return float(self._matrix.at[row, col])

    def to_dict(self) -> Dict[Any, Dict[Any, float]]:
        """
        Convert to a nested dictionary {row: {col: value}}.
        """
        return {
            row: {col: float(self._matrix.at[row, col]) for col in self._matrix.columns}
            for row in self._matrix.index
        }

    def __contains__(self, name: Any) -> bool:
        return name in self._matrix.index

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NamedMatrix):
            return NotImplemented
        return (self.rownames() == other.rownames()
                and self.colnames() == other.colnames()
                and np.array_equal(self._matrix.to_numpy(), other._matrix.to_numpy()))

    __hash__ = None

    def __repr__(self) -> str:
        """
        String representation of the NamedMatrix.
        """
        return f"NamedMatrix(rows={len(self.rownames())}, cols={len(self.colnames())})"

    def __str__(self) -> str:
        """
        Human-readable string representation.
        """
        return (f"NamedMatrix with {len(self.rownames())} rows and "
                f"{len(self.colnames())} columns\n{self._matrix}")
