"""
Exceptions raised by the geochemmath engines.
"""

from typing import Dict, Optional, Tuple


class InsufficientDataError(ValueError):
    """
    Raised when an analysis does not have enough usable data.

    Carries the diagnostic counts so callers can tell the user which
    variables are sparse.
    """

    def __init__(self,
                 message: str,
                 valid_counts: Optional[Dict[str, Tuple[int, int]]] = None,
                 retained_rows: Optional[int] = None):
        """
        Initialize the error.

        Args:
            message: Summary of what was missing
            valid_counts: Mapping of variable name to (valid, total) counts
            retained_rows: Number of rows that passed admission, if known
        """
        self.valid_counts = dict(valid_counts or {})
        self.retained_rows = retained_rows

        lines = [message]
        if retained_rows is not None:
            lines.append(f"Retained rows: {retained_rows}")
        for name, (valid, total) in self.valid_counts.items():
            lines.append(f"  {name}: {valid}/{total} valid")

        super().__init__("\n".join(lines))


class UnsupportedMethodError(NotImplementedError):
    """Raised when a reserved but unimplemented method is requested."""
