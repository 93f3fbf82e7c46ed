from typing import Dict, Iterable

import pandas as pd
from pydantic import BaseModel


class pandas:
    """
    A wrapper around the few pandas calls the pipeline relies on, with type hints.
    """

    @staticmethod
    def from_models(rows: Iterable[BaseModel], columns: Iterable[str]) -> pd.DataFrame:
        records = [row.model_dump() for row in rows]
        return pd.DataFrame.from_records(records, columns=list(columns))  # type: ignore

    @staticmethod
    def schema(frame: pd.DataFrame) -> Dict[str, str]:
        """Column name to dtype name, in column order."""
        return {str(column): str(dtype) for column, dtype in frame.dtypes.items()}
