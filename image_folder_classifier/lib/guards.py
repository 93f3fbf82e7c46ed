from typing import Iterable

import pandas as pd


def assert_columns(frame: pd.DataFrame, columns: Iterable[str]) -> None:
    missing = [column for column in columns if column not in frame.columns]
    if missing:
        raise KeyError(
            f"Missing column(s) {missing}; available: {list(frame.columns)}"
        )
