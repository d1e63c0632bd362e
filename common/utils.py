import logging
import os
from pathlib import Path
from typing import Optional

import pandas as pd


def setup_logging(stage_name: str, log_file: str, level=logging.INFO):
    """Configure logging for an engine module.

    Args:
        stage_name: Name for the logger (typically __name__)
        log_file: Path to the log file to write to
        level: Logging level (default: INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(stage_name)
    logger.handlers.clear()

    # Disable propagation to root logger to prevent duplicate logging
    logger.propagate = False

    logger.setLevel(level)

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    # File Handler
    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(file_handler)

    return logger


def safe_read_json(filepath: str, usecols: Optional[list[str]] = None) -> pd.DataFrame:
    """Safely read a JSON catalog file (a list of records)"""
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"File not found: {filepath}")

    try:
        df = pd.read_json(filepath, orient="records", dtype=False)

        df.columns = df.columns.str.lower()
        if usecols:
            missing_cols = [c for c in usecols if c.lower() not in df.columns]
            if missing_cols:
                raise ValueError(f"Missing columns in input JSON: {missing_cols}")
            return df[usecols]
        return df
    except ValueError as e:
        raise ValueError(f"Error reading or processing JSON file {filepath}: {e}")
