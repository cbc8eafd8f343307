"""Model-name input files: plain text (one per line) or CSV (first column)."""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".txt", ".csv")


def read_models(path: str | Path) -> list[str]:
    """Read model names from a .txt or .csv file.

    Blank lines are skipped. For CSV only the first column is used and
    surrounding quotes are stripped.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file type is not supported.
    """
    path = Path(path)
    if not path.exists():
        msg = f"Input file not found: {path}"
        raise FileNotFoundError(msg)

    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        msg = f"Unsupported input file type '{suffix}' (expected .txt or .csv)"
        raise ValueError(msg)

    lines = path.read_text(encoding="utf-8-sig").splitlines()
    if suffix == ".txt":
        return [line.strip() for line in lines if line.strip()]

    models: list[str] = []
    for line in lines:
        if not line.strip():
            continue
        first = line.split(",")[0].strip().strip("\"'").strip()
        if first:
            models.append(first)
    return models


def unique_models(models: list[str]) -> list[str]:
    """Drop blanks and duplicates, keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for model in models:
        name = model.strip()
        if name and name not in seen:
            seen.add(name)
            result.append(name)
    dropped = len(models) - len(result)
    if dropped:
        logger.debug("Dropped %d blank or duplicate model names", dropped)
    return result
