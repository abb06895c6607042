from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

import yaml


# Root folder with the YAML catalogs
CATALOG_ROOT = Path(__file__).resolve().parents[1] / "catalog"

SUBJECTS_FILE = "subjects.yaml"
FALLBACK_FILE = "fallback_questions.yaml"

OPTION_KEYS = ("a", "b", "c", "d")


class CatalogError(Exception):
    """Raised when a catalog file is missing or malformed."""
    pass


def _load_yaml(path: Path) -> Dict[str, Any]:
    """Reads YAML into a dict. Raises CatalogError on failure."""
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except Exception as e:
        raise CatalogError(f"Failed to read YAML {path}: {e}") from e
    if not isinstance(data, dict):
        raise CatalogError(f"YAML root must be a mapping: {path}")
    return data


def _norm(s: str) -> str:
    return (s or "").strip().lower()


@lru_cache(maxsize=None)
def load_subjects(root: Path | None = None) -> List[Dict[str, str]]:
    """
    Returns the subjects offered in CBT mode:
    [{id, name, emoji, aloc}, ...] in catalog order.
    """
    path = Path(root or CATALOG_ROOT) / SUBJECTS_FILE
    items = _load_yaml(path).get("subjects")
    if not isinstance(items, list) or not items:
        raise CatalogError(f"{path}: 'subjects' must be a non-empty list")

    subjects = []
    for item in items:
        missing = [k for k in ("id", "name") if not item.get(k)]
        if missing:
            raise CatalogError(f"{path}: subject entry is missing {', '.join(missing)}")
        subjects.append({
            "id": str(item["id"]),
            "name": str(item["name"]),
            "emoji": str(item.get("emoji") or ""),
            "aloc": str(item.get("aloc") or _norm(item["id"])),
        })
    return subjects


def subject_slug(subject: str) -> str:
    """
    Maps a subject name or id to the slug the question bank expects.
    Unknown subjects are passed through lower-cased.
    """
    key = _norm(subject)
    for s in load_subjects():
        if key in (_norm(s["id"]), _norm(s["name"])):
            return s["aloc"]
    return key


def _validate_entry(entry: Dict[str, Any], where: str) -> Dict[str, Any]:
    if not entry.get("question"):
        raise CatalogError(f"{where}: empty question")
    options = entry.get("option") or {}
    texts = [str(options.get(k, "")).strip() for k in OPTION_KEYS]
    if not all(texts):
        raise CatalogError(f"{where}: every question needs options a-d")
    if len(set(texts)) != len(texts):
        raise CatalogError(f"{where}: options must be distinct")
    answer = _norm(str(entry.get("answer", "")))
    if answer not in OPTION_KEYS:
        raise CatalogError(f"{where}: answer must be one of {OPTION_KEYS}")
    return {
        "question": str(entry["question"]),
        "option": dict(zip(OPTION_KEYS, texts)),
        "answer": answer,
        "solution": str(entry.get("solution") or ""),
    }


@lru_cache(maxsize=None)
def load_fallback_banks(root: Path | None = None) -> Dict[str, List[Dict[str, Any]]]:
    """
    Loads the offline question bank, keyed by lower-cased subject.
    Every entry is validated up front so generation itself can never fail.
    """
    path = Path(root or CATALOG_ROOT) / FALLBACK_FILE
    banks = _load_yaml(path).get("banks")
    if not isinstance(banks, dict):
        raise CatalogError(f"{path}: 'banks' must be a mapping")

    result: Dict[str, List[Dict[str, Any]]] = {}
    for subject, entries in banks.items():
        if not isinstance(entries, list):
            raise CatalogError(f"{path}: bank '{subject}' must be a list")
        result[_norm(subject)] = [
            _validate_entry(e, f"{path}:{subject}[{i}]") for i, e in enumerate(entries)
        ]
    return result
