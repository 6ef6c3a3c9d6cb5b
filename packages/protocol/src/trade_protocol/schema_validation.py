from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator

SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"


@lru_cache(maxsize=None)
def _load_validator(name: str) -> Draft202012Validator:
    schema = json.loads((SCHEMA_DIR / name).read_text(encoding="utf-8"))
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def validate_schema(name: str, payload: dict[str, Any]) -> list[str]:
    """Return one ``path: message`` string per violation; empty when the payload conforms."""
    validator = _load_validator(name)
    errors = sorted(validator.iter_errors(payload), key=lambda e: list(map(str, e.path)))
    return [f"{'/'.join(map(str, err.path))}: {err.message}" for err in errors]
