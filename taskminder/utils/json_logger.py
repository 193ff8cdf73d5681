import json
from typing import Any, Optional


def safe_json_dump(obj: Any) -> str:
    """Serialize to JSON with sane defaults for non-serializable objects."""
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"), default=str)


def safe_json_load(text: Optional[str]) -> Any:
    """Parse stored JSON, returning the raw text when it is not valid JSON."""
    if not text:
        return {}
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return text
