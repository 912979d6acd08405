import json
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Request:
    method: str
    path: str
    headers: dict[str, str]
    query_params: dict[str, list]
    body: bytes
    version: str
    path_params: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        try:
            self._dict = json.loads(self.body) if self.body else None
        except ValueError:
            # Not JSON (or not UTF-8); raw bodies are read through .body
            self._dict = None

    def get(self, field: str, default: Any = None) -> Any:
        if field is None:
            raise ValueError("Field cannot be None")

        if len(field) == 0:
            raise ValueError("Field cannot be empty")

        if field in self.query_params and self.query_params[field]:
            return self.query_params[field][0]

        if isinstance(self._dict, dict) and field in self._dict:
            return self._dict[field]

        return default
