"""
Uniform response envelope returned by every invoke() call.

`success` is transport/HTTP level; `is_error()` looks at the Proxmox body.
A call can be HTTP 200 and still carry an application `error`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

import pandas as pd


@dataclass(frozen=True)
class ResponseEnvelope:
    response: Any
    status_code: int
    success: bool
    reason: str = ""
    resource: str = ""
    method: str = ""
    parameters: Mapping[str, Any] = field(default_factory=dict)
    response_type: str = "json"

    def __post_init__(self) -> None:
        # read-only copy of the request parameters
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))

    def is_error(self) -> bool:
        return isinstance(self.response, dict) and self.response.get("error") is not None

    def data(self) -> Any:
        if isinstance(self.response, dict):
            return self.response.get("data")
        return None

    def errors(self) -> Dict[str, Any]:
        """Per-parameter validation errors Proxmox returns with HTTP 400."""
        if isinstance(self.response, dict) and isinstance(self.response.get("errors"), dict):
            return dict(self.response["errors"])
        return {}

    def _records(self) -> List[Dict[str, Any]]:
        data = self.data()
        if data is None:
            return []
        if isinstance(data, list):
            return [row if isinstance(row, dict) else {"value": row} for row in data]
        if isinstance(data, dict):
            return [data]
        return [{"value": data}]

    def to_table(self) -> pd.DataFrame:
        return pd.DataFrame(self._records())

    def to_csv(self, path: Union[str, Path]) -> Path:
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        self.to_table().to_csv(out, index=False)
        return out

    def __str__(self) -> str:
        base = f"{self.method} {self.resource} -> {self.status_code}"
        if self.reason:
            base += f" ({self.reason})"
        return base


def failure(
    reason: str,
    *,
    status_code: int = -1,
    response: Optional[Any] = None,
    **request: Any,
) -> ResponseEnvelope:
    return ResponseEnvelope(
        response=response,
        status_code=status_code,
        success=False,
        reason=reason,
        **request,
    )
