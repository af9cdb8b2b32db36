from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

AUTH_MODES = ("api_key", "bearer", "none")


@dataclass(frozen=True)
class EndpointConfig:
    name: str
    url: str
    format_tag: str = "json"
    auth: str = "bearer"
    secret: Optional[str] = None        # secret store key holding the credential
    header: str = "X-API-Key"           # used when auth == api_key
    records_path: Optional[str] = None
    params: Optional[dict] = None


def load_endpoints(path: str) -> dict[str, EndpointConfig]:
    """
    Read REST feed definitions:

      endpoints:
        - name: vendor_b
          url: https://vendor-b.example/api/v2/maintenance
          format: json
          auth: api_key
          secret: VENDOR_B_API_KEY
          header: X-API-Key
          records_path: data.records
    """
    p = Path(path)
    if not p.exists():
        raise RuntimeError(f"REST sources file not found: {path} (set FLEET_SOURCES_FILE)")
    with p.open("r", encoding="utf-8") as f:
        doc = yaml.safe_load(f) or {}

    out: dict[str, EndpointConfig] = {}
    for entry in doc.get("endpoints", []) or []:
        auth = entry.get("auth", "bearer")
        if auth not in AUTH_MODES:
            raise RuntimeError(f"endpoint {entry.get('name')}: auth must be one of {AUTH_MODES}")
        if auth != "none" and not entry.get("secret"):
            raise RuntimeError(f"endpoint {entry.get('name')}: auth {auth} needs a secret name")
        cfg = EndpointConfig(
            name=entry["name"],
            url=entry["url"],
            format_tag=entry.get("format", "json"),
            auth=auth,
            secret=entry.get("secret"),
            header=entry.get("header", "X-API-Key"),
            records_path=entry.get("records_path"),
            params=entry.get("params"),
        )
        out[cfg.name] = cfg
    return out
