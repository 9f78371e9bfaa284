# backend/env_config.py
"""Module: backend/env_config.py
Contract: Pure env reader for deployment settings; never exposes secret values.
Determinism: Pure, no IO/network; stable field ordering.
"""
from __future__ import annotations
import os
from typing import Dict

REQUIRED = ("SECRET_KEY", "DATABASE_URL")
OPTIONAL = ("REDIS_URL", "MAILGUN_API_KEY", "MAILGUN_DOMAIN")

def get_env_config(check_optional: bool=True) -> Dict[str, object]:
    keys = [*REQUIRED, *OPTIONAL] if check_optional else [*REQUIRED]
    vars_view = {k: ("set" if (os.getenv(k) not in (None, "")) else "unset") for k in keys}
    missing = [k for k in REQUIRED if vars_view[k]=="unset"]
    status = "OK (env_config)" if not missing else f"OK (env_config WARN: missing={','.join(missing)})"
    return {"status": status, "vars": vars_view}
