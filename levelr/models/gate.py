"""
levelr/models/gate.py

Gate options and decisions.
"""

from dataclasses import dataclass
from typing import Optional

from levelr.models.flags import FlagSet


AUTHENTICATION_REQUIRED = "authentication_required"
FEATURE_DISABLED = "feature_disabled"
LIMIT_EXCEEDED = "limit_exceeded"
INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class GateOptions:
    required_flag: str
    require_auth: bool = True
    enforce_usage_limits: bool = True


@dataclass(frozen=True)
class GateContext:
    """Caller context handed to a protected operation."""
    user_id: Optional[str]
    tier: str
    flags: FlagSet
    email: Optional[str] = None


@dataclass(frozen=True)
class GateDenied:
    reason: str
    message: str
    status_code: int
    feature: Optional[str] = None
