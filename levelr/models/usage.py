"""
levelr/models/usage.py

Monthly analysis usage snapshot, as returned by the usage endpoint.
"""

from typing import Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class UsageInfo(BaseModel):
    """
    Usage for one user in the current month.

    `limit` and `remaining` are the string "unlimited" for unlimited tiers.
    """
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    tier: str
    month_key: str
    current_usage: int
    limit: Union[int, str]
    remaining: Union[int, str]
    can_analyze: bool
    is_unlimited: bool
