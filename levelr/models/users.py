"""
levelr/models/users.py

The slice of a Clerk Backend API user object the directory reads.
Unknown fields are ignored; a wrong shape for the known ones fails validation.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class ClerkEmailAddress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    email_address: Optional[str] = None


class ClerkUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    public_metadata: Optional[Dict[str, Any]] = None
    primary_email_address_id: Optional[str] = None
    email_addresses: Optional[List[ClerkEmailAddress]] = None

    def tier_value(self) -> Any:
        return (self.public_metadata or {}).get("tier")

    def primary_email(self) -> Optional[str]:
        addresses = self.email_addresses or []
        for entry in addresses:
            if self.primary_email_address_id and entry.id == self.primary_email_address_id:
                return entry.email_address
        if addresses:
            return addresses[0].email_address
        return None
