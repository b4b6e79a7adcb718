"""Organization member schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional, List

from pydantic import Field

from .common import CamelModel, MembershipStatus


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class MemberUpdateRequest(CamelModel):
    """Change a member's role within the org."""
    role: str = Field(min_length=1, max_length=100)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class MemberResponse(CamelModel):
    """A user as a member of one org."""
    id: uuid.UUID
    email: str
    first_name: str = ""
    last_name: str = ""
    role: str
    status: MembershipStatus
    invited_by_id: Optional[uuid.UUID] = None
    joined_at: Optional[datetime] = None
    last_login: Optional[datetime] = None
    registration_email_sent: bool = False


class MemberListResponse(CamelModel):
    data: List[MemberResponse]
