from pydantic import BaseModel
from typing import Optional

class TokenData(BaseModel):
    sub: Optional[str] = None
    role: Optional[str] = None
    tenant_id: Optional[str] = None
    local_admin_id: Optional[int] = None
    name: Optional[str] = None
