"""
User Profile Model

The persisted user record. The image pipeline only reads and writes
profile_image_url.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class UserProfile:
    """User record"""
    name: str
    email: str
    password_hash: str               # Credential hash, never the plain password
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    profile_image_url: Optional[str] = None
    weight: Optional[float] = None   # kg
    height: Optional[float] = None   # cm
    fitness_goal: Optional[str] = None
    join_date: datetime = field(default_factory=datetime.now)
    is_current_user: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Public fields (no credential hash)."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "profile_image_url": self.profile_image_url,
            "weight": self.weight,
            "height": self.height,
            "fitness_goal": self.fitness_goal,
            "join_date": self.join_date.isoformat(),
            "is_current_user": self.is_current_user,
        }
