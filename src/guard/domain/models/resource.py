from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

LOW_RESOURCE_THRESHOLD = 5


@dataclass
class Resource:
    id: str = ""
    name: str = ""
    description: str = ""
    quantity: int = 1
    organization_id: Optional[str] = None
    image: str = ""
    version: int = 1

    @property
    def is_empty(self) -> bool:
        return int(self.quantity) == 0

    def is_low(self, threshold: int = LOW_RESOURCE_THRESHOLD) -> bool:
        return int(self.quantity) <= int(threshold)
