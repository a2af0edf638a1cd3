"""Domain models for the feature registry."""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict


class Domain(str, Enum):
    """Platform domains used to group features for routing and display."""

    DEVOPS = "devops"
    DATA_ENGINEERING = "data-engineering"
    CYBERSECURITY = "cybersecurity"


class FeatureGroup(str, Enum):
    """Display grouping within a domain."""

    CORE = "core"
    ADVANCED = "advanced"
    DATA = "data"
    SECURITY = "security"


@dataclass(frozen=True)
class FeatureDescriptor:
    """Describes a gated feature and whether it is currently offered."""

    key: str
    title: str
    domains: Tuple[Domain, ...]
    group: FeatureGroup = FeatureGroup.CORE
    enabled: bool = True
    metered: bool = True
    coming_soon_message: Optional[str] = None

    @property
    def domain(self) -> Domain:
        """Primary domain, used when a single routing tag is needed."""

        return self.domains[0]

    def with_enabled(self, enabled: bool, *, message: Optional[str] = None) -> "FeatureDescriptor":
        return replace(
            self,
            enabled=enabled,
            coming_soon_message=message if message is not None else self.coming_soon_message,
        )


class FeatureOverride(BaseModel):
    """Operator-controlled toggle for a single feature key."""

    key: str
    enabled: bool
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


class DomainConfig(BaseModel):
    """Operator-controlled toggle for an entire domain."""

    domain: Domain
    enabled: bool
    coming_soon_message: Optional[str] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)
