"""
Pydantic schemas for permission management.

Request and response models for compiled permissions, roles, decisions and
compilation reports.
"""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from gatekeeper.features.permissions.components import ComponentKind
from gatekeeper.features.permissions.relationships import RelationshipOperation


# ============================================================================
# Permission Schemas
# ============================================================================

class PermissionResponse(BaseModel):
    """Schema for a compiled permission record."""
    id: str
    component_kind: ComponentKind
    component: str
    action: str
    description: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Role Schemas
# ============================================================================

class RoleResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class RoleWithPermissions(RoleResponse):
    """Schema for role with permissions."""
    permissions: List[PermissionResponse] = []

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Decision Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """Schema for checking one (component, action) decision for an actor."""
    actor_id: str = Field(..., min_length=1)
    component: str = Field(..., min_length=1, max_length=100, description="Model or controller name")
    kind: ComponentKind = Field(ComponentKind.MODEL, description="Whether component is a model or a controller")
    action: str = Field(..., min_length=1, max_length=50, description="Action (e.g., 'read', 'create')")

    @field_validator('action')
    @classmethod
    def action_lowercase(cls, v: str) -> str:
        """Ensure action is lowercase."""
        return v.lower()


class RelationshipCheckRequest(BaseModel):
    """Schema for checking a relationship traversal for an actor."""
    actor_id: str = Field(..., min_length=1)
    component: str = Field(..., min_length=1, max_length=100, description="Primary model name")
    relationship: str = Field(..., min_length=1, max_length=100)
    operation: RelationshipOperation


class PermissionCheckResponse(BaseModel):
    allowed: bool
    actor_id: str
    component: str
    action: Optional[str] = None


class ActorPermissionsResponse(BaseModel):
    actor_id: str
    roles: List[str]
    permissions: Dict[str, List[str]]


# ============================================================================
# Compilation Schemas
# ============================================================================

class CompilationResultResponse(BaseModel):
    component: str
    kind: ComponentKind
    status: str
    pairs: int
    warnings: List[str] = []
    error: Optional[str] = None


class CompilationReportResponse(BaseModel):
    ok: bool
    total_pairs: int
    results: List[CompilationResultResponse]
