from __future__ import annotations

import os
from enum import StrEnum
from typing import TypedDict


class Role(StrEnum):
    COORDINATOR = "coordinator"
    DESIGNER = "designer"
    FRONTEND_DEVELOPER = "frontend-developer"
    BACKEND_DEVELOPER = "backend-developer"
    SYSTEM = "system"
    USER = "user"


class RoleConfig(TypedDict, total=False):
    description: str
    aliases: list[str]
    capabilities: list[str]
    task_tags: list[str]


DEFAULT_ROLE_CONFIG: dict[str, RoleConfig] = {
    "coordinator": {
        "description": "Plans the work and delegates tasks to the rest of the team",
        "aliases": ["coordinator", "pm", "lead"],
        "capabilities": [
            "project_management",
            "task_coordination",
            "team_collaboration",
            "workflow_management",
            "communication_facilitation",
        ],
        "task_tags": ["plan", "planning", "coordinate", "roadmap", "requirements"],
    },
    "designer": {
        "description": "Produces wireframes, layouts and the design system",
        "aliases": ["designer", "ui/ux designer", "ux", "ui", "design"],
        "capabilities": [
            "ui_design",
            "ux_design",
            "wireframing",
            "prototyping",
            "design_systems",
            "user_research",
            "accessibility_design",
        ],
        "task_tags": ["design", "wireframe", "ui", "ux", "mockup"],
    },
    "frontend-developer": {
        "description": "Implements the client application from the approved design",
        "aliases": ["frontend-developer", "frontend", "fe"],
        "capabilities": [
            "frontend_development",
            "react_development",
            "typescript",
            "css_styling",
            "responsive_design",
            "component_architecture",
            "api_integration",
        ],
        "task_tags": ["frontend", "react", "css", "component"],
    },
    "backend-developer": {
        "description": "Designs the API, database and authentication",
        "aliases": ["backend-developer", "backend", "be"],
        "capabilities": [
            "backend_development",
            "api_design",
            "database_design",
            "server_architecture",
            "authentication",
            "security",
            "performance_optimization",
        ],
        "task_tags": ["backend", "api", "database", "auth", "server"],
    },
}

GENERIC_CAPABILITIES = ["general_assistance", "communication", "problem_solving"]

# Roles that make a roster eligible for the structured build workflow.
TEAM_ROLES: frozenset[str] = frozenset(
    {
        Role.COORDINATOR.value,
        Role.DESIGNER.value,
        Role.FRONTEND_DEVELOPER.value,
        Role.BACKEND_DEVELOPER.value,
    }
)

# Roles that are never invoked to generate replies.
NON_INVOCABLE_ROLES: frozenset[str] = frozenset({Role.SYSTEM.value, Role.USER.value})


def normalize_role(value: str) -> str:
    """Map a free-form role label onto a canonical role value when possible."""
    label = value.strip().lower()
    for role, config in DEFAULT_ROLE_CONFIG.items():
        if label == role or label in config.get("aliases", []):
            return role
    return label


def default_capabilities_for_role(role: str) -> list[str]:
    config = DEFAULT_ROLE_CONFIG.get(normalize_role(role))
    if config is None:
        return list(GENERIC_CAPABILITIES)
    return list(config["capabilities"])


def get_env_key(role: str) -> str:
    return f"ROLE_{role.upper().replace('-', '_')}_TAGS"


def task_tags_for_role(role: str) -> list[str]:
    """Task tags routed to a role; ``ROLE_<ROLE>_TAGS`` (comma separated) overrides."""
    env_value = os.getenv(get_env_key(role))
    if env_value:
        return [tag.strip().lower() for tag in env_value.split(",") if tag.strip()]
    config = DEFAULT_ROLE_CONFIG.get(role, {})
    return list(config.get("task_tags", []))
