"""Organization tool: list, select and manage organizations."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from toolhost.context import ToolContext
from toolhost.dispatch import ResourceTool
from toolhost.errors import (
    conflict_error,
    not_found_error,
    unauthorized_error,
    validation_error,
)
from toolhost.store import Organization, SlugTakenError

logger = logging.getLogger(__name__)

ORG_ACTIONS = {
    "org": ("list", "select", "get", "update", "create"),
}

DESCRIPTION = """Manage organizations and select which organization to work with.

IMPORTANT: You must use org.select before using other org-scoped tools.

Resources:
- org: Organization management

ORG RESOURCE:
- org.list: List all organizations you have access to
- org.select: Select an organization to work with (requires: id or slug)
- org.get: Get current organization details
- org.update: Update organization settings (optional: name, logo_url)
- org.create: Create a new organization (requires: name)

Examples:
  org(resource: org, action: list)
  org(resource: org, action: select, slug: "my-company")
  org(resource: org, action: update, name: "Updated Name")
  org(resource: org, action: create, name: "New Company")"""


@dataclass
class OrgInput:
    """Input of the org tool."""

    resource: str = field(default="", metadata={"description": "Resource type: org"})
    action: str = field(default="", metadata={"description": "Action to perform"})
    id: str = field(
        default="", metadata={"description": "Organization ID to select. For org.select."}
    )
    slug: str = field(
        default="",
        metadata={"description": "Organization slug to select (alternative to id). For org.select."},
    )
    name: str = field(
        default="", metadata={"description": "Organization name. For org.create, org.update."}
    )
    logo_url: str = field(
        default="", metadata={"description": "Organization logo URL. For org.update."}
    )


@dataclass
class OrgListItem:
    id: str
    name: str
    slug: str
    logo_url: str | None
    selected: bool

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "name": self.name, "slug": self.slug}
        if self.logo_url:
            data["logo_url"] = self.logo_url
        data["selected"] = self.selected
        return data


@dataclass
class OrgListOutput:
    organizations: list[OrgListItem]

    def to_dict(self) -> dict[str, Any]:
        return {
            "organizations": [o.to_dict() for o in self.organizations],
            "total": len(self.organizations),
        }


@dataclass
class OrgSelectOutput:
    id: str
    name: str
    slug: str
    selected: bool = True
    message: str = "Organization selected. All subsequent operations will use this organization."

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "selected": self.selected,
            "message": self.message,
        }


@dataclass
class OrgOutput:
    """Organization details, with a status flag for update and create."""

    org: Organization
    status: str | None = None  # "updated" or "created"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.org.id, "name": self.org.name, "slug": self.org.slug}
        if self.org.logo_url:
            data["logo_url"] = self.org.logo_url
        if self.status is None:
            data["owner_id"] = self.org.owner_id
        else:
            data[self.status] = True
        return data


def slugify(name: str) -> str:
    """Derive an organization slug from its name.

    Lowercases, turns spaces into dashes, keeps only [a-z0-9-], collapses
    repeated dashes and trims them from both ends.
    """
    slug = name.lower().replace(" ", "-")
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-{2,}", "-", slug)
    return slug.strip("-")


def handle_list(tool_ctx: ToolContext, params: OrgInput) -> OrgListOutput:
    orgs = tool_ctx.db.list_user_organizations(tool_ctx.user_id)
    current = tool_ctx.org_id
    return OrgListOutput(
        organizations=[
            OrgListItem(
                id=o.id, name=o.name, slug=o.slug, logo_url=o.logo_url, selected=o.id == current
            )
            for o in orgs
        ]
    )


def handle_select(tool_ctx: ToolContext, params: OrgInput) -> OrgSelectOutput:
    logger.debug(
        "org.select session=%s id=%r slug=%r", tool_ctx.session_id, params.id, params.slug
    )
    if not params.id and not params.slug:
        raise validation_error("either id or slug is required for org.select", "id")

    if params.id:
        org = tool_ctx.db.get_organization(params.id)
        if org is None:
            raise not_found_error(f"organization with ID '{params.id}' not found")
    else:
        org = tool_ctx.db.get_organization_by_slug(params.slug)
        if org is None:
            raise not_found_error(f"organization with slug '{params.slug}' not found")

    if tool_ctx.db.get_member(org.id, tool_ctx.user_id) is None:
        raise unauthorized_error("you don't have access to this organization")

    tool_ctx.select_org(org)
    logger.info("Session %s selected organization %s", tool_ctx.session_id, org.id)
    return OrgSelectOutput(id=org.id, name=org.name, slug=org.slug)


def handle_get(tool_ctx: ToolContext, params: OrgInput) -> OrgOutput:
    tool_ctx.require_org()
    org = tool_ctx.org
    assert org is not None
    return OrgOutput(org)


def handle_update(tool_ctx: ToolContext, params: OrgInput) -> OrgOutput:
    tool_ctx.require_org()
    org_id = tool_ctx.org_id

    tool_ctx.db.update_organization(
        org_id, name=params.name or None, logo_url=params.logo_url or None
    )
    updated = tool_ctx.db.get_organization(org_id)
    if updated is None:
        raise not_found_error(f"organization with ID '{org_id}' not found")

    # Keep the session's copy current without re-firing persistence
    tool_ctx.restore_org(updated)
    return OrgOutput(updated, status="updated")


def handle_create(tool_ctx: ToolContext, params: OrgInput) -> OrgOutput:
    name = params.name.strip()
    if not name:
        raise validation_error("name is required", "name")

    slug = slugify(name)
    if not slug:
        raise validation_error("name must contain letters or digits", "name")
    if tool_ctx.db.slug_exists(slug):
        raise conflict_error(f"organization with slug '{slug}' already exists")

    try:
        org = tool_ctx.db.create_organization_with_owner(name, slug, tool_ctx.user_id)
    except SlugTakenError as e:
        raise conflict_error(f"organization with slug '{slug}' already exists") from e

    # Subsequent calls work against the new organization immediately
    tool_ctx.select_org(org)
    logger.info("User %s created organization %s", tool_ctx.user_id, org.id)
    return OrgOutput(org, status="created")


ORG_TOOL = ResourceTool(
    name="org",
    title="Organization Management",
    description=DESCRIPTION,
    input_type=OrgInput,
    actions=ORG_ACTIONS,
    handlers={
        "org": {
            "list": handle_list,
            "select": handle_select,
            "get": handle_get,
            "update": handle_update,
            "create": handle_create,
        },
    },
)
