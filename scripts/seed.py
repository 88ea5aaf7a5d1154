#!/usr/bin/env python3
"""
Seed a TaxEngine workspace

Creates (or refreshes) the super admin profile, the default permission
matrix, a Government Gateway placeholder and the default templates.
Safe to run repeatedly.

The super admin must already exist in Supabase Auth:
  1. Supabase Dashboard > Authentication > Users > Add user
  2. Copy the user UUID into .env as SUPER_ADMIN_UUID=<uuid>
  3. python scripts/seed.py
"""

import os
import sys
import logging

from taxengine.auth_permissions import DEFAULT_ROLE_PERMISSIONS, Permission, ROLE_COLUMNS
from taxengine.data import GatewayRepository, TemplateRepository
from taxengine.models import GatewayStatus, TemplateCategory, UserRole, UserStatus
from taxengine.supabase_client import get_supabase
from taxengine.utils import new_uuid, utc_now_iso

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger("seed")

PERMISSION_LABELS = {
    Permission.VIEW_CLAIMS: ("View Claims", "View all claims"),
    Permission.EDIT_CLAIMS: ("Edit Claims", "Edit claim details"),
    Permission.SUBMIT_CLAIMS: ("Submit Claims", "Submit claims to HMRC"),
    Permission.VIEW_CLIENTS: ("View Clients", "View client companies"),
    Permission.EDIT_CLIENTS: ("Edit Clients", "Edit client details"),
    Permission.MANAGE_USERS: ("Manage Users", "Add/edit/remove users"),
    Permission.VIEW_SETTINGS: ("View Settings", "View system settings"),
    Permission.EDIT_SETTINGS: ("Edit Settings", "Modify system settings"),
    Permission.VIEW_AUDIT: ("View Audit Log", "View audit log"),
    Permission.MANAGE_TEMPLATES: ("Manage Templates", "Manage document templates"),
    Permission.MANAGE_GATEWAY: ("Manage Gateway", "Manage Government Gateway"),
}

DEFAULT_TEMPLATES = [
    {"name": "CT600 Export", "category": TemplateCategory.EXPORT, "description": "Standard CT600 export template"},
    {"name": "R&D Report", "category": TemplateCategory.REPORT, "description": "R&D claim summary report"},
    {"name": "Client Letter", "category": TemplateCategory.LETTER, "description": "Standard client correspondence"},
]


def seed_super_admin(supabase) -> bool:
    admin_uuid = os.environ.get("SUPER_ADMIN_UUID")
    if not admin_uuid:
        logger.warning("SUPER_ADMIN_UUID not set in .env, skipping super admin")
        return False

    now = utc_now_iso()
    supabase.table("TaxEngineUsers").upsert({
        "uuid": admin_uuid,
        "email": os.environ.get("SUPER_ADMIN_EMAIL", "admin@taxengine.co.uk"),
        "firstName": "Super",
        "lastName": "Admin",
        "role": UserRole.ADMINISTRATOR.value,
        "status": UserStatus.ACTIVE.value,
        "createdAt": now,
        "updatedAt": now,
    }, on_conflict="uuid").execute()
    logger.info(f"Super admin created/updated: {admin_uuid}")
    return True


def seed_permissions(supabase):
    rows = []
    for perm, (name, description) in PERMISSION_LABELS.items():
        row = {"code": perm.value, "name": name, "description": description}
        for role, column in ROLE_COLUMNS.items():
            row[column] = DEFAULT_ROLE_PERMISSIONS[role][perm]
        rows.append(row)
    supabase.table("Permissions").upsert(rows, on_conflict="code").execute()
    logger.info(f"{len(rows)} permissions created/updated")


def seed_gateway(supabase):
    gateways = GatewayRepository(supabase)
    if gateways.get_default():
        logger.info("Government Gateway already present")
        return

    now = utc_now_iso()
    gateways.insert({
        "uuid": new_uuid(),
        "name": "Primary Gateway",
        "isDefault": True,
        "agentUserId": "AGENT-ID-PLACEHOLDER",
        "status": GatewayStatus.DISCONNECTED.value,
        "ct600Authorised": False,
        "rndAuthorised": False,
        "ixbrlAuthorised": False,
        "createdAt": now,
        "updatedAt": now,
    })
    logger.info("Government Gateway placeholder created")


def seed_templates(supabase):
    templates = TemplateRepository(supabase)
    for template in DEFAULT_TEMPLATES:
        if templates.find_one("name", template["name"]):
            continue
        templates.create({
            "name": template["name"],
            "category": template["category"].value,
            "version": "1.0",
            "description": template["description"],
            "isDefault": True,
        })
        logger.info(f"Template created: {template['name']}")


def main() -> int:
    supabase = get_supabase()
    if supabase is None:
        logger.error("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        return 1

    seed_super_admin(supabase)
    seed_permissions(supabase)
    seed_gateway(supabase)
    seed_templates(supabase)
    logger.info("Seed completed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
