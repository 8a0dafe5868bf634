"""
Organization Roles Configuration
Defines what each membership role may do inside an organization.
Roles are stored as free-form strings on profile_organization_members.role;
unknown or missing roles fall back to DEFAULT_ROLE.
"""

DEFAULT_ROLE = "member"
ADMIN_ROLE = "admin"
CUSTOMER_ROLE = "customer"

# Resources and the actions that can be granted on them
RESOURCES = {
    "organizations": {
        "actions": ["read", "update", "delete"],
        "description": "Organization management"
    },
    "members": {
        "actions": ["read", "manage"],
        "description": "Organization membership management"
    },
    "invitations": {
        "actions": ["read", "manage"],
        "description": "Organization invitations"
    },
    "tickets": {
        "actions": ["create", "read_own", "read_all", "update_own", "update_all"],
        "description": "Helpdesk tickets"
    },
    "comments": {
        "actions": ["create", "read"],
        "description": "Ticket comments"
    },
    "tags": {
        "actions": ["read", "write_values", "manage"],
        "description": "Ticket tag keys, options and values"
    },
    "macros": {
        "actions": ["read", "write", "apply"],
        "description": "Macros and macro statistics"
    }
}

# Grants per role; "*" grants every action of the resource
ROLE_GRANTS = {
    ADMIN_ROLE: {
        "organizations": ["*"],
        "members": ["*"],
        "invitations": ["*"],
        "tickets": ["*"],
        "comments": ["*"],
        "tags": ["*"],
        "macros": ["*"],
    },
    "worker": {
        "organizations": ["read"],
        "members": ["read"],
        "tickets": ["*"],
        "comments": ["*"],
        "tags": ["read", "write_values"],
        "macros": ["read", "write", "apply"],
    },
    DEFAULT_ROLE: {
        "organizations": ["read"],
        "members": ["read"],
        "tickets": ["*"],
        "comments": ["*"],
        "tags": ["read", "write_values"],
        "macros": ["read", "write", "apply"],
    },
    CUSTOMER_ROLE: {
        "organizations": ["read"],
        "tickets": ["create", "read_own", "update_own"],
        "comments": ["create", "read"],
        "tags": ["read"],
    },
}


def get_role_permissions(role):
    """
    Returns the sorted list of "resource:action" permissions granted to a role.
    Unknown roles get the permissions of DEFAULT_ROLE.
    """
    grants = ROLE_GRANTS.get(role or DEFAULT_ROLE, ROLE_GRANTS[DEFAULT_ROLE])
    permissions = []
    for resource, actions in grants.items():
        allowed = RESOURCES[resource]["actions"] if "*" in actions else actions
        for action in allowed:
            permissions.append(f"{resource}:{action}")
    return sorted(permissions)


def role_has_permission(role, permission: str) -> bool:
    return permission in get_role_permissions(role)
