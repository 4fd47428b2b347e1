"""
Permissions and Roles Configuration
This config defines the permission catalog for every resource and the default roles.
Used by the seed script to populate/update roles and permissions.
"""

# Define resources and the actions that exist on them
RESOURCES = {
    "users": {
        "actions": ["read", "write", "create", "update", "delete"],
        "description": "User accounts"
    },
    "roles": {
        "actions": ["read", "write", "create", "update", "delete"],
        "description": "Roles and their permissions"
    },
    "permissions": {
        "actions": ["read", "write"],
        "description": "Permission catalog and direct grants"
    },
    "files": {
        "actions": ["read", "write", "create", "update", "delete", "download"],
        "description": "Files and folders"
    },
    "dashboard": {
        "actions": ["read"],
        "description": "Admin dashboard"
    }
}

# Descriptions that read better than the generated "<Action> <resource>"
PERMISSION_DESCRIPTIONS = {
    "users:write": "Manage user accounts and their role/permission grants",
    "roles:write": "Manage roles and assign them to users",
    "permissions:write": "Edit role permissions and grant permissions directly",
    "files:download": "Download file contents",
}

# Wildcard entries stored alongside the concrete ones
WILDCARD_PERMISSIONS = {
    "*:*": "All permissions on all resources",
    "files:*": "All file actions",
}

# Default roles; permission names may use "*" as a whole segment
DEFAULT_ROLES = {
    "admin": {
        "description": "Full access to everything",
        "permissions": ["*:*"]
    },
    "editor": {
        "description": "Manage files, read users and roles",
        "permissions": ["files:*", "users:read", "roles:read", "dashboard:read"]
    },
    "viewer": {
        "description": "Read-only access to files and the dashboard",
        "permissions": ["files:read", "files:download", "dashboard:read"]
    }
}

# Role given to the seeded system administrator
SYSTEM_ADMIN_ROLE = "admin"


# Generate permission matrix
def get_permission_matrix():
    """
    Returns a dictionary with all permissions and the default roles
    Format: {
        "permissions": [
            {"name": "users:read", "resource": "users", "action": "read", "description": "..."},
            ...
        ],
        "roles": [
            {"name": "editor", "description": "...", "permissions": ["dashboard:read", "files:*", ...]},
            ...
        ]
    }
    """
    permissions = []

    for resource, resource_config in RESOURCES.items():
        for action in resource_config["actions"]:
            permission_name = f"{resource}:{action}"
            permissions.append({
                "name": permission_name,
                "resource": resource,
                "action": action,
                "description": PERMISSION_DESCRIPTIONS.get(
                    permission_name, f"{action.capitalize()} {resource_config['description'].lower()}"
                )
            })

    for permission_name, description in WILDCARD_PERMISSIONS.items():
        resource, action = permission_name.split(":", 1)
        permissions.append({
            "name": permission_name,
            "resource": resource,
            "action": action,
            "description": description
        })

    roles = [
        {
            "name": role_name,
            "description": role_config["description"],
            "permissions": sorted(role_config["permissions"])
        }
        for role_name, role_config in DEFAULT_ROLES.items()
    ]

    return {
        "permissions": permissions,
        "roles": roles
    }


# Export the matrix for use in seed scripts
PERMISSION_MATRIX = get_permission_matrix()
