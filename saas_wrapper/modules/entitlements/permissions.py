"""Organization-Admin permission map derivation.

The map is a pure function of a tenant's enabled assignments and the module
defaults from the application catalog.
"""

from dataclasses import dataclass, field

from pydantic import TypeAdapter

from saas_wrapper.modules.credits.core import DEFAULT_MODULE_ACTIONS

# app_code -> module_code -> [action]
PermissionMap = dict[str, dict[str, list[str]]]
ModulePermissions = dict[str, list[str]]

permission_map_adapter = TypeAdapter(PermissionMap)
module_permissions_adapter = TypeAdapter(ModulePermissions)


@dataclass
class AssignmentSnapshot:
    app_code: str
    app_name: str
    enabled_modules: list[str]
    custom_permissions: ModulePermissions = field(default_factory=dict)
    module_defaults: dict[str, list[str] | None] = field(default_factory=dict)


def parse_permission_map(raw: object) -> PermissionMap:
    """Validate a permission map read from storage. Empty/null becomes {}."""
    return permission_map_adapter.validate_python(raw or {})


def _unique(actions: list[str]) -> list[str]:
    return list(dict.fromkeys(a for a in actions if a))


def effective_module_actions(
    module_code: str,
    custom_permissions: ModulePermissions,
    module_defaults: dict[str, list[str] | None],
) -> list[str]:
    custom = _unique(custom_permissions.get(module_code) or [])
    if custom:
        return custom
    defaults = _unique(module_defaults.get(module_code) or [])
    if defaults:
        return defaults
    return list(DEFAULT_MODULE_ACTIONS)


def build_permission_map(assignments: list[AssignmentSnapshot]) -> PermissionMap:
    permission_map: PermissionMap = {}
    for assignment in assignments:
        modules = {
            module_code: effective_module_actions(
                module_code,
                assignment.custom_permissions,
                assignment.module_defaults,
            )
            for module_code in _unique(assignment.enabled_modules)
        }
        permission_map[assignment.app_code] = modules
    return permission_map
