"""Plan to application entitlements."""

from dataclasses import dataclass, field

ALL_MODULES = "*"


@dataclass(frozen=True)
class PlanAccess:
    applications: tuple[str, ...]
    # app_code -> module codes, or ALL_MODULES
    modules: dict[str, tuple[str, ...] | str] = field(default_factory=dict)

    def modules_for(self, app_code: str) -> tuple[str, ...] | str:
        return self.modules.get(app_code, ALL_MODULES)


PLAN_APPLICATIONS: dict[str, PlanAccess] = {
    "trial": PlanAccess(
        applications=("crm",),
        modules={"crm": ("leads", "contacts", "dashboard")},
    ),
    "starter": PlanAccess(
        applications=("crm", "hr"),
        modules={
            "crm": (
                "leads",
                "contacts",
                "accounts",
                "opportunities",
                "quotations",
                "tickets",
                "communications",
                "dashboard",
                "users",
            ),
            "hr": ("employees", "payroll", "leave", "documents"),
        },
    ),
    "professional": PlanAccess(
        applications=("crm", "hr", "affiliate"),
        modules={
            "crm": (
                "leads",
                "contacts",
                "accounts",
                "opportunities",
                "quotations",
                "tickets",
                "communications",
                "invoices",
                "dashboard",
                "users",
                "roles",
                "bulk_operations",
            ),
            "hr": (
                "employees",
                "payroll",
                "leave",
                "documents",
                "performance",
                "recruitment",
            ),
            "affiliate": ("partners", "commissions"),
        },
    ),
    "enterprise": PlanAccess(
        applications=("crm", "hr", "affiliate", "accounting", "inventory"),
        modules={
            "crm": ALL_MODULES,
            "hr": ALL_MODULES,
            "affiliate": ALL_MODULES,
            "accounting": ALL_MODULES,
            "inventory": ALL_MODULES,
        },
    ),
}
PLAN_APPLICATIONS["free"] = PLAN_APPLICATIONS["trial"]
