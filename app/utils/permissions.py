"""
Role to module capability resolution shared by API guards and the /auth/me payload.
"""

from typing import Optional, Set

# 模組代碼
TIMESHEET_RECORD = "timesheet_record"
SUPERVISOR_APPROVAL = "supervisor_approval"
SECTION_CHIEF_APPROVAL = "section_chief_approval"
PROCESS_MANAGEMENT = "process_management"
RECYCLE_BIN = "recycle_bin"
USER_MANAGEMENT = "user_management"
ROLE_PERMISSIONS = "role_permissions"
HISTORY = "history"

ALL_MODULES = {
    TIMESHEET_RECORD,
    SUPERVISOR_APPROVAL,
    SECTION_CHIEF_APPROVAL,
    PROCESS_MANAGEMENT,
    RECYCLE_BIN,
    USER_MANAGEMENT,
    ROLE_PERMISSIONS,
    HISTORY,
}

# 角色代碼
SUPER_ADMIN = "super_admin"
ADMIN = "admin"
SECTION_CHIEF = "section_chief"
SUPERVISOR = "supervisor"
EMPLOYEE = "employee"

# 中文角色名稱對照
ROLE_ALIASES = {
    "超级管理员": SUPER_ADMIN,
    "超級管理員": SUPER_ADMIN,
    "管理员": ADMIN,
    "管理員": ADMIN,
    "段长": SECTION_CHIEF,
    "段長": SECTION_CHIEF,
    "班长": SUPERVISOR,
    "班長": SUPERVISOR,
    "员工": EMPLOYEE,
    "員工": EMPLOYEE,
}

DEFAULT_ROLE_PERMISSIONS = {
    SUPER_ADMIN: set(ALL_MODULES),
    ADMIN: {
        TIMESHEET_RECORD, SUPERVISOR_APPROVAL, SECTION_CHIEF_APPROVAL,
        PROCESS_MANAGEMENT, RECYCLE_BIN, USER_MANAGEMENT, HISTORY,
    },
    SECTION_CHIEF: {TIMESHEET_RECORD, SECTION_CHIEF_APPROVAL, RECYCLE_BIN, HISTORY},
    SUPERVISOR: {TIMESHEET_RECORD, SUPERVISOR_APPROVAL, RECYCLE_BIN, HISTORY},
    EMPLOYEE: {TIMESHEET_RECORD, HISTORY},
}


def normalize_role(role_name: Optional[str]) -> str:
    """將角色名稱統一為角色代碼"""
    if not role_name:
        return EMPLOYEE
    name = role_name.strip()
    return ROLE_ALIASES.get(name, name.lower())


def is_super_admin(user) -> bool:
    return normalize_role(getattr(user, "role_name", None)) == SUPER_ADMIN


def is_admin(user) -> bool:
    """管理員或超級管理員"""
    return normalize_role(getattr(user, "role_name", None)) in (SUPER_ADMIN, ADMIN)


def resolve_permissions(role) -> Set[str]:
    """
    解析角色可使用的模組。

    超級管理員擁有全部模組；角色有自訂權限列表時以列表為準，
    否則採用內建預設表。
    """
    if role is None:
        return set(DEFAULT_ROLE_PERMISSIONS[EMPLOYEE])

    code = normalize_role(role.name)
    if code == SUPER_ADMIN:
        return set(ALL_MODULES)

    if role.permissions is not None:
        return {module for module in role.permissions if module in ALL_MODULES}

    return set(DEFAULT_ROLE_PERMISSIONS.get(code, DEFAULT_ROLE_PERMISSIONS[EMPLOYEE]))


def has_permission(user, module: str) -> bool:
    return module in resolve_permissions(getattr(user, "role", None))
