"""SQLAlchemy enum definitions for the database schema."""

import enum

from sqlalchemy import Enum as SQLEnum


# =====================================================
# Python Enum Classes
# =====================================================


class InstanceStatus(str, enum.Enum):
    enabled = "enabled"
    disabled = "disabled"


class EnrolmentStatus(str, enum.Enum):
    active = "active"
    suspended = "suspended"


class UnenrolAction(str, enum.Enum):
    """What happens to a synced enrolment when its user leaves the desired set."""

    unenrol = "unenrol"
    suspend = "suspend"


class GroupMode(str, enum.Enum):
    none = "none"
    create_new = "create_new"
    existing = "existing"


class ChangeAction(str, enum.Enum):
    enrol = "enrol"
    reactivate = "reactivate"
    unenrol = "unenrol"
    suspend = "suspend"
    add_to_group = "add_to_group"


# Wire codes used by the admin API
INSTANCE_STATUS_CODES = {0: InstanceStatus.enabled, 1: InstanceStatus.disabled}
ENROLMENT_STATUS_CODES = {0: EnrolmentStatus.active, 1: EnrolmentStatus.suspended}


# =====================================================
# SQLAlchemy Enum Types
# These reference existing PostgreSQL types (create_type=False)
# =====================================================

instance_status_enum = SQLEnum(
    InstanceStatus, name="instance_status", create_type=False, native_enum=True
)
enrolment_status_enum = SQLEnum(
    EnrolmentStatus, name="enrolment_status", create_type=False, native_enum=True
)
unenrol_action_enum = SQLEnum(
    UnenrolAction, name="unenrol_action", create_type=False, native_enum=True
)
group_mode_enum = SQLEnum(
    GroupMode, name="group_mode", create_type=False, native_enum=True
)
