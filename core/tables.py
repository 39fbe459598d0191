"""SQLAlchemy Core table definitions for the database schema."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP

from .enums import (
    enrolment_status_enum,
    group_mode_enum,
    instance_status_enum,
    unenrol_action_enum,
)

# Naming convention for constraints (helps Alembic generate better names)
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}
metadata = MetaData(naming_convention=convention)


# =====================================================
# 1. USERS
# =====================================================
users = Table(
    "users",
    metadata,
    Column("user_id", Integer, primary_key=True, autoincrement=True),
    Column("username", Text, nullable=False),
    Column("first_name", Text),
    Column("last_name", Text),
    Column("email", Text),
    Column("is_admin", Boolean, server_default="false"),
    Column("created_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Column("updated_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Column("deleted_at", TIMESTAMP(timezone=True)),
    Index("idx_users_username", "username"),
)


# =====================================================
# 2. COURSES
# =====================================================
# The site pseudo-course is an ordinary row whose id is SITE_COURSE_ID
courses = Table(
    "courses",
    metadata,
    Column("course_id", Integer, primary_key=True, autoincrement=True),
    Column("short_name", Text, nullable=False),
    Column("full_name", Text, nullable=False),
    Column("id_number", Text),
    Column("visible", Boolean, server_default="true"),
    Column("created_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Column("updated_at", TIMESTAMP(timezone=True), server_default=func.now()),
)


# =====================================================
# 3. ROLES
# =====================================================
roles = Table(
    "roles",
    metadata,
    Column("role_id", Integer, primary_key=True, autoincrement=True),
    Column("short_name", Text, nullable=False),
    Column("name", Text),
    UniqueConstraint("short_name"),
)

role_capabilities = Table(
    "role_capabilities",
    metadata,
    Column("role_capability_id", Integer, primary_key=True, autoincrement=True),
    Column(
        "role_id",
        Integer,
        ForeignKey("roles.role_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("capability", Text, nullable=False),
    UniqueConstraint("role_id", "capability"),
)


# =====================================================
# 4. COHORTS
# =====================================================
# Cohorts and their membership are owned by another system; we only read them
cohorts = Table(
    "cohorts",
    metadata,
    Column("cohort_id", Integer, primary_key=True, autoincrement=True),
    Column("cohort_name", Text, nullable=False),
    Column("id_number", Text),
    Column("visible", Boolean, server_default="true"),
    Column("created_at", TIMESTAMP(timezone=True), server_default=func.now()),
)

cohort_members = Table(
    "cohort_members",
    metadata,
    Column("cohort_member_id", Integer, primary_key=True, autoincrement=True),
    Column(
        "cohort_id",
        Integer,
        ForeignKey("cohorts.cohort_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "user_id",
        Integer,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("added_at", TIMESTAMP(timezone=True), server_default=func.now()),
    UniqueConstraint("cohort_id", "user_id"),
    Index("idx_cohort_members_user_id", "user_id"),
)


# =====================================================
# 5. GROUPS
# =====================================================
groups = Table(
    "groups",
    metadata,
    Column("group_id", Integer, primary_key=True, autoincrement=True),
    Column(
        "course_id",
        Integer,
        ForeignKey("courses.course_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("group_name", Text, nullable=False),
    Column("created_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Index("idx_groups_course_id", "course_id"),
)

groups_users = Table(
    "groups_users",
    metadata,
    Column("group_user_id", Integer, primary_key=True, autoincrement=True),
    Column(
        "group_id",
        Integer,
        ForeignKey("groups.group_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "user_id",
        Integer,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    ),
    # Sync instance that added the member; NULL for members added by hand.
    # No FK: the marker must outlive the instance that set it.
    Column("instance_id", Integer, nullable=True),
    Column("joined_at", TIMESTAMP(timezone=True), server_default=func.now()),
    UniqueConstraint("group_id", "user_id"),
    Index("idx_groups_users_user_id", "user_id"),
    Index("idx_groups_users_instance_id", "instance_id"),
)


# =====================================================
# 6. SYNC INSTANCES
# =====================================================
sync_instances = Table(
    "sync_instances",
    metadata,
    Column("instance_id", Integer, primary_key=True, autoincrement=True),
    Column(
        "course_id",
        Integer,
        ForeignKey("courses.course_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "cohort_id",
        Integer,
        ForeignKey("cohorts.cohort_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "role_id",
        Integer,
        ForeignKey("roles.role_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("group_mode", group_mode_enum, nullable=False, server_default="none"),
    Column(
        "group_id",
        Integer,
        ForeignKey("groups.group_id"),
    ),
    Column("name", Text, nullable=False, server_default=""),
    Column("status", instance_status_enum, nullable=False, server_default="enabled"),
    Column(
        "unenrol_action",
        unenrol_action_enum,
        nullable=False,
        server_default="unenrol",
    ),
    Column("created_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Column("updated_at", TIMESTAMP(timezone=True), server_default=func.now()),
    UniqueConstraint("course_id", "role_id", "cohort_id"),
    CheckConstraint(
        "(group_mode = 'existing') = (group_id IS NOT NULL)",
        name="group_id_matches_mode",
    ),
    Index("idx_sync_instances_cohort_id", "cohort_id"),
)


# =====================================================
# 7. USER ENROLMENTS
# =====================================================
# instance_id is NULL for enrolments owned by other methods (e.g. manual)
user_enrolments = Table(
    "user_enrolments",
    metadata,
    Column("enrolment_id", Integer, primary_key=True, autoincrement=True),
    Column(
        "instance_id",
        Integer,
        ForeignKey("sync_instances.instance_id", ondelete="CASCADE"),
    ),
    Column("enrol_method", Text, nullable=False, server_default="cohort_sync"),
    Column(
        "user_id",
        Integer,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "course_id",
        Integer,
        ForeignKey("courses.course_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "role_id",
        Integer,
        ForeignKey("roles.role_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "group_id",
        Integer,
        ForeignKey("groups.group_id", ondelete="SET NULL"),
    ),
    Column("status", enrolment_status_enum, nullable=False, server_default="active"),
    Column("time_start", TIMESTAMP(timezone=True)),
    Column("time_end", TIMESTAMP(timezone=True)),
    Column("created_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Column("updated_at", TIMESTAMP(timezone=True), server_default=func.now()),
    UniqueConstraint("instance_id", "user_id"),
    Index("idx_user_enrolments_course_role", "course_id", "role_id"),
    Index("idx_user_enrolments_user_id", "user_id"),
)


# =====================================================
# 8. EXCLUSIONS
# =====================================================
exclusions = Table(
    "exclusions",
    metadata,
    Column("exclusion_id", Integer, primary_key=True, autoincrement=True),
    Column(
        "user_id",
        Integer,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "course_id",
        Integer,
        ForeignKey("courses.course_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("created_at", TIMESTAMP(timezone=True), server_default=func.now()),
    UniqueConstraint("user_id", "course_id"),
    Index("idx_exclusions_course_id", "course_id"),
)
