"""Cohort sync schema.

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates the reference tables (users, courses, roles, cohorts, groups) the
sync service reads, and the tables it owns: sync_instances, user_enrolments
and exclusions.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


instance_status = postgresql.ENUM("enabled", "disabled", name="instance_status", create_type=False)
enrolment_status = postgresql.ENUM("active", "suspended", name="enrolment_status", create_type=False)
unenrol_action = postgresql.ENUM("unenrol", "suspend", name="unenrol_action", create_type=False)
group_mode = postgresql.ENUM("none", "create_new", "existing", name="group_mode", create_type=False)

ENUMS = (instance_status, enrolment_status, unenrol_action, group_mode)


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.TIMESTAMP(timezone=True),
        server_default=sa.text("now()"),
        nullable=True,
    )


def upgrade() -> None:
    bind = op.get_bind()
    for enum in ENUMS:
        enum.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("user_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.Text(), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=True),
        sa.Column("last_name", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("is_admin", sa.Boolean(), server_default="false", nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("deleted_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("user_id", name=op.f("pk_users")),
    )
    op.create_index("idx_users_username", "users", ["username"], unique=False)

    op.create_table(
        "courses",
        sa.Column("course_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("short_name", sa.Text(), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column("id_number", sa.Text(), nullable=True),
        sa.Column("visible", sa.Boolean(), server_default="true", nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("course_id", name=op.f("pk_courses")),
    )

    op.create_table(
        "roles",
        sa.Column("role_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("short_name", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("role_id", name=op.f("pk_roles")),
        sa.UniqueConstraint("short_name", name=op.f("uq_roles_short_name")),
    )

    op.create_table(
        "role_capabilities",
        sa.Column("role_capability_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.Column("capability", sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(
            ["role_id"],
            ["roles.role_id"],
            name=op.f("fk_role_capabilities_role_id_roles"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("role_capability_id", name=op.f("pk_role_capabilities")),
        sa.UniqueConstraint(
            "role_id", "capability", name=op.f("uq_role_capabilities_role_id")
        ),
    )

    op.create_table(
        "cohorts",
        sa.Column("cohort_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("cohort_name", sa.Text(), nullable=False),
        sa.Column("id_number", sa.Text(), nullable=True),
        sa.Column("visible", sa.Boolean(), server_default="true", nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("cohort_id", name=op.f("pk_cohorts")),
    )

    op.create_table(
        "cohort_members",
        sa.Column("cohort_member_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("cohort_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        _timestamp("added_at"),
        sa.ForeignKeyConstraint(
            ["cohort_id"],
            ["cohorts.cohort_id"],
            name=op.f("fk_cohort_members_cohort_id_cohorts"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            name=op.f("fk_cohort_members_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("cohort_member_id", name=op.f("pk_cohort_members")),
        sa.UniqueConstraint("cohort_id", "user_id", name=op.f("uq_cohort_members_cohort_id")),
    )
    op.create_index("idx_cohort_members_user_id", "cohort_members", ["user_id"], unique=False)

    op.create_table(
        "groups",
        sa.Column("group_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("group_name", sa.Text(), nullable=False),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(
            ["course_id"],
            ["courses.course_id"],
            name=op.f("fk_groups_course_id_courses"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("group_id", name=op.f("pk_groups")),
    )
    op.create_index("idx_groups_course_id", "groups", ["course_id"], unique=False)

    op.create_table(
        "groups_users",
        sa.Column("group_user_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        _timestamp("joined_at"),
        sa.ForeignKeyConstraint(
            ["group_id"],
            ["groups.group_id"],
            name=op.f("fk_groups_users_group_id_groups"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            name=op.f("fk_groups_users_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("group_user_id", name=op.f("pk_groups_users")),
        sa.UniqueConstraint("group_id", "user_id", name=op.f("uq_groups_users_group_id")),
    )
    op.create_index("idx_groups_users_user_id", "groups_users", ["user_id"], unique=False)

    op.create_table(
        "sync_instances",
        sa.Column("instance_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("cohort_id", sa.Integer(), nullable=False),
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.Column("group_mode", group_mode, server_default="none", nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.Text(), server_default="", nullable=False),
        sa.Column("status", instance_status, server_default="enabled", nullable=False),
        sa.Column("unenrol_action", unenrol_action, server_default="unenrol", nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "(group_mode = 'existing') = (group_id IS NOT NULL)",
            name=op.f("ck_sync_instances_group_id_matches_mode"),
        ),
        sa.ForeignKeyConstraint(
            ["course_id"],
            ["courses.course_id"],
            name=op.f("fk_sync_instances_course_id_courses"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["cohort_id"],
            ["cohorts.cohort_id"],
            name=op.f("fk_sync_instances_cohort_id_cohorts"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["role_id"],
            ["roles.role_id"],
            name=op.f("fk_sync_instances_role_id_roles"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["group_id"],
            ["groups.group_id"],
            name=op.f("fk_sync_instances_group_id_groups"),
        ),
        sa.PrimaryKeyConstraint("instance_id", name=op.f("pk_sync_instances")),
        sa.UniqueConstraint(
            "course_id", "role_id", "cohort_id", name=op.f("uq_sync_instances_course_id")
        ),
    )
    op.create_index("idx_sync_instances_cohort_id", "sync_instances", ["cohort_id"], unique=False)

    op.create_table(
        "user_enrolments",
        sa.Column("enrolment_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("instance_id", sa.Integer(), nullable=True),
        sa.Column("enrol_method", sa.Text(), server_default="cohort_sync", nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=True),
        sa.Column("status", enrolment_status, server_default="active", nullable=False),
        sa.Column("time_start", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("time_end", postgresql.TIMESTAMP(timezone=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(
            ["instance_id"],
            ["sync_instances.instance_id"],
            name=op.f("fk_user_enrolments_instance_id_sync_instances"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            name=op.f("fk_user_enrolments_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["course_id"],
            ["courses.course_id"],
            name=op.f("fk_user_enrolments_course_id_courses"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["role_id"],
            ["roles.role_id"],
            name=op.f("fk_user_enrolments_role_id_roles"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["group_id"],
            ["groups.group_id"],
            name=op.f("fk_user_enrolments_group_id_groups"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("enrolment_id", name=op.f("pk_user_enrolments")),
        sa.UniqueConstraint(
            "instance_id", "user_id", name=op.f("uq_user_enrolments_instance_id")
        ),
    )
    op.create_index(
        "idx_user_enrolments_course_role",
        "user_enrolments",
        ["course_id", "role_id"],
        unique=False,
    )
    op.create_index("idx_user_enrolments_user_id", "user_enrolments", ["user_id"], unique=False)

    op.create_table(
        "exclusions",
        sa.Column("exclusion_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=False),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            name=op.f("fk_exclusions_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["course_id"],
            ["courses.course_id"],
            name=op.f("fk_exclusions_course_id_courses"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("exclusion_id", name=op.f("pk_exclusions")),
        sa.UniqueConstraint("user_id", "course_id", name=op.f("uq_exclusions_user_id")),
    )
    op.create_index("idx_exclusions_course_id", "exclusions", ["course_id"], unique=False)


def downgrade() -> None:
    op.drop_index("idx_exclusions_course_id", table_name="exclusions")
    op.drop_table("exclusions")
    op.drop_index("idx_user_enrolments_user_id", table_name="user_enrolments")
    op.drop_index("idx_user_enrolments_course_role", table_name="user_enrolments")
    op.drop_table("user_enrolments")
    op.drop_index("idx_sync_instances_cohort_id", table_name="sync_instances")
    op.drop_table("sync_instances")
    op.drop_index("idx_groups_users_user_id", table_name="groups_users")
    op.drop_table("groups_users")
    op.drop_index("idx_groups_course_id", table_name="groups")
    op.drop_table("groups")
    op.drop_index("idx_cohort_members_user_id", table_name="cohort_members")
    op.drop_table("cohort_members")
    op.drop_table("cohorts")
    op.drop_table("role_capabilities")
    op.drop_table("roles")
    op.drop_table("courses")
    op.drop_index("idx_users_username", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in reversed(ENUMS):
        enum.drop(bind, checkfirst=True)
