"""Query layer for database operations using SQLAlchemy Core."""

from .cohorts import cohort_exists, get_cohort, get_cohort_member_ids
from .courses import course_exists, get_course, get_role
from .exclusions import add_exclusion, get_excluded_course_ids, remove_exclusion
from .instances import find_instance_for_triple, get_instance, list_instances
from .users import get_user, is_admin, user_exists

__all__ = [
    # Users
    "get_user",
    "user_exists",
    "is_admin",
    # Courses and roles
    "get_course",
    "course_exists",
    "get_role",
    # Cohorts
    "get_cohort",
    "cohort_exists",
    "get_cohort_member_ids",
    # Instances
    "get_instance",
    "find_instance_for_triple",
    "list_instances",
    # Exclusions
    "add_exclusion",
    "remove_exclusion",
    "get_excluded_course_ids",
]
