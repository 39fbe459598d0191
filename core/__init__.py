"""
Core business logic - framework-agnostic.
Used by the web API and the scheduler.
"""

# Database (SQLAlchemy)
from .database import get_connection, get_transaction, get_engine, close_engine, is_configured

# Errors
from .exceptions import (
    CohortSyncError, NotFound, InvalidScope, DuplicateSyncInstance,
    InvalidStatus, PermissionDenied, ExternalStoreFailure,
)

# Value types
from .sync_types import (
    GroupTarget, SyncInstance, EnrolmentRecord, Change, SyncError,
    InstanceReport, SyncReport,
)

# Reconciliation
from .reconciler import Reconciler, desired_members, plan_changes
from .sync import (
    get_reconciler, sync_all, sync_course, sync_cohort_member, sync_after_cohort_change,
)

# Administration (async, take a connection)
from .instances import create_instance, update_instance, delete_instance, list_instances
from .user_enrolments import EnrolmentUpdate, update_user_enrolments

# Cohort membership events (async)
from .cohorts import add_cohort_member, remove_cohort_member

__all__ = [
    # Database (SQLAlchemy)
    'get_connection', 'get_transaction', 'get_engine', 'close_engine', 'is_configured',
    # Errors
    'CohortSyncError', 'NotFound', 'InvalidScope', 'DuplicateSyncInstance',
    'InvalidStatus', 'PermissionDenied', 'ExternalStoreFailure',
    # Value types
    'GroupTarget', 'SyncInstance', 'EnrolmentRecord', 'Change', 'SyncError',
    'InstanceReport', 'SyncReport',
    # Reconciliation
    'Reconciler', 'desired_members', 'plan_changes',
    'get_reconciler', 'sync_all', 'sync_course', 'sync_cohort_member', 'sync_after_cohort_change',
    # Administration
    'create_instance', 'update_instance', 'delete_instance', 'list_instances',
    'EnrolmentUpdate', 'update_user_enrolments',
    # Cohort membership events
    'add_cohort_member', 'remove_cohort_member',
]
