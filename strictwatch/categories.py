"""
strictwatch/categories.py - Violation Categories and Response Actions

Both sets are closed. Adding a category means adding an enum member;
classification is plain set membership and does not change.
"""
from enum import Enum


class Scope(str, Enum):
    """Which detector family a category belongs to."""
    THREAD = "thread"  # Only a violation on a sensitive context
    VM = "vm"          # A violation wherever it happens


class ViolationCategory(str, Enum):
    # Thread scope: blocking work on the responsiveness context
    DISK_READ = "disk-read"
    DISK_WRITE = "disk-write"
    NETWORK_CALL = "network-call"
    SLOW_CALL = "slow-call"
    RESOURCE_MISMATCH = "resource-mismatch"
    UNBUFFERED_IO = "unbuffered-io"

    # VM scope: leaks and unsafe resource handling
    RESOURCE_LEAK = "resource-leak"
    SQLITE_OBJECT_LEAK = "sqlite-object-leak"
    INSTANCE_LEAK = "instance-leak"
    LEAKED_REGISTRATION = "leaked-registration"
    UNTAGGED_SOCKET = "untagged-socket"
    CLEARTEXT_NETWORK = "cleartext-network"
    FILE_URI_EXPOSURE = "file-uri-exposure"

    @property
    def scope(self) -> Scope:
        return CATEGORY_SCOPES[self]


class Action(str, Enum):
    LOG = "log"
    VISUAL_ALERT = "visual-alert"
    TERMINATE_PROCESS = "terminate-process"


CATEGORY_SCOPES = {
    ViolationCategory.DISK_READ: Scope.THREAD,
    ViolationCategory.DISK_WRITE: Scope.THREAD,
    ViolationCategory.NETWORK_CALL: Scope.THREAD,
    ViolationCategory.SLOW_CALL: Scope.THREAD,
    ViolationCategory.RESOURCE_MISMATCH: Scope.THREAD,
    ViolationCategory.UNBUFFERED_IO: Scope.THREAD,
    ViolationCategory.RESOURCE_LEAK: Scope.VM,
    ViolationCategory.SQLITE_OBJECT_LEAK: Scope.VM,
    ViolationCategory.INSTANCE_LEAK: Scope.VM,
    ViolationCategory.LEAKED_REGISTRATION: Scope.VM,
    ViolationCategory.UNTAGGED_SOCKET: Scope.VM,
    ViolationCategory.CLEARTEXT_NETWORK: Scope.VM,
    ViolationCategory.FILE_URI_EXPOSURE: Scope.VM,
}

THREAD_CATEGORIES = frozenset(c for c, s in CATEGORY_SCOPES.items() if s is Scope.THREAD)
VM_CATEGORIES = frozenset(c for c, s in CATEGORY_SCOPES.items() if s is Scope.VM)
ALL_CATEGORIES = frozenset(ViolationCategory)


def categories_for(scope: Scope) -> frozenset:
    return THREAD_CATEGORIES if scope is Scope.THREAD else VM_CATEGORIES
