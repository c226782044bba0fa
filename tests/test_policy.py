"""Tests for capability approval."""

import pytest
from conftest import make_manifest

from opentolk.core import policy
from opentolk.core.errors import PermissionDeniedError
from opentolk.core.policy import DESCRIPTIONS, PermissionStore
from opentolk.schemas.manifest import Permission


def test_every_permission_described():
    assert set(DESCRIPTIONS) == set(Permission)


def test_unapproved_sorted_and_cleared_by_approval():
    manifest = make_manifest("p", permissions=["network", "ai", "clipboard"])
    store = PermissionStore()

    assert store.unapproved(manifest) == [Permission.ai, Permission.clipboard, Permission.network]

    store.approve_all(manifest)
    assert store.unapproved(manifest) == []
    assert store.has("p", Permission.network)


def test_enforce_names_first_missing_permission():
    manifest = make_manifest("p", permissions=["network", "ai"])
    with pytest.raises(PermissionDeniedError) as exc_info:
        policy.enforce(manifest, PermissionStore())
    assert exc_info.value.permission == "ai"
    assert exc_info.value.plugin_id == "p"


def test_revoke_all():
    manifest = make_manifest("p", permissions=["network"])
    store = PermissionStore()
    store.approve_all(manifest)
    store.revoke_all("p")
    assert store.unapproved(manifest) == [Permission.network]


def test_auto_approve():
    manifest = make_manifest("p", permissions=["gmail"])
    store = PermissionStore(auto_approve=True)
    policy.enforce(manifest, store)
    assert store.has("p", Permission.gmail)


def test_no_permissions_always_allowed():
    policy.enforce(make_manifest("p"), PermissionStore())
