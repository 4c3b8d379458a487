"""Unit tests for auth/permissions.py -- the static role -> action table.

Covers:
- check_permission() returns exactly the published table for every role/action pair
- Unknown roles and unknown actions are denied (default deny)
- is_valid_role() and role_permissions() helpers
"""

import pytest

from auth.permissions import (
    ALL_ACTIONS,
    SOURCE_CREATE,
    SOURCE_DELETE,
    SOURCE_READ,
    VAULT_CREATE,
    VAULT_DELETE,
    VAULT_READ,
    VAULT_UPDATE,
    check_permission,
    is_valid_role,
    role_permissions,
)

_EXPECTED = {
    "owner": {VAULT_CREATE, VAULT_READ, VAULT_UPDATE, VAULT_DELETE, SOURCE_CREATE, SOURCE_READ, SOURCE_DELETE},
    "contributor": {VAULT_READ, VAULT_UPDATE, SOURCE_CREATE, SOURCE_READ},
    "viewer": {VAULT_READ, SOURCE_READ},
}


@pytest.mark.parametrize("role", sorted(_EXPECTED))
@pytest.mark.parametrize("action", sorted(ALL_ACTIONS))
def test_table_matches_expected(role: str, action: str) -> None:
    assert check_permission(role, action) is (action in _EXPECTED[role])


def test_all_actions_has_seven_entries() -> None:
    assert len(ALL_ACTIONS) == 7


class TestDefaultDeny:
    """Anything not in the table is refused."""

    @pytest.mark.parametrize("role", ["admin", "", "OWNER", "guest"])
    def test_unknown_role_denied_everything(self, role: str) -> None:
        assert not any(check_permission(role, action) for action in ALL_ACTIONS)

    @pytest.mark.parametrize("role", sorted(_EXPECTED))
    def test_unknown_action_denied(self, role: str) -> None:
        assert check_permission(role, "vault:archive") is False

    def test_viewer_cannot_delete_sources(self) -> None:
        assert check_permission("viewer", SOURCE_DELETE) is False

    def test_contributor_cannot_delete_vault(self) -> None:
        assert check_permission("contributor", VAULT_DELETE) is False


class TestHelpers:
    def test_is_valid_role(self) -> None:
        assert is_valid_role("owner")
        assert is_valid_role("contributor")
        assert is_valid_role("viewer")
        assert not is_valid_role("admin")

    def test_role_permissions_unknown_role_is_empty(self) -> None:
        assert role_permissions("nobody") == frozenset()

    def test_role_permissions_viewer(self) -> None:
        assert role_permissions("viewer") == frozenset({VAULT_READ, SOURCE_READ})
