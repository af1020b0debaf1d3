import pytest

from registry_api.auth.scopes import (
    Action,
    can_publish,
    can_publish_any,
    can_read,
    is_authorized,
    is_known_scope,
)


def test_package_scope_matches_exact_name_only():
    scopes = ["publish:pkg:foo"]
    assert can_publish(scopes, "foo")
    assert not can_publish(scopes, "bar")
    assert not can_publish(scopes, "foo_extra")
    assert not can_publish(scopes, "fo")


def test_admin_satisfies_every_action():
    for action in Action:
        assert is_authorized(["admin"], action, "anything")
    assert can_publish(["admin"], "bar")
    assert can_read(["admin"])


def test_read_scope_never_implies_publish():
    assert can_read(["read:all"])
    assert not can_publish(["read:all"], "foo")
    assert not can_publish_any(["read:all"])
    assert not is_authorized(["read:all"], Action.ADMIN)


def test_publish_all_does_not_grant_read_or_admin():
    assert can_publish(["publish:all"], "whatever")
    assert not can_read(["publish:all"])
    assert not is_authorized(["publish:all"], Action.ADMIN)


def test_publish_without_target_needs_some_publish_scope():
    assert is_authorized(["publish:pkg:foo"], Action.PUBLISH)
    assert not is_authorized([], Action.PUBLISH)


@pytest.mark.parametrize(
    ("scope", "known"),
    [
        ("admin", True),
        ("publish:all", True),
        ("read:all", True),
        ("publish:pkg:foo", True),
        ("publish:pkg:", False),
        ("publish:*", False),
        ("write", False),
    ],
)
def test_scope_grammar(scope, known):
    assert is_known_scope(scope) is known
