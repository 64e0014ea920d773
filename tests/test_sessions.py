from sessions import SessionRegistry


def test_join_creates_session_once():
    registry = SessionRegistry()
    assert registry.join("proj-1", "u1") is True
    assert registry.join("proj-1", "u1") is False
    assert registry.join("proj-1", "u2") is False
    assert registry.members("proj-1") == {"u1", "u2"}
    assert len(registry) == 1


def test_leave_reports_whether_session_survives():
    registry = SessionRegistry()
    registry.join("proj-1", "u1")
    registry.join("proj-1", "u2")

    assert registry.leave("proj-1", "u1") is True
    assert registry.members("proj-1") == {"u2"}

    assert registry.leave("proj-1", "u2") is False
    assert "proj-1" not in registry
    assert len(registry) == 0


def test_rejoin_after_empty_starts_fresh():
    registry = SessionRegistry()
    registry.join("proj-1", "u1")
    registry.join("proj-1", "u2")
    registry.leave("proj-1", "u1")
    registry.leave("proj-1", "u2")

    assert registry.join("proj-1", "u3") is True
    assert registry.members("proj-1") == {"u3"}


def test_leave_unknown_session_or_user_is_harmless():
    registry = SessionRegistry()
    assert registry.leave("missing", "u1") is False

    registry.join("proj-1", "u1")
    assert registry.leave("proj-1", "stranger") is True
    assert registry.is_member("proj-1", "u1")
    assert not registry.is_member("proj-1", "stranger")
