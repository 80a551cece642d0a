from __future__ import annotations

from ergols.session import DocumentSession


def test_begin_cancels_previous_request_for_same_document() -> None:
    session = DocumentSession()
    first = session.begin("file:///a.es", "1")
    second = session.begin("file:///a.es", "2")
    assert first.cancelled is True
    assert second.cancelled is False
    assert session.is_current("file:///a.es", "2")
    assert not session.is_current("file:///a.es", "1")


def test_documents_are_independent() -> None:
    session = DocumentSession()
    a = session.begin("file:///a.es", "1")
    b = session.begin("file:///b.es", "2")
    assert not a.cancelled
    assert not b.cancelled
    assert session.in_flight("file:///a.es") == "1"
    assert session.in_flight("file:///b.es") == "2"


def test_finish_only_releases_matching_request() -> None:
    session = DocumentSession()
    session.begin("file:///a.es", "1")
    session.begin("file:///a.es", "2")
    session.finish("file:///a.es", "1")
    assert session.in_flight("file:///a.es") == "2"
    session.finish("file:///a.es", "2")
    assert session.in_flight("file:///a.es") is None
    assert session.is_current("file:///a.es", "2")


def test_close_cancels_and_forgets_document() -> None:
    session = DocumentSession()
    token = session.begin("file:///a.es", "1")
    session.close("file:///a.es")
    assert token.cancelled is True
    assert session.in_flight("file:///a.es") is None
    assert not session.is_current("file:///a.es", "1")
    session.close("file:///never-opened.es")
