"""
tests/test_entitlement.py — Allow-list lookups
================================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import event

from conftest import add_reader
from vallalhatatlan.services.entitlement_service import has_reader_access, normalize_email


class TestNormalizeEmail:

    @pytest.mark.parametrize("raw", [
        "  Reader+Book@Example.COM ",
        "reader@example.com",
        "READER+a+b@example.com",
        "",
        "+only@x.hu",
    ])
    def test_idempotent(self, raw):
        once = normalize_email(raw, strip_plus=True)
        assert normalize_email(once, strip_plus=True) == once
        assert normalize_email(normalize_email(raw)) == normalize_email(raw)

    def test_plus_stripping(self):
        assert normalize_email(" Reader+Book@Example.com ", strip_plus=True) == "reader"
        assert normalize_email(" Reader+Book@Example.com ") == "reader+book@example.com"

    def test_none(self):
        assert normalize_email(None) == ""


class TestHasReaderAccess:

    def test_exact_match(self, db_engine, db_session):
        add_reader(db_engine, "reader@example.com")
        assert has_reader_access(db_session, "reader@example.com")

    def test_case_insensitive_fallback(self, db_engine, db_session):
        add_reader(db_engine, "Reader@Example.com")
        assert has_reader_access(db_session, "reader@example.com")

    def test_no_match(self, db_engine, db_session):
        add_reader(db_engine, "reader@example.com")
        assert not has_reader_access(db_session, "stranger@example.com")

    def test_like_wildcards_are_literal(self, db_engine, db_session):
        add_reader(db_engine, "reader@example.com")
        assert not has_reader_access(db_session, "%")
        assert not has_reader_access(db_session, "reader@example.co_")

    def test_empty_email_never_queries(self, db_engine, db_session):
        statements = []

        def _count(conn, cursor, statement, *args):
            statements.append(statement)

        event.listen(db_engine, "before_cursor_execute", _count)
        try:
            assert not has_reader_access(db_session, "")
            assert not has_reader_access(db_session, None)
        finally:
            event.remove(db_engine, "before_cursor_execute", _count)
        assert statements == []
