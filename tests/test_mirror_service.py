"""Tests for mirror list parsing and mirror choice."""
import random

import pytest

from mediathek.exceptions import MalformedCatalogError
from mediathek.services.mirror_service import MirrorSelector, parse_mirror_list
from tests.factories import mirror_list_document


def test_servers_without_url_are_ignored() -> None:
    document = (
        b'<?xml version="1.0" encoding="UTF-8"?>'
        b"<Mediathek>"
        b"<Server><URL>http://one.example/Filmliste-akt.xz</URL></Server>"
        b"<Server><URL></URL></Server>"
        b"</Mediathek>"
    )

    assert parse_mirror_list(document) == ["http://one.example/Filmliste-akt.xz"]


def test_urls_are_stripped_and_missing_url_children_skipped() -> None:
    document = (
        b"<Mediathek>"
        b"<Server><URL>  http://a.example/f.xz \n</URL></Server>"
        b"<Server><Prio>1</Prio></Server>"
        b"<Server><URL>http://b.example/f.xz</URL></Server>"
        b"</Mediathek>"
    )

    assert parse_mirror_list(document) == ["http://a.example/f.xz", "http://b.example/f.xz"]


def test_wrong_root_is_rejected() -> None:
    with pytest.raises(MalformedCatalogError, match="malformed"):
        parse_mirror_list(mirror_list_document(["http://a.example/f.xz"], root="Mirrors"))


def test_invalid_xml_is_rejected() -> None:
    with pytest.raises(MalformedCatalogError, match="malformed"):
        parse_mirror_list(b"<Mediathek><Server>")


def test_list_without_urls_is_rejected() -> None:
    with pytest.raises(MalformedCatalogError, match="empty"):
        parse_mirror_list(b"<Mediathek><Server><URL/></Server></Mediathek>")


def test_selection_is_reproducible_with_a_seeded_source() -> None:
    mirrors = [f"http://mirror{index}.example/f.xz" for index in range(10)]

    first = [MirrorSelector(random.Random(7)).choose(mirrors) for _ in range(3)]
    second = [MirrorSelector(random.Random(7)).choose(mirrors) for _ in range(3)]

    assert first == second
    assert all(choice in mirrors for choice in first)


def test_selection_avoids_excluded_mirrors_while_possible() -> None:
    selector = MirrorSelector(random.Random(1))
    mirrors = ["http://a.example", "http://b.example"]

    for _ in range(20):
        assert selector.choose(mirrors, exclude={"http://a.example"}) == "http://b.example"
    assert selector.choose(mirrors, exclude=set(mirrors)) in mirrors


def test_selection_requires_mirrors() -> None:
    with pytest.raises(ValueError):
        MirrorSelector().choose([])
