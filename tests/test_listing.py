"""Tests for the listing translator."""

from ftp_s3_gateway import listing
from ftp_s3_gateway.models import EMPTY_ETAG, BackendEntry, ListingRequest

from tests.conftest import FIXED_MTIME


def entry(name, size=0, is_directory=False):
    return BackendEntry(name=name, size=size, modified_at=FIXED_MTIME, is_directory=is_directory)


class TestResolveDirectory:
    def test_empty_prefix_is_root(self):
        assert listing.resolve_directory("") == "."

    def test_trailing_slash_is_stripped(self):
        assert listing.resolve_directory("a/b/") == "a/b"
        assert listing.resolve_directory("/a/") == "a"


class TestTranslate:
    def test_root_keys_have_no_directory(self):
        result = listing.translate(
            ListingRequest(bucket="default"),
            [entry("b.txt", 3), entry("sub", is_directory=True)],
        )
        assert [o.key for o in result.contents] == ["b.txt", "sub/"]
        assert result.contents[0].size == 3
        assert result.contents[0].etag == EMPTY_ETAG
        assert result.contents[0].storage_class == "STANDARD"

    def test_nested_directory_keys(self):
        result = listing.translate(
            ListingRequest(bucket="default", prefix="a/"),
            [entry("x.txt"), entry("deeper", is_directory=True)],
        )
        assert [o.key for o in result.contents] == ["a/x.txt", "a/deeper/"]

    def test_hidden_entries_are_skipped(self):
        result = listing.translate(
            ListingRequest(bucket="default"),
            [entry("."), entry(".."), entry(".hidden"), entry("visible")],
        )
        assert [o.key for o in result.contents] == ["visible"]

    def test_delimiter_folds_directories_into_common_prefixes(self):
        result = listing.translate(
            ListingRequest(bucket="default", prefix="a/", delimiter="/"),
            [entry("b.txt"), entry("c", is_directory=True)],
        )
        assert [o.key for o in result.contents] == ["a/b.txt"]
        assert [p.prefix for p in result.common_prefixes] == ["a/c/"]
        assert result.key_count == 2

    def test_common_prefixes_are_deduplicated(self):
        result = listing.translate(
            ListingRequest(bucket="default", delimiter="/"),
            [entry("c", is_directory=True), entry("c", is_directory=True)],
        )
        assert [p.prefix for p in result.common_prefixes] == ["c/"]

    def test_without_delimiter_directories_are_contents(self):
        result = listing.translate(
            ListingRequest(bucket="default", prefix="a/"),
            [entry("c", is_directory=True)],
        )
        assert result.common_prefixes == []
        assert [o.key for o in result.contents] == ["a/c/"]

    def test_prefix_without_trailing_slash_lists_that_directory(self):
        result = listing.translate(
            ListingRequest(bucket="default", prefix="a", delimiter="/"),
            [entry("f.txt")],
        )
        # rest = "/f.txt" contains the delimiter at index 0
        assert [p.prefix for p in result.common_prefixes] == ["a/"]
        assert result.contents == []


class TestListObjects:
    def test_lists_prefix_directory(self, ftp_server, session):
        ftp_server.add_file("a/b.txt", b"123")
        ftp_server.add_dir("a/c")

        result = listing.list_objects(
            session, ListingRequest(bucket="default", prefix="a/", delimiter="/")
        )

        assert [o.key for o in result.contents] == ["a/b.txt"]
        assert [p.prefix for p in result.common_prefixes] == ["a/c/"]
        assert ftp_server.calls == [("list_dir", "a")]

    def test_missing_directory_is_empty_listing(self, session):
        result = listing.list_objects(session, ListingRequest(bucket="default", prefix="nope/"))

        assert result.contents == []
        assert result.common_prefixes == []
        assert result.key_count == 0

    def test_listing_is_not_recursive(self, ftp_server, session):
        ftp_server.add_file("top.txt")
        ftp_server.add_file("deep/er/file.txt")

        result = listing.list_objects(session, ListingRequest(bucket="default"))

        assert sorted(o.key for o in result.contents) == ["deep/", "top.txt"]
