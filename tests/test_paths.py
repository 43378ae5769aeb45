"""Tests for backend path normalization."""

import pytest

from ftp_s3_gateway.backend import paths


class TestNormalize:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("", "."),
            (".", "."),
            ("/", "."),
            ("/a/b.txt", "a/b.txt"),
            ("a//b/./c", "a/b/c"),
            ("a/b/", "a/b"),
            ("//x", "x"),
            ("..", "."),
            ("../x", "x"),
            ("a/../../outside.txt", "outside.txt"),
            ("/../../etc/passwd", "etc/passwd"),
            ("a/b/../c", "a/c"),
        ],
    )
    def test_normalize(self, raw, expected):
        assert paths.normalize(raw) == expected

    @pytest.mark.parametrize("raw", ["", "/", "/a/b", "a//b/", "./x/./y", "///deep/er/", "../../up", "a/../../b"])
    def test_idempotent_and_never_absolute(self, raw):
        once = paths.normalize(raw)
        assert paths.normalize(once) == once
        assert not once.startswith("/")


class TestHelpers:
    def test_parent_of_top_level_is_root(self):
        assert paths.parent_of("file.txt") == "."
        assert paths.is_root(paths.parent_of("/file.txt"))

    def test_parent_of_nested(self):
        assert paths.parent_of("a/b/c.txt") == "a/b"

    def test_base_name(self):
        assert paths.base_name("a/b/c.txt") == "c.txt"
        assert paths.base_name("dir/") == "dir"

    def test_ancestors(self):
        assert paths.ancestors("a/b/c") == ["a", "a/b", "a/b/c"]
        assert paths.ancestors("/a/b/") == ["a", "a/b"]
        assert paths.ancestors(".") == []
