import re

import pytest

from nanocloud.sanitizer import (
    sanitize_filename,
    sanitize_relative_path,
    sanitize_segment,
    sanitize_upload_name,
)


@pytest.mark.parametrize("raw", ["", ".", "..", "   ", " .. "])
def test_segment_rejects_empty_and_dot_names(raw):
    assert sanitize_segment(raw) == ""


def test_segment_replaces_separators_instead_of_dropping_them():
    assert sanitize_segment("../../x") == ".._.._x"
    assert sanitize_segment("a\\..\\b") == "a_.._b"
    assert sanitize_segment("a/../b") == "a_.._b"


def test_segment_keeps_whitelisted_characters():
    assert sanitize_segment("Report (final) [v2]+notes-1_a.txt") == "Report (final) [v2]+notes-1_a.txt"


def test_segment_replaces_everything_else():
    assert sanitize_segment("héllo*wörld?.txt") == "h_llo_w_rld_.txt"
    assert sanitize_segment("name\x00.txt") == "name_.txt"


def test_filename_uses_basename_and_falls_back_to_timestamp():
    assert sanitize_filename("dir/sub/photo.jpg") == "photo.jpg"
    assert sanitize_filename("C:\\Users\\me\\doc.pdf") == "doc.pdf"
    assert re.fullmatch(r"file_\d+", sanitize_filename(".."))
    assert re.fullmatch(r"file_\d+", sanitize_filename(""))


def test_relative_path_drops_invalid_folders():
    assert sanitize_relative_path("../photos/./2024/img.jpg") == "photos/2024/img.jpg"
    assert sanitize_relative_path("a\\b\\c.txt") == "a/b/c.txt"


def test_relative_path_strict_rejects_bad_filename():
    assert sanitize_relative_path("photos/..", strict=True) == ""
    assert re.fullmatch(r"photos/file_\d+", sanitize_relative_path("photos/..", strict=False))


def test_upload_name_prefers_relative_path():
    assert sanitize_upload_name("album/a.png", "a.png") == "album/a.png"
    assert sanitize_upload_name("", "a.png") == "a.png"
    assert sanitize_upload_name("", "..", strict=True) == ""
