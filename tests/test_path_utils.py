"""路径推导与前缀改写工具的单元测试。"""

import pytest

from app.packages.drive.utils.path_utils import (
    derive_child,
    derive_root,
    is_within,
    last_segment,
    parent_prefix,
    replace_last_segment,
    replace_prefix,
    validate_name,
    validate_segment,
)


def test_derive_root_and_child():
    prefix, path = derive_root("u1")
    assert (prefix, path) == ("u1/Root/", "u1/Root")
    assert derive_child(prefix, path, "Notes") == ("u1/Root/Notes/", "u1/Root/Notes")


def test_replace_prefix_only_touches_leading_match():
    value = "u1/Root/a/x/a/"
    assert replace_prefix(value, "u1/Root/a/", "u1/Root/b/") == "u1/Root/b/x/a/"


def test_replace_prefix_rejects_non_matching_value():
    with pytest.raises(ValueError):
        replace_prefix("u1/Root/other/", "u1/Root/a/", "u1/Root/b/")


def test_replace_prefix_does_not_match_sibling_with_shared_stem():
    # "Notes2" 不在 "Notes/" 之下
    with pytest.raises(ValueError):
        replace_prefix("u1/Root/Notes2/", "u1/Root/Notes/", "u1/Root/Archive/")


def test_replace_last_segment_prefers_rightmost():
    assert replace_last_segment("u1/Root/a/a", "a", "b") == "u1/Root/a/b"
    assert replace_last_segment("u1/Root/x", "missing", "b") == "u1/Root/x"


def test_segments_and_parents():
    assert last_segment("u1/Root/Notes/") == "Notes"
    assert last_segment("u1/Root/Notes/a.txt") == "a.txt"
    assert parent_prefix("u1/Root/Notes/") == "u1/Root/"
    assert parent_prefix("u1/Root/Notes/a.txt") == "u1/Root/Notes/"
    assert parent_prefix("lonely") == ""


def test_is_within():
    assert is_within("u1/Root/a/", "u1/Root/a/")
    assert is_within("u1/Root/a/", "u1/Root/a/b/")
    assert not is_within("u1/Root/a/", "u1/Root/ab/")


@pytest.mark.parametrize("bad", ["", "   ", None, "a/b", ".", ".."])
def test_validate_name_rejects(bad):
    with pytest.raises(ValueError):
        validate_name(bad)


def test_validate_name_strips():
    assert validate_name("  Notes ") == "Notes"


def test_validate_segment_requires_clean_name():
    assert validate_segment("Archive") == "Archive"
    for raw in ["Archive ", " b.txt", "", ".."]:
        with pytest.raises(ValueError):
            validate_segment(raw)
