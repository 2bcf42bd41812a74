from __future__ import annotations

from dotsync.classifier import ROOT_GROUP, UNCLASSIFIED, group_of, matches_prefix

CATEGORIES = {
    "Shell": [".zshrc", ".bashrc"],
    "Apps": [".config/zed", ".config/karabiner/"],
    "Editors": [".config"],
}


def test_discovering_groups_use_first_segment() -> None:
    assert group_of(".zshrc") == ROOT_GROUP
    assert group_of(".config/zed/settings.json") == ".config"
    assert group_of(".ssh/config") == ".ssh"


def test_manifest_groups_first_match_wins() -> None:
    assert group_of(".zshrc", CATEGORIES) == "Shell"
    assert group_of(".config/zed/settings.json", CATEGORIES) == "Apps"
    assert group_of(".config/karabiner/karabiner.json", CATEGORIES) == "Apps"
    assert group_of(".config/nvim/init.lua", CATEGORIES) == "Editors"


def test_manifest_unmatched_is_unclassified() -> None:
    assert group_of(".vimrc", CATEGORIES) == UNCLASSIFIED
    assert group_of(".zshrc.local", CATEGORIES) == UNCLASSIFIED


def test_matches_prefix_requires_segment_boundary() -> None:
    assert matches_prefix(".config/zed", ".config/zed")
    assert matches_prefix(".config/zed/themes/a.json", ".config/zed")
    assert not matches_prefix(".config/zedx/a.json", ".config/zed")
