from __future__ import annotations

DIST_DIR = "dist"

LATEST_DIST_TAG = "latest"
NEXT_DIST_TAG = "next"

STAGING_BRANCH_PREFIX = "release-stage-"
CHANGELOG_CHERRY_PICK_BRANCH_PREFIX = "changelog-cherry-pick-"

# A major stays in active support for 6 months, then in LTS for another 12.
MAJOR_ACTIVE_SUPPORT_MONTHS = 6
MAJOR_LTS_MONTHS = 12


def staging_commit_message(version: object) -> str:
    return f"release: cut the v{version} release"


def next_bump_commit_message(version: object) -> str:
    return f"release: bump the next branch to v{version}"


def release_notes_cherry_pick_commit_message(version: object) -> str:
    return f"docs: release notes for the v{version} release"


def lts_dist_tag(major: int) -> str:
    return f"v{major}-lts"
