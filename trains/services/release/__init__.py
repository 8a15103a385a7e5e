"""Release-train orchestration.

Layout:
- semver / model / trains: version arithmetic and the release-train snapshot
- actions: the closed catalog of release actions and their activation rules
- staging / publish / changelog: the sequenced release workflow
- lts: long-term-support branch discovery
- host / gh / npm: version-control host and package registry collaborators
"""

from __future__ import annotations
