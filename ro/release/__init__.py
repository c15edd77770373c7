"""Release publication.

This package is split into:
- sequencer, waiter, registry: dependency-ordered registry publication
- fanout, channels: concurrent, independently failing channels
- builder, images, docs: artifact producers
- aggregator, host, formula, git_repo: the release record and its consumers
- service: one release run, end to end
"""

from __future__ import annotations
