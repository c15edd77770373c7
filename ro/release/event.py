"""Release trigger resolution.

In CI the trigger is the GitHub ``release`` event payload; locally the tag
and commit are given on the command line.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path

from ro.core.result import Err, Ok, Result
from ro.core.structured import as_str_dict, get_str, get_table
from ro.release.errors import ReleaseError
from ro.release.model import ReleaseEvent
from ro.release.tags import validate_tag

EVENT_PATH_ENV = "GITHUB_EVENT_PATH"
SHA_ENV = "GITHUB_SHA"


def _invalid(message: str, hint: str | None = None) -> Err[ReleaseError]:
    return Err(ReleaseError(kind="invalid_input", message=message, hint=hint))


def load_event_payload(path: Path) -> Result[dict[str, object], ReleaseError]:
    try:
        obj: object = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        return _invalid(f"cannot read event payload {path}: {e}")
    except json.JSONDecodeError as e:
        return _invalid(f"invalid JSON in event payload {path}: {e}")

    data = as_str_dict(obj)
    if data is None:
        return _invalid(f"event payload is not an object: {path}")
    return Ok(data)


def event_from_payload(
    payload: Mapping[str, object], *, env: Mapping[str, str] | None = None
) -> Result[ReleaseEvent, ReleaseError]:
    environ = os.environ if env is None else env
    release = get_table(payload, "release")
    if release is None:
        return _invalid("event payload has no release object", "Run from a `release` workflow.")

    tag = get_str(release, "tag_name")
    if tag is None:
        return _invalid("event payload has no release.tag_name")
    valid = validate_tag(tag)
    if isinstance(valid, Err):
        return valid

    commit = environ.get(SHA_ENV) or get_str(release, "target_commitish")
    if not commit:
        return _invalid(f"no commit for {tag}", f"Set {SHA_ENV} or pass --commit.")
    return Ok(ReleaseEvent(tag=valid.value, commit=commit))


def resolve_event(
    *,
    tag: str | None,
    commit: str | None,
    event_path: Path | None,
    env: Mapping[str, str] | None = None,
) -> Result[ReleaseEvent, ReleaseError]:
    """Explicit ``--tag`` wins; otherwise read the event payload."""
    environ = os.environ if env is None else env

    if tag is not None:
        valid = validate_tag(tag)
        if isinstance(valid, Err):
            return valid
        sha = commit or environ.get(SHA_ENV)
        if not sha:
            return _invalid(f"no commit for {tag}", f"Pass --commit or set {SHA_ENV}.")
        return Ok(ReleaseEvent(tag=valid.value, commit=sha))

    path = event_path
    if path is None and environ.get(EVENT_PATH_ENV):
        path = Path(environ[EVENT_PATH_ENV])
    if path is None:
        return _invalid("no release tag", f"Pass --tag or --event (or set {EVENT_PATH_ENV}).")

    payload = load_event_payload(path)
    if isinstance(payload, Err):
        return payload
    event = event_from_payload(payload.value, env=environ)
    if isinstance(event, Ok) and commit:
        return Ok(ReleaseEvent(tag=event.value.tag, commit=commit))
    return event
