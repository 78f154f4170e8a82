"""
gate-orchestrator — unit tests for reference resolution.

File: tests/unit/integration_plane/test_ref_resolver.py

Purpose
- Pin the decision table that picks a queue change reference or a branch head for
  each project, over an in-memory remote.

What this test file should cover
- Literal branch substitution, including names that occur more than once.
- Missing-branch fallback to master.
- Queue branch mismatch, candidate order, override refs.
- Failure only for the project under test, with the right failure kind.
- Transient fetch failures retried and surfaced as RemoteUnreachableError.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field

import pytest
from hypothesis import given
from hypothesis import strategies as st
from structlog.testing import capture_logs

from gate_orchestrator.domain.errors import RemoteUnreachableError
from gate_orchestrator.domain.models import (
    Failed,
    FailureKind,
    Project,
    UseBranchHead,
    UseChangeReference,
)
from gate_orchestrator.integration_plane.git_remote import FetchResult, FetchStatus
from gate_orchestrator.integration_plane.ref_resolver import RefResolver, substitute_branch
from gate_orchestrator.integration_plane.retry import RetryPolicy
from gate_orchestrator.integration_plane.url_templates import (
    QUEUE_FETCH_URL_VARIABLES,
    UrlTemplate,
)

NOVA = Project("openstack/nova")
KEYSTONE = Project("openstack/keystone")
QUEUE_URL = "http://zuul.example.org/p"


@dataclass
class FakeRemote:
    """Remote with fixed branches and fetchable refs; records every fetch."""

    branches: set[str] = field(default_factory=lambda: {"master"})
    refs: dict[str, str] = field(default_factory=dict)
    unreachable: list[bool] = field(default_factory=list)
    fetches: list[tuple[str, str]] = field(default_factory=list)

    def has_remote_branch(self, branch: str) -> bool:
        return branch in self.branches

    def fetch_ref(
        self, url: str, ref: str, *, timeout_seconds: float | None = None
    ) -> FetchResult:
        self.fetches.append((url, ref))
        if self.unreachable and self.unreachable.pop(0):
            return FetchResult(url, ref, FetchStatus.UNREACHABLE, detail="Could not resolve host")
        if ref in self.refs:
            return FetchResult(url, ref, FetchStatus.FETCHED, commit=self.refs[ref])
        return FetchResult(url, ref, FetchStatus.NOT_FOUND, detail="couldn't find remote ref")


def make_resolver(
    *, under_test: Project | None = NOVA, sleeps: list[float] | None = None
) -> RefResolver:
    recorded = sleeps if sleeps is not None else []
    return RefResolver(
        queue_fetch_url_template=UrlTemplate(
            "{{ url }}/{{ project }}", allowed_variables=QUEUE_FETCH_URL_VARIABLES
        ),
        queue_url=QUEUE_URL + "/",
        project_under_test=under_test,
        retry_policy=RetryPolicy(max_attempts=3, timeout_seconds=5),
        sleep=recorded.append,
        rng=random.Random(7),
    )


# ---------------------------------------------------------------------------
# substitute_branch
# ---------------------------------------------------------------------------


def test_substitute_branch_rewrites_branch_segment() -> None:
    assert (
        substitute_branch("refs/zuul/stable/havana/Z1", "stable/havana", "master")
        == "refs/zuul/master/Z1"
    )


def test_substitute_branch_only_replaces_first_occurrence() -> None:
    assert (
        substitute_branch("refs/zuul/master/Zmaster1", "master", "stable/havana")
        == "refs/zuul/stable/havana/Zmaster1"
    )


def test_substitute_branch_is_literal_not_a_pattern() -> None:
    assert substitute_branch("refs/zuul/a.b/Z1", "a.b", "c") == "refs/zuul/c/Z1"
    assert substitute_branch("refs/zuul/axb/Z1", "a.b", "c") == "refs/zuul/axb/Z1"


def test_substitute_branch_without_match_or_input_is_identity() -> None:
    assert substitute_branch("refs/zuul/master/Z1", "stable/grizzly", "master") == (
        "refs/zuul/master/Z1"
    )
    assert substitute_branch("", "master", "stable/havana") == ""
    assert substitute_branch("refs/zuul/master/Z1", "", "x") == "refs/zuul/master/Z1"


@given(
    prefix=st.text(alphabet="abcz/_-", max_size=12),
    suffix=st.text(alphabet="abcz/_-0123", max_size=12),
    branch=st.text(alphabet="MASTER/.", min_size=1, max_size=8),
    replacement=st.text(alphabet="xyz/", max_size=8),
)
def test_substitute_branch_replaces_leftmost_match(
    prefix: str, suffix: str, branch: str, replacement: str
) -> None:
    reference = f"{prefix}{branch}{suffix}"
    index = reference.index(branch)

    result = substitute_branch(reference, branch, replacement)

    assert result == reference[:index] + replacement + reference[index + len(branch) :]


# ---------------------------------------------------------------------------
# resolve
# ---------------------------------------------------------------------------


def test_matching_queue_branch_uses_change_reference() -> None:
    remote = FakeRemote(refs={"refs/zuul/master/Z1": "1" * 40})

    outcome = make_resolver().resolve(
        NOVA, "master", "master", "refs/zuul/master/Z1", remote=remote
    )

    assert outcome == UseChangeReference(
        ref="refs/zuul/master/Z1",
        commit="1" * 40,
        url=f"{QUEUE_URL}/openstack/nova",
    )
    assert remote.fetches == [(f"{QUEUE_URL}/openstack/nova", "refs/zuul/master/Z1")]


def test_queue_branch_mismatch_uses_branch_head_without_fetching() -> None:
    remote = FakeRemote(branches={"master", "stable/havana"})

    outcome = make_resolver().resolve(
        NOVA, "stable/havana", "master", "refs/zuul/master/Z1", remote=remote
    )

    assert outcome == UseBranchHead(branch="stable/havana")
    assert remote.fetches == []


def test_missing_branch_falls_back_to_master_head() -> None:
    remote = FakeRemote(branches={"master"})

    with capture_logs() as logs:
        outcome = make_resolver(under_test=KEYSTONE).resolve(
            NOVA, "stable/havana", "stable/havana", "refs/zuul/stable/havana/Z2", remote=remote
        )

    assert outcome == UseBranchHead(branch="master")
    assert remote.fetches == []
    fallback = [entry for entry in logs if entry["event"] == "gate_branch_fallback"]
    assert fallback and fallback[0]["fallback_ref"] == "refs/zuul/master/Z2"


def test_missing_branch_tries_queue_ref_then_substituted_fallback() -> None:
    remote = FakeRemote(branches={"master"}, refs={"refs/zuul/master/Z9": "9" * 40})

    outcome = make_resolver().resolve(
        NOVA, "stable/havana", "master", "refs/zuul/stable/havana/Z9", remote=remote
    )

    assert outcome == UseChangeReference(
        ref="refs/zuul/master/Z9", commit="9" * 40, url=f"{QUEUE_URL}/openstack/nova"
    )
    assert [ref for _, ref in remote.fetches] == [
        "refs/zuul/stable/havana/Z9",
        "refs/zuul/master/Z9",
    ]


def test_override_reference_is_tried_first() -> None:
    remote = FakeRemote(
        refs={"refs/zuul/feature/x/Z1": "f" * 40, "refs/zuul/master/Z1": "1" * 40}
    )

    outcome = make_resolver().resolve(
        NOVA, "master", "master", "refs/zuul/master/Z1", "feature/x", remote=remote
    )

    assert isinstance(outcome, UseChangeReference)
    assert outcome.ref == "refs/zuul/feature/x/Z1"
    assert outcome.commit == "f" * 40
    assert len(remote.fetches) == 1


def test_override_reference_falls_through_to_queue_reference() -> None:
    remote = FakeRemote(refs={"refs/zuul/master/Z1": "1" * 40})

    outcome = make_resolver().resolve(
        NOVA, "master", "master", "refs/zuul/master/Z1", "feature/x", remote=remote
    )

    assert isinstance(outcome, UseChangeReference)
    assert outcome.ref == "refs/zuul/master/Z1"
    assert [ref for _, ref in remote.fetches] == [
        "refs/zuul/feature/x/Z1",
        "refs/zuul/master/Z1",
    ]


def test_duplicate_candidates_are_fetched_once() -> None:
    remote = FakeRemote()

    make_resolver(under_test=None).resolve(
        KEYSTONE, "master", "master", "refs/zuul/master/Z1", "master", remote=remote
    )

    assert [ref for _, ref in remote.fetches] == ["refs/zuul/master/Z1"]


def test_project_not_under_test_without_ref_uses_branch_head() -> None:
    remote = FakeRemote()

    outcome = make_resolver(under_test=NOVA).resolve(
        KEYSTONE, "master", "master", "refs/zuul/master/Z1", remote=remote
    )

    assert outcome == UseBranchHead(branch="master")


def test_project_under_test_without_ref_fails_with_ref_not_found() -> None:
    remote = FakeRemote()

    outcome = make_resolver(under_test=NOVA).resolve(
        NOVA, "master", "master", "refs/zuul/master/Zmissing", remote=remote
    )

    assert isinstance(outcome, Failed)
    assert outcome.kind is FailureKind.REF_NOT_FOUND
    assert outcome.reference == "refs/zuul/master/Zmissing"
    assert outcome.reason == "Unable to find ref refs/zuul/master/Zmissing for openstack/nova"


def test_project_under_test_after_fallback_is_configuration_inconsistent() -> None:
    remote = FakeRemote(branches={"master"})

    outcome = make_resolver(under_test=NOVA).resolve(
        NOVA, "stable/grizzly", "master", "refs/zuul/master/Z3", remote=remote
    )

    assert isinstance(outcome, Failed)
    assert outcome.kind is FailureKind.CONFIGURATION_INCONSISTENT
    assert "stable/grizzly does not exist" in outcome.reason


def test_empty_change_reference_fails_for_project_under_test() -> None:
    remote = FakeRemote()

    outcome = make_resolver(under_test=NOVA).resolve(NOVA, "master", "master", "", remote=remote)

    assert isinstance(outcome, Failed)
    assert outcome.kind is FailureKind.REF_NOT_FOUND
    assert remote.fetches == []


def test_empty_change_reference_uses_branch_head_for_other_projects() -> None:
    remote = FakeRemote()

    outcome = make_resolver(under_test=NOVA).resolve(
        KEYSTONE, "master", "master", "", remote=remote
    )

    assert outcome == UseBranchHead(branch="master")
    assert remote.fetches == []


def test_unreachable_fetch_is_retried_with_backoff() -> None:
    sleeps: list[float] = []
    remote = FakeRemote(refs={"refs/zuul/master/Z1": "1" * 40}, unreachable=[True, True])

    outcome = make_resolver(sleeps=sleeps).resolve(
        NOVA, "master", "master", "refs/zuul/master/Z1", remote=remote
    )

    assert isinstance(outcome, UseChangeReference)
    assert len(remote.fetches) == 3
    assert len(sleeps) == 2
    assert all(30.0 <= delay <= 90.0 for delay in sleeps)


def test_persistently_unreachable_fetch_raises() -> None:
    remote = FakeRemote(unreachable=[True, True, True])

    with pytest.raises(RemoteUnreachableError) as excinfo:
        make_resolver().resolve(NOVA, "master", "master", "refs/zuul/master/Z1", remote=remote)

    assert excinfo.value.attempts == 3
    assert excinfo.value.project == "openstack/nova"


def test_string_project_under_test_is_parsed() -> None:
    resolver = RefResolver(
        queue_fetch_url_template=UrlTemplate(
            "{{ url }}/{{ project }}", allowed_variables=QUEUE_FETCH_URL_VARIABLES
        ),
        queue_url=QUEUE_URL,
        project_under_test="openstack/nova",
    )

    assert resolver.is_under_test(NOVA)
    assert not resolver.is_under_test(KEYSTONE)
    assert resolver.queue_fetch_url(KEYSTONE) == f"{QUEUE_URL}/openstack/keystone"
