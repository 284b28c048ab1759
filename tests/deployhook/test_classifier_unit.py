"""Unit tests for EventClassifier.

Covers push and installation_repositories payloads, the owner-login
fallback for installation entries and the skipping of malformed entries.
"""

import pytest

from src.deployhook.webhook import EventClassifier, RepositoryRef


def _push(ref="refs/heads/main", default_branch="main", **repo_overrides):
    repository = {
        "id": 42,
        "name": "app",
        "full_name": "acme/app",
        "default_branch": default_branch,
        "owner": {"login": "acme"},
    }
    repository.update(repo_overrides)
    return {"ref": ref, "repository": repository}


def _installation(action="added", repositories=None):
    if repositories is None:
        repositories = [{"id": 42, "name": "app", "full_name": "acme/app"}]
    return {"action": action, "repositories_added": repositories}


@pytest.fixture
def classifier():
    return EventClassifier()


class TestPushEvents:

    def test_push_to_default_branch(self, classifier):
        result = classifier.classify("push", _push())

        assert result == [
            RepositoryRef(
                repository_id=42,
                full_name="acme/app",
                owner_login="acme",
                name="app",
            )
        ]

    def test_push_to_other_branch_is_ignored(self, classifier):
        assert classifier.classify("push", _push(ref="refs/heads/feature")) == []

    def test_tag_push_is_ignored(self, classifier):
        assert classifier.classify("push", _push(ref="refs/tags/v1.0.0")) == []

    def test_push_honours_repository_default_branch(self, classifier):
        body = _push(ref="refs/heads/trunk", default_branch="trunk")

        assert [r.repository_id for r in classifier.classify("push", body)] == [42]
        assert classifier.classify("push", _push(default_branch="trunk")) == []

    def test_configured_default_branch_used_when_payload_omits_it(self):
        classifier = EventClassifier(default_branch="develop")
        body = _push(ref="refs/heads/develop")
        del body["repository"]["default_branch"]

        assert len(classifier.classify("push", body)) == 1

    def test_push_without_repository_is_ignored(self, classifier):
        assert classifier.classify("push", {"ref": "refs/heads/main"}) == []

    def test_owner_login_preferred_over_full_name(self, classifier):
        body = _push(owner={"login": "Acme-Org"})

        assert classifier.classify("push", body)[0].owner_login == "Acme-Org"

    def test_missing_owner_falls_back_to_full_name(self, classifier):
        body = _push()
        del body["repository"]["owner"]

        assert classifier.classify("push", body)[0].owner_login == "acme"


class TestInstallationEvents:

    def test_added_repositories_are_returned_in_order(self, classifier):
        body = _installation(
            repositories=[
                {"id": 1, "name": "one", "full_name": "acme/one"},
                {"id": 2, "name": "two", "full_name": "acme/two"},
                {"id": 3, "name": "three", "full_name": "other/three"},
            ]
        )

        result = classifier.classify("installation_repositories", body)

        assert [r.repository_id for r in result] == [1, 2, 3]
        assert [r.owner_login for r in result] == ["acme", "acme", "other"]
        assert [r.name for r in result] == ["one", "two", "three"]

    def test_removed_action_is_ignored(self, classifier):
        body = _installation(action="removed")

        assert classifier.classify("installation_repositories", body) == []

    def test_empty_added_list(self, classifier):
        body = _installation(repositories=[])

        assert classifier.classify("installation_repositories", body) == []

    def test_missing_added_list_is_ignored(self, classifier):
        body = {"action": "added"}

        assert classifier.classify("installation_repositories", body) == []

    def test_name_falls_back_to_full_name(self, classifier):
        body = _installation(repositories=[{"id": 7, "full_name": "acme/tool"}])

        assert classifier.classify("installation_repositories", body)[0].name == "tool"

    @pytest.mark.parametrize(
        "entry",
        [
            {"id": "42", "full_name": "acme/app"},
            {"id": True, "full_name": "acme/app"},
            {"id": 0, "full_name": "acme/app"},
            {"id": -5, "full_name": "acme/app"},
            {"id": 2**63, "full_name": "acme/app"},
            {"id": 42},
            {"id": 42, "full_name": "app"},
            {"id": 42, "full_name": "acme/app/extra"},
            {"id": 42, "full_name": "/app"},
            {"id": 42, "full_name": "acme/"},
            "acme/app",
            None,
        ],
    )
    def test_malformed_entries_are_skipped(self, classifier, entry):
        body = _installation(
            repositories=[entry, {"id": 9, "name": "ok", "full_name": "acme/ok"}]
        )

        result = classifier.classify("installation_repositories", body)

        assert [r.repository_id for r in result] == [9]


class TestOtherEvents:

    @pytest.mark.parametrize(
        "event_type", ["ping", "installation", "pull_request", "", None]
    )
    def test_unsupported_events_are_ignored(self, classifier, event_type):
        assert classifier.classify(event_type, _push()) == []

    @pytest.mark.parametrize("body", [None, [], "push", 42])
    def test_non_object_body_is_ignored(self, classifier, body):
        assert classifier.classify("push", body) == []
