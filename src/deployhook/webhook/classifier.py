"""GitHub webhook event classification.

This module maps an inbound event (x-github-event header plus parsed JSON
body) to the repositories that need provisioning and a build. It is a pure
function of its input: no I/O, no state.

Rules, in order:
- ``push`` to the repository's default branch → that repository
- ``installation_repositories`` with action ``added`` → every added repository
- anything else → no repositories (acknowledged as a no-op)

GitHub Webhook Payload Structure (push event):
{
  "ref": "refs/heads/main",
  "repository": {
    "id": 42,
    "name": "app",
    "full_name": "acme/app",
    "default_branch": "main",
    "owner": {"login": "acme"}
  }
}

GitHub Webhook Payload Structure (installation_repositories event):
{
  "action": "added",
  "repositories_added": [
    {"id": 42, "name": "app", "full_name": "acme/app"}
  ]
}

Entries of ``repositories_added`` carry no ``owner`` object, so the owner
login is taken from the ``full_name`` prefix.
"""

import logging
from typing import Any, Dict, List, Optional

from .models import MAX_REPOSITORY_ID, EventType, RepositoryRef

logger = logging.getLogger(__name__)

BRANCH_REF_PREFIX = "refs/heads/"


class EventClassifier:
    """Classifier turning webhook events into repository references.

    Attributes:
        default_branch: Branch assumed to be the default when a push
            payload does not say otherwise.
    """

    def __init__(self, default_branch: str = "main") -> None:
        self.default_branch = default_branch

    def classify(self, event_type: Optional[str], body: Any) -> List[RepositoryRef]:
        """Return the repositories an event requires processing for.

        Args:
            event_type: Value of the x-github-event header.
            body: The parsed webhook payload.

        Returns:
            Zero or more RepositoryRef objects. An empty list means the
            event is not actionable.
        """
        if not isinstance(body, dict):
            logger.warning("Invalid payload: expected dict, got %s", type(body))
            return []

        if event_type == EventType.PUSH.value:
            return self._classify_push(body)

        if event_type == EventType.INSTALLATION_REPOSITORIES.value:
            return self._classify_installation(body)

        logger.debug("Ignoring unsupported event type: %s", event_type)
        return []

    def _classify_push(self, body: Dict[str, Any]) -> List[RepositoryRef]:
        repo_data = body.get("repository")
        if not isinstance(repo_data, dict):
            logger.warning(
                "Missing or invalid 'repository' field in push payload: %s",
                type(repo_data),
            )
            return []

        ref = body.get("ref")
        # GitHub sends the repository's own default branch; the configured
        # branch only applies to payloads without one
        default_branch = repo_data.get("default_branch")
        if not isinstance(default_branch, str) or not default_branch.strip():
            default_branch = self.default_branch

        if ref != f"{BRANCH_REF_PREFIX}{default_branch}":
            logger.debug(
                "Ignoring push to non-default ref",
                extra={"ref": ref, "default_branch": default_branch},
            )
            return []

        repository = self._parse_repository(repo_data)
        return [repository] if repository is not None else []

    def _classify_installation(self, body: Dict[str, Any]) -> List[RepositoryRef]:
        action = body.get("action")
        if action != "added":
            logger.debug("Ignoring installation_repositories action: %s", action)
            return []

        added = body.get("repositories_added")
        if not isinstance(added, list):
            logger.warning(
                "Missing or invalid 'repositories_added' field: %s",
                type(added),
            )
            return []

        repositories = []
        for entry in added:
            repository = self._parse_repository(entry)
            if repository is not None:
                repositories.append(repository)
        return repositories

    def _parse_repository(self, repo_data: Any) -> Optional[RepositoryRef]:
        """Build a RepositoryRef from a repository object.

        Returns None (and logs) for entries that cannot identify a repository.
        """
        if not isinstance(repo_data, dict):
            logger.warning("Invalid repository entry: %s", type(repo_data))
            return None

        repository_id = repo_data.get("id")
        # bool is an int subclass
        if (
            not isinstance(repository_id, int)
            or isinstance(repository_id, bool)
            or not 0 < repository_id <= MAX_REPOSITORY_ID
        ):
            logger.warning("Invalid repository id: %s", repository_id)
            return None

        full_name = repo_data.get("full_name")
        if not isinstance(full_name, str) or full_name.count("/") != 1:
            logger.warning("Invalid repository full_name: %s", full_name)
            return None
        owner_part, name_part = full_name.strip().split("/")
        if not owner_part or not name_part:
            logger.warning("Invalid repository full_name: %s", full_name)
            return None

        name = repo_data.get("name")
        if not isinstance(name, str) or not name.strip():
            name = name_part

        owner_login = self._extract_owner_login(repo_data.get("owner"))
        if owner_login is None:
            owner_login = owner_part

        return RepositoryRef(
            repository_id=repository_id,
            full_name=full_name.strip(),
            owner_login=owner_login,
            name=name.strip(),
        )

    def _extract_owner_login(self, owner_data: Any) -> Optional[str]:
        if not isinstance(owner_data, dict):
            return None
        login = owner_data.get("login")
        if not isinstance(login, str) or not login.strip():
            return None
        return login.strip()
