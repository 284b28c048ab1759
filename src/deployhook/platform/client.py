"""Deploy platform GraphQL client.

This module provides an async wrapper around the deploy platform's
GraphQL API (Railway's public v2 API) for:
- Creating projects
- Creating services inside a project
- Deleting projects (orphan compensation)

User-controlled values (repository names) are always passed as GraphQL
variables, never interpolated into the query text.

Source:
- src/deployhook/retry.py (RetryingHTTPClient)
- src/deployhook/config.py (deploy_platform_api_token, platform_api_url)
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from src.deployhook.errors import ExternalServiceError
from src.deployhook.retry import RetryingHTTPClient


logger = logging.getLogger(__name__)


PROJECT_CREATE_MUTATION = """
mutation projectCreate($input: ProjectCreateInput!) {
  projectCreate(input: $input) {
    id
  }
}
"""

SERVICE_CREATE_MUTATION = """
mutation serviceCreate($input: ServiceCreateInput!) {
  serviceCreate(input: $input) {
    id
  }
}
"""

PROJECT_DELETE_MUTATION = """
mutation projectDelete($id: String!) {
  projectDelete(id: $id)
}
"""


class PlatformAPIError(ExternalServiceError):
    """Raised when the platform rejects a request or returns GraphQL errors.

    Attributes:
        errors: The GraphQL ``errors`` array, if the response carried one.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(
            service="platform",
            message=message,
            status_code=status_code,
            response_body=response_body,
        )
        self.errors = errors or []


class PlatformClient(RetryingHTTPClient):
    """Async GraphQL client for the deploy platform.

    Attributes:
        token: Bearer token for the platform API.

    Example:
        >>> async with PlatformClient(token="...") as platform:
        ...     project_id = await platform.create_project("acme/app")
        ...     service_id = await platform.create_service(project_id, "app", image)
    """

    service_name = "platform"

    def __init__(
        self,
        token: str,
        base_url: str = "https://backboard.railway.app/graphql/v2",
        **kwargs: Any,
    ):
        super().__init__(base_url=base_url, **kwargs)
        self.token = token

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "User-Agent": "deployhook/1.0",
        }

    def _api_error(self, response: httpx.Response) -> PlatformAPIError:
        return PlatformAPIError(
            message=f"Platform API error: {response.status_code}",
            status_code=response.status_code,
            response_body=response.text,
        )

    async def execute(
        self,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
        idempotent: bool = True,
    ) -> Dict[str, Any]:
        """Execute a GraphQL operation and return its ``data`` object.

        Raises:
            PlatformAPIError: If the response carries GraphQL errors or no data.
            TransientExternalFailure: If the request keeps failing.
        """
        # Absolute URL: httpx appends "/" to base_url for relative paths
        response = await self._request(
            method="POST",
            path=self.base_url,
            json_data={"query": query, "variables": variables or {}},
            idempotent=idempotent,
        )

        try:
            payload = response.json()
        except ValueError as e:
            raise PlatformAPIError(
                message=f"Platform returned invalid JSON: {e}",
                status_code=response.status_code,
                response_body=response.text[:500],
            ) from e

        errors = payload.get("errors") if isinstance(payload, dict) else None
        if errors:
            messages = "; ".join(
                str(err.get("message", err)) if isinstance(err, dict) else str(err)
                for err in errors
            )
            raise PlatformAPIError(
                message=f"Platform GraphQL error: {messages}",
                status_code=response.status_code,
                errors=errors,
            )

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise PlatformAPIError(
                message="Platform response carried no data",
                status_code=response.status_code,
                response_body=response.text[:500],
            )
        return data

    def _extract_id(self, data: Dict[str, Any], field: str) -> str:
        node = data.get(field)
        resource_id = node.get("id") if isinstance(node, dict) else None
        if not isinstance(resource_id, str) or not resource_id:
            raise PlatformAPIError(
                message=f"Platform response for {field} carried no id",
            )
        return resource_id

    async def create_project(self, name: str) -> str:
        """Create a platform project and return its id.

        Args:
            name: Project name; the repository's "{owner}/{name}".
        """
        data = await self.execute(
            PROJECT_CREATE_MUTATION,
            {"input": {"name": name}},
            idempotent=False,
        )
        project_id = self._extract_id(data, "projectCreate")
        logger.info(
            "Created platform project",
            extra={"platform_project_id": project_id, "project_name": name},
        )
        return project_id

    async def create_service(self, project_id: str, name: str, image: str) -> str:
        """Create a service inside a project and return its id.

        Args:
            project_id: The platform project to create the service in.
            name: Service name; the repository name.
            image: Source image the service is created from.
        """
        data = await self.execute(
            SERVICE_CREATE_MUTATION,
            {
                "input": {
                    "projectId": project_id,
                    "name": name,
                    "source": {"image": image},
                }
            },
            idempotent=False,
        )
        service_id = self._extract_id(data, "serviceCreate")
        logger.info(
            "Created platform service",
            extra={
                "platform_project_id": project_id,
                "platform_service_id": service_id,
                "service_name": name,
            },
        )
        return service_id

    async def delete_project(self, project_id: str) -> None:
        """Delete a platform project together with its services."""
        await self.execute(
            PROJECT_DELETE_MUTATION,
            {"id": project_id},
            idempotent=True,
        )
        logger.info(
            "Deleted platform project",
            extra={"platform_project_id": project_id},
        )
