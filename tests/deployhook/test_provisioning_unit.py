"""Unit tests for ProvisioningService.

Verifies project/service creation, compensation of orphaned projects when
service creation fails and that a retry after a partial failure creates
no duplicate top-level project.
"""

import asyncio

import pytest

from fakes import FakePlatformClient, run_async, transient
from src.deployhook.provisioning import (
    PartialProvisioningFailure,
    ProvisioningError,
    ProvisioningService,
)
from src.deployhook.provisioning.service import DEFAULT_SERVICE_IMAGE
from src.deployhook.registry import InMemoryProjectStore, Project, ProjectRegistry


class RecordingPlatform(FakePlatformClient):
    """FakePlatformClient that records create_service arguments."""

    def __init__(self):
        super().__init__()
        self.service_calls = []

    async def create_service(self, project_id, name, image):
        self.service_calls.append((project_id, name, image))
        return await super().create_service(project_id, name, image)


def _create_fn(service: ProvisioningService, repository_id: int = 42):
    async def create() -> Project:
        resources = await service.provision("acme/app", "app")
        return Project(
            repository_id=repository_id,
            repository_full_name="acme/app",
            platform_project_id=resources.platform_project_id,
            platform_service_id=resources.platform_service_id,
        )

    return create


class TestProvision:

    def test_creates_project_then_service(self):
        platform = RecordingPlatform()
        service = ProvisioningService(platform)

        resources = run_async(service.provision("acme/app", "app"))

        assert resources.platform_project_id == "p1"
        assert resources.platform_service_id == "s1"
        assert platform.service_calls == [("p1", "app", DEFAULT_SERVICE_IMAGE)]

    def test_custom_service_image(self):
        platform = RecordingPlatform()
        service = ProvisioningService(platform, service_image="example/image:1")

        run_async(service.provision("acme/app", "app"))

        assert platform.service_calls[0][2] == "example/image:1"

    def test_project_failure_creates_nothing(self, platform):
        platform.fail_project = transient()
        service = ProvisioningService(platform)

        with pytest.raises(ProvisioningError) as exc_info:
            run_async(service.provision("acme/app", "app"))

        assert not isinstance(exc_info.value, PartialProvisioningFailure)
        assert exc_info.value.step == "create_project"
        assert exc_info.value.retryable is True
        assert platform.service_create_calls == 0
        assert platform.projects == []

    def test_non_transient_project_failure_is_not_retryable(self, platform):
        platform.fail_project = ValueError("bad input")
        service = ProvisioningService(platform)

        with pytest.raises(ProvisioningError) as exc_info:
            run_async(service.provision("acme/app", "app"))

        assert exc_info.value.retryable is False

    def test_service_failure_deletes_orphaned_project(self, platform):
        platform.fail_service = transient()
        service = ProvisioningService(platform)

        with pytest.raises(PartialProvisioningFailure) as exc_info:
            run_async(service.provision("acme/app", "app"))

        failure = exc_info.value
        assert failure.platform_project_id == "p1"
        assert failure.compensated is True
        assert failure.retryable is True
        assert failure.step == "create_service"
        assert platform.deleted == ["p1"]
        assert platform.projects == []

    def test_failed_compensation_is_reported(self, platform):
        platform.fail_service = transient()
        platform.fail_delete = RuntimeError("delete refused")
        service = ProvisioningService(platform)

        with pytest.raises(PartialProvisioningFailure) as exc_info:
            run_async(service.provision("acme/app", "app"))

        assert exc_info.value.compensated is False
        assert "not deleted" in exc_info.value.message
        assert platform.projects == ["p1"]

    def test_cancellation_after_project_creation_deletes_orphan(self):
        platform = FakePlatformClient()
        service = ProvisioningService(platform)

        async def slow_service(project_id, name, image):
            await asyncio.sleep(10)

        platform.create_service = slow_service

        async def run():
            task = asyncio.create_task(service.provision("acme/app", "app"))
            while not platform.projects:
                await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        run_async(run())

        assert platform.deleted == ["p1"]

    def test_discard_deletes_project(self, platform):
        service = ProvisioningService(platform)
        resources = run_async(service.provision("acme/app", "app"))
        project = Project(
            repository_id=42,
            repository_full_name="acme/app",
            platform_project_id=resources.platform_project_id,
            platform_service_id=resources.platform_service_id,
        )

        run_async(service.discard(project))

        assert platform.deleted == ["p1"]


class TestProvisioningThroughRegistry:

    def test_partial_failure_commits_no_record(self, platform):
        platform.fail_service = transient()
        store = InMemoryProjectStore()
        service = ProvisioningService(platform)
        registry = ProjectRegistry(store)

        with pytest.raises(PartialProvisioningFailure):
            run_async(registry.find_or_create(42, _create_fn(service)))

        assert run_async(store.get(42)) is None

    def test_retry_after_partial_failure_leaves_one_project(self, platform):
        platform.fail_service = transient()
        store = InMemoryProjectStore()
        service = ProvisioningService(platform)
        registry = ProjectRegistry(store)

        with pytest.raises(PartialProvisioningFailure):
            run_async(registry.find_or_create(42, _create_fn(service)))

        platform.fail_service = None
        project = run_async(registry.find_or_create(42, _create_fn(service)))

        assert platform.projects == [project.platform_project_id]
        assert project.platform_project_id == "p2"
        assert run_async(store.get(42)) == project
