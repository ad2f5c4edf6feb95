"""Tests for SettingsService and ProjectService."""
import pytest

from conftest import EventCollector
from core import ServiceContainer
from errors import NotFoundError, ValidationError
from events import AppEvent
from models.entities import Project, Targets


class TestSettings:
    async def test_default_rate(self, services: ServiceContainer):
        assert await services.settings.get_hourly_rate() == 25.0

    async def test_set_rate(self, services: ServiceContainer):
        collector = EventCollector(AppEvent.SETTINGS_CHANGED)
        await services.settings.set_hourly_rate("42.5")
        assert await services.settings.get_hourly_rate() == 42.5
        assert collector.count(AppEvent.SETTINGS_CHANGED) == 1
        collector.cleanup()

    @pytest.mark.parametrize("rate", [-1, 1000.01, "abc", None])
    async def test_rate_out_of_range(self, services: ServiceContainer, rate):
        with pytest.raises(ValidationError):
            await services.settings.set_hourly_rate(rate)
        assert await services.settings.get_hourly_rate() == 25.0

    async def test_unusable_stored_rate_falls_back(self, services: ServiceContainer):
        await services.settings.set_setting("hourly_rate", "lots")
        assert await services.settings.get_hourly_rate() == 25.0

    async def test_default_targets(self, services: ServiceContainer):
        assert await services.settings.get_targets() == Targets(8.0, 40.0, 160.0)

    async def test_set_targets(self, services: ServiceContainer):
        await services.settings.set_targets(Targets(7.0, 35.0, 140.0))
        assert await services.settings.get_targets() == Targets(7.0, 35.0, 140.0)

    async def test_non_positive_target_rejected(self, services: ServiceContainer):
        with pytest.raises(ValidationError):
            await services.settings.set_targets(Targets(0, 40.0, 160.0))

    async def test_currency(self, services: ServiceContainer):
        assert await services.settings.get_currency() == "USD"
        await services.settings.set_currency(" eur ")
        assert await services.settings.get_currency() == "EUR"


class TestProjects:
    async def test_add_and_load(self, services: ServiceContainer):
        project = await services.project.add_project(Project(name="  Acme "))
        assert project.id
        loaded = await services.project.load_projects()
        assert [p.name for p in loaded] == ["Acme"]

    async def test_duplicate_name_case_insensitive(self, services: ServiceContainer):
        await services.project.add_project(Project(name="Acme"))
        with pytest.raises(ValidationError):
            await services.project.add_project(Project(name="acme"))

    async def test_name_validation(self, services: ServiceContainer):
        assert await services.project.validate_project_name("") == "Name required"
        assert await services.project.validate_project_name("x" * 51) is not None
        assert await services.project.validate_project_name("Fine") is None

    async def test_rename_keeps_own_name_valid(self, services: ServiceContainer):
        project = await services.project.add_project(Project(name="Acme"))
        project.description = "Client work"
        await services.project.update_project(project)
        loaded = (await services.project.load_projects())[0]
        assert loaded.description == "Client work"

    async def test_active_projects(self, services: ServiceContainer):
        await services.project.add_project(Project(name="Live"))
        await services.project.add_project(Project(name="Old", is_active=False))
        assert [p.name for p in await services.project.active_projects()] == ["Live"]

    async def test_delete_keeps_entries(self, services: ServiceContainer):
        project = await services.project.add_project(Project(name="Acme"))
        await services.reconciler.add_entry(
            {"date": "2024-03-04", "startTime": "09:00", "endTime": "17:00", "project": "Acme"}
        )
        await services.project.delete_project(project.id)
        assert await services.project.load_projects() == []
        entries = await services.reconciler.load_entries()
        assert entries[0].project == "Acme"

    async def test_delete_missing(self, services: ServiceContainer):
        with pytest.raises(NotFoundError):
            await services.project.delete_project("nope")
