"""
Tests for @requires_services decorator and service status utilities

Validates that the decorator returns a service_unavailable response instead
of dereferencing a service that was never initialized.
"""

import pytest

from services.container import ServiceContainer, set_container
from tools.responses import ErrorType
from tools.service_utils import get_available_tools, get_service_status, requires_services


@pytest.fixture
def null_services_container():
    """Container with all services set to None for decorator testing"""
    container = ServiceContainer()
    set_container(container)
    return container


class TestRequiresServicesDecorator:
    """Test suite for @requires_services decorator"""

    @pytest.mark.asyncio
    async def test_allows_execution_when_service_available(self):
        """Test that decorator allows function execution when service is available"""
        set_container(ServiceContainer(relationship_manager=object()))

        @requires_services("relationship_manager")
        async def test_function():
            return {"success": True, "data": "test"}

        result = await test_function()

        assert result["success"] is True
        assert result["data"] == "test"

    @pytest.mark.asyncio
    async def test_blocks_execution_when_service_is_none(self, null_services_container):
        """Test that decorator returns error when service is None"""
        called = []

        @requires_services("consistency_repair")
        async def test_function():
            called.append(True)
            return {"success": True}

        result = await test_function()

        assert called == []
        assert result["success"] is False
        assert result["error"]["type"] == ErrorType.SERVICE_UNAVAILABLE.value
        assert "consistency_repair not initialized" in result["error"]["message"]

    @pytest.mark.asyncio
    async def test_reports_first_missing_service(self):
        """Test that decorator checks services in the order given"""
        set_container(ServiceContainer(consistency_repair=object()))

        @requires_services("consistency_repair", "repair_outbox", "edge_store")
        async def test_function():
            return {"success": True}

        result = await test_function()

        assert "repair_outbox not initialized" in result["error"]["message"]

    @pytest.mark.asyncio
    async def test_container_kwarg_takes_precedence(self, null_services_container):
        """Test that an injected container is used instead of the global one"""
        injected = ServiceContainer(edge_store=object())

        @requires_services("edge_store")
        async def test_function(container=None):
            return {"success": True, "same": container is injected}

        result = await test_function(container=injected)

        assert result == {"success": True, "same": True}

    @pytest.mark.asyncio
    async def test_preserves_function_metadata(self):
        """Test that decorator preserves original function metadata"""

        @requires_services("edge_store")
        async def my_function():
            """My function docstring"""
            return {"success": True}

        assert my_function.__name__ == "my_function"
        assert my_function.__doc__ == """My function docstring"""

    @pytest.mark.asyncio
    async def test_passes_arguments_through(self):
        """Test that decorator works with functions that have arguments"""
        set_container(ServiceContainer(edge_store=object()))

        @requires_services("edge_store")
        async def test_function(arg1, arg2, kwarg1=None):
            return {"success": True, "arg1": arg1, "arg2": arg2, "kwarg1": kwarg1}

        result = await test_function("value1", "value2", kwarg1="value3")

        assert result == {"success": True, "arg1": "value1", "arg2": "value2", "kwarg1": "value3"}


class TestRealToolIntegration:
    """Verify the decorator guards the real tools"""

    @pytest.mark.asyncio
    async def test_list_relationships_guarded(self, null_services_container):
        from tools.relationship_tools import list_relationships

        result = await list_relationships(contact_id="alice")

        assert result["success"] is False
        assert "relationship_manager not initialized" in result["error"]["message"]

    @pytest.mark.asyncio
    async def test_get_repair_status_guarded(self, null_services_container):
        from tools.repair_tools import get_repair_status

        result = await get_repair_status()

        assert result["success"] is False
        assert "consistency_repair not initialized" in result["error"]["message"]


class TestServiceStatusUtilities:
    """Test suite for service status utility functions"""

    def test_get_service_status_groups(self):
        status = get_service_status()

        assert set(status) == {"server_tools", "relationship_tools", "repair_tools"}
        assert status["relationship_tools"] == {"relationship_manager": False}

    def test_nothing_but_ping_available_when_empty(self, null_services_container):
        tools = get_available_tools()

        assert tools["available"] == ["get_tool_availability", "ping"]
        assert tools["total_tools"] == 10
        assert len(tools["unavailable"]) == 8

    def test_all_available_when_initialized(self, live_container):
        tools = get_available_tools()

        assert tools["unavailable"] == []
        assert tools["available"] == sorted(tools["available"])
        assert "create_relationship" in tools["available"]
        assert "process_repair_queue" in tools["available"]

    def test_service_status_matches(self):
        tools = get_available_tools()
        assert tools["service_status"] == get_service_status()
