"""Unit tests for the tool registry and the action API tools."""

from datetime import date

import pytest

from consultant.agent.agent import build_tool_registry
from consultant.agent.document_tools import register_document_tools
from consultant.agent.drive_tools import DEFAULT_MAX_LENGTH, extract_drive_id, register_drive_tools
from consultant.agent.equipment_tools import register_equipment_tools, validate_entry_date
from consultant.agent.photo_tools import DEFAULT_MAINTENANCE_TYPE, register_photo_tools
from consultant.agent.tools import (
    ToolDefinition,
    ToolInputError,
    ToolRegistry,
    UnknownToolError,
    object_schema,
)


@pytest.fixture
def client(mocker):
    client = mocker.Mock()
    client.get = mocker.AsyncMock(return_value={"ok": True})
    client.post = mocker.AsyncMock(return_value={"id": "M-1"})
    return client


@pytest.fixture
def registry(client):
    registry = ToolRegistry()
    register_equipment_tools(registry, client, today=lambda: date(2025, 6, 15))
    register_drive_tools(registry, client)
    register_photo_tools(registry, client, today=lambda: date(2025, 6, 15))
    register_document_tools(registry, client)
    return registry


class TestToolDefinition:

    def test_requires_object_schema(self):
        with pytest.raises(ValueError):
            ToolDefinition("bad", "bad", {"type": "string"})

    def test_function_spec(self):
        definition = ToolDefinition("t", "desc", object_schema({"a": {"type": "string"}}, ["a"]))
        spec = definition.to_function_spec()
        assert spec["type"] == "function"
        assert spec["function"]["name"] == "t"
        assert spec["function"]["parameters"]["required"] == ["a"]


class TestToolRegistry:

    def test_duplicate_rejected(self, echo_registry):
        with pytest.raises(ValueError):
            echo_registry.register(ToolDefinition("echo", "again"), lambda args: None)

    def test_names_in_registration_order(self, echo_registry):
        assert echo_registry.names() == ["echo", "broken"]
        assert "echo" in echo_registry
        assert len(echo_registry) == 2

    async def test_execute(self, echo_registry):
        assert await echo_registry.execute("echo", {"value": "x"}) == {"echo": "x"}

    async def test_unknown_tool(self, echo_registry):
        with pytest.raises(UnknownToolError):
            await echo_registry.execute("nope", {})

    async def test_missing_required(self, echo_registry):
        with pytest.raises(ToolInputError, match="value"):
            await echo_registry.execute("echo", {})

    async def test_handler_error_propagates(self, echo_registry):
        with pytest.raises(RuntimeError):
            await echo_registry.execute("broken", {})


class TestEquipmentTools:

    def test_full_registry(self, client):
        assert build_tool_registry(client).names() == [
            "get_all_equipment",
            "get_equipment_details",
            "get_maintenance_log",
            "add_maintenance_entry",
            "search_files_in_folder",
            "read_file_content",
            "upload_maintenance_photo",
            "get_maintenance_photos",
            "search_maintenance_photos",
            "create_document",
        ]

    def test_no_client_no_tools(self):
        assert len(build_tool_registry(None)) == 0

    async def test_get_all_equipment(self, registry, client):
        await registry.execute("get_all_equipment", {"search": "насос", "status": "active"})
        client.get.assert_awaited_once_with("getAll", {"search": "насос", "type": None, "status": "active"})

    async def test_get_equipment_details(self, registry, client):
        await registry.execute("get_equipment_details", {"equipment_id": "EQ-7"})
        client.get.assert_awaited_once_with("getById", {"id": "EQ-7"})

    async def test_get_maintenance_log(self, registry, client):
        await registry.execute("get_maintenance_log", {
            "equipment_id": "EQ-7", "limit": "5", "maintenance_sheet_id": "SHEET",
        })
        client.get.assert_awaited_once_with("getMaintenanceLog", {
            "equipmentId": "EQ-7", "status": None, "limit": 5, "maintenanceSheetId": "SHEET",
        })

    async def test_add_entry_defaults_to_completed(self, registry, client):
        result = await registry.execute("add_maintenance_entry", {
            "equipment_id": "EQ-7",
            "date": "2025-06-14",
            "type": "ТО",
            "description": "Замена картриджа",
            "performed_by": "Иванов И.И.",
        })
        assert result == {"id": "M-1"}
        action, body = client.post.await_args.args
        assert action == "addMaintenanceEntry"
        assert body["status"] == "completed"
        assert body["performedBy"] == "Иванов И.И."

    async def test_add_entry_future_completed_rejected(self, registry, client):
        with pytest.raises(ToolInputError):
            await registry.execute("add_maintenance_entry", {
                "equipment_id": "EQ-7", "date": "2025-06-16", "type": "ТО",
                "description": "d", "performed_by": "p",
            })
        client.post.assert_not_awaited()

    async def test_add_entry_future_planned_allowed(self, registry, client):
        await registry.execute("add_maintenance_entry", {
            "equipment_id": "EQ-7", "date": "2025-07-01", "type": "ТО",
            "description": "d", "performed_by": "p", "status": "planned",
        })
        client.post.assert_awaited_once()


class TestValidateEntryDate:

    @pytest.mark.parametrize("value", ["15.06.2025", "2025-6-1", "2025-02-30", ""])
    def test_bad_format(self, value):
        with pytest.raises(ToolInputError):
            validate_entry_date(value, "planned", today=date(2025, 6, 15))

    def test_today_is_fine(self):
        validate_entry_date("2025-06-15", "completed", today=date(2025, 6, 15))


class TestDriveTools:

    @pytest.mark.parametrize("value, expected", [
        ("https://drive.google.com/drive/folders/1AbC_d-E", "1AbC_d-E"),
        ("https://drive.google.com/file/d/FILE123/view?usp=sharing", "FILE123"),
        ("https://docs.google.com/document/d/DOC456/edit", "DOC456"),
        ("https://drive.google.com/open?id=OPEN789", "OPEN789"),
        ("RAWID_123", "RAWID_123"),
        ("https://example.com/nothing", None),
        ("", None),
    ])
    def test_extract_drive_id(self, value, expected):
        assert extract_drive_id(value) == expected

    async def test_search_files(self, registry, client):
        await registry.execute("search_files_in_folder", {
            "folder_url": "https://drive.google.com/drive/folders/FOLDER1", "query": "паспорт",
        })
        client.get.assert_awaited_once_with("getFolderFiles", {
            "folderId": "FOLDER1", "query": "паспорт", "mimeType": None,
        })

    async def test_read_file_default_length(self, registry, client):
        await registry.execute("read_file_content", {"file_url": "FILE1"})
        client.get.assert_awaited_once_with("getFileContent", {"fileId": "FILE1", "maxLength": DEFAULT_MAX_LENGTH})

    async def test_unrecognized_url(self, registry, client):
        with pytest.raises(ToolInputError):
            await registry.execute("read_file_content", {"file_url": "https://example.com/x y"})
        client.get.assert_not_awaited()


class TestPhotoTools:

    async def test_upload_single_photo_defaults(self, registry, client):
        result = await registry.execute("upload_maintenance_photo", {
            "equipment_id": "EQ-7", "photos": [{"photo_base64": "AAAA"}],
        })
        client.post.assert_awaited_once_with("uploadMaintenancePhoto", {
            "equipmentId": "EQ-7",
            "photoBase64": "AAAA",
            "mimeType": "image/jpeg",
            "description": "",
            "date": "2025-06-15",
            "maintenanceType": DEFAULT_MAINTENANCE_TYPE,
        })
        assert result == {"success": True, "uploaded": 1, "results": [{"id": "M-1"}]}

    async def test_upload_several_photos_numbers_descriptions(self, registry, client):
        result = await registry.execute("upload_maintenance_photo", {
            "equipment_id": "EQ-7",
            "general_description": "Замена фильтра",
            "photos": [
                {"photo_base64": "AAAA"},
                {"photo_base64": "BBBB", "mime_type": "image/png", "description": "После"},
            ],
        })
        assert client.post.await_count == 2
        first, second = (call.args[1] for call in client.post.await_args_list)
        assert first["description"] == "Замена фильтра_1"
        assert second["description"] == "После_2"
        assert second["mimeType"] == "image/png"
        assert result["uploaded"] == 2

    async def test_upload_empty_photos_rejected(self, registry, client):
        with pytest.raises(ToolInputError):
            await registry.execute("upload_maintenance_photo", {"equipment_id": "EQ-7", "photos": []})
        client.post.assert_not_awaited()

    async def test_get_photos(self, registry, client):
        await registry.execute("get_maintenance_photos", {"equipment_id": "EQ-7"})
        client.get.assert_awaited_once_with("getMaintenancePhotos", {"equipmentId": "EQ-7"})

    async def test_search_filters_by_name(self, registry, client):
        client.get.return_value = {
            "photos": [{"name": "2025-06-01_ТО_1.jpg"}, {"name": "2025-05-10_Ремонт.jpg"}],
            "folderUrl": "https://drive.google.com/drive/folders/F",
        }
        result = await registry.execute("search_maintenance_photos", {"equipment_id": "EQ-7", "query": "то"})
        assert result["photos"] == [{"name": "2025-06-01_ТО_1.jpg"}]
        assert result["totalPhotos"] == 2
        assert result["matchedPhotos"] == 1
        assert result["folderUrl"] == "https://drive.google.com/drive/folders/F"

    async def test_search_without_query_returns_listing(self, registry, client):
        listing = {"photos": [{"name": "a.jpg"}], "folderUrl": None}
        client.get.return_value = listing
        assert await registry.execute("search_maintenance_photos", {"equipment_id": "EQ-7"}) == listing


class TestDocumentTools:

    async def test_create_in_folder(self, registry, client):
        await registry.execute("create_document", {
            "name": "Акт ТО", "type": "doc", "content": "# Акт",
            "folder_url": "https://drive.google.com/drive/folders/FOLDER1",
        })
        client.post.assert_awaited_once_with("createDocument", {
            "name": "Акт ТО", "docType": "doc", "content": "# Акт", "folderId": "FOLDER1",
        })

    async def test_create_without_folder(self, registry, client):
        await registry.execute("create_document", {"name": "График", "type": "sheet", "content": "[[\"a\"]]"})
        _, body = client.post.await_args.args
        assert "folderId" not in body

    async def test_unknown_type_rejected(self, registry, client):
        with pytest.raises(ToolInputError):
            await registry.execute("create_document", {"name": "x", "type": "pdf", "content": "c"})
        client.post.assert_not_awaited()
