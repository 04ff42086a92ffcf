"""Maintenance photo tools backed by the action API.

    upload_maintenance_photo   -> POST uploadMaintenancePhoto (one call per photo)
    get_maintenance_photos     -> GET  getMaintenancePhotos
    search_maintenance_photos  -> GET  getMaintenancePhotos, filtered by file name
"""

from datetime import date
from typing import Any, Callable

import structlog

from consultant.agent.tools import ToolDefinition, ToolInputError, ToolRegistry, object_schema
from consultant.core.transport import ActionClient

logger = structlog.get_logger(__name__)

DEFAULT_MAINTENANCE_TYPE = "Обслуживание"

UPLOAD_MAINTENANCE_PHOTO = ToolDefinition(
    name="upload_maintenance_photo",
    description=(
        "Загрузить одно или несколько фото обслуживания в папку оборудования на Google Drive. "
        'Подпапка "Фото обслуживания" создаётся автоматически. '
        "ВАЖНО: перед загрузкой покажи пользователю информацию о фото и запроси подтверждение."
    ),
    input_schema=object_schema(
        {
            "equipment_id": {"type": "string", "description": "ID оборудования"},
            "photos": {
                "type": "array",
                "description": "Фото для загрузки",
                "items": {
                    "type": "object",
                    "properties": {
                        "photo_base64": {"type": "string", "description": "Фото в Base64 без префикса data:"},
                        "mime_type": {"type": "string", "enum": ["image/jpeg", "image/png"]},
                        "description": {"type": "string", "description": "Краткое описание фото"},
                    },
                    "required": ["photo_base64"],
                },
            },
            "date": {"type": "string", "description": "Дата работ в формате YYYY-MM-DD"},
            "maintenance_type": {"type": "string", "description": "Тип работ (ТО, Ремонт, Осмотр и т.д.)"},
            "general_description": {"type": "string", "description": "Общее описание выполненной работы"},
        },
        required=["equipment_id", "photos"],
    ),
)

GET_MAINTENANCE_PHOTOS = ToolDefinition(
    name="get_maintenance_photos",
    description="Получить список фото обслуживания оборудования: ссылки, даты, описания.",
    input_schema=object_schema(
        {"equipment_id": {"type": "string", "description": "ID оборудования"}},
        required=["equipment_id"],
    ),
)

SEARCH_MAINTENANCE_PHOTOS = ToolDefinition(
    name="search_maintenance_photos",
    description="Поиск фото обслуживания по названию файла, дате или типу работ.",
    input_schema=object_schema(
        {
            "equipment_id": {"type": "string", "description": "ID оборудования"},
            "query": {"type": "string", "description": "Часть имени файла, дата или тип работ"},
        },
        required=["equipment_id"],
    ),
)


def register_photo_tools(
    registry: ToolRegistry,
    client: ActionClient,
    today: Callable[[], date] = date.today,
) -> None:
    """Register the photo tools against an action client."""

    async def upload_maintenance_photo(args: dict[str, Any]) -> Any:
        photos = args["photos"]
        if not isinstance(photos, list) or not photos:
            raise ToolInputError("Массив фото пуст")

        results = []
        for i, photo in enumerate(photos, start=1):
            if not isinstance(photo, dict) or not photo.get("photo_base64"):
                raise ToolInputError(f"Фото {i}: отсутствует photo_base64")
            description = photo.get("description") or args.get("general_description") or ""
            if len(photos) > 1:
                description = f"{description}_{i}"

            results.append(await client.post("uploadMaintenancePhoto", {
                "equipmentId": args["equipment_id"],
                "photoBase64": photo["photo_base64"],
                "mimeType": photo.get("mime_type") or "image/jpeg",
                "description": description,
                "date": args.get("date") or today().isoformat(),
                "maintenanceType": args.get("maintenance_type") or DEFAULT_MAINTENANCE_TYPE,
            }))

        logger.info("photos.uploaded", equipment_id=args["equipment_id"], count=len(results))
        return {"success": True, "uploaded": len(results), "results": results}

    async def get_maintenance_photos(args: dict[str, Any]) -> Any:
        return await client.get("getMaintenancePhotos", {"equipmentId": args["equipment_id"]})

    async def search_maintenance_photos(args: dict[str, Any]) -> Any:
        listing = await client.get("getMaintenancePhotos", {"equipmentId": args["equipment_id"]})
        query = (args.get("query") or "").lower()
        photos = listing.get("photos") if isinstance(listing, dict) else None
        if not query or not photos:
            return listing

        matched = [p for p in photos if query in str(p.get("name", "")).lower()]
        return {
            "success": True,
            "photos": matched,
            "totalPhotos": len(photos),
            "matchedPhotos": len(matched),
            "query": query,
            "folderUrl": listing.get("folderUrl"),
        }

    registry.register(UPLOAD_MAINTENANCE_PHOTO, upload_maintenance_photo)
    registry.register(GET_MAINTENANCE_PHOTOS, get_maintenance_photos)
    registry.register(SEARCH_MAINTENANCE_PHOTOS, search_maintenance_photos)
