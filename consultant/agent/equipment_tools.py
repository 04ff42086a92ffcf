"""Equipment tools backed by the spreadsheet action API.

Each tool maps onto one upstream action:

    get_all_equipment      -> GET  getAll
    get_equipment_details  -> GET  getById
    get_maintenance_log    -> GET  getMaintenanceLog
    add_maintenance_entry  -> POST addMaintenanceEntry
"""

import re
from datetime import date
from typing import Any, Callable

import structlog

from consultant.agent.tools import ToolDefinition, ToolInputError, ToolRegistry, object_schema
from consultant.core.transport import ActionClient

logger = structlog.get_logger(__name__)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

GET_ALL_EQUIPMENT = ToolDefinition(
    name="get_all_equipment",
    description="Получить список всего оборудования. Можно фильтровать по типу, статусу или искать по названию.",
    input_schema=object_schema({
        "search": {"type": "string", "description": "Поисковый запрос по названию оборудования"},
        "type": {"type": "string", "description": "Тип оборудования (filter, pump, tank, valve и т.д.)"},
        "status": {
            "type": "string",
            "enum": ["active", "inactive", "archived"],
            "description": "Статус оборудования",
        },
    }),
)

GET_EQUIPMENT_DETAILS = ToolDefinition(
    name="get_equipment_details",
    description="Получить детальную информацию об одном оборудовании по его ID: характеристики, даты, ссылки на документацию.",
    input_schema=object_schema(
        {"equipment_id": {"type": "string", "description": "ID оборудования"}},
        required=["equipment_id"],
    ),
)

GET_MAINTENANCE_LOG = ToolDefinition(
    name="get_maintenance_log",
    description="Получить журнал обслуживания оборудования. Показывает историю всех работ.",
    input_schema=object_schema(
        {
            "equipment_id": {"type": "string", "description": "ID оборудования"},
            "status": {
                "type": "string",
                "enum": ["completed", "planned", "in_progress", "cancelled"],
                "description": "Фильтр по статусу записи",
            },
            "limit": {"type": "integer", "description": "Максимальное количество записей (по умолчанию 10)"},
            "maintenance_sheet_id": {
                "type": "string",
                "description": "ID листа журнала обслуживания (из контекста оборудования), если известен.",
            },
        },
        required=["equipment_id"],
    ),
)

ADD_MAINTENANCE_ENTRY = ToolDefinition(
    name="add_maintenance_entry",
    description=(
        "Добавить новую запись в журнал обслуживания. ВАЖНО: перед вызовом покажи пользователю "
        "превью записи и запроси подтверждение."
    ),
    input_schema=object_schema(
        {
            "equipment_id": {"type": "string", "description": "ID оборудования"},
            "date": {"type": "string", "description": "Дата в формате YYYY-MM-DD"},
            "type": {"type": "string", "description": "Тип работ (ТО, Ремонт, Осмотр, Замена и т.д.)"},
            "description": {"type": "string", "description": "Подробное описание выполненных работ"},
            "performed_by": {"type": "string", "description": "ФИО исполнителя"},
            "status": {
                "type": "string",
                "enum": ["completed", "planned", "in_progress"],
                "description": "Статус записи (по умолчанию completed)",
            },
            "maintenance_sheet_id": {
                "type": "string",
                "description": "ID листа журнала обслуживания (из контекста оборудования), если известен.",
            },
        },
        required=["equipment_id", "date", "type", "description", "performed_by"],
    ),
)


def validate_entry_date(value: str, status: str, today: date | None = None) -> None:
    """Reject malformed dates and completed work dated in the future."""
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise ToolInputError("Неверный формат даты. Используйте YYYY-MM-DD")
    try:
        entry_date = date.fromisoformat(value)
    except ValueError as e:
        raise ToolInputError("Неверный формат даты. Используйте YYYY-MM-DD") from e

    if status == "completed" and entry_date > (today or date.today()):
        raise ToolInputError("Дата выполненных работ не может быть в будущем")


def register_equipment_tools(
    registry: ToolRegistry,
    client: ActionClient,
    today: Callable[[], date] = date.today,
) -> None:
    """Register the four equipment tools against an action client."""

    async def get_all_equipment(args: dict[str, Any]) -> Any:
        return await client.get("getAll", {
            "search": args.get("search"),
            "type": args.get("type"),
            "status": args.get("status"),
        })

    async def get_equipment_details(args: dict[str, Any]) -> Any:
        return await client.get("getById", {"id": args["equipment_id"]})

    async def get_maintenance_log(args: dict[str, Any]) -> Any:
        limit = args.get("limit")
        return await client.get("getMaintenanceLog", {
            "equipmentId": args["equipment_id"],
            "status": args.get("status"),
            "limit": int(limit) if limit else None,
            "maintenanceSheetId": args.get("maintenance_sheet_id"),
        })

    async def add_maintenance_entry(args: dict[str, Any]) -> Any:
        status = args.get("status") or "completed"
        validate_entry_date(args["date"], status, today())

        logger.info("equipment.add_entry", equipment_id=args["equipment_id"], date=args["date"], status=status)
        return await client.post("addMaintenanceEntry", {
            "equipmentId": args["equipment_id"],
            "date": args["date"],
            "type": args["type"],
            "description": args["description"],
            "performedBy": args["performed_by"],
            "status": status,
            "maintenanceSheetId": args.get("maintenance_sheet_id"),
        })

    registry.register(GET_ALL_EQUIPMENT, get_all_equipment)
    registry.register(GET_EQUIPMENT_DETAILS, get_equipment_details)
    registry.register(GET_MAINTENANCE_LOG, get_maintenance_log)
    registry.register(ADD_MAINTENANCE_ENTRY, add_maintenance_entry)
