"""Document creation tool: create_document -> POST createDocument."""

from typing import Any

from consultant.agent.drive_tools import extract_drive_id
from consultant.agent.tools import ToolDefinition, ToolInputError, ToolRegistry, object_schema
from consultant.core.transport import ActionClient

CREATE_DOCUMENT = ToolDefinition(
    name="create_document",
    description=(
        'Создать документ в Google Drive. Для текстовых документов (инструкции, акты, отчёты) используй type="doc" '
        'и передай текст с markdown-заголовками (# ## ###). Для таблиц (графики ТО, расписания) используй '
        'type="sheet" и передай JSON массив массивов, первая строка — заголовки.'
    ),
    input_schema=object_schema(
        {
            "name": {"type": "string", "description": "Название документа"},
            "type": {"type": "string", "enum": ["doc", "sheet"], "description": "doc — текст, sheet — таблица"},
            "content": {"type": "string", "description": "Содержимое документа"},
            "folder_url": {
                "type": "string",
                "description": "URL или ID папки Google Drive. Если не указан, документ создаётся в корне Drive.",
            },
        },
        required=["name", "type", "content"],
    ),
)


def register_document_tools(registry: ToolRegistry, client: ActionClient) -> None:

    async def create_document(args: dict[str, Any]) -> Any:
        if args["type"] not in ("doc", "sheet"):
            raise ToolInputError(f"Неизвестный тип документа: {args['type']}")

        body = {"name": args["name"], "docType": args["type"], "content": args["content"]}
        if args.get("folder_url"):
            folder_id = extract_drive_id(args["folder_url"])
            if folder_id is None:
                raise ToolInputError(f"Не удалось распознать ID папки: {args['folder_url']}")
            body["folderId"] = folder_id
        return await client.post("createDocument", body)

    registry.register(CREATE_DOCUMENT, create_document)
