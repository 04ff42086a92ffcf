"""Drive file tools: list a folder and read a document, via the action API."""

import re
from typing import Any

from consultant.agent.tools import ToolDefinition, ToolInputError, ToolRegistry, object_schema
from consultant.core.transport import ActionClient

DEFAULT_MAX_LENGTH = 30000
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

_DRIVE_URL_PATTERNS = [
    re.compile(r"/folders/([a-zA-Z0-9_-]+)"),
    re.compile(r"/file/d/([a-zA-Z0-9_-]+)"),
    re.compile(r"/document/d/([a-zA-Z0-9_-]+)"),
    re.compile(r"/spreadsheets/d/([a-zA-Z0-9_-]+)"),
    re.compile(r"[?&]id=([a-zA-Z0-9_-]+)"),
]
_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


def extract_drive_id(url_or_id: str) -> str | None:
    """Pull a Drive file/folder id out of a share URL, or accept a bare id."""
    value = (url_or_id or "").strip()
    if not value:
        return None
    if _ID_PATTERN.match(value):
        return value
    for pattern in _DRIVE_URL_PATTERNS:
        match = pattern.search(value)
        if match:
            return match.group(1)
    return None


SEARCH_FILES_IN_FOLDER = ToolDefinition(
    name="search_files_in_folder",
    description=(
        "Поиск файлов и вложенных папок в папке оборудования на Google Drive. По умолчанию возвращает файлы. "
        f'Для вложенных папок передай mime_type="{FOLDER_MIME_TYPE}".'
    ),
    input_schema=object_schema(
        {
            "folder_url": {"type": "string", "description": "URL папки Google Drive или ID папки"},
            "query": {"type": "string", "description": "Поисковый запрос по названию файла или папки"},
            "mime_type": {
                "type": "string",
                "description": f"Фильтр по типу: application/pdf, image/jpeg, {FOLDER_MIME_TYPE} и т.д.",
            },
        },
        required=["folder_url"],
    ),
)

READ_FILE_CONTENT = ToolDefinition(
    name="read_file_content",
    description=(
        "Прочитать текстовое содержимое файла из Google Drive (PDF, Google Docs, текст). "
        "Используй для чтения инструкций и паспортов оборудования."
    ),
    input_schema=object_schema(
        {
            "file_url": {"type": "string", "description": "URL файла на Google Drive или его ID"},
            "max_length": {
                "type": "integer",
                "description": f"Максимальная длина текста (по умолчанию {DEFAULT_MAX_LENGTH})",
            },
        },
        required=["file_url"],
    ),
)


def register_drive_tools(registry: ToolRegistry, client: ActionClient) -> None:
    """Register the Drive tools against an action client."""

    async def search_files_in_folder(args: dict[str, Any]) -> Any:
        folder_id = extract_drive_id(args["folder_url"])
        if folder_id is None:
            raise ToolInputError(f"Не удалось распознать ID папки: {args['folder_url']}")
        return await client.get("getFolderFiles", {
            "folderId": folder_id,
            "query": args.get("query"),
            "mimeType": args.get("mime_type"),
        })

    async def read_file_content(args: dict[str, Any]) -> Any:
        file_id = extract_drive_id(args["file_url"])
        if file_id is None:
            raise ToolInputError(f"Не удалось распознать ID файла: {args['file_url']}")
        return await client.get("getFileContent", {
            "fileId": file_id,
            "maxLength": int(args.get("max_length") or DEFAULT_MAX_LENGTH),
        })

    registry.register(SEARCH_FILES_IN_FOLDER, search_files_in_folder)
    registry.register(READ_FILE_CONTENT, read_file_content)
