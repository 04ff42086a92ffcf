"""System prompt template for the equipment maintenance consultant."""

from datetime import date

from consultant.api.schemas import EquipmentContext

SYSTEM_PROMPT_TEMPLATE = """Ты — AI-консультант по обслуживанию оборудования на производстве.
Твоя задача — помогать сотрудникам работать с оборудованием.{equipment_section}

## Возможности
1. Искать оборудование по названию или характеристикам.
2. Показывать информацию об оборудовании (характеристики, дату ввода, последнее обслуживание).
3. Просматривать и пополнять журнал обслуживания.
4. Искать файлы в папках оборудования на Google Drive и читать документацию (паспорта, инструкции).

## Правила
1. Перед добавлением записи в журнал покажи превью и запроси подтверждение.
2. Формат даты: YYYY-MM-DD.
3. Если пользователь прикрепил фото — сначала опиши, что видишь: тип компонента, марку, видимые повреждения.
4. При диагностике неисправности задай 2-3 уточняющих вопроса, проверь историю через get_maintenance_log
   и веди пользователя пошагово.
5. Чтобы открыть файл — найди его через search_files_in_folder и ответь ссылкой: 📄 [Название](url).
6. Если инструмент вернул ошибку, не выдумывай данные — сообщи об ошибке.

Отвечай кратко и по делу. Язык общения: русский.

Текущая дата: {today}"""

EQUIPMENT_SECTION_TEMPLATE = """

## Контекст оборудования
Пользователь работает с оборудованием:
- ID: {id}
- Название: {name}
- Тип: {type}{drive}{sheet}

Если пользователь не указал оборудование явно, используй equipment_id="{id}"{sheet_hint}.
Не спрашивай ID оборудования, если контекст уже установлен."""


def build_system_prompt(equipment_context: EquipmentContext | None = None, today: date | None = None) -> str:
    """Build the system prompt, with an equipment section when the chat has one.

    Args:
        equipment_context: Equipment the chat was opened from, if any.
        today: Date shown to the model. Defaults to date.today().

    Returns:
        Formatted system prompt string.
    """
    section = ""
    if equipment_context is not None:
        ctx = equipment_context
        section = EQUIPMENT_SECTION_TEMPLATE.format(
            id=ctx.id,
            name=ctx.name,
            type=ctx.type or "не указан",
            drive=f"\n- Папка Google Drive: {ctx.google_drive_url}" if ctx.google_drive_url else "",
            sheet=f"\n- ID журнала обслуживания: {ctx.maintenance_sheet_id}" if ctx.maintenance_sheet_id else "",
            sheet_hint=(
                f' и maintenance_sheet_id="{ctx.maintenance_sheet_id}"' if ctx.maintenance_sheet_id else ""
            ),
        )

    return SYSTEM_PROMPT_TEMPLATE.format(
        equipment_section=section,
        today=(today or date.today()).isoformat(),
    )
