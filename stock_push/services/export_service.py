"""
 * @file: export_service.py
 * @description: Выгрузка движений и несопоставленных SKU в Excel
 * @dependencies: pandas, openpyxl
"""
from io import BytesIO
from typing import List

import pandas as pd
from openpyxl.utils import get_column_letter

from stock_push.models.movement import InventoryMovement
from stock_push.models.unmapped_sku import UnmappedSku

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

MOVEMENT_COLUMNS = [
    "ID", "SKU", "Тип", "Количество", "Заказ", "Событие", "Статус",
    "Попытки", "Лимит попыток", "Ошибка", "Создано", "Последняя попытка",
    "Следующая попытка", "Обработано",
]

UNMAPPED_COLUMNS = [
    "ID", "SKU", "Наименование", "Встреч", "Последний раз", "Исправлен", "Создано",
]


def _format_dt(value):
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else ""


def _to_xlsx(df: pd.DataFrame, sheet_name: str) -> BytesIO:
    output = BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name=sheet_name)
        worksheet = writer.sheets[sheet_name]

        for idx, col in enumerate(df.columns, start=1):
            cell = worksheet.cell(row=1, column=idx)
            cell.font = cell.font.copy(bold=True)
            if df.empty:
                max_length = len(str(col))
            else:
                max_length = max(df[col].astype(str).apply(len).max(), len(str(col)))
            worksheet.column_dimensions[get_column_letter(idx)].width = min(max_length + 2, 50)

    output.seek(0)
    return output


def export_movements(movements: List[InventoryMovement]) -> BytesIO:
    rows = [
        {
            "ID": m.id,
            "SKU": m.sku,
            "Тип": m.movement_type.value,
            "Количество": m.quantity,
            "Заказ": m.order_id or "",
            "Событие": m.event_type,
            "Статус": m.status.value,
            "Попытки": m.attempts,
            "Лимит попыток": m.max_attempts,
            "Ошибка": m.error_message or "",
            "Создано": _format_dt(m.created_at),
            "Последняя попытка": _format_dt(m.last_attempt_at),
            "Следующая попытка": _format_dt(m.next_attempt_at),
            "Обработано": _format_dt(m.processed_at),
        }
        for m in movements
    ]
    return _to_xlsx(pd.DataFrame(rows, columns=MOVEMENT_COLUMNS), "Движения")


def export_unmapped_skus(records: List[UnmappedSku]) -> BytesIO:
    rows = [
        {
            "ID": r.id,
            "SKU": r.sku,
            "Наименование": r.product_name or "",
            "Встреч": r.occurrences,
            "Последний раз": _format_dt(r.last_seen_at),
            "Исправлен": "да" if r.resolved else "нет",
            "Создано": _format_dt(r.created_at),
        }
        for r in records
    ]
    return _to_xlsx(pd.DataFrame(rows, columns=UNMAPPED_COLUMNS), "SKU без привязки")
