"""
Fold timesheet records into per-employee, per-day display groups.
"""

from datetime import datetime
from typing import Dict, List, Optional

from app.schemas.timesheet import RecordView, GroupedRecord


def group_key(user_id: int, work_date) -> str:
    """員工 + 工作日期的分組鍵"""
    return f"{user_id}_{work_date}"


def _latest(current: Optional[datetime], candidate: Optional[datetime]) -> Optional[datetime]:
    if current is None:
        return candidate
    if candidate is None:
        return current
    return candidate if candidate > current else current


def group_records(records: List[RecordView]) -> List[GroupedRecord]:
    """
    將工時記錄依 (員工, 工作日期) 合併。

    Args:
        records: 已解析工序資訊的工時記錄

    Returns:
        分組後的記錄，依每組第一筆記錄的建立時間由新到舊排序

    沒有明細的記錄不參與分組；狀態、班長、段長等欄位取自每組第一筆記錄。
    不修改輸入，重複呼叫得到相同結果。
    """
    groups: Dict[str, dict] = {}

    for record in records:
        if not record.items:
            continue

        key = group_key(record.user_id, record.work_date)
        group = groups.get(key)

        if group is None:
            groups[key] = {
                "first": record,
                "items": list(record.items),
                "updated_at": record.updated_at,
                "records": [record],
            }
        else:
            group["items"].extend(record.items)
            group["updated_at"] = _latest(group["updated_at"], record.updated_at)
            group["records"].append(record)

    result = []
    for key, group in groups.items():
        first = group["first"]
        result.append(GroupedRecord(
            key=key,
            user_id=first.user_id,
            user_name=first.user_name,
            work_date=first.work_date,
            shift_type=first.shift_type,
            status=first.status,
            supervisor_id=first.supervisor_id,
            supervisor_name=first.supervisor_name,
            section_chief_id=first.section_chief_id,
            section_chief_name=first.section_chief_name,
            production_line=first.production_line,
            created_at=first.created_at,
            updated_at=group["updated_at"],
            all_items=[item.model_copy() for item in group["items"]],
            total_items=len(group["items"]),
            original_records=[r.model_copy(deep=True) for r in group["records"]],
        ))

    # 沒有建立時間的組排在最後
    result.sort(
        key=lambda g: (g.created_at is not None, g.created_at.timestamp() if g.created_at else 0),
        reverse=True
    )
    return result
