"""
Excel batch import of processes.

Parsing, validation and insertion run as separate phases: any validation
error blocks the whole import; once validation passes, rows are inserted in
chunks and a failing chunk is retried row by row.
"""

import io
import re
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

import openpyxl
from sqlalchemy.orm import Session

from app.config import settings
from app.models.user import User, Company
from app.models.process import Process, WORK_CATEGORIES
from app.schemas.process import ImportResult
from app.utils.datetime_utils import month_start, utc_now, format_datetime
from app.utils.permissions import is_super_admin
from app.utils.validators import (
    ValidationError, sanitize_input, validate_file_extension, validate_file_size, validate_mime_type
)

logger = logging.getLogger(__name__)

COLUMN_COMPANY = "公司名称"
COLUMN_LINE = "生产线"
COLUMN_CATEGORY = "工时类型"
COLUMN_PRODUCT = "产品名称"
COLUMN_PROCESS = "产品工序"
COLUMN_PRICE = "单价"
COLUMN_MONTH = "生效年月"

REQUIRED_COLUMNS = [
    COLUMN_COMPANY, COLUMN_LINE, COLUMN_CATEGORY, COLUMN_PRODUCT,
    COLUMN_PROCESS, COLUMN_PRICE, COLUMN_MONTH,
]

TEMPLATE_FILENAME = "工序导入模板.xlsx"
TEMPLATE_SHEET_TITLE = "工序导入模板"
TEMPLATE_DEFAULT_COMPANY = "示例公司"

EXCEL_EPOCH_OFFSET_DAYS = 25569  # 1970-01-01 的 Excel 序號
UNIX_EPOCH = datetime(1970, 1, 1)


def validate_import_file(filename: str, content_type: Optional[str], size: int) -> None:
    """
    檢查上傳檔案的大小、副檔名與 MIME 類型。

    Raises:
        ValidationError: 檔案不符合要求
    """
    if size <= 0:
        raise ValidationError("文件为空", field="file")
    if not validate_file_size(size, settings.MAX_FILE_SIZE):
        raise ValidationError(
            f"文件大小不能超过{settings.MAX_FILE_SIZE // (1024 * 1024)}MB", field="file"
        )
    if not validate_file_extension(filename or "", settings.ALLOWED_FILE_EXTENSIONS):
        raise ValidationError("请选择Excel文件（.xlsx或.xls格式）", field="file")
    if not validate_mime_type(content_type, settings.ALLOWED_IMPORT_MIME_TYPES):
        raise ValidationError("文件类型不正确，请选择Excel文件", field="file")


def normalize_effective_month(value) -> str:
    """
    將各種日期寫法統一為 YYYY-MM。

    支援 Excel 日期序號、datetime、YYYY-MM、YYYY-MM-DD、YYYY/M、YYYY/M/D；
    無法辨識的值原樣返回，由後續驗證處理。
    """
    if value is None:
        return ""

    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m")

    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        seconds = (float(value) - EXCEL_EPOCH_OFFSET_DAYS) * 86400
        return (UNIX_EPOCH + timedelta(seconds=seconds)).strftime("%Y-%m")

    text = str(value).strip()

    if re.match(r'^\d{4}-\d{2}$', text):
        return text

    if re.match(r'^\d{4}-\d{2}-\d{2}$', text):
        return text[:7]

    match = re.match(r'^(\d{4})/(\d{1,2})(?:/(\d{1,2}))?$', text)
    if match:
        return f"{match.group(1)}-{int(match.group(2)):02d}"

    return text


def _cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return sanitize_input(value)


def parse_workbook(content: bytes) -> List[Dict[str, object]]:
    """
    讀取第一個工作表。

    Returns:
        以標題為鍵的資料列，空白列已略過；每列帶有 `_row` 表示 Excel 行號

    Raises:
        ValidationError: 檔案無法解析、沒有資料或缺少必要欄位
    """
    try:
        wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise ValidationError(f"无法读取Excel文件：{str(e)}", field="file")

    try:
        ws = wb.worksheets[0]
        rows = list(ws.iter_rows(values_only=True))
    finally:
        wb.close()

    if len(rows) < 2:
        raise ValidationError("Excel文件至少需要包含标题行和一行数据", field="file")

    headers = [_cell_text(h) for h in rows[0]]
    missing = [column for column in REQUIRED_COLUMNS if column not in headers]
    if missing:
        raise ValidationError(f"Excel文件标题行不正确，缺少以下列：{', '.join(missing)}", field="file")

    parsed = []
    for index, row in enumerate(rows[1:]):
        if all(cell is None or str(cell).strip() == "" for cell in row):
            continue

        data = {"_row": index + 2}
        for position, header in enumerate(headers):
            if not header:
                continue
            value = row[position] if position < len(row) else None
            if header == COLUMN_MONTH:
                data[header] = value
            elif header == COLUMN_PRICE and isinstance(value, (int, float)) and not isinstance(value, bool):
                data[header] = value
            else:
                data[header] = _cell_text(value)
        parsed.append(data)

    if not parsed:
        raise ValidationError("Excel文件至少需要包含标题行和一行数据", field="file")

    return parsed


def build_import_template(company_name: Optional[str] = None, month: Optional[str] = None) -> bytes:
    """
    產生匯入範本：標題列加一列範例資料。

    Args:
        company_name: 範例列的公司名稱，未提供時使用示例公司
        month: 範例列的生效年月，預設為當地時間的本月
    """
    month = month or format_datetime(utc_now(), settings.TIMEZONE, "%Y-%m")

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = TEMPLATE_SHEET_TITLE
    ws.append(REQUIRED_COLUMNS)
    # 單價可留空
    ws.append([company_name or TEMPLATE_DEFAULT_COMPANY, "生产线A", WORK_CATEGORIES[0], "示例产品", "示例工序", None, month])

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


class ImportService:
    """工序批次匯入服務"""

    def __init__(self, db: Session):
        self.db = db

    def _companies_by_name(self) -> Dict[str, Company]:
        return {company.name: company for company in self.db.query(Company).all()}

    def _existing_keys(self, company_ids: List[int]) -> Dict[Tuple, Process]:
        if not company_ids:
            return {}
        processes = self.db.query(Process).filter(
            Process.company_id.in_(company_ids),
            Process.is_active == True
        ).all()
        return {process.duplicate_key: process for process in processes}

    def validate_rows(self, rows: List[dict], user: User) -> Tuple[List[str], List[dict]]:
        """
        逐列驗證並檢查重複，累積全部錯誤。

        Returns:
            (錯誤訊息, 可寫入的工序資料)
        """
        errors = []
        prepared = []
        companies = self._companies_by_name()
        super_admin = is_super_admin(user)

        for row in rows:
            row_num = row["_row"]
            row_errors = []

            company_name = row.get(COLUMN_COMPANY) or ""
            line = row.get(COLUMN_LINE) or ""
            category = row.get(COLUMN_CATEGORY) or ""
            product = row.get(COLUMN_PRODUCT) or ""
            process_name = row.get(COLUMN_PROCESS) or ""
            raw_price = row.get(COLUMN_PRICE)
            month = normalize_effective_month(row.get(COLUMN_MONTH))

            company = None
            if not company_name:
                row_errors.append("公司名称不能为空")
            else:
                company = companies.get(company_name)
                if company is None:
                    row_errors.append(f'公司"{company_name}"不存在')
                elif not super_admin and company.id != user.company_id:
                    row_errors.append("您只能导入自己公司的工序")

            if not line:
                row_errors.append("生产线不能为空")

            if category not in WORK_CATEGORIES:
                row_errors.append(f"工时类型必须是'{WORK_CATEGORIES[0]}'或'{WORK_CATEGORIES[1]}'")

            if not product:
                row_errors.append("产品名称不能为空")

            if not process_name:
                row_errors.append("产品工序不能为空")

            unit_price = None
            if raw_price is not None and str(raw_price).strip() != "":
                try:
                    unit_price = Decimal(str(raw_price).strip())
                    if not unit_price.is_finite():
                        raise ValueError(raw_price)
                except (ArithmeticError, ValueError):
                    row_errors.append("单价必须是有效数字")

            effective_date = None
            if not month:
                row_errors.append("生效年月不能为空")
            else:
                effective_date = month_start(month)
                if effective_date is None:
                    row_errors.append(f"生效年月格式不正确：{month}")

            if row_errors:
                errors.extend(f"第{row_num}行：{error}" for error in row_errors)
                continue

            prepared.append({
                "_row": row_num,
                "_company_name": company_name,
                "company_id": company.id,
                "production_line": line,
                "production_category": category,
                "product_name": product,
                "product_process": process_name,
                "unit_price": unit_price,
                "effective_date": effective_date,
            })

        errors.extend(self._check_duplicates(prepared))
        return errors, prepared

    def _check_duplicates(self, prepared: List[dict]) -> List[str]:
        errors = []

        # 檔案內重複
        seen: Dict[Tuple[str, ...], List[int]] = {}
        for data in prepared:
            key = (
                data["_company_name"], data["production_line"], data["production_category"],
                data["product_name"], data["product_process"],
            )
            seen.setdefault(key, []).append(data["_row"])

        for key, row_nums in seen.items():
            if len(row_nums) > 1:
                rows_text = "、".join(str(n) for n in row_nums)
                errors.append(f"导入数据内部重复：第{rows_text}行（{' / '.join(key)}）")

        # 與現有工序重複
        existing = self._existing_keys(list({data["company_id"] for data in prepared}))
        for data in prepared:
            key = (
                data["company_id"], data["production_line"], data["production_category"],
                data["product_name"], data["product_process"],
            )
            if key in existing:
                errors.append(
                    f"第{data['_row']}行：与现有工序重复！（{data['_company_name']} / "
                    f"{data['production_line']} / {data['production_category']} / "
                    f"{data['product_name']} / {data['product_process']}）"
                )

        return errors

    def _new_process(self, data: dict) -> Process:
        return Process(
            company_id=data["company_id"],
            production_line=data["production_line"],
            production_category=data["production_category"],
            product_name=data["product_name"],
            product_process=data["product_process"],
            unit_price=data["unit_price"],
            effective_date=data["effective_date"],
            is_active=True,
        )

    def insert_processes(self, prepared: List[dict]) -> Tuple[int, List[str]]:
        """
        分批寫入工序，整批失敗時改為逐列寫入。

        Returns:
            (成功筆數, 失敗訊息)
        """
        batch_size = settings.IMPORT_BATCH_SIZE
        success_count = 0
        errors = []

        for start in range(0, len(prepared), batch_size):
            chunk = prepared[start:start + batch_size]
            try:
                self.db.add_all([self._new_process(data) for data in chunk])
                self.db.commit()
                success_count += len(chunk)
                continue
            except Exception as e:
                self.db.rollback()
                logger.warning(f"第 {start // batch_size + 1} 批匯入失敗，改為逐列寫入: {e}")

            for data in chunk:
                try:
                    self.db.add(self._new_process(data))
                    self.db.commit()
                    success_count += 1
                except Exception as e:
                    self.db.rollback()
                    errors.append(f"第 {data['_row']} 行: {str(e)}")

        return success_count, errors

    def import_processes(self, content: bytes, filename: str, content_type: Optional[str],
                         user: User) -> ImportResult:
        """
        匯入工序 Excel。

        Args:
            content: 檔案內容
            filename: 檔名
            content_type: MIME 類型
            user: 執行匯入的用戶

        Returns:
            匯入結果；驗證失敗時 success 為 False 且不寫入任何資料
        """
        try:
            validate_import_file(filename, content_type, len(content))
            rows = parse_workbook(content)
        except ValidationError as e:
            return ImportResult(success=False, validation_errors=[e.message])

        errors, prepared = self.validate_rows(rows, user)
        if errors:
            logger.info(f"用戶 {user.id} 匯入工序驗證失敗，共 {len(errors)} 個錯誤")
            return ImportResult(
                success=False,
                total_rows=len(rows),
                validation_errors=errors,
            )

        success_count, insert_errors = self.insert_processes(prepared)
        logger.info(
            f"用戶 {user.id} 匯入工序完成: 成功 {success_count} 筆，失敗 {len(insert_errors)} 筆"
        )

        return ImportResult(
            success=not insert_errors,
            total_rows=len(rows),
            success_count=success_count,
            failed_count=len(insert_errors),
            errors=insert_errors,
        )
