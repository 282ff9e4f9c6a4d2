import re
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from app.models.process import PRODUCTION_CATEGORY, NON_PRODUCTION_CATEGORY, WORK_CATEGORIES


class ValidationError(Exception):
    """驗證錯誤異常"""

    def __init__(self, message: str, field: str = None):
        self.message = message
        self.field = field
        super().__init__(self.message)


def validate_phone(phone: str) -> bool:
    """驗證手機號碼格式"""
    pattern = r'^1\d{10}$'
    return re.match(pattern, phone or "") is not None


def validate_password_strength(password: str) -> tuple[bool, list]:
    """驗證密碼強度"""
    errors = []

    if len(password) < 6:
        errors.append("密码长度至少需要6个字符")

    if len(password) > 128:
        errors.append("密码长度不能超过128个字符")

    return len(errors) == 0, errors


def validate_work_category(category: str) -> bool:
    """驗證工時類型"""
    return category in WORK_CATEGORIES


def is_production_category(category: Optional[str]) -> bool:
    """判斷是否為生產類工時（需要整數數量）"""
    if not category:
        return False
    return "生产" in category and category != NON_PRODUCTION_CATEGORY


def to_decimal(value: Union[int, float, str, Decimal, None], default: str = "0") -> Decimal:
    """轉換為 Decimal，空值使用預設值"""
    if value is None or value == "":
        return Decimal(default)
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"无效的数值: {value}")


def validate_item_quantity(category: Optional[str], quantity: Union[int, float, str, Decimal, None]) -> Decimal:
    """
    驗證工時數量。

    Args:
        category: 工時類型（生产工时 / 非生产工时）
        quantity: 數量

    Returns:
        驗證後的數量

    Raises:
        ValidationError: 數量不符合規則
    """
    if quantity is None or str(quantity).strip() == "":
        raise ValidationError("数量必须大于0", field="quantity")

    try:
        value = Decimal(str(quantity))
    except InvalidOperation:
        raise ValidationError("请输入有效的数量", field="quantity")

    if not value.is_finite():
        raise ValidationError("请输入有效的数量", field="quantity")

    if is_production_category(category):
        if value <= 0:
            raise ValidationError("数量必须大于0", field="quantity")
        if value != value.to_integral_value():
            raise ValidationError("生产工时数量必须为整数", field="quantity")
    elif value < 0:
        raise ValidationError("非生产工时数量不能为负数", field="quantity")

    return value


def validate_unit_price(price) -> Optional[Decimal]:
    """驗證單價，空值表示未定價"""
    if price is None or str(price).strip() == "":
        return None
    try:
        value = Decimal(str(price).strip())
    except InvalidOperation:
        raise ValidationError("单价必须是有效数字", field="unit_price")
    if not value.is_finite() or value < 0:
        raise ValidationError("单价必须是有效数字", field="unit_price")
    return value


def validate_file_extension(filename: str, allowed_extensions: list) -> bool:
    """驗證檔案副檔名"""
    if '.' not in filename:
        return False

    extension = filename.rsplit('.', 1)[1].lower()
    return extension in [ext.lower() for ext in allowed_extensions]


def validate_file_size(file_size: int, max_size: int) -> bool:
    """驗證檔案大小"""
    return 0 < file_size <= max_size


def validate_mime_type(content_type: Optional[str], allowed_types: list) -> bool:
    """驗證檔案 MIME 類型"""
    if not content_type:
        return False
    return content_type.split(";")[0].strip().lower() in [t.lower() for t in allowed_types]


def sanitize_input(text) -> str:
    """清理輸入文字"""
    if text is None:
        return ""

    text = str(text).strip()

    # 移除多餘的空白字符
    text = re.sub(r'\s+', ' ', text)

    return text


def validate_pagination_params(page: int, page_size: int) -> bool:
    """驗證分頁參數"""
    if page < 1 or page_size < 1:
        return False
    if page_size > 100:  # 限制每頁最大數量
        return False
    return True


class DataValidator:
    """資料驗證器"""

    def validate_process_data(self, process_data: dict) -> tuple[bool, list]:
        """驗證工序資料"""
        errors = []

        for field, label in (
            ("production_line", "生产线"),
            ("product_name", "产品名称"),
            ("product_process", "产品工序"),
        ):
            if not sanitize_input(process_data.get(field)):
                errors.append(f"{label}不能为空")

        category = process_data.get("production_category")
        if hasattr(category, "value"):
            category = category.value
        if not validate_work_category(category):
            errors.append(f"工时类型必须是'{PRODUCTION_CATEGORY}'或'{NON_PRODUCTION_CATEGORY}'")

        if process_data.get("unit_price") is not None:
            try:
                validate_unit_price(process_data["unit_price"])
            except ValidationError as e:
                errors.append(e.message)

        return len(errors) == 0, errors

    def validate_user_data(self, user_data: dict) -> tuple[bool, list]:
        """驗證用戶資料"""
        errors = []

        if 'phone' in user_data and not validate_phone(user_data['phone']):
            errors.append("手机号格式错误")

        if 'name' in user_data and not sanitize_input(user_data['name']):
            errors.append("姓名不能为空")

        if 'password' in user_data:
            is_valid, password_errors = validate_password_strength(user_data['password'])
            errors.extend(password_errors)

        return len(errors) == 0, errors
