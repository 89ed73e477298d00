"""
表单验证器与过滤器
"""
from wtforms.validators import ValidationError, StopValidation


def to_text(value):
    """过滤器：JSON 中的数字 ID 统一转为去空白的字符串"""
    if value is None:
        return None
    return str(value).strip()


def required_number(form, field):
    """数值必填 (允许 0，DataRequired 会把 0 当作空值)"""
    if field.data is None:
        if field.errors:
            raise StopValidation()
        raise StopValidation('该字段必填')


def validate_non_negative(form, field):
    """验证非负数"""
    if field.data is not None and field.data < 0:
        raise ValidationError('数值不能为负')
