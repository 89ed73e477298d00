from datetime import datetime, timezone
from decimal import Decimal
from stockledger.extensions import db


def utcnow():
    """当前 UTC 时间 (naive，与数据库列保持一致)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_decimal(value):
    """Decimal 转字符串，去掉多余的尾零: Decimal('100.0000') -> '100'"""
    if value is None:
        return None
    normalized = value.normalize()
    return format(normalized, 'f')


class BaseModel(db.Model):
    """
    台账模型基类
    包含：ID主键, 创建时间, 序列化方法
    库存流水是只追加的，所以这里不提供 save/delete 之类的便捷写方法
    """
    __abstract__ = True

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    def to_dict(self):
        """
        通用序列化方法：将模型转换为字典，便于 API 返回 JSON。
        过滤掉以 '_' 开头的私有属性；Decimal 以字符串输出避免精度丢失。
        """
        data = {}
        for c in self.__table__.columns:
            if c.name.startswith('_'):
                continue
            val = getattr(self, c.name)
            if isinstance(val, datetime):
                data[c.name] = val.isoformat()
            elif isinstance(val, Decimal):
                data[c.name] = format_decimal(val)
            else:
                data[c.name] = val
        return data
