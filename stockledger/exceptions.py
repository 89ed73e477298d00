def _fmt(value):
    """数量展示：Decimal('70.0000') -> '70'"""
    if hasattr(value, 'normalize'):
        return format(value.normalize(), 'f')
    return str(value)


class StockLedgerError(Exception):
    """库存台账基础异常类"""
    code = 500

    def __init__(self, message, code=None, payload=None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.payload = payload

    @property
    def error_type(self):
        return type(self).__name__

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['code'] = self.code
        rv['error'] = self.error_type
        rv['success'] = False
        return rv

class ValidationError(StockLedgerError):
    """请求参数错误"""
    code = 400

    def __init__(self, message="Invalid data", payload=None):
        super().__init__(message, payload=payload)

class InvalidQuantity(ValidationError):
    """数量非法（非正数或负数盘点）"""

class InvalidTransfer(ValidationError):
    """调拨非法：数量非正，或源与目标坐标相同"""

class NotFound(StockLedgerError):
    """库存坐标从未初始化"""
    code = 404

    def __init__(self, item_id, location_id, location_type):
        super().__init__(
            f"库存记录不存在: 物料 {item_id} @ {location_type}:{location_id}",
            payload={
                'inventory_item_id': item_id,
                'location_id': location_id,
                'location_type': location_type,
            }
        )

class InsufficientAvailable(StockLedgerError):
    """可用库存不足"""
    code = 409

    def __init__(self, available, requested, payload=None):
        data = dict(payload or ())
        data.update(available=_fmt(available), requested=_fmt(requested))
        super().__init__(f"库存不足！仅有 {_fmt(available)} 可用，请求 {_fmt(requested)}", payload=data)
        self.available = available
        self.requested = requested

class InsufficientReserved(StockLedgerError):
    """预留数量不足"""
    code = 409

    def __init__(self, reserved, requested, payload=None):
        data = dict(payload or ())
        data.update(reserved=_fmt(reserved), requested=_fmt(requested))
        super().__init__(f"预留不足！当前仅预留 {_fmt(reserved)}，请求 {_fmt(requested)}", payload=data)
        self.reserved = reserved
        self.requested = requested

class ConcurrentUpdate(StockLedgerError):
    """同一库存坐标被并发修改，调用方可自行重试"""
    code = 409

class InvariantViolation(StockLedgerError):
    """内部计算会破坏台账不变量，属于程序错误"""
    code = 500
