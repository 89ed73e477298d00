from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from sqlalchemy import event
from stockledger.extensions import db
from stockledger.exceptions import InvalidQuantity, InvariantViolation
from .base import BaseModel, utcnow

# 数量与金额统一保留 4 位小数 (支持升、米等可拆分单位)
QUANTITY_PRECISION = 18
QUANTITY_SCALE = 4
ZERO = Decimal('0')
_QUANTUM = Decimal(1).scaleb(-QUANTITY_SCALE)


def to_quantity(value):
    """把 int/float/str/Decimal 统一规整为 4 位小数的 Decimal"""
    if value is None or isinstance(value, bool):
        raise InvalidQuantity(f"数量无效: {value!r}")
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
        if not number.is_finite():
            raise InvalidQuantity(f"数量无效: {value!r}")
        return number.quantize(_QUANTUM, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidQuantity(f"数量无效: {value!r}")


class LocationType:
    """库位类型：同一个 location_id 在不同类型下不保证唯一"""
    WAREHOUSE = 'WAREHOUSE'  # 仓库
    VEHICLE = 'VEHICLE'      # 车辆
    SITE = 'SITE'            # 现场/站点

    ALL = (WAREHOUSE, VEHICLE, SITE)


class StockRecord(BaseModel):
    """
    实时库存表
    每个 (物料, 库位, 库位类型) 坐标一行，记录在库/预留/可用数量
    只允许 StockLedgerService 修改
    """
    __tablename__ = 'stock_records'

    inventory_item_id = db.Column(db.String(64), nullable=False, index=True)
    location_id = db.Column(db.String(64), nullable=False)
    location_type = db.Column(db.String(20), nullable=False)
    location_name = db.Column(db.String(128))  # 冗余的库位名称，便于展示

    quantity = db.Column(db.Numeric(QUANTITY_PRECISION, QUANTITY_SCALE), nullable=False, default=ZERO)           # 在库
    reserved_quantity = db.Column(db.Numeric(QUANTITY_PRECISION, QUANTITY_SCALE), nullable=False, default=ZERO)  # 预留
    available_quantity = db.Column(db.Numeric(QUANTITY_PRECISION, QUANTITY_SCALE), nullable=False, default=ZERO) # 可用

    # 最近一次盘点
    last_count_date = db.Column(db.DateTime)
    last_count_by = db.Column(db.String(64))

    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # 乐观锁版本号：行锁失效的数据库上作为并发兜底
    version_id = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {'version_id_col': version_id}

    __table_args__ = (
        db.UniqueConstraint('inventory_item_id', 'location_id', 'location_type',
                            name='uq_stock_records_coordinate'),
        db.Index('ix_stock_records_location', 'location_id', 'location_type'),
        db.CheckConstraint('quantity >= 0', name='ck_stock_records_quantity'),
        db.CheckConstraint('reserved_quantity >= 0', name='ck_stock_records_reserved'),
        db.CheckConstraint('available_quantity >= 0', name='ck_stock_records_available'),
    )

    @property
    def coordinate(self):
        return (self.inventory_item_id, self.location_id, self.location_type)

    @property
    def is_over_reserved(self):
        """盘点后在库低于预留 (可用被截断为 0)"""
        return self.reserved_quantity > self.quantity

    def __repr__(self):
        return (f'<StockRecord {self.inventory_item_id}@{self.location_type}:{self.location_id} '
                f'q={self.quantity} r={self.reserved_quantity} a={self.available_quantity}>')


class Movement(BaseModel):
    """
    库存流水 (核心审计表)
    每一次影响库存的事件写一行，只追加，不修改不删除；更正通过新的冲正流水完成。
    坐标是冗余存储的，不以外键指向 StockRecord。
    """
    __tablename__ = 'stock_movements'

    TYPE_IN = 'IN'                  # 入库
    TYPE_OUT = 'OUT'                # 出库
    TYPE_TRANSFER = 'TRANSFER'      # 调拨
    TYPE_ADJUSTMENT = 'ADJUSTMENT'  # 盘点调整

    TYPES = (TYPE_IN, TYPE_OUT, TYPE_TRANSFER, TYPE_ADJUSTMENT)

    movement_type = db.Column(db.String(20), nullable=False, index=True)
    inventory_item_id = db.Column(db.String(64), nullable=False, index=True)

    # 始终为正数，方向由类型与 from/to 决定
    quantity = db.Column(db.Numeric(QUANTITY_PRECISION, QUANTITY_SCALE), nullable=False)

    from_location_id = db.Column(db.String(64))
    from_location_type = db.Column(db.String(20))
    to_location_id = db.Column(db.String(64))
    to_location_type = db.Column(db.String(20))

    # 租户标记 (不透明，由调用方给出)
    from_company_id = db.Column(db.String(64), index=True)
    to_company_id = db.Column(db.String(64), index=True)

    unit_cost = db.Column(db.Numeric(QUANTITY_PRECISION, QUANTITY_SCALE))
    total_cost = db.Column(db.Numeric(QUANTITY_PRECISION, QUANTITY_SCALE))

    reason = db.Column(db.String(255))
    notes = db.Column(db.Text)
    document_number = db.Column(db.String(64), index=True)  # 关联单据号

    # 追溯关联，台账本身只透传
    work_order_id = db.Column(db.String(64), index=True)
    request_id = db.Column(db.String(64), index=True)

    creator_id = db.Column(db.String(64), nullable=False)
    approver_id = db.Column(db.String(64))

    __table_args__ = (
        db.Index('ix_stock_movements_from', 'from_location_id', 'from_location_type'),
        db.Index('ix_stock_movements_to', 'to_location_id', 'to_location_type'),
        db.CheckConstraint('quantity > 0', name='ck_stock_movements_quantity'),
    )

    @property
    def from_coordinate(self):
        if self.from_location_id is None:
            return None
        return (self.inventory_item_id, self.from_location_id, self.from_location_type)

    @property
    def to_coordinate(self):
        if self.to_location_id is None:
            return None
        return (self.inventory_item_id, self.to_location_id, self.to_location_type)

    def effect_on(self, coordinate):
        """该流水对某个坐标在库数量的影响：to 侧为正，from 侧为负"""
        effect = ZERO
        if self.to_coordinate == coordinate:
            effect += self.quantity
        if self.from_coordinate == coordinate:
            effect -= self.quantity
        return effect

    def __repr__(self):
        return f'<Movement {self.id} {self.movement_type} {self.inventory_item_id} x{self.quantity}>'


@event.listens_for(Movement, 'before_update')
def prevent_movement_update(mapper, connection, target):
    """流水只追加：禁止任何 UPDATE"""
    raise InvariantViolation(f"库存流水不可修改: movement {target.id}")


@event.listens_for(Movement, 'before_delete')
def prevent_movement_delete(mapper, connection, target):
    """流水只追加：禁止删除，更正请追加冲正流水"""
    raise InvariantViolation(f"库存流水不可删除: movement {target.id}")
