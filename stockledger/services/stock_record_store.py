"""库存记录存储 - 按坐标读写在库/预留/可用数量"""
from sqlalchemy import func
from stockledger.extensions import db
from stockledger.models.base import utcnow
from stockledger.models.stock import StockRecord, ZERO, to_quantity
from stockledger.exceptions import NotFound, InvariantViolation


class StockRecordStore:
    """
    库存记录存储
    只负责单行的读取、加锁、增量与绝对值写入，不提交事务；
    事务边界由 StockLedgerService 控制。
    """

    @staticmethod
    def _coordinate_query(item_id, location_id, location_type):
        return StockRecord.query.filter_by(
            inventory_item_id=item_id,
            location_id=location_id,
            location_type=location_type
        )

    @staticmethod
    def get(item_id, location_id, location_type):
        """读取库存记录，不存在返回 None"""
        return StockRecordStore._coordinate_query(item_id, location_id, location_type).first()

    @staticmethod
    def get_or_404(item_id, location_id, location_type):
        record = StockRecordStore.get(item_id, location_id, location_type)
        if record is None:
            raise NotFound(item_id, location_id, location_type)
        return record

    @staticmethod
    def lock(item_id, location_id, location_type):
        """
        行级锁读取 (SELECT ... FOR UPDATE)
        同一坐标的写操作在此串行化；populate_existing 保证拿到的是锁后的最新值
        """
        return StockRecordStore._coordinate_query(item_id, location_id, location_type) \
            .with_for_update() \
            .populate_existing() \
            .first()

    @staticmethod
    def _create(item_id, location_id, location_type, location_name=None):
        """零基线创建坐标；并发重复创建会在 flush 时触发唯一约束"""
        record = StockRecord(
            inventory_item_id=item_id,
            location_id=location_id,
            location_type=location_type,
            location_name=location_name or location_id,
            quantity=ZERO,
            reserved_quantity=ZERO,
            available_quantity=ZERO
        )
        db.session.add(record)
        db.session.flush()
        return record

    @staticmethod
    def upsert_absolute(item_id, location_id, location_type, new_quantity, counted_by, location_name=None):
        """
        盘点/调整：直接设定在库数量

        预留数量保持不变 (新坐标为 0)；可用数量 = max(0, 在库 - 预留)。
        在库低于预留时可用被截断为 0，而不是报错。
        """
        if new_quantity < ZERO:
            raise InvariantViolation(f"在库数量不能为负: {new_quantity}")

        record = StockRecordStore.lock(item_id, location_id, location_type)
        if record is None:
            record = StockRecordStore._create(item_id, location_id, location_type, location_name)

        record.quantity = new_quantity
        record.available_quantity = max(ZERO, new_quantity - record.reserved_quantity)
        record.last_count_date = utcnow()
        record.last_count_by = counted_by

        db.session.flush()
        return record

    @staticmethod
    def apply_delta(item_id, location_id, location_type, quantity_delta, reserved_delta, available_delta,
                    create=False, location_name=None):
        """
        在锁定的行上叠加三个增量

        Args:
            create: 坐标不存在时是否以零基线创建 (仅入库路径使用)
        """
        record = StockRecordStore.lock(item_id, location_id, location_type)
        if record is None:
            if not create:
                raise NotFound(item_id, location_id, location_type)
            record = StockRecordStore._create(item_id, location_id, location_type, location_name)

        was_over_reserved = record.is_over_reserved
        new_quantity = record.quantity + quantity_delta
        new_reserved = record.reserved_quantity + reserved_delta

        if new_quantity < ZERO or new_reserved < ZERO:
            raise InvariantViolation(
                f"数量将变为负数: {record!r} delta=({quantity_delta}, {reserved_delta}, {available_delta})"
            )
        # 增量操作只能缩小超额预留，不能制造或扩大它
        if new_reserved > new_quantity and (reserved_delta > ZERO or not was_over_reserved):
            raise InvariantViolation(f"预留将超过在库: {record!r} delta=({quantity_delta}, {reserved_delta})")

        derived = max(ZERO, new_quantity - new_reserved)
        if was_over_reserved or new_reserved > new_quantity:
            # 盘点截断后的坐标按推导值重算可用数量
            new_available = derived
        else:
            new_available = record.available_quantity + available_delta
            if new_available != derived:
                raise InvariantViolation(
                    f"可用数量不一致: {record!r} 期望 {derived}, 实际 {new_available}"
                )

        record.quantity = new_quantity
        record.reserved_quantity = new_reserved
        record.available_quantity = new_available

        db.session.flush()
        return record

    @staticmethod
    def list_by_item(item_id):
        """某物料在所有库位的库存"""
        return StockRecord.query.filter_by(inventory_item_id=item_id) \
            .order_by(StockRecord.location_name.asc(), StockRecord.id.asc()).all()

    @staticmethod
    def list_by_location(location_id, location_type):
        """某库位下所有物料的库存"""
        return StockRecord.query.filter_by(location_id=location_id, location_type=location_type) \
            .order_by(StockRecord.inventory_item_id.asc()).all()

    @staticmethod
    def total_on_hand(item_id):
        """物料跨库位汇总"""
        row = db.session.query(
            func.coalesce(func.sum(StockRecord.quantity), 0),
            func.coalesce(func.sum(StockRecord.reserved_quantity), 0),
            func.coalesce(func.sum(StockRecord.available_quantity), 0)
        ).filter(StockRecord.inventory_item_id == item_id).one()

        quantity, reserved, available = (to_quantity(v) for v in row)
        return {
            'quantity': quantity,
            'reserved_quantity': reserved,
            'available_quantity': available,
        }
