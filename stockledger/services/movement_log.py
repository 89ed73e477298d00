"""库存流水服务 - 只追加的审计日志及其查询/汇总"""
from sqlalchemy import func, or_, and_
from stockledger.extensions import db
from stockledger.models.base import utcnow
from stockledger.models.stock import Movement, LocationType, ZERO, to_quantity
from stockledger.exceptions import ValidationError, InvalidQuantity, InvalidTransfer


class MovementLog:
    """库存流水"""

    # ============== 写入 ==============

    @staticmethod
    def _require_side(movement, side):
        location_id = getattr(movement, f'{side}_location_id')
        location_type = getattr(movement, f'{side}_location_type')
        if not location_id or not location_type:
            raise ValidationError(f"{movement.movement_type} 流水缺少 {side} 库位")
        if location_type not in LocationType.ALL:
            raise ValidationError(f"库位类型无效: {location_type}")

    @staticmethod
    def validate(movement):
        """按类型校验必填字段"""
        if movement.movement_type not in Movement.TYPES:
            raise ValidationError(f"流水类型无效: {movement.movement_type}")
        if not movement.inventory_item_id:
            raise ValidationError("流水缺少物料")
        if not movement.creator_id:
            raise ValidationError("流水缺少操作人")
        if movement.quantity is None or movement.quantity <= ZERO:
            if movement.movement_type == Movement.TYPE_TRANSFER:
                raise InvalidTransfer(f"调拨数量必须大于 0: {movement.quantity}")
            raise InvalidQuantity(f"流水数量必须大于 0: {movement.quantity}")

        if movement.movement_type == Movement.TYPE_IN:
            MovementLog._require_side(movement, 'to')
        elif movement.movement_type == Movement.TYPE_OUT:
            MovementLog._require_side(movement, 'from')
        elif movement.movement_type == Movement.TYPE_TRANSFER:
            if not (movement.from_location_id and movement.to_location_id):
                raise InvalidTransfer("调拨流水必须同时包含源库位与目标库位")
            MovementLog._require_side(movement, 'from')
            MovementLog._require_side(movement, 'to')
            if movement.from_coordinate == movement.to_coordinate:
                raise InvalidTransfer("调拨的源库位与目标库位不能相同")
        else:
            # 盘点调整：增加写 to 侧，减少写 from 侧
            if movement.from_location_id is None and movement.to_location_id is None:
                raise ValidationError("盘点调整流水缺少库位")
            if movement.from_location_id is not None:
                MovementLog._require_side(movement, 'from')
            if movement.to_location_id is not None:
                MovementLog._require_side(movement, 'to')

    @staticmethod
    def append(movement):
        """
        追加一条流水
        created_at 由台账统一赋值；不提交事务，与库存写入同属一个工作单元
        """
        movement.quantity = to_quantity(movement.quantity) if movement.quantity is not None else None
        MovementLog.validate(movement)
        movement.created_at = utcnow()
        db.session.add(movement)
        db.session.flush()
        return movement

    # ============== 查询 ==============

    @staticmethod
    def _newest_first(query):
        return query.order_by(Movement.created_at.desc(), Movement.id.desc())

    @staticmethod
    def _company_clause(company_id):
        return or_(Movement.from_company_id == company_id, Movement.to_company_id == company_id)

    @staticmethod
    def _location_clause(location_id, location_type):
        return or_(
            and_(Movement.from_location_id == location_id, Movement.from_location_type == location_type),
            and_(Movement.to_location_id == location_id, Movement.to_location_type == location_type)
        )

    @staticmethod
    def _date_range(query, date_from=None, date_to=None):
        if date_from:
            query = query.filter(Movement.created_at >= date_from)
        if date_to:
            query = query.filter(Movement.created_at <= date_to)
        return query

    @staticmethod
    def get(movement_id):
        return db.session.get(Movement, movement_id)

    @staticmethod
    def list_by_item(item_id):
        return MovementLog._newest_first(Movement.query.filter_by(inventory_item_id=item_id)).all()

    @staticmethod
    def list_by_location(location_id, location_type):
        """流入或流出该库位的所有流水"""
        query = Movement.query.filter(MovementLog._location_clause(location_id, location_type))
        return MovementLog._newest_first(query).all()

    @staticmethod
    def list_by_date_range(date_from, date_to, company_id=None):
        query = MovementLog._date_range(Movement.query, date_from, date_to)
        if company_id:
            query = query.filter(MovementLog._company_clause(company_id))
        return MovementLog._newest_first(query).all()

    @staticmethod
    def list_by_company(company_id, date_from=None, date_to=None):
        query = Movement.query.filter(MovementLog._company_clause(company_id))
        query = MovementLog._date_range(query, date_from, date_to)
        return MovementLog._newest_first(query).all()

    @staticmethod
    def list_by_work_order(work_order_id):
        return MovementLog._newest_first(Movement.query.filter_by(work_order_id=work_order_id)).all()

    @staticmethod
    def list_by_request(request_id):
        return MovementLog._newest_first(Movement.query.filter_by(request_id=request_id)).all()

    @staticmethod
    def list_by_type(movement_type, company_id=None):
        query = Movement.query.filter_by(movement_type=movement_type)
        if company_id:
            query = query.filter(MovementLog._company_clause(company_id))
        return MovementLog._newest_first(query).all()

    @staticmethod
    def list_inter_company_transfers(from_company_id=None, to_company_id=None):
        """跨公司调拨：两侧公司都已标记的 TRANSFER 流水，可按任一侧公司筛选"""
        query = Movement.query.filter(
            Movement.movement_type == Movement.TYPE_TRANSFER,
            Movement.from_company_id.isnot(None),
            Movement.to_company_id.isnot(None)
        )
        if from_company_id:
            query = query.filter(Movement.from_company_id == from_company_id)
        if to_company_id:
            query = query.filter(Movement.to_company_id == to_company_id)
        return MovementLog._newest_first(query).all()

    @staticmethod
    def search(movement_type=None, item_id=None, location_id=None, location_type=None,
               company_id=None, work_order_id=None, request_id=None, date_from=None, date_to=None):
        """组合筛选，返回按时间倒序的 Query"""
        query = Movement.query
        if movement_type:
            query = query.filter(Movement.movement_type == movement_type)
        if item_id:
            query = query.filter(Movement.inventory_item_id == item_id)
        if location_id and location_type:
            query = query.filter(MovementLog._location_clause(location_id, location_type))
        if company_id:
            query = query.filter(MovementLog._company_clause(company_id))
        if work_order_id:
            query = query.filter(Movement.work_order_id == work_order_id)
        if request_id:
            query = query.filter(Movement.request_id == request_id)
        query = MovementLog._date_range(query, date_from, date_to)
        return MovementLog._newest_first(query)

    @staticmethod
    def paginate(page=1, per_page=20, **filters):
        return MovementLog.search(**filters).paginate(page=page, per_page=per_page, error_out=False)

    # ============== 汇总 ==============

    @staticmethod
    def _scoped(query, company_id=None, date_from=None, date_to=None):
        if company_id:
            query = query.filter(MovementLog._company_clause(company_id))
        return MovementLog._date_range(query, date_from, date_to)

    @staticmethod
    def totals_by_type(company_id=None, date_from=None, date_to=None):
        """按流水类型计数"""
        query = db.session.query(Movement.movement_type, func.count(Movement.id))
        query = MovementLog._scoped(query, company_id, date_from, date_to)
        rows = query.group_by(Movement.movement_type).all()
        return {movement_type: count for movement_type, count in rows}

    @staticmethod
    def total_value(company_id=None, date_from=None, date_to=None):
        """
        入库/出库金额合计
        调拨与盘点调整不代表公司层面的价值变化，不计入
        """
        query = db.session.query(Movement.movement_type, func.coalesce(func.sum(Movement.total_cost), 0)) \
            .filter(Movement.movement_type.in_([Movement.TYPE_IN, Movement.TYPE_OUT]))
        query = MovementLog._scoped(query, company_id, date_from, date_to)
        totals = dict(query.group_by(Movement.movement_type).all())
        return {
            'total_in': to_quantity(totals.get(Movement.TYPE_IN, ZERO)),
            'total_out': to_quantity(totals.get(Movement.TYPE_OUT, ZERO)),
        }
