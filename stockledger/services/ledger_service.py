"""库存台账服务 - 库存变动与流水写入的唯一入口"""
from contextlib import contextmanager
from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from stockledger.extensions import db
from stockledger.models.stock import Movement, LocationType, ZERO, to_quantity
from stockledger.services.stock_record_store import StockRecordStore
from stockledger.services.movement_log import MovementLog
from stockledger.exceptions import (
    ValidationError, InvalidQuantity, InvalidTransfer, NotFound,
    InsufficientAvailable, InsufficientReserved, ConcurrentUpdate, InvariantViolation
)


def _coordinate_payload(item_id, location_id, location_type):
    return {
        'inventory_item_id': item_id,
        'location_id': location_id,
        'location_type': location_type,
    }


class StockLedgerService:
    """
    库存台账服务

    每个公开方法都是一个原子工作单元：
    先在行锁下读取并校验库存记录，再写库存、再追加流水，最后一次性提交。
    任何失败都会整体回滚并把类型化异常抛给调用方，台账内部不做重试。
    """

    # ============== 工作单元 ==============

    @staticmethod
    @contextmanager
    def _unit_of_work(operation, *coordinate):
        try:
            yield
            db.session.commit()
        except InvariantViolation as e:
            db.session.rollback()
            current_app.logger.error(f'❌ 台账不变量被破坏 [{operation}] {coordinate}: {e.message}')
            raise
        except StaleDataError:
            db.session.rollback()
            current_app.logger.warning(f'⚠️ 并发修改冲突 [{operation}] {coordinate}')
            raise ConcurrentUpdate(f"库存记录已被其他操作修改，请重试: {coordinate}")
        except IntegrityError as e:
            db.session.rollback()
            detail = str(e.orig)
            # SQLite: "CHECK constraint failed"；PostgreSQL: "violates check constraint"
            if 'check constraint' in detail.lower():
                current_app.logger.error(f'❌ 数据库约束拒绝写入 [{operation}] {coordinate}: {detail}')
                raise InvariantViolation(f"数据库约束拒绝写入: {detail}")
            current_app.logger.warning(f'⚠️ 库存坐标被并发创建 [{operation}] {coordinate}')
            raise ConcurrentUpdate(f"库存坐标被并发创建，请重试: {coordinate}")
        except Exception:
            db.session.rollback()
            raise

    # ============== 参数规整 ==============

    @staticmethod
    def _check_location_type(location_type):
        if location_type not in LocationType.ALL:
            raise ValidationError(f"库位类型无效: {location_type}", payload={'location_type': location_type})

    @staticmethod
    def _positive(quantity, error_cls=InvalidQuantity):
        try:
            value = to_quantity(quantity)
        except InvalidQuantity as e:
            raise error_cls(e.message)
        if value <= ZERO:
            raise error_cls(f"数量必须大于 0: {quantity}")
        return value

    @staticmethod
    def _actor_id(actor):
        actor_id = getattr(actor, 'id', actor)
        if actor_id is None or str(actor_id).strip() == '':
            raise ValidationError("缺少操作人")
        return str(actor_id)

    @staticmethod
    def _costs(unit_cost, quantity):
        """返回 (单价, 总价)；总价 = 单价 * 数量"""
        if unit_cost is None:
            return None, None
        unit_cost = to_quantity(unit_cost)
        if unit_cost < ZERO:
            raise ValidationError(f"单价不能为负: {unit_cost}")
        return unit_cost, to_quantity(unit_cost * quantity)

    @staticmethod
    def _locked_or_404(item_id, location_id, location_type):
        record = StockRecordStore.lock(item_id, location_id, location_type)
        if record is None:
            raise NotFound(item_id, location_id, location_type)
        return record

    # ============== 入库 / 出库 ==============

    @staticmethod
    def receive_stock(item_id, to_location_id, to_location_type, quantity, reason, actor,
                      unit_cost=None, location_name=None, notes=None, company_id=None,
                      work_order_id=None, request_id=None, document_number=None):
        """
        入库：在库 += 数量，可用 += 数量，预留不变；坐标不存在时零基线创建

        :return: IN 流水
        """
        StockLedgerService._check_location_type(to_location_type)
        qty = StockLedgerService._positive(quantity)
        creator_id = StockLedgerService._actor_id(actor)
        unit_cost, total_cost = StockLedgerService._costs(unit_cost, qty)

        with StockLedgerService._unit_of_work('receive', item_id, to_location_id, to_location_type):
            StockRecordStore.apply_delta(
                item_id, to_location_id, to_location_type,
                qty, ZERO, qty,
                create=True, location_name=location_name
            )
            movement = MovementLog.append(Movement(
                movement_type=Movement.TYPE_IN,
                inventory_item_id=item_id,
                quantity=qty,
                to_location_id=to_location_id,
                to_location_type=to_location_type,
                to_company_id=company_id,
                unit_cost=unit_cost,
                total_cost=total_cost,
                reason=reason,
                notes=notes,
                document_number=document_number,
                work_order_id=work_order_id,
                request_id=request_id,
                creator_id=creator_id
            ))

        current_app.logger.info(
            f'✅ 入库 {item_id} +{qty} -> {to_location_type}:{to_location_id} (流水 {movement.id})'
        )
        return movement

    @staticmethod
    def issue_stock(item_id, from_location_id, from_location_type, quantity, reason, actor,
                    unit_cost=None, notes=None, company_id=None,
                    work_order_id=None, request_id=None, document_number=None):
        """
        出库：只能出可用部分，预留的库存需先释放或走 fulfil_reservation

        :return: OUT 流水
        """
        StockLedgerService._check_location_type(from_location_type)
        qty = StockLedgerService._positive(quantity)
        creator_id = StockLedgerService._actor_id(actor)
        unit_cost, total_cost = StockLedgerService._costs(unit_cost, qty)

        with StockLedgerService._unit_of_work('issue', item_id, from_location_id, from_location_type):
            record = StockLedgerService._locked_or_404(item_id, from_location_id, from_location_type)
            if record.available_quantity < qty:
                raise InsufficientAvailable(
                    record.available_quantity, qty,
                    payload=_coordinate_payload(item_id, from_location_id, from_location_type)
                )

            StockRecordStore.apply_delta(item_id, from_location_id, from_location_type, -qty, ZERO, -qty)
            movement = MovementLog.append(Movement(
                movement_type=Movement.TYPE_OUT,
                inventory_item_id=item_id,
                quantity=qty,
                from_location_id=from_location_id,
                from_location_type=from_location_type,
                from_company_id=company_id,
                unit_cost=unit_cost,
                total_cost=total_cost,
                reason=reason,
                notes=notes,
                document_number=document_number,
                work_order_id=work_order_id,
                request_id=request_id,
                creator_id=creator_id
            ))

        current_app.logger.info(
            f'✅ 出库 {item_id} -{qty} <- {from_location_type}:{from_location_id} (流水 {movement.id})'
        )
        return movement

    # ============== 调拨 ==============

    @staticmethod
    def transfer_stock(item_id, from_location_id, from_location_type, to_location_id, to_location_type,
                       quantity, reason, actor, approver=None, unit_cost=None, location_name=None,
                       notes=None, company_id=None, to_company_id=None,
                       work_order_id=None, request_id=None, document_number=None):
        """
        调拨：源坐标出、目标坐标入，两行在同一事务内提交，只写一条 TRANSFER 流水

        Args:
            location_name: 目标坐标首次创建时使用的库位名称
            company_id: 源方租户；to_company_id 缺省时与其相同

        :return: TRANSFER 流水
        """
        StockLedgerService._check_location_type(from_location_type)
        StockLedgerService._check_location_type(to_location_type)
        qty = StockLedgerService._positive(quantity, error_cls=InvalidTransfer)
        source = (item_id, from_location_id, from_location_type)
        target = (item_id, to_location_id, to_location_type)
        if source == target:
            raise InvalidTransfer(
                "调拨的源库位与目标库位不能相同",
                payload=_coordinate_payload(item_id, from_location_id, from_location_type)
            )
        creator_id = StockLedgerService._actor_id(actor)
        approver_id = StockLedgerService._actor_id(approver) if approver is not None else None
        unit_cost, total_cost = StockLedgerService._costs(unit_cost, qty)

        with StockLedgerService._unit_of_work('transfer', item_id, from_location_id, to_location_id):
            # 固定加锁顺序，避免两个反向调拨互相等待
            locked = {}
            for coordinate in sorted([source, target]):
                locked[coordinate] = StockRecordStore.lock(*coordinate)

            source_record = locked[source]
            if source_record is None:
                raise NotFound(*source)
            if source_record.available_quantity < qty:
                raise InsufficientAvailable(
                    source_record.available_quantity, qty,
                    payload=_coordinate_payload(*source)
                )

            StockRecordStore.apply_delta(*source, -qty, ZERO, -qty)
            StockRecordStore.apply_delta(*target, qty, ZERO, qty, create=True, location_name=location_name)

            movement = MovementLog.append(Movement(
                movement_type=Movement.TYPE_TRANSFER,
                inventory_item_id=item_id,
                quantity=qty,
                from_location_id=from_location_id,
                from_location_type=from_location_type,
                to_location_id=to_location_id,
                to_location_type=to_location_type,
                from_company_id=company_id,
                to_company_id=to_company_id or company_id,
                unit_cost=unit_cost,
                total_cost=total_cost,
                reason=reason,
                notes=notes,
                document_number=document_number,
                work_order_id=work_order_id,
                request_id=request_id,
                creator_id=creator_id,
                approver_id=approver_id
            ))

        current_app.logger.info(
            f'✅ 调拨 {item_id} x{qty} {from_location_type}:{from_location_id} -> '
            f'{to_location_type}:{to_location_id} (流水 {movement.id})'
        )
        return movement

    # ============== 预留 ==============

    @staticmethod
    def reserve(item_id, location_id, location_type, quantity, actor):
        """
        预留：预留 += 数量，可用 -= 数量，在库不变
        预留只是软占用，不产生流水
        """
        StockLedgerService._check_location_type(location_type)
        qty = StockLedgerService._positive(quantity)
        actor_id = StockLedgerService._actor_id(actor)

        with StockLedgerService._unit_of_work('reserve', item_id, location_id, location_type):
            record = StockLedgerService._locked_or_404(item_id, location_id, location_type)
            if record.available_quantity < qty:
                raise InsufficientAvailable(
                    record.available_quantity, qty,
                    payload=_coordinate_payload(item_id, location_id, location_type)
                )
            record = StockRecordStore.apply_delta(item_id, location_id, location_type, ZERO, qty, -qty)

        current_app.logger.info(f'🔒 预留 {item_id} x{qty} @ {location_type}:{location_id} by {actor_id}')
        return record

    @staticmethod
    def release_reservation(item_id, location_id, location_type, quantity, actor):
        """释放预留：预留 -= 数量，可用 += 数量"""
        StockLedgerService._check_location_type(location_type)
        qty = StockLedgerService._positive(quantity)
        actor_id = StockLedgerService._actor_id(actor)

        with StockLedgerService._unit_of_work('release', item_id, location_id, location_type):
            record = StockLedgerService._locked_or_404(item_id, location_id, location_type)
            if record.reserved_quantity < qty:
                raise InsufficientReserved(
                    record.reserved_quantity, qty,
                    payload=_coordinate_payload(item_id, location_id, location_type)
                )
            record = StockRecordStore.apply_delta(item_id, location_id, location_type, ZERO, -qty, qty)

        current_app.logger.info(f'🔓 释放预留 {item_id} x{qty} @ {location_type}:{location_id} by {actor_id}')
        return record

    @staticmethod
    def fulfil_reservation(item_id, location_id, location_type, quantity, reason, actor,
                           unit_cost=None, notes=None, company_id=None,
                           work_order_id=None, request_id=None, document_number=None):
        """
        按预留出库：在库 -= 数量，预留 -= 数量，可用不变
        用于工单领料等先预留、后实物出库的场景

        :return: OUT 流水
        """
        StockLedgerService._check_location_type(location_type)
        qty = StockLedgerService._positive(quantity)
        creator_id = StockLedgerService._actor_id(actor)
        unit_cost, total_cost = StockLedgerService._costs(unit_cost, qty)

        with StockLedgerService._unit_of_work('fulfil', item_id, location_id, location_type):
            record = StockLedgerService._locked_or_404(item_id, location_id, location_type)
            payload = _coordinate_payload(item_id, location_id, location_type)
            if record.reserved_quantity < qty:
                raise InsufficientReserved(record.reserved_quantity, qty, payload=payload)
            if record.quantity < qty:
                # 盘点截断后在库可能低于预留
                raise InsufficientAvailable(record.quantity, qty, payload=payload)

            StockRecordStore.apply_delta(item_id, location_id, location_type, -qty, -qty, ZERO)
            movement = MovementLog.append(Movement(
                movement_type=Movement.TYPE_OUT,
                inventory_item_id=item_id,
                quantity=qty,
                from_location_id=location_id,
                from_location_type=location_type,
                from_company_id=company_id,
                unit_cost=unit_cost,
                total_cost=total_cost,
                reason=reason,
                notes=notes,
                document_number=document_number,
                work_order_id=work_order_id,
                request_id=request_id,
                creator_id=creator_id
            ))

        current_app.logger.info(
            f'✅ 预留出库 {item_id} -{qty} <- {location_type}:{location_id} (流水 {movement.id})'
        )
        return movement

    # ============== 盘点 ==============

    @staticmethod
    def set_absolute_quantity(item_id, location_id, location_type, new_quantity, reason, actor,
                              location_name=None, notes=None, company_id=None, document_number=None):
        """
        盘点/手工修正：直接设定在库数量

        差异 delta = 新数量 - 原数量；delta 为 0 时不写流水。
        盘盈写 to 侧，盘亏写 from 侧，流水数量为 |delta|。

        :return: (StockRecord, Movement 或 None)
        """
        StockLedgerService._check_location_type(location_type)
        qty = to_quantity(new_quantity)
        if qty < ZERO:
            raise InvalidQuantity(f"盘点数量不能为负: {new_quantity}")
        counted_by = StockLedgerService._actor_id(actor)

        movement = None
        with StockLedgerService._unit_of_work('adjust', item_id, location_id, location_type):
            existing = StockRecordStore.lock(item_id, location_id, location_type)
            previous = existing.quantity if existing is not None else ZERO

            record = StockRecordStore.upsert_absolute(
                item_id, location_id, location_type, qty, counted_by, location_name=location_name
            )

            delta = qty - previous
            if delta != ZERO:
                side = 'to' if delta > ZERO else 'from'
                movement = MovementLog.append(Movement(
                    movement_type=Movement.TYPE_ADJUSTMENT,
                    inventory_item_id=item_id,
                    quantity=abs(delta),
                    reason=reason,
                    notes=notes,
                    document_number=document_number,
                    creator_id=counted_by,
                    **{
                        f'{side}_location_id': location_id,
                        f'{side}_location_type': location_type,
                        f'{side}_company_id': company_id,
                    }
                ))

        if record.is_over_reserved:
            current_app.logger.warning(
                f'⚠️ 盘点后在库低于预留 {item_id} @ {location_type}:{location_id}: '
                f'在库 {record.quantity}, 预留 {record.reserved_quantity}'
            )
        if movement is None:
            current_app.logger.info(f'ℹ️ 盘点无差异 {item_id} @ {location_type}:{location_id} = {qty}')
        else:
            current_app.logger.info(
                f'✅ 盘点调整 {item_id} @ {location_type}:{location_id}: {previous} -> {qty} (流水 {movement.id})'
            )
        return record, movement


