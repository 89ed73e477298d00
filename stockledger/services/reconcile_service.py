"""台账对账服务 - 用流水回放校验当前库存"""
from sqlalchemy import or_, and_
from stockledger.models.stock import StockRecord, Movement, ZERO


class ReconcileService:
    """
    对账：某坐标的全部流水从 0 开始回放，结果必须等于当前在库数量。
    流水在 to 侧记正、在 from 侧记负 (调拨两侧各算一次)。
    """

    @staticmethod
    def movements_for(item_id, location_id, location_type):
        return Movement.query.filter(
            Movement.inventory_item_id == item_id,
            or_(
                and_(Movement.from_location_id == location_id, Movement.from_location_type == location_type),
                and_(Movement.to_location_id == location_id, Movement.to_location_type == location_type)
            )
        ).order_by(Movement.created_at.asc(), Movement.id.asc()).all()

    @staticmethod
    def replay_quantity(item_id, location_id, location_type):
        """按时间顺序回放流水，得到该坐标的在库数量"""
        coordinate = (item_id, location_id, location_type)
        balance = ZERO
        for movement in ReconcileService.movements_for(item_id, location_id, location_type):
            balance += movement.effect_on(coordinate)
        return balance

    @staticmethod
    def check_record(record, replayed=None):
        """
        返回该库存记录的问题列表，空列表表示一致

        Args:
            replayed: 已回放得到的在库数量；缺省时现场回放
        """
        problems = []
        if record.quantity < ZERO or record.reserved_quantity < ZERO or record.available_quantity < ZERO:
            problems.append('negative_quantity')
        # 盘点截断：在库低于预留时可用应为 0
        if record.available_quantity != max(ZERO, record.quantity - record.reserved_quantity):
            problems.append('available_mismatch')

        if replayed is None:
            replayed = ReconcileService.replay_quantity(*record.coordinate)
        if replayed != record.quantity:
            problems.append('replay_mismatch')
        return problems

    @staticmethod
    def reconcile_all():
        """
        全量对账

        :return: 有问题的坐标列表 [{'inventory_item_id':..., 'problems': [...], ...}]
        """
        discrepancies = []
        for record in StockRecord.query.order_by(StockRecord.id.asc()).all():
            replayed = ReconcileService.replay_quantity(*record.coordinate)
            problems = ReconcileService.check_record(record, replayed=replayed)
            if problems:
                discrepancies.append({
                    'inventory_item_id': record.inventory_item_id,
                    'location_id': record.location_id,
                    'location_type': record.location_type,
                    'quantity': record.quantity,
                    'replayed_quantity': replayed,
                    'problems': problems,
                })
        return discrepancies
