from datetime import datetime
from flask import request, jsonify, current_app, abort
from flask_login import login_required, current_user
from stockledger.blueprints.inventory import inventory_bp
from stockledger.blueprints.inventory.forms import (
    ReservationForm, ReceiveStockForm, IssueStockForm, TransferStockForm, AdjustStockForm
)
from stockledger.models.base import format_decimal
from stockledger.services.ledger_service import StockLedgerService
from stockledger.services.stock_record_store import StockRecordStore
from stockledger.services.movement_log import MovementLog
from stockledger.services.movement_classifier import classify
from stockledger.exceptions import ValidationError


def _validate(form):
    if not form.validate():
        raise ValidationError('参数校验失败', payload={'errors': form.errors})


def _text(field):
    """表单可选文本：空串按 None 处理"""
    return field.data or None


def _parse_date(name):
    value = request.args.get(name, '').strip()
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f'日期格式错误: {name}={value}', payload={name: value})


def _movement_json(movement):
    data = movement.to_dict()
    data['display'] = classify(movement)
    return data


def _written(movement, record=None):
    """写操作统一返回：流水 + 受影响的库存记录"""
    rv = {'success': True, 'movement': _movement_json(movement) if movement else None}
    if record is not None:
        rv['stock'] = record.to_dict()
    return jsonify(rv), 201


# ============== 库存查询 ==============

@inventory_bp.route('/stock/<item_id>')
@login_required
def item_stock(item_id):
    """物料在各库位的库存及汇总"""
    records = StockRecordStore.list_by_item(item_id)
    totals = StockRecordStore.total_on_hand(item_id)
    return jsonify({
        'success': True,
        'inventory_item_id': item_id,
        'records': [r.to_dict() for r in records],
        'totals': {k: format_decimal(v) for k, v in totals.items()},
    })


@inventory_bp.route('/stock/<item_id>/<location_type>/<location_id>')
@login_required
def stock_record(item_id, location_type, location_id):
    record = StockRecordStore.get_or_404(item_id, location_id, location_type)
    return jsonify({'success': True, 'stock': record.to_dict()})


@inventory_bp.route('/locations/<location_type>/<location_id>')
@login_required
def location_stock(location_type, location_id):
    records = StockRecordStore.list_by_location(location_id, location_type)
    return jsonify({
        'success': True,
        'location_id': location_id,
        'location_type': location_type,
        'records': [r.to_dict() for r in records],
    })


# ============== 库存变动 ==============

@inventory_bp.route('/receive', methods=['POST'])
@login_required
def receive():
    """入库"""
    form = ReceiveStockForm()
    _validate(form)
    movement = StockLedgerService.receive_stock(
        item_id=form.inventory_item_id.data,
        to_location_id=form.location_id.data,
        to_location_type=form.location_type.data,
        quantity=form.quantity.data,
        reason=form.reason.data,
        actor=current_user,
        unit_cost=form.unit_cost.data,
        location_name=_text(form.location_name),
        notes=_text(form.notes),
        company_id=current_user.company_id,
        work_order_id=_text(form.work_order_id),
        request_id=_text(form.request_id),
        document_number=_text(form.document_number)
    )
    record = StockRecordStore.get(*movement.to_coordinate)
    return _written(movement, record)


@inventory_bp.route('/issue', methods=['POST'])
@login_required
def issue():
    """出库"""
    form = IssueStockForm()
    _validate(form)
    movement = StockLedgerService.issue_stock(
        item_id=form.inventory_item_id.data,
        from_location_id=form.location_id.data,
        from_location_type=form.location_type.data,
        quantity=form.quantity.data,
        reason=form.reason.data,
        actor=current_user,
        unit_cost=form.unit_cost.data,
        notes=_text(form.notes),
        company_id=current_user.company_id,
        work_order_id=_text(form.work_order_id),
        request_id=_text(form.request_id),
        document_number=_text(form.document_number)
    )
    record = StockRecordStore.get(*movement.from_coordinate)
    return _written(movement, record)


@inventory_bp.route('/fulfil', methods=['POST'])
@login_required
def fulfil():
    """按预留出库"""
    form = IssueStockForm()
    _validate(form)
    movement = StockLedgerService.fulfil_reservation(
        item_id=form.inventory_item_id.data,
        location_id=form.location_id.data,
        location_type=form.location_type.data,
        quantity=form.quantity.data,
        reason=form.reason.data,
        actor=current_user,
        unit_cost=form.unit_cost.data,
        notes=_text(form.notes),
        company_id=current_user.company_id,
        work_order_id=_text(form.work_order_id),
        request_id=_text(form.request_id),
        document_number=_text(form.document_number)
    )
    record = StockRecordStore.get(*movement.from_coordinate)
    return _written(movement, record)


@inventory_bp.route('/transfer', methods=['POST'])
@login_required
def transfer():
    """库位间调拨"""
    form = TransferStockForm()
    _validate(form)
    movement = StockLedgerService.transfer_stock(
        item_id=form.inventory_item_id.data,
        from_location_id=form.from_location_id.data,
        from_location_type=form.from_location_type.data,
        to_location_id=form.to_location_id.data,
        to_location_type=form.to_location_type.data,
        quantity=form.quantity.data,
        reason=form.reason.data,
        actor=current_user,
        approver=_text(form.approver_id),
        unit_cost=form.unit_cost.data,
        location_name=_text(form.location_name),
        notes=_text(form.notes),
        company_id=current_user.company_id,
        to_company_id=_text(form.to_company_id),
        work_order_id=_text(form.work_order_id),
        request_id=_text(form.request_id),
        document_number=_text(form.document_number)
    )
    source = StockRecordStore.get(*movement.from_coordinate)
    target = StockRecordStore.get(*movement.to_coordinate)
    return jsonify({
        'success': True,
        'movement': _movement_json(movement),
        'source': source.to_dict(),
        'target': target.to_dict(),
    }), 201


@inventory_bp.route('/reserve', methods=['POST'])
@login_required
def reserve():
    form = ReservationForm()
    _validate(form)
    record = StockLedgerService.reserve(
        form.inventory_item_id.data, form.location_id.data, form.location_type.data,
        form.quantity.data, current_user
    )
    return jsonify({'success': True, 'stock': record.to_dict()})


@inventory_bp.route('/release', methods=['POST'])
@login_required
def release():
    form = ReservationForm()
    _validate(form)
    record = StockLedgerService.release_reservation(
        form.inventory_item_id.data, form.location_id.data, form.location_type.data,
        form.quantity.data, current_user
    )
    return jsonify({'success': True, 'stock': record.to_dict()})


@inventory_bp.route('/adjust', methods=['POST'])
@login_required
def adjust():
    """
    盘点修正：直接设定在库数量
    无差异时不产生流水，返回 200 且 movement 为 null
    """
    form = AdjustStockForm()
    _validate(form)
    record, movement = StockLedgerService.set_absolute_quantity(
        item_id=form.inventory_item_id.data,
        location_id=form.location_id.data,
        location_type=form.location_type.data,
        new_quantity=form.new_quantity.data,
        reason=form.reason.data,
        actor=current_user,
        location_name=_text(form.location_name),
        notes=_text(form.notes),
        company_id=current_user.company_id,
        document_number=_text(form.document_number)
    )
    if movement is None:
        return jsonify({'success': True, 'movement': None, 'stock': record.to_dict()})
    return _written(movement, record)


# ============== 流水查询 ==============

def _movement_filters():
    """流水查询参数；company 固定为调用方所属租户"""
    return {
        'movement_type': request.args.get('type') or None,
        'item_id': request.args.get('item') or None,
        'location_id': request.args.get('location') or None,
        'location_type': request.args.get('location_type') or None,
        'company_id': current_user.company_id,
        'work_order_id': request.args.get('work_order') or None,
        'request_id': request.args.get('request') or None,
        'date_from': _parse_date('date_from'),
        'date_to': _parse_date('date_to'),
    }


@inventory_bp.route('/movements')
@login_required
def movements():
    """库存流水 (分页，时间倒序)"""
    page = request.args.get('page', 1, type=int)
    per_page = request.args.get('per_page', current_app.config['MOVEMENTS_PER_PAGE'], type=int)
    pagination = MovementLog.paginate(page=page, per_page=per_page, **_movement_filters())
    return jsonify({
        'success': True,
        'items': [_movement_json(m) for m in pagination.items],
        'page': pagination.page,
        'per_page': pagination.per_page,
        'total': pagination.total,
        'pages': pagination.pages,
    })


@inventory_bp.route('/movements/<int:movement_id>')
@login_required
def movement_detail(movement_id):
    movement = MovementLog.get(movement_id)
    if movement is None:
        abort(404)
    return jsonify({'success': True, 'movement': _movement_json(movement)})


@inventory_bp.route('/movements/stats')
@login_required
def movement_stats():
    """按类型统计流水条数"""
    totals = MovementLog.totals_by_type(
        company_id=current_user.company_id,
        date_from=_parse_date('date_from'),
        date_to=_parse_date('date_to')
    )
    return jsonify({'success': True, 'totals': totals})


@inventory_bp.route('/movements/value')
@login_required
def movement_value():
    """入库/出库金额合计"""
    totals = MovementLog.total_value(
        company_id=current_user.company_id,
        date_from=_parse_date('date_from'),
        date_to=_parse_date('date_to')
    )
    return jsonify({'success': True, **{k: format_decimal(v) for k, v in totals.items()}})
