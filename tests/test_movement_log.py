# tests/test_movement_log.py
from datetime import timedelta
from decimal import Decimal

import pytest

from stockledger.exceptions import ValidationError, InvalidQuantity, InvalidTransfer, InvariantViolation
from stockledger.extensions import db
from stockledger.models.base import utcnow
from stockledger.models.stock import Movement, LocationType
from stockledger.services.movement_log import MovementLog

WH = LocationType.WAREHOUSE
SITE = LocationType.SITE


def _in(item='item-1', to='wh-1', qty='5', **kw):
    return Movement(movement_type=Movement.TYPE_IN, inventory_item_id=item, quantity=qty,
                    to_location_id=to, to_location_type=WH, creator_id='u-1', **kw)


def _out(item='item-1', frm='wh-1', qty='2', **kw):
    return Movement(movement_type=Movement.TYPE_OUT, inventory_item_id=item, quantity=qty,
                    from_location_id=frm, from_location_type=WH, creator_id='u-1', **kw)


def test_append_assigns_id_and_timestamp(app_ctx):
    movement = MovementLog.append(_in())
    db.session.commit()

    assert movement.id is not None
    assert movement.created_at is not None
    assert movement.quantity == Decimal('5')
    assert MovementLog.get(movement.id) is movement


@pytest.mark.parametrize('movement, error', [
    (Movement(movement_type='LOST', inventory_item_id='i', quantity=1, creator_id='u'), ValidationError),
    (Movement(movement_type=Movement.TYPE_IN, inventory_item_id='i', quantity=0,
              to_location_id='wh', to_location_type=WH, creator_id='u'), InvalidQuantity),
    (Movement(movement_type=Movement.TYPE_IN, inventory_item_id='i', quantity=1, creator_id='u'), ValidationError),
    (Movement(movement_type=Movement.TYPE_OUT, inventory_item_id='i', quantity=1,
              to_location_id='wh', to_location_type=WH, creator_id='u'), ValidationError),
    (Movement(movement_type=Movement.TYPE_TRANSFER, inventory_item_id='i', quantity=1,
              from_location_id='wh', from_location_type=WH, creator_id='u'), InvalidTransfer),
    (Movement(movement_type=Movement.TYPE_TRANSFER, inventory_item_id='i', quantity=1,
              from_location_id='wh', from_location_type=WH,
              to_location_id='wh', to_location_type=WH, creator_id='u'), InvalidTransfer),
    (Movement(movement_type=Movement.TYPE_ADJUSTMENT, inventory_item_id='i', quantity=1, creator_id='u'),
     ValidationError),
    (Movement(movement_type=Movement.TYPE_IN, inventory_item_id='i', quantity=1,
              to_location_id='wh', to_location_type='SHELF', creator_id='u'), ValidationError),
])
def test_validate_rejects_malformed_movements(app_ctx, movement, error):
    with pytest.raises(error):
        MovementLog.append(movement)


def test_transfer_between_same_id_different_types_is_valid(app_ctx):
    movement = Movement(movement_type=Movement.TYPE_TRANSFER, inventory_item_id='i', quantity=1,
                        from_location_id='loc-1', from_location_type=WH,
                        to_location_id='loc-1', to_location_type=SITE, creator_id='u')
    MovementLog.validate(movement)


def test_movements_cannot_be_updated_or_deleted(app_ctx):
    movement = MovementLog.append(_in())
    db.session.commit()

    movement.reason = '改写历史'
    with pytest.raises(InvariantViolation):
        db.session.commit()
    db.session.rollback()

    db.session.delete(movement)
    with pytest.raises(InvariantViolation):
        db.session.commit()
    db.session.rollback()

    assert Movement.query.count() == 1


def test_list_queries_are_newest_first(app_ctx):
    first = MovementLog.append(_in(work_order_id='WO-1'))
    second = MovementLog.append(_out(work_order_id='WO-1', request_id='REQ-1'))
    MovementLog.append(_in(item='item-2', to='wh-2'))
    db.session.commit()

    assert MovementLog.list_by_item('item-1') == [second, first]
    assert MovementLog.list_by_location('wh-1', WH) == [second, first]
    assert MovementLog.list_by_location('wh-1', SITE) == []
    assert MovementLog.list_by_work_order('WO-1') == [second, first]
    assert MovementLog.list_by_request('REQ-1') == [second]
    assert MovementLog.list_by_type(Movement.TYPE_OUT) == [second]


def test_company_and_date_filters(app_ctx):
    mine = MovementLog.append(_in(to_company_id='c-1'))
    MovementLog.append(_in(to_company_id='c-2'))
    db.session.commit()

    assert MovementLog.list_by_company('c-1') == [mine]

    now = utcnow()
    assert len(MovementLog.list_by_date_range(now - timedelta(minutes=5), now + timedelta(minutes=5))) == 2
    assert MovementLog.list_by_date_range(now + timedelta(days=1), now + timedelta(days=2)) == []
    assert MovementLog.list_by_company('c-1', date_from=now + timedelta(days=1)) == []


def test_search_and_paginate(app_ctx):
    for _ in range(5):
        MovementLog.append(_in())
    MovementLog.append(_out())
    db.session.commit()

    assert MovementLog.search(movement_type=Movement.TYPE_IN).count() == 5
    assert MovementLog.search(item_id='item-1', location_id='wh-1', location_type=WH).count() == 6

    page = MovementLog.paginate(page=2, per_page=4)
    assert page.total == 6
    assert len(page.items) == 2

    # 超出范围的页码返回空页而不是 404
    assert MovementLog.paginate(page=9, per_page=4).items == []


def test_totals_by_type_and_value(app_ctx):
    MovementLog.append(_in(qty='10', unit_cost='2.5', total_cost='25', to_company_id='c-1'))
    MovementLog.append(_out(qty='4', unit_cost='2.5', total_cost='10', from_company_id='c-1'))
    MovementLog.append(Movement(movement_type=Movement.TYPE_ADJUSTMENT, inventory_item_id='item-1', quantity=1,
                                to_location_id='wh-1', to_location_type=WH, creator_id='u-1'))
    db.session.commit()

    assert MovementLog.totals_by_type() == {'IN': 1, 'OUT': 1, 'ADJUSTMENT': 1}
    assert MovementLog.totals_by_type(company_id='c-1') == {'IN': 1, 'OUT': 1}

    value = MovementLog.total_value(company_id='c-1')
    assert value['total_in'] == Decimal('25')
    assert value['total_out'] == Decimal('10')
    assert MovementLog.total_value(company_id='nobody') == {'total_in': Decimal('0'), 'total_out': Decimal('0')}


def _transfer(from_company=None, to_company=None, to='wh-2'):
    return Movement(movement_type=Movement.TYPE_TRANSFER, inventory_item_id='item-1', quantity=1,
                    from_location_id='wh-1', from_location_type=WH,
                    to_location_id=to, to_location_type=WH, creator_id='u-1',
                    from_company_id=from_company, to_company_id=to_company)


def test_inter_company_transfers(app_ctx):
    first = MovementLog.append(_transfer('c-1', 'c-2'))
    second = MovementLog.append(_transfer('c-1', 'c-3', to='wh-3'))
    third = MovementLog.append(_transfer('c-2', 'c-3', to='wh-4'))
    # 缺一侧公司的调拨与非调拨流水都不算
    MovementLog.append(_transfer('c-1', None))
    MovementLog.append(_in(from_company_id='c-1', to_company_id='c-2'))
    db.session.commit()

    assert MovementLog.list_inter_company_transfers() == [third, second, first]
    assert MovementLog.list_inter_company_transfers(from_company_id='c-1') == [second, first]
    assert MovementLog.list_inter_company_transfers(to_company_id='c-3') == [third, second]
    assert MovementLog.list_inter_company_transfers(from_company_id='c-1', to_company_id='c-2') == [first]
