# tests/test_stock_record_store.py
from decimal import Decimal

import pytest

from stockledger.exceptions import NotFound, InvariantViolation, InvalidQuantity
from stockledger.extensions import db
from stockledger.models.stock import LocationType, to_quantity
from stockledger.services.stock_record_store import StockRecordStore

WH = LocationType.WAREHOUSE


def test_get_missing_coordinate_returns_none(app_ctx):
    assert StockRecordStore.get('item-1', 'wh-1', WH) is None
    with pytest.raises(NotFound):
        StockRecordStore.get_or_404('item-1', 'wh-1', WH)


def test_apply_delta_without_create_raises_not_found(app_ctx):
    with pytest.raises(NotFound):
        StockRecordStore.apply_delta('item-1', 'wh-1', WH, Decimal('1'), Decimal('0'), Decimal('1'))


def test_apply_delta_creates_zero_baseline(app_ctx):
    record = StockRecordStore.apply_delta(
        'item-1', 'wh-1', WH, Decimal('10'), Decimal('0'), Decimal('10'), create=True
    )
    db.session.commit()

    assert record.quantity == Decimal('10')
    assert record.reserved_quantity == Decimal('0')
    assert record.available_quantity == Decimal('10')
    # 未给库位名称时回落为库位 ID
    assert record.location_name == 'wh-1'


def test_apply_delta_rejects_negative_result(app_ctx):
    StockRecordStore.apply_delta('item-1', 'wh-1', WH, Decimal('5'), Decimal('0'), Decimal('5'), create=True)
    with pytest.raises(InvariantViolation):
        StockRecordStore.apply_delta('item-1', 'wh-1', WH, Decimal('-6'), Decimal('0'), Decimal('-6'))


def test_apply_delta_rejects_inconsistent_available(app_ctx):
    StockRecordStore.apply_delta('item-1', 'wh-1', WH, Decimal('5'), Decimal('0'), Decimal('5'), create=True)
    with pytest.raises(InvariantViolation):
        StockRecordStore.apply_delta('item-1', 'wh-1', WH, Decimal('1'), Decimal('0'), Decimal('2'))


def test_apply_delta_rejects_reserving_beyond_on_hand(app_ctx):
    StockRecordStore.apply_delta('item-1', 'wh-1', WH, Decimal('5'), Decimal('0'), Decimal('5'), create=True)
    with pytest.raises(InvariantViolation):
        StockRecordStore.apply_delta('item-1', 'wh-1', WH, Decimal('0'), Decimal('6'), Decimal('-6'))


def test_upsert_absolute_keeps_reservation_and_clamps_available(app_ctx):
    StockRecordStore.apply_delta('item-1', 'wh-1', WH, Decimal('10'), Decimal('0'), Decimal('10'), create=True)
    StockRecordStore.apply_delta('item-1', 'wh-1', WH, Decimal('0'), Decimal('8'), Decimal('-8'))

    record = StockRecordStore.upsert_absolute('item-1', 'wh-1', WH, Decimal('5'), 'counter-1')
    db.session.commit()

    assert record.quantity == Decimal('5')
    assert record.reserved_quantity == Decimal('8')
    # 在库低于预留：可用截断为 0
    assert record.available_quantity == Decimal('0')
    assert record.is_over_reserved
    assert record.last_count_by == 'counter-1'
    assert record.last_count_date is not None


def test_upsert_absolute_creates_missing_coordinate(app_ctx):
    record = StockRecordStore.upsert_absolute('item-1', 'van-7', LocationType.VEHICLE, Decimal('3'), 'counter-1',
                                              location_name='7号车')
    assert record.quantity == Decimal('3')
    assert record.available_quantity == Decimal('3')
    assert record.location_name == '7号车'


def test_release_on_over_reserved_record_recomputes_available(app_ctx):
    StockRecordStore.apply_delta('item-1', 'wh-1', WH, Decimal('10'), Decimal('0'), Decimal('10'), create=True)
    StockRecordStore.apply_delta('item-1', 'wh-1', WH, Decimal('0'), Decimal('8'), Decimal('-8'))
    StockRecordStore.upsert_absolute('item-1', 'wh-1', WH, Decimal('5'), 'counter-1')

    record = StockRecordStore.apply_delta('item-1', 'wh-1', WH, Decimal('0'), Decimal('-6'), Decimal('6'))

    assert record.reserved_quantity == Decimal('2')
    assert record.available_quantity == Decimal('3')
    assert not record.is_over_reserved


def test_list_and_totals(app_ctx):
    StockRecordStore.apply_delta('item-1', 'wh-1', WH, Decimal('10'), Decimal('0'), Decimal('10'), create=True)
    StockRecordStore.apply_delta('item-1', 'site-1', LocationType.SITE, Decimal('4'), Decimal('0'), Decimal('4'),
                                 create=True)
    StockRecordStore.apply_delta('item-2', 'wh-1', WH, Decimal('1'), Decimal('0'), Decimal('1'), create=True)
    db.session.commit()

    assert len(StockRecordStore.list_by_item('item-1')) == 2
    assert [r.inventory_item_id for r in StockRecordStore.list_by_location('wh-1', WH)] == ['item-1', 'item-2']
    # 同一 location_id 在不同类型下是不同坐标
    assert StockRecordStore.list_by_location('wh-1', LocationType.SITE) == []

    totals = StockRecordStore.total_on_hand('item-1')
    assert totals['quantity'] == Decimal('14')
    assert totals['available_quantity'] == Decimal('14')
    assert StockRecordStore.total_on_hand('nothing')['quantity'] == Decimal('0')


@pytest.mark.parametrize('raw, expected', [
    (5, Decimal('5.0000')),
    ('2.5', Decimal('2.5000')),
    (0.1, Decimal('0.1000')),
    (Decimal('1.23456'), Decimal('1.2346')),
])
def test_to_quantity_normalises_scale(raw, expected):
    assert to_quantity(raw) == expected


@pytest.mark.parametrize('raw', [None, True, 'abc', float('nan'), float('inf')])
def test_to_quantity_rejects_garbage(raw):
    with pytest.raises(InvalidQuantity):
        to_quantity(raw)
