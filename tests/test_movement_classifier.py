# tests/test_movement_classifier.py
import pytest

from stockledger.models.stock import Movement, LocationType
from stockledger.services.movement_classifier import (
    classify, describe_locations, location_type_label,
    movement_type_badge, movement_type_icon, movement_type_label
)


@pytest.mark.parametrize('movement_type, label, icon, badge', [
    ('IN', '入库', 'arrow-down-circle', 'success'),
    ('OUT', '出库', 'arrow-up-circle', 'danger'),
    ('TRANSFER', '调拨', 'arrow-right-left', 'primary'),
    ('ADJUSTMENT', '盘点调整', 'settings', 'warning'),
])
def test_known_types(movement_type, label, icon, badge):
    assert movement_type_label(movement_type) == label
    assert movement_type_icon(movement_type) == icon
    assert movement_type_badge(movement_type) == badge


def test_unknown_type_falls_back():
    assert movement_type_label('SCRAP') == 'SCRAP'
    assert movement_type_icon('SCRAP') is None
    assert movement_type_badge('SCRAP') == 'secondary'


def test_location_type_labels():
    assert location_type_label(LocationType.VEHICLE) == '车辆'
    assert location_type_label(None) == 'N/A'
    assert location_type_label('DOCK') == 'DOCK'


def test_describe_locations_per_type():
    transfer = Movement(movement_type=Movement.TYPE_TRANSFER,
                        from_location_id='A', from_location_type=LocationType.WAREHOUSE,
                        to_location_id='B', to_location_type=LocationType.SITE)
    assert describe_locations(transfer) == '从: 仓库 A / 至: 站点 B'

    receipt = Movement(movement_type=Movement.TYPE_IN, to_location_id='A', to_location_type=LocationType.WAREHOUSE)
    assert describe_locations(receipt) == '目标: 仓库 A'

    issue = Movement(movement_type=Movement.TYPE_OUT, from_location_id='V1', from_location_type=LocationType.VEHICLE)
    assert describe_locations(issue) == '来源: 车辆 V1'

    gain = Movement(movement_type=Movement.TYPE_ADJUSTMENT, to_location_id='A', to_location_type=LocationType.WAREHOUSE)
    loss = Movement(movement_type=Movement.TYPE_ADJUSTMENT, from_location_id='A',
                    from_location_type=LocationType.WAREHOUSE)
    assert describe_locations(gain) == '盘盈: 仓库 A'
    assert describe_locations(loss) == '盘亏: 仓库 A'

    assert describe_locations(Movement(movement_type=Movement.TYPE_IN)) == '-'


def test_classify_bundles_display_fields():
    movement = Movement(movement_type=Movement.TYPE_OUT, from_location_id='S1', from_location_type=LocationType.SITE)
    assert classify(movement) == {
        'type': 'OUT',
        'label': '出库',
        'icon': 'arrow-up-circle',
        'badge': 'danger',
        'locations': '来源: 站点 S1',
    }
