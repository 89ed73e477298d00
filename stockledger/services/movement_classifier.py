"""流水分类展示 - 类型到标签/图标/徽章的映射 (纯函数)"""
from stockledger.models.stock import Movement, LocationType

# 流水类型选项 (图标为 lucide 图标名，徽章为 Bootstrap 语义色)
MOVEMENT_TYPE_OPTIONS = [
    {'value': Movement.TYPE_IN, 'label': '入库', 'icon': 'arrow-down-circle', 'badge': 'success'},
    {'value': Movement.TYPE_OUT, 'label': '出库', 'icon': 'arrow-up-circle', 'badge': 'danger'},
    {'value': Movement.TYPE_TRANSFER, 'label': '调拨', 'icon': 'arrow-right-left', 'badge': 'primary'},
    {'value': Movement.TYPE_ADJUSTMENT, 'label': '盘点调整', 'icon': 'settings', 'badge': 'warning'},
]

LOCATION_TYPE_OPTIONS = [
    {'value': LocationType.WAREHOUSE, 'label': '仓库'},
    {'value': LocationType.VEHICLE, 'label': '车辆'},
    {'value': LocationType.SITE, 'label': '站点'},
]

_MOVEMENT_TYPES = {opt['value']: opt for opt in MOVEMENT_TYPE_OPTIONS}
_LOCATION_TYPES = {opt['value']: opt['label'] for opt in LOCATION_TYPE_OPTIONS}

UNKNOWN_BADGE = 'secondary'
EMPTY = '-'


def movement_type_label(movement_type):
    option = _MOVEMENT_TYPES.get(movement_type)
    return option['label'] if option else movement_type


def movement_type_icon(movement_type):
    option = _MOVEMENT_TYPES.get(movement_type)
    return option['icon'] if option else None


def movement_type_badge(movement_type):
    option = _MOVEMENT_TYPES.get(movement_type)
    return option['badge'] if option else UNKNOWN_BADGE


def location_type_label(location_type):
    if not location_type:
        return 'N/A'
    return _LOCATION_TYPES.get(location_type, location_type)


def _describe_side(location_id, location_type):
    return f"{location_type_label(location_type)} {location_id or 'N/A'}"


def describe_locations(movement):
    """
    流水的库位描述
    调拨显示两侧；入库显示目标；出库显示来源；盘点调整显示有值的一侧
    """
    movement_type = movement.movement_type
    has_from = bool(movement.from_location_type)
    has_to = bool(movement.to_location_type)

    if movement_type == Movement.TYPE_TRANSFER:
        return (f"从: {_describe_side(movement.from_location_id, movement.from_location_type)} / "
                f"至: {_describe_side(movement.to_location_id, movement.to_location_type)}")
    if movement_type == Movement.TYPE_IN and has_to:
        return f"目标: {_describe_side(movement.to_location_id, movement.to_location_type)}"
    if movement_type == Movement.TYPE_OUT and has_from:
        return f"来源: {_describe_side(movement.from_location_id, movement.from_location_type)}"
    if movement_type == Movement.TYPE_ADJUSTMENT:
        if has_to:
            return f"盘盈: {_describe_side(movement.to_location_id, movement.to_location_type)}"
        if has_from:
            return f"盘亏: {_describe_side(movement.from_location_id, movement.from_location_type)}"
    return EMPTY


def classify(movement):
    """打包给前端渲染用的展示信息"""
    return {
        'type': movement.movement_type,
        'label': movement_type_label(movement.movement_type),
        'icon': movement_type_icon(movement.movement_type),
        'badge': movement_type_badge(movement.movement_type),
        'locations': describe_locations(movement),
    }
