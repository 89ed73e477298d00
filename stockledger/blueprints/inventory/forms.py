from flask_wtf import FlaskForm
from wtforms import StringField, SelectField, DecimalField
from wtforms.validators import DataRequired, Length, Optional
from stockledger.models.stock import LocationType
from stockledger.utils.validators import to_text, required_number, validate_non_negative

LOCATION_TYPE_CHOICES = [(t, t) for t in LocationType.ALL]


class LedgerForm(FlaskForm):
    """JSON API 表单基类：身份由网关头传入，不走 CSRF"""

    class Meta:
        csrf = False


class StockLocationForm(LedgerForm):
    """库存坐标 (物料 + 库位 + 库位类型)"""
    inventory_item_id = StringField('物料', filters=[to_text], validators=[DataRequired(), Length(max=64)])
    location_id = StringField('库位', filters=[to_text], validators=[DataRequired(), Length(max=64)])
    location_type = SelectField('库位类型', choices=LOCATION_TYPE_CHOICES, validators=[DataRequired()])


class ReservationForm(StockLocationForm):
    """预留 / 释放预留"""
    quantity = DecimalField('数量', validators=[required_number])


class ReceiveStockForm(StockLocationForm):
    """入库表单"""
    quantity = DecimalField('入库数量', validators=[required_number])
    reason = StringField('入库原因', validators=[DataRequired(), Length(max=255)])
    unit_cost = DecimalField('单价', validators=[Optional(), validate_non_negative])
    location_name = StringField('库位名称', validators=[Optional(), Length(max=128)])
    notes = StringField('备注', validators=[Optional()])
    work_order_id = StringField('工单', filters=[to_text], validators=[Optional(), Length(max=64)])
    request_id = StringField('申请单', filters=[to_text], validators=[Optional(), Length(max=64)])
    document_number = StringField('单据号', validators=[Optional(), Length(max=64)])


class IssueStockForm(StockLocationForm):
    """出库表单 (也用于按预留出库)"""
    quantity = DecimalField('出库数量', validators=[required_number])
    reason = StringField('出库原因', validators=[DataRequired(), Length(max=255)])
    unit_cost = DecimalField('单价', validators=[Optional(), validate_non_negative])
    notes = StringField('备注', validators=[Optional()])
    work_order_id = StringField('工单', filters=[to_text], validators=[Optional(), Length(max=64)])
    request_id = StringField('申请单', filters=[to_text], validators=[Optional(), Length(max=64)])
    document_number = StringField('单据号', validators=[Optional(), Length(max=64)])


class TransferStockForm(LedgerForm):
    """调拨表单"""
    inventory_item_id = StringField('物料', filters=[to_text], validators=[DataRequired(), Length(max=64)])
    from_location_id = StringField('源库位', filters=[to_text], validators=[DataRequired(), Length(max=64)])
    from_location_type = SelectField('源库位类型', choices=LOCATION_TYPE_CHOICES, validators=[DataRequired()])
    to_location_id = StringField('目标库位', filters=[to_text], validators=[DataRequired(), Length(max=64)])
    to_location_type = SelectField('目标库位类型', choices=LOCATION_TYPE_CHOICES, validators=[DataRequired()])
    quantity = DecimalField('调拨数量', validators=[required_number])
    reason = StringField('调拨原因', validators=[DataRequired(), Length(max=255)])
    approver_id = StringField('审批人', filters=[to_text], validators=[Optional(), Length(max=64)])
    unit_cost = DecimalField('单价', validators=[Optional(), validate_non_negative])
    location_name = StringField('目标库位名称', validators=[Optional(), Length(max=128)])
    notes = StringField('备注', validators=[Optional()])
    to_company_id = StringField('目标公司', filters=[to_text], validators=[Optional(), Length(max=64)])
    work_order_id = StringField('工单', filters=[to_text], validators=[Optional(), Length(max=64)])
    request_id = StringField('调拨申请', filters=[to_text], validators=[Optional(), Length(max=64)])
    document_number = StringField('单据号', validators=[Optional(), Length(max=64)])


class AdjustStockForm(StockLocationForm):
    """盘点修正表单"""
    new_quantity = DecimalField('实盘数量', validators=[required_number, validate_non_negative])
    reason = StringField('调整原因', validators=[DataRequired(), Length(max=255)])
    location_name = StringField('库位名称', validators=[Optional(), Length(max=128)])
    notes = StringField('备注', validators=[Optional()])
    document_number = StringField('单据号', validators=[Optional(), Length(max=64)])
