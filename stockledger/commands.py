import random
import click
from flask.cli import with_appcontext
from stockledger.extensions import db
from stockledger.models.stock import StockRecord, Movement, LocationType
from stockledger.services.ledger_service import StockLedgerService
from stockledger.services.reconcile_service import ReconcileService
from stockledger.exceptions import InsufficientAvailable
from stockledger.utils.fake_gen import fake

FORGE_ACTOR = 'forge'


@click.command('status')
@with_appcontext
def status():
    """
    [验证指令] 查看当前台账中的数据统计
    """
    click.echo(click.style('📊 库存台账状态:', fg='cyan', bold=True))

    record_count = StockRecord.query.count()
    movement_count = Movement.query.count()
    click.echo(f" - 库存记录 (Records): \t{record_count}")
    click.echo(f" - 库存流水 (Movements): \t{movement_count}")
    for movement_type in Movement.TYPES:
        count = Movement.query.filter_by(movement_type=movement_type).count()
        click.echo(f"   · {movement_type}: \t{count}")

    if record_count > 0:
        click.echo(click.style('✔ 数据库连接正常，数据已存在。', fg='green'))
    else:
        click.echo(click.style('⚠ 台账为空，请运行 flask forge 生成数据。', fg='yellow'))


@click.command('forge')
@click.option('--scale', default=10, help='数据规模倍数 (默认10倍)')
@click.option('--seed', default=None, type=int, help='随机种子，便于复现')
@with_appcontext
def forge(scale, seed):
    """
    [演示指令] 重建台账并通过台账服务写入演示库存
    警告：这将清除数据库中的现有数据！
    """
    if seed is not None:
        random.seed(seed)
        fake.seed_instance(seed)

    fake.unique.clear()
    click.echo(click.style(f'⚡ 初始化库存台账 (规模: {scale}x)...', fg='cyan', bold=True))

    db.drop_all()
    db.create_all()

    locations = init_locations(scale)
    items = [fake.unique.material_code() for _ in range(scale * 2)]

    click.echo(f'  → 为 {len(items)} 个物料入库...')
    for item_id in items:
        for location_id, location_type, location_name in random.sample(locations, k=min(2, len(locations))):
            StockLedgerService.receive_stock(
                item_id, location_id, location_type, random.randint(50, 500),
                '系统初始化入库', FORGE_ACTOR,
                unit_cost=random.randint(1, 200), location_name=location_name, notes=fake.material_name()
            )

    click.echo('  → 模拟出库、调拨与预留...')
    simulate_activity(locations, scale)

    click.echo(click.style('✔ 演示数据生成完成', fg='green'))


def init_locations(scale):
    """生成库位：(location_id, location_type, location_name)"""
    locations = []
    for i in range(max(1, scale // 5)):
        locations.append((f'WH-{i + 1:03d}', LocationType.WAREHOUSE, fake.warehouse_name()))
    for i in range(max(1, scale // 3)):
        locations.append((f'VH-{i + 1:03d}', LocationType.VEHICLE, fake.vehicle_name()))
    for i in range(max(1, scale // 4)):
        locations.append((f'ST-{i + 1:03d}', LocationType.SITE, fake.site_name()))
    return locations


def simulate_activity(locations, scale):
    """随机业务操作；库存不足的操作直接跳过"""
    for _ in range(scale * 5):
        records = StockRecord.query.filter(StockRecord.available_quantity > 0).all()
        if not records:
            break
        record = random.choice(records)
        qty = random.randint(1, max(1, int(record.available_quantity // 4)))
        action = random.choice(['issue', 'transfer', 'reserve'])
        try:
            if action == 'issue':
                StockLedgerService.issue_stock(
                    record.inventory_item_id, record.location_id, record.location_type, qty,
                    '工单领料', FORGE_ACTOR, work_order_id=f'WO-{fake.numerify("####")}'
                )
            elif action == 'transfer':
                targets = [loc for loc in locations if loc[:2] != (record.location_id, record.location_type)]
                location_id, location_type, location_name = random.choice(targets)
                StockLedgerService.transfer_stock(
                    record.inventory_item_id, record.location_id, record.location_type,
                    location_id, location_type, qty, '库位调拨', FORGE_ACTOR, location_name=location_name
                )
            else:
                StockLedgerService.reserve(
                    record.inventory_item_id, record.location_id, record.location_type, qty, FORGE_ACTOR
                )
        except InsufficientAvailable as e:
            click.echo(click.style(f'  ⚠ 跳过: {e.message}', fg='yellow'))


@click.command('reconcile')
@with_appcontext
def reconcile():
    """
    [对账指令] 用流水回放校验每条库存记录
    存在差异时以非零状态退出
    """
    click.echo(click.style('🔍 正在对账...', fg='cyan', bold=True))
    discrepancies = ReconcileService.reconcile_all()
    if not discrepancies:
        click.echo(click.style('✔ 台账与流水一致', fg='green'))
        return

    for d in discrepancies:
        click.echo(click.style(
            f"✘ {d['inventory_item_id']} @ {d['location_type']}:{d['location_id']} "
            f"在库 {d['quantity']} / 回放 {d['replayed_quantity']} - {', '.join(d['problems'])}",
            fg='red'
        ))
    raise click.exceptions.Exit(1)
