from faker import Faker
from faker.providers import BaseProvider


class StockLedgerProvider(BaseProvider):
    """
    库存演示数据生成器
    生成物料编码、库位名称等
    """

    # 物料前缀
    material_prefixes = ['电缆', '螺栓', '密封圈', '轴承', '滤芯', '接头', '保险丝', '阀门', '法兰', '垫片']

    # 物料规格
    material_specs = ['M8', 'M12', 'DN50', 'DN100', '6202', '16A', '32A', '1/2"', '3/4"', 'Φ20']

    # 仓库后缀
    warehouse_suffixes = ['中心仓', '备件仓', '周转仓', '前置仓']

    # 站点后缀
    site_suffixes = ['变电站', '泵站', '基站', '施工现场']

    def material_name(self):
        """生成物料名"""
        return f"{self.random_element(self.material_prefixes)} {self.random_element(self.material_specs)}"

    def material_code(self):
        return f"MAT-{self.numerify('#####')}"

    def warehouse_name(self):
        return f"{self.generator.city_name()}{self.random_element(self.warehouse_suffixes)}"

    def vehicle_name(self):
        """车辆库位以车牌命名"""
        return self.generator.license_plate()

    def site_name(self):
        return f"{self.generator.street_name()}{self.random_element(self.site_suffixes)}"


# 初始化 Faker 并添加自定义 Provider
fake = Faker('zh_CN')
fake.add_provider(StockLedgerProvider)
