# 按照依赖顺序导入
from .base import BaseModel
from .auth import Actor
from .stock import LocationType, StockRecord, Movement
