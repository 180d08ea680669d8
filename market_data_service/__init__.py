"""
行情数据服务
独立的行情数据微服务，提供 HTTP 接口

架构分层：
  数据获取层 (Acquisition)  → CoinGecko（加密货币） / Alpha Vantage（股票）
  缓存层     (Cache)        → Redis / 进程内内存，同一契约可互换
  聚合层     (Aggregation)  → 价格链、搜索合并、热门资产
  服务层     (Service)      → 按操作的旁路缓存策略
"""

__version__ = "1.0.0"
